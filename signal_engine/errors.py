from __future__ import annotations


class ConfigurationInvalid(ValueError):
    """Raised when a strategy or engine is constructed with impossible parameters."""
