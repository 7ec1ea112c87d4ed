from __future__ import annotations

import logging
import os
import sys
from typing import Mapping

DEFAULT_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"
STRATEGY_LOGGER = "signal_engine.strategies"


def resolve_level(level: int | str) -> int:
    """Accept a numeric level or a case-insensitive level name."""
    if isinstance(level, int):
        return level
    value = logging.getLevelName(str(level).strip().upper())
    if not isinstance(value, int):
        raise ValueError(f"Unknown log level: {level}")
    return value


def configure_logging(
    *,
    level: int | str = logging.INFO,
    log_file: str | None = None,
    console: bool = True,
    strategy_level: int | str | None = None,
    logger_levels: Mapping[str, int | str] | None = None,
    fmt: str = DEFAULT_FORMAT,
) -> None:
    """
    Configure the root logger for the engine and its CLI.

    Strategies log once per analysed series and are noisy during replays,
    so ``strategy_level`` sets the ``signal_engine.strategies`` logger on
    its own. ``logger_levels`` applies further per-logger overrides.
    """
    root_level = resolve_level(level)
    handlers: list[logging.Handler] = []

    if console:
        handlers.append(logging.StreamHandler(stream=sys.stderr))

    if log_file:
        log_file = str(log_file)
        log_dir = os.path.dirname(log_file)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)
        handlers.append(logging.FileHandler(log_file, encoding="utf-8"))

    if not handlers:
        # Never leave logging unconfigured.
        handlers.append(logging.NullHandler())

    logging.basicConfig(level=root_level, format=fmt, handlers=handlers, force=True)

    overrides = {STRATEGY_LOGGER: strategy_level if strategy_level is not None else logging.NOTSET}
    overrides.update(logger_levels or {})
    for name, value in overrides.items():
        logging.getLogger(name).setLevel(resolve_level(value))
