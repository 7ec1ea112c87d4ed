import logging
import os
import tempfile
import unittest


class TestLoggingSetup(unittest.TestCase):
    def setUp(self) -> None:
        # Other test modules disable logging at import time.
        self._disabled = logging.root.manager.disable
        logging.disable(logging.NOTSET)

    def tearDown(self) -> None:
        logging.disable(self._disabled)
        self._reset_handlers()

    def _reset_handlers(self) -> None:
        root = logging.getLogger()
        for h in list(root.handlers):
            root.removeHandler(h)
            h.close()
        logging.getLogger("signal_engine.strategies").setLevel(logging.NOTSET)

    def test_configure_logging_file_only_no_console(self) -> None:
        from signal_engine.logging_setup import configure_logging

        with tempfile.TemporaryDirectory() as td:
            path = os.path.join(td, "engine.log")
            configure_logging(level=logging.INFO, log_file=path, console=False)
            root = logging.getLogger()

            # No console StreamHandler writing to stdout/stderr.
            console_handlers = [
                h
                for h in root.handlers
                if isinstance(h, logging.StreamHandler)
                and not isinstance(h, logging.FileHandler)
            ]
            self.assertEqual(console_handlers, [])
            self.assertTrue(any(isinstance(h, logging.FileHandler) for h in root.handlers))

            logging.getLogger("signal_engine.engine").info("hello")
            for h in root.handlers:
                h.flush()
            with open(path, encoding="utf-8") as f:
                self.assertIn("hello", f.read())
            self._reset_handlers()

    def test_creates_missing_log_directory(self) -> None:
        from signal_engine.logging_setup import configure_logging

        with tempfile.TemporaryDirectory() as td:
            path = os.path.join(td, "logs", "nested", "engine.log")
            configure_logging(log_file=path, console=False)
            self.assertTrue(os.path.isdir(os.path.dirname(path)))
            self._reset_handlers()

    def test_level_name_and_strategy_level(self) -> None:
        from signal_engine.logging_setup import configure_logging

        configure_logging(level="WARNING", console=True, strategy_level=logging.ERROR)
        self.assertEqual(logging.getLogger().level, logging.WARNING)
        self.assertEqual(logging.getLogger("signal_engine.strategies").level, logging.ERROR)

    def test_per_logger_overrides(self) -> None:
        from signal_engine.logging_setup import configure_logging

        configure_logging(console=False, log_file=None, logger_levels={"signal_engine.backtest": "debug"})
        try:
            self.assertEqual(logging.getLogger("signal_engine.backtest").level, logging.DEBUG)
        finally:
            logging.getLogger("signal_engine.backtest").setLevel(logging.NOTSET)

    def test_unknown_level_name_rejected(self) -> None:
        from signal_engine.logging_setup import resolve_level

        self.assertEqual(resolve_level("info"), logging.INFO)
        self.assertEqual(resolve_level(15), 15)
        with self.assertRaises(ValueError):
            resolve_level("chatty")

    def test_no_handlers_falls_back_to_null(self) -> None:
        from signal_engine.logging_setup import configure_logging

        configure_logging(console=False)
        self.assertTrue(any(isinstance(h, logging.NullHandler) for h in logging.getLogger().handlers))


if __name__ == "__main__":
    unittest.main()
