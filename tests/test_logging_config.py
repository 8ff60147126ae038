# tests/test_logging_config.py

"""Tests for the per-run logging configuration."""

import logging
import tempfile
import unittest
from pathlib import Path

from shop_aggregator.config.logging_config import ROOT_LOGGER, setup_logging


class TestLoggingConfig(unittest.TestCase):
    """setup_logging against a temporary logs directory."""

    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.logs_dir = Path(self._tmp.name) / "logs"
        self.root = logging.getLogger(ROOT_LOGGER)
        self._detach()
        self.addCleanup(self._tmp.cleanup)
        self.addCleanup(self._detach)

    def _detach(self) -> None:
        for handler in list(self.root.handlers):
            self.root.removeHandler(handler)
            handler.close()

    def _console_handlers(self) -> list[logging.Handler]:
        return [
            h for h in self.root.handlers
            if isinstance(h, logging.StreamHandler)
            and not isinstance(h, logging.FileHandler)
        ]

    def test_creates_run_file(self) -> None:
        log_path = setup_logging(self.logs_dir)
        self.assertTrue(log_path.exists())
        self.assertEqual(log_path.parent, self.logs_dir)
        self.assertRegex(log_path.name, r"^run_\d{8}_\d{6}\.log$")

    def test_handler_levels(self) -> None:
        setup_logging(self.logs_dir)
        self.assertEqual(self.root.level, logging.DEBUG)
        file_handlers = [
            h for h in self.root.handlers
            if isinstance(h, logging.FileHandler)
        ]
        self.assertEqual(len(file_handlers), 1)
        self.assertEqual(file_handlers[0].level, logging.DEBUG)
        self.assertEqual(
            [h.level for h in self._console_handlers()], [logging.WARNING],
        )

    def test_repeated_call_reuses_run_file(self) -> None:
        first = setup_logging(self.logs_dir)
        count = len(self.root.handlers)
        second = setup_logging(self.logs_dir)
        self.assertEqual(first, second)
        self.assertEqual(len(self.root.handlers), count)

    def test_repeated_call_moves_console_level(self) -> None:
        setup_logging(self.logs_dir)
        setup_logging(self.logs_dir, console_level=logging.INFO)
        self.assertEqual(
            [h.level for h in self._console_handlers()], [logging.INFO],
        )

    def test_child_logger_reaches_file(self) -> None:
        log_path = setup_logging(self.logs_dir)
        logging.getLogger("shop_aggregator.quota").info("quota probe %d", 42)
        for handler in self.root.handlers:
            handler.flush()
        text = log_path.read_text(encoding="utf-8")
        self.assertIn("quota probe 42", text)
        self.assertIn("shop_aggregator.quota", text)
        self.assertIn("MainThread", text)


if __name__ == "__main__":
    unittest.main()
