from __future__ import annotations

import logging
import logging.handlers
import os
import tempfile
import unittest
from pathlib import Path
from unittest import mock

from contextui.runtime.log import LOG_LEVEL_ENV, configure_logging, resolve_level


class ResolveLevelTests(unittest.TestCase):
    def test_environment_wins_over_config(self) -> None:
        with mock.patch.dict(os.environ, {LOG_LEVEL_ENV: "debug"}):
            self.assertEqual(resolve_level("ERROR"), logging.DEBUG)

    def test_config_level_and_default(self) -> None:
        with mock.patch.dict(os.environ, {}, clear=True):
            self.assertEqual(resolve_level("error"), logging.ERROR)
            self.assertEqual(resolve_level(None), logging.WARNING)
            self.assertEqual(resolve_level("nonsense"), logging.WARNING)


class ConfigureLoggingTests(unittest.TestCase):
    def tearDown(self) -> None:
        logger = logging.getLogger("contextui")
        for handler in list(logger.handlers):
            handler.close()
        logger.handlers.clear()
        logger.propagate = True
        logger.setLevel(logging.NOTSET)

    def test_records_go_to_rotating_file(self) -> None:
        with tempfile.TemporaryDirectory() as tmp, mock.patch.dict(os.environ, {}, clear=True):
            log_path = Path(tmp) / "logs" / "contextui.log"
            logger = configure_logging("INFO", log_path)

            logging.getLogger("contextui.preview.cache").info("hello from cache")
            logging.getLogger("contextui.preview.cache").debug("too chatty")
            for handler in logger.handlers:
                handler.flush()

            text = log_path.read_text(encoding="utf-8")
            self.assertIn("contextui.preview.cache INFO hello from cache", text)
            self.assertNotIn("too chatty", text)
            self.assertFalse(logger.propagate)

    def test_repeated_calls_keep_one_handler(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            log_path = Path(tmp) / "contextui.log"
            configure_logging("WARNING", log_path)
            logger = configure_logging("WARNING", log_path)
            self.assertEqual(len(logger.handlers), 1)
            self.assertIsInstance(logger.handlers[0], logging.handlers.RotatingFileHandler)

    def test_unwritable_location_falls_back_to_null_handler(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            blocker = Path(tmp) / "blocker"
            blocker.write_text("", encoding="utf-8")
            logger = configure_logging("WARNING", blocker / "contextui.log")
            self.assertIsInstance(logger.handlers[0], logging.NullHandler)


if __name__ == "__main__":
    unittest.main()
