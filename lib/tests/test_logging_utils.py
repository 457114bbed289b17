"""
Test suite for lib/logging_utils.py
"""

import logging
import os
import tempfile
import unittest
from logging.handlers import TimedRotatingFileHandler

from lib.logging_utils import configureLogger, getLogLevelByStr


class TestLoggingUtils(unittest.TestCase):

    def setUp(self):
        self.testLogger = logging.getLogger("taskdesk.tests.logging")
        self.testLogger.setLevel(logging.NOTSET)
        self.testLogger.propagate = True

    def tearDown(self):
        for handler in self.testLogger.handlers[:]:
            self.testLogger.removeHandler(handler)
            handler.close()

    def test_get_log_level_by_str(self):
        self.assertEqual(getLogLevelByStr("debug"), logging.DEBUG)
        self.assertEqual(getLogLevelByStr("WARNING"), logging.WARNING)
        self.assertEqual(getLogLevelByStr("verbose", logging.INFO), logging.INFO)
        self.assertIsNone(getLogLevelByStr("verbose"))

    def test_configure_console(self):
        """Test level, propagation and console handler setup"""
        configureLogger(
            self.testLogger,
            {"level": "DEBUG", "console": True, "console-level": "ERROR", "propagate": False},
        )

        self.assertEqual(self.testLogger.level, logging.DEBUG)
        self.assertFalse(self.testLogger.propagate)
        self.assertEqual(len(self.testLogger.handlers), 1)
        self.assertEqual(self.testLogger.handlers[0].level, logging.ERROR)

    def test_reconfigure_replaces_handlers(self):
        configureLogger(self.testLogger, {"console": True})
        configureLogger(self.testLogger, {"console": True})

        self.assertEqual(len(self.testLogger.handlers), 1)

    def test_configure_file(self):
        """Test file handler creation including missing parent directories"""
        with tempfile.TemporaryDirectory() as tmpdir:
            logFile = os.path.join(tmpdir, "logs", "taskdesk.log")
            configureLogger(self.testLogger, {"level": "INFO", "file": logFile, "rotate": True})

            self.assertEqual(len(self.testLogger.handlers), 1)
            self.assertIsInstance(self.testLogger.handlers[0], TimedRotatingFileHandler)

            self.testLogger.info("Request queue started")
            self.testLogger.handlers[0].flush()
            with open(logFile, "rt", encoding="utf-8") as f:
                self.assertIn("Request queue started", f.read())

            self.tearDown()


if __name__ == "__main__":
    unittest.main()
