"""
Unit tests for logging setup and the in-memory log buffer.
"""

import logging
import os
import tempfile
import unittest
from unittest import mock
import sys
from pathlib import Path

# Add the parent directory to the path so we can import our modules
sys.path.insert(0, str(Path(__file__).parent.parent))

from config.settings import Settings
from utils.log_handler import HomeTimeFormatter, InMemoryLogHandler, get_log_handler, setup_logging


class TestInMemoryLogHandler(unittest.TestCase):

    def setUp(self):
        self.handler = InMemoryLogHandler(maxlen=3)
        self.logger = logging.getLogger("tests.memory_handler")
        self.logger.setLevel(logging.DEBUG)
        self.logger.propagate = False
        self.logger.addHandler(self.handler)

    def tearDown(self):
        self.logger.removeHandler(self.handler)

    def test_buffer_keeps_most_recent(self):
        for i in range(5):
            self.logger.info(f"message {i}")
        messages = [log['message'] for log in self.handler.get_logs()]
        self.assertEqual(messages, ["message 2", "message 3", "message 4"])

    def test_filters(self):
        self.logger.info("priced purchase")
        self.logger.warning("No market rate for USD/TWD")
        self.assertEqual(len(self.handler.get_logs(level='WARNING')), 1)
        self.assertEqual(len(self.handler.get_logs(search='market rate')), 1)
        self.assertEqual(len(self.handler.get_logs(module='memory_handler')), 2)
        self.assertEqual(len(self.handler.get_logs(n=1)), 1)

    def test_formatted_and_clear(self):
        self.logger.error("ledger conflict")
        formatted = self.handler.get_formatted_logs()
        self.assertIn("ERROR", formatted[0])
        self.assertIn("ledger conflict", formatted[0])
        self.handler.clear()
        self.assertEqual(self.handler.get_logs(), [])


class TestHomeTimeFormatter(unittest.TestCase):

    def test_unknown_timezone_falls_back(self):
        formatter = HomeTimeFormatter('%(message)s', timezone_name="Not/AZone")
        self.assertEqual(formatter.timezone.zone, "Asia/Taipei")

    def test_format_time(self):
        formatter = HomeTimeFormatter('%(asctime)s %(message)s', timezone_name="UTC")
        record = logging.LogRecord("x", logging.INFO, __file__, 1, "hello", None, None)
        record.created = 0
        self.assertEqual(formatter.formatTime(record), "1970-01-01 00:00:00")


class TestSetupLogging(unittest.TestCase):

    def tearDown(self):
        root = logging.getLogger()
        for handler in root.handlers[:]:
            if getattr(handler, '_ledger_handler', False):
                root.removeHandler(handler)
                if isinstance(handler, logging.FileHandler):
                    handler.close()

    @mock.patch.dict(os.environ, {}, clear=True)
    def test_installs_handlers_once(self):
        settings = Settings(load_env_file=False)
        settings.set('logging.level', 'WARNING')

        setup_logging(settings, console=True)
        root = setup_logging(settings, console=True)

        installed = [h for h in root.handlers if getattr(h, '_ledger_handler', False)]
        self.assertEqual(len(installed), 2)
        self.assertIn(get_log_handler(), installed)
        self.assertEqual(root.level, logging.WARNING)
        self.assertEqual(logging.getLogger("yfinance").level, logging.ERROR)

    @mock.patch.dict(os.environ, {}, clear=True)
    def test_file_handler(self):
        with tempfile.TemporaryDirectory() as tmp:
            settings = Settings(load_env_file=False)
            log_file = os.path.join(tmp, "logs", "ledger.log")
            settings.set('logging.file', log_file)

            root = setup_logging(settings, console=False)
            logging.getLogger("tests.file").warning("written to file")
            for handler in root.handlers:
                handler.flush()

            with open(log_file, encoding='utf-8') as f:
                self.assertIn("written to file", f.read())
            self.tearDown()


if __name__ == '__main__':
    unittest.main()
