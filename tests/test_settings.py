"""
Unit tests for configuration loading.
"""

import json
import os
import tempfile
import unittest
from decimal import Decimal
from unittest import mock
import sys
from pathlib import Path

# Add the parent directory to the path so we can import our modules
sys.path.insert(0, str(Path(__file__).parent.parent))

from config.settings import Settings


class TestSettings(unittest.TestCase):

    @mock.patch.dict(os.environ, {}, clear=True)
    def test_defaults(self):
        settings = Settings(load_env_file=False)
        self.assertEqual(settings.get_home_currency(), "TWD")
        self.assertEqual(settings.get('ledger.default_balance_action'), "reject")
        self.assertEqual(settings.get_timezone_name(), "Asia/Taipei")
        self.assertIsNone(settings.get('no.such.key'))
        self.assertEqual(settings.get('no.such.key', 'fallback'), 'fallback')

    @mock.patch.dict(os.environ, {
        'LEDGER_HOME_CURRENCY': 'usd',
        'LEDGER_BALANCE_ACTION': 'MARGIN',
        'LEDGER_XIRR_MAX_ITERATIONS': '50',
        'LEDGER_LOG_LEVEL': 'warning',
    }, clear=True)
    def test_environment_overrides(self):
        settings = Settings(load_env_file=False)
        self.assertEqual(settings.get_home_currency(), "USD")
        self.assertEqual(settings.get('ledger.default_balance_action'), "margin")
        self.assertEqual(settings.get('returns.xirr_max_iterations'), 50)
        self.assertEqual(settings.get_logging_config()['level'], "WARNING")

    @mock.patch.dict(os.environ, {'LEDGER_DEV': 'true'}, clear=True)
    def test_development_mode_enables_debug(self):
        settings = Settings(load_env_file=False)
        self.assertTrue(settings.is_development_mode())
        self.assertEqual(settings.get('logging.level'), "DEBUG")

    @mock.patch.dict(os.environ, {}, clear=True)
    def test_return_config_types(self):
        config = Settings(load_env_file=False).get_return_config()
        self.assertIsInstance(config['tolerance'], Decimal)
        self.assertIsInstance(config['initial_guess'], Decimal)
        self.assertEqual(config['max_iterations'], 100)
        self.assertEqual(config['days_per_year'], 365)

    @mock.patch.dict(os.environ, {}, clear=True)
    def test_set_creates_nested_keys(self):
        settings = Settings(load_env_file=False)
        settings.set('reporting.default_format', 'json')
        self.assertEqual(settings.get('reporting.default_format'), 'json')

    @mock.patch.dict(os.environ, {}, clear=True)
    def test_file_merges_over_defaults(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "config.json"
            path.write_text(json.dumps({'currency': {'home_currency': 'HKD'}, 'ledger': {'default_balance_action': 'top_up'}}))
            settings = Settings(str(path), load_env_file=False)

            self.assertEqual(settings.get_home_currency(), "HKD")
            self.assertEqual(settings.get('ledger.default_balance_action'), "top_up")
            self.assertEqual(settings.get('ledger.default_top_up_category'), "exchange_buy")

    @mock.patch.dict(os.environ, {}, clear=True)
    def test_missing_file_keeps_defaults(self):
        settings = Settings("/nonexistent/config.json", load_env_file=False)
        self.assertEqual(settings.get_home_currency(), "TWD")

    @mock.patch.dict(os.environ, {}, clear=True)
    def test_save_and_reload(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "nested" / "config.json"
            settings = Settings(load_env_file=False)
            settings.set('currency.home_currency', 'JPY')
            settings.save_to_file(str(path))

            reloaded = Settings(str(path), load_env_file=False)
            self.assertEqual(reloaded.get_home_currency(), "JPY")


if __name__ == '__main__':
    unittest.main()
