"""
Unit tests for exchange rate and price providers.

Tests cover static look-back lookups, provider fallback, the TTL/LRU cache
and the Yahoo Finance adapter with yfinance mocked out.
"""

import unittest
from datetime import date, datetime, timedelta
from decimal import Decimal
from unittest.mock import Mock, patch
import sys
from pathlib import Path

import pandas as pd

# Add the parent directory to the path so we can import our modules
sys.path.insert(0, str(Path(__file__).parent.parent))

from config.settings import Settings
from market_data.rate_cache import CachedRateProvider
from market_data.rate_provider import FallbackRateProvider, StaticRateProvider, YahooRateProvider


class TestStaticRateProvider(unittest.TestCase):

    def setUp(self):
        self.provider = StaticRateProvider.from_dict({
            'rates': [{'base': 'usd', 'quote': 'twd', 'date': '2024-03-01', 'rate': '32.0'}],
            'prices': [{'ticker': 'aapl', 'date': '2024-03-01', 'price': '180.5'}],
        })

    def test_exact_date(self):
        self.assertEqual(self.provider.get_exchange_rate("USD", "TWD", date(2024, 3, 1)), Decimal('32.0'))
        self.assertEqual(self.provider.get_price("AAPL", date(2024, 3, 1)), Decimal('180.5'))

    def test_weekend_looks_back(self):
        self.assertEqual(self.provider.get_exchange_rate("USD", "TWD", date(2024, 3, 3)), Decimal('32.0'))

    def test_outside_lookback_is_unavailable(self):
        self.assertIsNone(self.provider.get_exchange_rate("USD", "TWD", date(2024, 3, 20)))
        self.assertIsNone(self.provider.get_exchange_rate("USD", "TWD", date(2024, 2, 28)))

    def test_inverse_pair(self):
        self.assertEqual(self.provider.get_exchange_rate("TWD", "USD", date(2024, 3, 1)), Decimal('0.031250'))

    def test_same_currency(self):
        self.assertEqual(self.provider.get_exchange_rate("TWD", "twd", date(2024, 3, 1)), Decimal('1'))

    def test_unknown_ticker(self):
        self.assertIsNone(self.provider.get_price("MSFT", date(2024, 3, 1)))


class TestFallbackRateProvider(unittest.TestCase):

    def test_first_available_wins(self):
        empty = StaticRateProvider()
        filled = StaticRateProvider()
        filled.set_rate("USD", "TWD", date(2024, 3, 1), '31.9')
        provider = FallbackRateProvider([empty, filled])
        self.assertEqual(provider.get_exchange_rate("USD", "TWD", date(2024, 3, 1)), Decimal('31.9'))
        self.assertIsNone(provider.get_price("AAPL", date(2024, 3, 1)))

    def test_requires_providers(self):
        with self.assertRaises(ValueError):
            FallbackRateProvider([])


class TestCachedRateProvider(unittest.TestCase):

    def setUp(self):
        self.inner = Mock()
        self.inner.get_exchange_rate.return_value = Decimal('32.0')
        self.inner.get_price.return_value = None

    def test_hits_are_served_from_cache(self):
        provider = CachedRateProvider(self.inner)
        for _ in range(3):
            self.assertEqual(provider.get_exchange_rate("USD", "TWD", date(2024, 3, 1)), Decimal('32.0'))

        self.assertEqual(self.inner.get_exchange_rate.call_count, 1)
        stats = provider.get_cache_stats()
        self.assertEqual(stats['hits'], 2)
        self.assertEqual(stats['misses'], 1)

    def test_unavailable_values_are_not_cached(self):
        provider = CachedRateProvider(self.inner)
        provider.get_price("AAPL", date(2024, 3, 1))
        provider.get_price("AAPL", date(2024, 3, 1))
        self.assertEqual(self.inner.get_price.call_count, 2)
        self.assertEqual(provider.get_cache_stats()['total_entries'], 0)

    def test_lru_eviction(self):
        provider = CachedRateProvider(self.inner, max_cache_size=2)
        provider.get_exchange_rate("USD", "TWD", date(2024, 3, 1))
        provider.get_exchange_rate("USD", "TWD", date(2024, 3, 2))
        provider.get_exchange_rate("USD", "TWD", date(2024, 3, 1))
        provider.get_exchange_rate("USD", "TWD", date(2024, 3, 3))

        self.assertEqual(provider.get_cache_stats()['total_entries'], 2)
        provider.get_exchange_rate("USD", "TWD", date(2024, 3, 1))
        self.assertEqual(self.inner.get_exchange_rate.call_count, 3)

    def test_expired_entries_removed(self):
        provider = CachedRateProvider(self.inner, default_ttl_minutes=5)
        provider.get_exchange_rate("USD", "TWD", date(2024, 3, 1))
        for entry in provider._cache.values():
            entry.timestamp = datetime.now() - timedelta(minutes=10)

        self.assertEqual(provider.invalidate_expired(), 1)
        self.assertEqual(provider.get_cache_stats()['total_entries'], 0)

    def test_invalidate_all(self):
        provider = CachedRateProvider(self.inner)
        provider.get_exchange_rate("USD", "TWD", date(2024, 3, 1))
        provider.invalidate_all()
        provider.get_exchange_rate("USD", "TWD", date(2024, 3, 1))
        self.assertEqual(self.inner.get_exchange_rate.call_count, 2)

    def test_from_settings(self):
        settings = Settings(load_env_file=False)
        settings.set('market_data.cache_size', 7)
        provider = CachedRateProvider.from_settings(self.inner, settings)
        self.assertEqual(provider.max_cache_size, 7)


class TestYahooRateProvider(unittest.TestCase):

    def _history(self):
        index = pd.DatetimeIndex(['2024-02-29', '2024-03-01'])
        return pd.DataFrame({'Close': [31.85, 31.95]}, index=index)

    @patch('yfinance.Ticker')
    def test_weekend_rate_uses_last_close(self, mock_ticker):
        mock_ticker.return_value.history.return_value = self._history()
        rate = YahooRateProvider().get_exchange_rate("USD", "TWD", date(2024, 3, 2))

        self.assertEqual(rate, Decimal('31.950000'))
        mock_ticker.assert_called_once_with("USDTWD=X")

    @patch('yfinance.Ticker')
    def test_taiwan_price_symbol(self, mock_ticker):
        mock_ticker.return_value.history.return_value = self._history()
        price = YahooRateProvider().get_price("2330", date(2024, 2, 29))

        self.assertEqual(price, Decimal('31.8500'))
        mock_ticker.assert_called_once_with("2330.TW")

    @patch('yfinance.Ticker')
    def test_empty_history_is_unavailable(self, mock_ticker):
        mock_ticker.return_value.history.return_value = pd.DataFrame()
        self.assertIsNone(YahooRateProvider().get_price("AAPL", date(2024, 3, 1)))

    @patch('yfinance.Ticker')
    def test_fetch_error_is_unavailable(self, mock_ticker):
        mock_ticker.return_value.history.side_effect = RuntimeError("network down")
        self.assertIsNone(YahooRateProvider().get_exchange_rate("USD", "TWD", date(2024, 3, 1)))

    def test_same_currency_skips_fetch(self):
        with patch('yfinance.Ticker') as mock_ticker:
            self.assertEqual(YahooRateProvider().get_exchange_rate("TWD", "TWD", date(2024, 3, 1)), Decimal('1'))
            mock_ticker.assert_not_called()


if __name__ == '__main__':
    unittest.main()
