"""
Historical exchange rate and price providers.

This module provides the RateProvider interface consumed by the transaction
and reporting services, plus implementations:

1. StaticRateProvider - fixed tables, for scenarios and tests
2. YahooRateProvider - Yahoo Finance via yfinance, with a weekend-safe look-back
3. FallbackRateProvider - tries a chain of providers in order

Every provider returns ``None`` for "unavailable"; nothing substitutes a
default rate.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Tuple

import pandas as pd

from config.constants import RATE_LOOKBACK_DAYS, HOME_CURRENCY_RATE
from financial.calculations import to_decimal, round_rate, quantize_places
from utils.ticker_utils import to_yahoo_symbol, to_yahoo_fx_symbol

logger = logging.getLogger(__name__)


@dataclass
class FetchResult:
    """Result of a market data fetch operation."""
    df: pd.DataFrame
    source: str  # "yahoo" | "empty"


class RateProvider(ABC):
    """Interface for historical exchange rates and prices."""

    @abstractmethod
    def get_exchange_rate(self, base: str, quote: str, on_date: date) -> Optional[Decimal]:
        """Units of ``quote`` per unit of ``base`` on a date, or None if unavailable."""
        pass

    @abstractmethod
    def get_price(self, ticker: str, on_date: date) -> Optional[Decimal]:
        """Closing price of a ticker on (or just before) a date, or None if unavailable."""
        pass


class StaticRateProvider(RateProvider):
    """Provider backed by fixed rate and price tables.

    Lookups fall back to the most recent earlier date within the look-back
    window, like a market closed on weekends.
    """

    def __init__(self, rates: Optional[Dict[Tuple[str, str], Dict[date, Decimal]]] = None,
                 prices: Optional[Dict[str, Dict[date, Decimal]]] = None,
                 lookback_days: int = RATE_LOOKBACK_DAYS):
        self._rates: Dict[Tuple[str, str], Dict[date, Decimal]] = {}
        self._prices: Dict[str, Dict[date, Decimal]] = {}
        self.lookback_days = lookback_days
        for (base, quote), series in (rates or {}).items():
            for on_date, rate in series.items():
                self.set_rate(base, quote, on_date, rate)
        for ticker, series in (prices or {}).items():
            for on_date, price in series.items():
                self.set_price(ticker, on_date, price)

    @classmethod
    def from_dict(cls, data: Dict) -> 'StaticRateProvider':
        """Build from ``{"rates": [{base, quote, date, rate}], "prices": [{ticker, date, price}]}``."""
        provider = cls()
        for row in data.get('rates', []):
            provider.set_rate(row['base'], row['quote'], date.fromisoformat(row['date']), row['rate'])
        for row in data.get('prices', []):
            provider.set_price(row['ticker'], date.fromisoformat(row['date']), row['price'])
        return provider

    def set_rate(self, base: str, quote: str, on_date: date, rate) -> None:
        self._rates.setdefault((base.upper(), quote.upper()), {})[on_date] = to_decimal(rate)

    def set_price(self, ticker: str, on_date: date, price) -> None:
        self._prices.setdefault(ticker.upper(), {})[on_date] = to_decimal(price)

    def _lookup(self, series: Optional[Dict[date, Decimal]], on_date: date) -> Optional[Decimal]:
        if not series:
            return None
        for offset in range(self.lookback_days + 1):
            value = series.get(on_date - timedelta(days=offset))
            if value is not None:
                return value
        return None

    def get_exchange_rate(self, base: str, quote: str, on_date: date) -> Optional[Decimal]:
        base, quote = base.upper(), quote.upper()
        if base == quote:
            return HOME_CURRENCY_RATE
        rate = self._lookup(self._rates.get((base, quote)), on_date)
        if rate is not None:
            return rate
        inverse = self._lookup(self._rates.get((quote, base)), on_date)
        if inverse:
            return round_rate(1 / inverse)
        return None

    def get_price(self, ticker: str, on_date: date) -> Optional[Decimal]:
        return self._lookup(self._prices.get(ticker.upper()), on_date)


class YahooRateProvider(RateProvider):
    """Historical closes from Yahoo Finance via yfinance."""

    def __init__(self, lookback_days: int = RATE_LOOKBACK_DAYS):
        self.lookback_days = lookback_days

    def _weekend_safe_range(self, on_date: date) -> Tuple[pd.Timestamp, pd.Timestamp]:
        """Window ending the day after ``on_date`` and reaching back over weekends and holidays."""
        start = pd.Timestamp(on_date - timedelta(days=self.lookback_days))
        end = pd.Timestamp(on_date + timedelta(days=1))
        return start, end

    def _fetch_yahoo_data(self, symbol: str, on_date: date) -> FetchResult:
        """Fetch daily history around a date from Yahoo Finance."""
        try:
            import yfinance as yf

            # Reduce yfinance noise but keep ERROR level for real failures
            logging.getLogger("yfinance").setLevel(logging.ERROR)

            start, end = self._weekend_safe_range(on_date)
            df = yf.Ticker(symbol).history(start=start, end=end)

            if isinstance(df, pd.DataFrame) and not df.empty:
                return FetchResult(self._to_date_index(df), "yahoo")

        except Exception as e:
            logger.debug(f"Yahoo fetch failed for {symbol}: {e}")

        return FetchResult(pd.DataFrame(), "empty")

    def _to_date_index(self, df: pd.DataFrame) -> pd.DataFrame:
        df = df.copy()
        df.index = pd.to_datetime(df.index)
        if df.index.tz is not None:
            df.index = df.index.tz_localize(None)
        return df.sort_index()

    def _close_on_or_before(self, symbol: str, on_date: date) -> Optional[Decimal]:
        result = self._fetch_yahoo_data(symbol, on_date)
        if result.df.empty or 'Close' not in result.df.columns:
            logger.warning(f"No market data available for {symbol} around {on_date}")
            return None

        closes = result.df['Close'].dropna()
        closes = closes[closes.index <= pd.Timestamp(on_date) + pd.Timedelta(days=1) - pd.Timedelta(seconds=1)]
        if closes.empty:
            return None
        return to_decimal(float(closes.iloc[-1]))

    def get_exchange_rate(self, base: str, quote: str, on_date: date) -> Optional[Decimal]:
        if base.upper() == quote.upper():
            return HOME_CURRENCY_RATE
        close = self._close_on_or_before(to_yahoo_fx_symbol(base, quote), on_date)
        return round_rate(close) if close is not None else None

    def get_price(self, ticker: str, on_date: date) -> Optional[Decimal]:
        close = self._close_on_or_before(to_yahoo_symbol(ticker), on_date)
        return quantize_places(close, 4) if close is not None else None


class FallbackRateProvider(RateProvider):
    """Queries providers in order and returns the first available value."""

    def __init__(self, providers: Iterable[RateProvider]):
        self.providers: List[RateProvider] = list(providers)
        if not self.providers:
            raise ValueError("FallbackRateProvider needs at least one provider")

    def get_exchange_rate(self, base: str, quote: str, on_date: date) -> Optional[Decimal]:
        for provider in self.providers:
            rate = provider.get_exchange_rate(base, quote, on_date)
            if rate is not None:
                return rate
            logger.debug(f"{type(provider).__name__} has no {base}/{quote} rate for {on_date}")
        return None

    def get_price(self, ticker: str, on_date: date) -> Optional[Decimal]:
        for provider in self.providers:
            price = provider.get_price(ticker, on_date)
            if price is not None:
                return price
            logger.debug(f"{type(provider).__name__} has no price for {ticker} on {on_date}")
        return None
