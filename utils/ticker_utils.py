"""Ticker symbol utilities.

This module provides functions for normalizing ticker symbols, resolving the
market and trading currency of a ticker and building the symbols used by the
Yahoo Finance data source.
"""

import re
import logging
from typing import Optional

from data.models.stock_transaction import StockMarket

logger = logging.getLogger(__name__)

MARKET_CURRENCIES = {
    StockMarket.TW: "TWD",
    StockMarket.US: "USD",
    StockMarket.UK: "GBP",
}

# Yahoo suffixes for listed Taiwan tickers
YAHOO_TW_SUFFIX = ".TW"

_TICKER_PATTERN = re.compile(r"^[A-Z0-9][A-Z0-9.\-^=]*$")


def normalize_ticker(ticker: str) -> str:
    """Normalize a ticker symbol to upper case without surrounding whitespace.

    Args:
        ticker: Raw ticker symbol

    Returns:
        Normalized ticker

    Raises:
        ValueError: If the ticker is empty or contains invalid characters
    """
    if ticker is None:
        raise ValueError("Ticker is required")
    normalized = ticker.strip().upper()
    if not normalized or not _TICKER_PATTERN.match(normalized):
        raise ValueError(f"Invalid ticker symbol: {ticker!r}")
    return normalized


def is_taiwan_ticker(ticker: str) -> bool:
    return StockMarket.guess(ticker) is StockMarket.TW


def get_market_currency(market: StockMarket) -> str:
    return MARKET_CURRENCIES[market]


def get_ticker_currency(ticker: str, market: Optional[StockMarket] = None) -> str:
    """Get the trading currency for a ticker.

    Args:
        ticker: Ticker symbol
        market: Explicit market, guessed from the ticker when omitted

    Returns:
        ISO currency code
    """
    return get_market_currency(market or StockMarket.guess(ticker))


def is_home_currency_ticker(ticker: str, home_currency: str,
                            market: Optional[StockMarket] = None) -> bool:
    return get_ticker_currency(ticker, market) == home_currency.upper()


def to_yahoo_symbol(ticker: str, market: Optional[StockMarket] = None) -> str:
    """Build the Yahoo Finance symbol for a ticker.

    Examples:
        >>> to_yahoo_symbol("2330")
        '2330.TW'
        >>> to_yahoo_symbol("VWRA.L")
        'VWRA.L'
    """
    ticker = normalize_ticker(ticker)
    market = market or StockMarket.guess(ticker)
    if market is StockMarket.TW and not ticker.endswith(YAHOO_TW_SUFFIX):
        return f"{ticker}{YAHOO_TW_SUFFIX}"
    return ticker


def to_yahoo_fx_symbol(base: str, quote: str) -> str:
    """Build the Yahoo Finance symbol for a currency pair, e.g. ``USDTWD=X``."""
    return f"{base.upper()}{quote.upper()}=X"
