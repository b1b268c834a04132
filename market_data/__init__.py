"""
Market data module for historical exchange rates and prices.

This module provides:
- RateProvider: interface consumed by the pricing and reporting services
- StaticRateProvider / YahooRateProvider: table-backed and yfinance-backed sources
- FallbackRateProvider: multi-source fallback chain
- CachedRateProvider: TTL + LRU caching wrapper
"""

from .rate_provider import (
    RateProvider,
    StaticRateProvider,
    YahooRateProvider,
    FallbackRateProvider,
    FetchResult,
)
from .rate_cache import CachedRateProvider

__all__ = [
    'RateProvider',
    'StaticRateProvider',
    'YahooRateProvider',
    'FallbackRateProvider',
    'FetchResult',
    'CachedRateProvider',
]
