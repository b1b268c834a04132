"""
In-memory caching for exchange rates and prices.

This module provides the CachedRateProvider, a RateProvider decorator that
keeps recently fetched values with a TTL and LRU eviction so that replaying a
long ledger or pricing a large portfolio does not hit the network per row.
"""

import logging
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Any, Dict, Hashable, List, Optional

from config.constants import DEFAULT_RATE_CACHE_SIZE, DEFAULT_RATE_CACHE_TTL_MINUTES
from .rate_provider import RateProvider

logger = logging.getLogger(__name__)


class CachedRateProvider(RateProvider):
    """
    Caching wrapper around another RateProvider.

    Only available values are cached; an unavailable answer is retried on
    the next call.
    """

    def __init__(
        self,
        provider: RateProvider,
        max_cache_size: int = DEFAULT_RATE_CACHE_SIZE,
        default_ttl_minutes: int = DEFAULT_RATE_CACHE_TTL_MINUTES
    ):
        """
        Initialize the rate cache.

        Args:
            provider: Provider to delegate cache misses to
            max_cache_size: Maximum number of entries to cache
            default_ttl_minutes: Time-to-live for cache entries in minutes
        """
        self.provider = provider
        self.max_cache_size = max_cache_size
        self.default_ttl = timedelta(minutes=default_ttl_minutes)

        self._cache: Dict[Hashable, 'CacheEntry'] = {}
        self._access_order: List[Hashable] = []  # For LRU eviction
        self._hits = 0
        self._misses = 0

    @classmethod
    def from_settings(cls, provider: RateProvider, settings) -> 'CachedRateProvider':
        config = settings.get_market_data_config()
        return cls(
            provider,
            max_cache_size=int(config.get('cache_size', DEFAULT_RATE_CACHE_SIZE)),
            default_ttl_minutes=int(config.get('cache_ttl_minutes', DEFAULT_RATE_CACHE_TTL_MINUTES)),
        )

    def get_exchange_rate(self, base: str, quote: str, on_date: date) -> Optional[Decimal]:
        key = ('fx', base.upper(), quote.upper(), on_date)
        cached = self._get(key)
        if cached is not None:
            return cached
        rate = self.provider.get_exchange_rate(base, quote, on_date)
        if rate is not None:
            self._put(key, rate)
        return rate

    def get_price(self, ticker: str, on_date: date) -> Optional[Decimal]:
        key = ('price', ticker.upper(), on_date)
        cached = self._get(key)
        if cached is not None:
            return cached
        price = self.provider.get_price(ticker, on_date)
        if price is not None:
            self._put(key, price)
        return price

    def invalidate_all(self) -> None:
        """Invalidate all cache entries."""
        self._cache.clear()
        self._access_order.clear()
        logger.debug("Invalidated entire rate cache")

    def invalidate_expired(self) -> int:
        """
        Remove expired cache entries.

        Returns:
            Number of entries removed
        """
        expired = [key for key, entry in self._cache.items() if self._is_expired(entry)]
        for key in expired:
            self._remove_from_cache(key)
        if expired:
            logger.debug(f"Removed {len(expired)} expired cache entries")
        return len(expired)

    def get_cache_stats(self) -> Dict[str, Any]:
        """
        Get cache statistics.

        Returns:
            Dictionary with cache statistics
        """
        return {
            "total_entries": len(self._cache),
            "max_cache_size": self.max_cache_size,
            "hits": self._hits,
            "misses": self._misses,
        }

    def _get(self, key: Hashable) -> Optional[Decimal]:
        entry = self._cache.get(key)
        if entry is None:
            self._misses += 1
            return None
        if self._is_expired(entry):
            self._remove_from_cache(key)
            self._misses += 1
            return None
        self._update_access_order(key)
        self._hits += 1
        return entry.value

    def _put(self, key: Hashable, value: Decimal) -> None:
        self._cache[key] = CacheEntry(value=value, timestamp=datetime.now(), ttl=self.default_ttl)
        self._update_access_order(key)
        self._enforce_cache_limit()

    def _is_expired(self, entry: 'CacheEntry') -> bool:
        """Check if a cache entry is expired."""
        return datetime.now() - entry.timestamp > entry.ttl

    def _update_access_order(self, key: Hashable) -> None:
        """Update LRU access order for a key."""
        if key in self._access_order:
            self._access_order.remove(key)
        self._access_order.append(key)

    def _remove_from_cache(self, key: Hashable) -> None:
        """Remove a key from cache and access order."""
        self._cache.pop(key, None)
        if key in self._access_order:
            self._access_order.remove(key)

    def _enforce_cache_limit(self) -> None:
        """Enforce maximum cache size using LRU eviction."""
        while len(self._cache) > self.max_cache_size and self._access_order:
            lru_key = self._access_order[0]
            self._remove_from_cache(lru_key)
            logger.debug(f"Evicted {lru_key} from cache (LRU)")


class CacheEntry:
    """Individual cache entry for a rate or price."""

    def __init__(self, value: Decimal, timestamp: datetime, ttl: timedelta):
        self.value = value
        self.timestamp = timestamp
        self.ttl = ttl
