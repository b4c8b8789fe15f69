"""
Quote Cache

Per-data-class TTL + LRU store for venue market data. Each class owns its
own freshness window and capacity, matched to how fast the underlying value
moves:

    ticker        10s   500 entries
    order_book     5s   200 entries
    trades        10s   200 entries
    candles       60s   300 entries
    markets     3600s  1000 entries

Entries expire `ttl` seconds after they were set (reads never extend them),
and each class evicts least-recently-used entries once full. A miss always
means the caller has to go back to the venue; the cache never refreshes on
its own.

Keys are "venue:symbol" or "venue:symbol:qualifier", where the qualifier is
the depth limit, timeframe or trade count. Market metadata is keyed by venue.
"""

import time
from enum import Enum
from typing import Any, Callable, Dict, Optional, Tuple

from cachetools import TTLCache

from core.exceptions import CacheConfigurationError
from core.logging import get_logger
from core.schemas import CacheClassStats, CacheStats, PriceQuote


class DataClass(str, Enum):
    """Kinds of market data held by the cache"""

    TICKER = "ticker"
    ORDER_BOOK = "order_book"
    TRADES = "trades"
    CANDLES = "candles"
    MARKETS = "markets"


DEFAULT_LIMITS: Dict[DataClass, Tuple[float, int]] = {
    DataClass.TICKER: (10.0, 500),
    DataClass.ORDER_BOOK: (5.0, 200),
    DataClass.TRADES: (10.0, 200),
    DataClass.CANDLES: (60.0, 300),
    DataClass.MARKETS: (3600.0, 1000),
}


def cache_key(venue_id: str, symbol: Optional[str] = None, qualifier: Any = None) -> str:
    """
    Build a cache key.

    Example:
        >>> cache_key("binance", "BTC/USDT", 50)
        'binance:BTC/USDT:50'
    """
    parts = [venue_id]
    if symbol is not None:
        parts.append(symbol)
    if qualifier is not None:
        parts.append(str(qualifier))
    return ":".join(parts)


def _hit_rate(hits: int, misses: int) -> float:
    total = hits + misses
    return round(hits / total * 100, 2) if total > 0 else 0.0


class QuoteCache:
    """
    Market data cache with one TTL/LRU store per data class.

    Args:
        limits: Optional overrides, DataClass (or its name) -> (ttl_seconds, capacity)
        timer: Monotonic clock in seconds (injectable for tests)

    Raises:
        CacheConfigurationError: If any TTL or capacity is not positive

    Example:
        >>> cache = QuoteCache()
        >>> cache.set_ticker("binance", "BTC/USDT", quote)
        >>> cache.get_ticker("binance", "BTC/USDT") is quote
        True
        >>> cache.stats().classes["ticker"].hits
        1
    """

    def __init__(
        self,
        limits: Optional[Dict[Any, Tuple[float, int]]] = None,
        timer: Callable[[], float] = time.monotonic
    ):
        self._logger = get_logger(__name__)

        resolved = dict(DEFAULT_LIMITS)
        for data_class, limit in (limits or {}).items():
            resolved[DataClass(data_class)] = limit

        self._limits: Dict[DataClass, Tuple[float, int]] = {}
        self._stores: Dict[DataClass, TTLCache] = {}
        for data_class, (ttl, capacity) in resolved.items():
            if ttl <= 0:
                raise CacheConfigurationError(f"Cache TTL for {data_class.value} must be positive, got {ttl}")
            if capacity <= 0:
                raise CacheConfigurationError(
                    f"Cache capacity for {data_class.value} must be positive, got {capacity}"
                )
            self._limits[data_class] = (ttl, capacity)
            self._stores[data_class] = TTLCache(maxsize=capacity, ttl=ttl, timer=timer)

        self._hits: Dict[DataClass, int] = {dc: 0 for dc in DataClass}
        self._misses: Dict[DataClass, int] = {dc: 0 for dc in DataClass}

    @classmethod
    def from_settings(cls, config=None, timer: Callable[[], float] = time.monotonic) -> "QuoteCache":
        """Build a cache using the limits configured in core.config.settings."""
        from core.config import settings
        config = config or settings
        return cls(limits=config.cache_limits(), timer=timer)

    # ============================================
    # Generic Access
    # ============================================

    def get(self, data_class: DataClass, venue_id: str, symbol: Optional[str] = None, qualifier: Any = None):
        """
        Look up a value, recording a hit or a miss for the class.

        Returns:
            The cached value, or None if absent or expired
        """
        data_class = DataClass(data_class)
        key = cache_key(venue_id, symbol, qualifier)
        value = self._stores[data_class].get(key)

        if value is None:
            self._misses[data_class] += 1
            self._logger.debug(f"Cache miss [{data_class.value}] {key}")
        else:
            self._hits[data_class] += 1
            self._logger.debug(f"Cache hit [{data_class.value}] {key}")

        return value

    def set(self, data_class: DataClass, venue_id: str, symbol: Optional[str], value: Any, qualifier: Any = None) -> None:
        """Store a value; it expires after the class TTL."""
        data_class = DataClass(data_class)
        self._stores[data_class][cache_key(venue_id, symbol, qualifier)] = value

    # ============================================
    # Typed Helpers
    # ============================================

    def get_ticker(self, venue_id: str, symbol: str) -> Optional[PriceQuote]:
        return self.get(DataClass.TICKER, venue_id, symbol)

    def set_ticker(self, venue_id: str, symbol: str, quote: PriceQuote) -> None:
        self.set(DataClass.TICKER, venue_id, symbol, quote)

    def get_order_book(self, venue_id: str, symbol: str, limit: Optional[int] = None):
        return self.get(DataClass.ORDER_BOOK, venue_id, symbol, limit)

    def set_order_book(self, venue_id: str, symbol: str, order_book: Any, limit: Optional[int] = None) -> None:
        self.set(DataClass.ORDER_BOOK, venue_id, symbol, order_book, limit)

    def get_trades(self, venue_id: str, symbol: str, limit: Optional[int] = None):
        return self.get(DataClass.TRADES, venue_id, symbol, limit)

    def set_trades(self, venue_id: str, symbol: str, trades: Any, limit: Optional[int] = None) -> None:
        self.set(DataClass.TRADES, venue_id, symbol, trades, limit)

    def get_candles(self, venue_id: str, symbol: str, timeframe: str):
        return self.get(DataClass.CANDLES, venue_id, symbol, timeframe)

    def set_candles(self, venue_id: str, symbol: str, timeframe: str, candles: Any) -> None:
        self.set(DataClass.CANDLES, venue_id, symbol, candles, timeframe)

    def get_markets(self, venue_id: str):
        return self.get(DataClass.MARKETS, venue_id)

    def set_markets(self, venue_id: str, markets: Any) -> None:
        self.set(DataClass.MARKETS, venue_id, None, markets)

    # ============================================
    # Maintenance
    # ============================================

    def clear(self, data_class: DataClass) -> None:
        """Drop every entry of one class."""
        self._stores[DataClass(data_class)].clear()

    def clear_all(self) -> None:
        """Drop every entry of every class (used at shutdown and in tests)."""
        for store in self._stores.values():
            store.clear()
        self._logger.debug("All quote caches cleared")

    def reset_metrics(self) -> None:
        self._hits = {dc: 0 for dc in DataClass}
        self._misses = {dc: 0 for dc in DataClass}

    def size(self, data_class: DataClass) -> int:
        """Number of live (unexpired) entries in a class."""
        store = self._stores[DataClass(data_class)]
        store.expire()
        return len(store)

    # ============================================
    # Observability
    # ============================================

    def stats(self) -> CacheStats:
        """
        Per-class and aggregate hit/miss statistics.

        Example:
            >>> stats = cache.stats()
            >>> stats.classes["ticker"].hit_rate
            66.67
            >>> stats.overall_hit_rate
            66.67
        """
        classes = {}
        for data_class in DataClass:
            ttl, capacity = self._limits[data_class]
            classes[data_class.value] = CacheClassStats(
                size=self.size(data_class),
                max_size=capacity,
                hits=self._hits[data_class],
                misses=self._misses[data_class],
                hit_rate=_hit_rate(self._hits[data_class], self._misses[data_class]),
                ttl_seconds=ttl,
            )

        total_hits = sum(self._hits.values())
        total_misses = sum(self._misses.values())
        return CacheStats(
            classes=classes,
            total_hits=total_hits,
            total_misses=total_misses,
            overall_hit_rate=_hit_rate(total_hits, total_misses),
        )
