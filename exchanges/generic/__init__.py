"""
Generic ccxt Venue Adapter

Serves any exchange ccxt knows about (kraken, okx, coinbase, ...) through
ccxt.async_support, so the scanner can reach venues that have no native
adapter.

ccxt raises its own exception hierarchy; this module folds it into the
ErrorCode taxonomy so the rate limiter can tell a bad symbol (terminal) from a
rate limit or dropped connection (retryable).

Usage:
    venue = CcxtVenue("kraken")
    await venue.initialize()       # loads markets
    ticker = await venue.fetch_ticker("BTC/USDT")
    await venue.shutdown()
"""

from typing import Any, Optional

import ccxt.async_support as ccxt

from core.exceptions import ErrorCode, VenueError
from core.logging import get_logger
from core.schemas import VenueTicker
from core.venue_interface import VenueInterface


logger = get_logger(__name__)


# Most specific classes first: PermissionDenied subclasses AuthenticationError,
# RateLimitExceeded and OnMaintenance subclass NetworkError.
_CCXT_ERROR_CODES = (
    (ccxt.PermissionDenied, ErrorCode.PERMISSION_DENIED),
    (ccxt.AccountSuspended, ErrorCode.PERMISSION_DENIED),
    (ccxt.AuthenticationError, ErrorCode.INVALID_CREDENTIALS),
    (ccxt.BadSymbol, ErrorCode.INVALID_SYMBOL),
    (ccxt.NotSupported, ErrorCode.METHOD_NOT_SUPPORTED),
    (ccxt.RateLimitExceeded, ErrorCode.RATE_LIMIT_EXCEEDED),
    (ccxt.DDoSProtection, ErrorCode.RATE_LIMIT_EXCEEDED),
    (ccxt.OnMaintenance, ErrorCode.EXCHANGE_MAINTENANCE),
    (ccxt.NetworkError, ErrorCode.NETWORK_ERROR),
)


def is_ccxt_venue(venue_id: str) -> bool:
    """True if ccxt ships an exchange class with this id."""
    return venue_id in ccxt.exchanges


def map_ccxt_error(error: Exception, venue_id: str) -> VenueError:
    """
    Translate a ccxt exception into a VenueError.

    Example:
        >>> map_ccxt_error(ccxt.BadSymbol("kraken does not have market FOO/BAR"), "kraken").code
        <ErrorCode.INVALID_SYMBOL: 'TAPS011'>
    """
    for error_class, code in _CCXT_ERROR_CODES:
        if isinstance(error, error_class):
            return VenueError(str(error), code, venue_id)
    return VenueError(str(error), ErrorCode.UNKNOWN_ERROR, venue_id)


class CcxtVenue(VenueInterface):
    """
    Venue adapter backed by a ccxt async exchange.

    Args:
        venue_id: ccxt exchange id (e.g. "kraken")
        timeout: Request timeout in seconds
        exchange: Pre-built ccxt exchange (tests pass a double here)

    Raises:
        VenueError: EXCHANGE_NOT_SUPPORTED if ccxt has no exchange with this id
    """

    def __init__(self, venue_id: str, timeout: float = 10, exchange: Optional[Any] = None):
        self.name = venue_id.lower()

        if exchange is None:
            if not is_ccxt_venue(self.name):
                raise VenueError(f"ccxt has no exchange '{self.name}'", ErrorCode.EXCHANGE_NOT_SUPPORTED, self.name)
            exchange_class = getattr(ccxt, self.name)
            exchange = exchange_class({"enableRateLimit": True, "timeout": int(timeout * 1000)})

        self.exchange = exchange
        self._markets_loaded = False

        has = getattr(exchange, "has", {}) or {}
        self.capabilities = {
            "ticker": bool(has.get("fetchTicker")),
            "order_book": bool(has.get("fetchOrderBook")),
            "trades": bool(has.get("fetchTrades")),
            "candles": bool(has.get("fetchOHLCV")),
        }

    async def initialize(self) -> None:
        """Load the venue's markets once."""
        if self._markets_loaded:
            return
        try:
            await self.exchange.load_markets()
        except ccxt.BaseError as e:
            raise map_ccxt_error(e, self.name) from e
        self._markets_loaded = True
        logger.debug(f"{self.name}: loaded {len(self.exchange.markets or {})} markets")

    async def shutdown(self) -> None:
        await self.exchange.close()

    async def health_check(self) -> bool:
        if not self.supports("ticker"):
            return False
        try:
            await self.exchange.fetch_time()
            return True
        except ccxt.BaseError as e:
            logger.error(f"{self.name} health check failed: {e}")
            return False

    async def fetch_ticker(self, symbol: str) -> VenueTicker:
        """
        Fetch a ticker through ccxt.

        Raises:
            VenueError: ccxt failures mapped to an ErrorCode
        """
        try:
            raw = await self.exchange.fetch_ticker(symbol)
        except ccxt.BaseError as e:
            raise map_ccxt_error(e, self.name) from e

        return VenueTicker(
            symbol=raw.get("symbol") or symbol,
            bid=raw.get("bid"),
            ask=raw.get("ask"),
            last=raw.get("last"),
            base_volume=raw.get("baseVolume"),
            timestamp_ms=raw.get("timestamp"),
        )
