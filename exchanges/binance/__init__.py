"""
Binance Venue Adapter

This module implements the VenueInterface for Binance Spot over the native
REST API (aiohttp), without going through ccxt.

API Documentation:
    https://developers.binance.com/docs/binance-spot-api-docs/rest-api

Endpoints Used:
    - GET /api/v3/ticker/24hr - Best bid/ask, last price and 24h volume
    - GET /api/v3/ping        - Health check
"""

from typing import Optional

from core.exceptions import VenueError
from core.logging import logger
from core.schemas import VenueTicker
from core.venue_interface import VenueInterface
from .api_client import BinanceAPIClient


class BinanceVenue(VenueInterface):
    """
    Binance Spot Venue Adapter

    Example:
        >>> venue = BinanceVenue()
        >>> await venue.initialize()
        >>> ticker = await venue.fetch_ticker("BTC/USDT")
        >>> await venue.shutdown()
    """

    name = "binance"

    capabilities = {
        "ticker": True,
        "order_book": False,
        "trades": False,
        "candles": False,
    }

    def __init__(self, base_url: Optional[str] = None, timeout: float = 10):
        self.base_url = base_url
        self.timeout = timeout
        self.client: Optional[BinanceAPIClient] = None

    async def initialize(self) -> None:
        """Open the aiohttp session. Safe to call more than once."""
        if self.client is not None:
            return

        self.client = BinanceAPIClient(base_url=self.base_url, timeout=self.timeout)
        await self.client.__aenter__()
        logger.debug(f"Binance venue initialized (base_url={self.client.base_url})")

    async def shutdown(self) -> None:
        if self.client:
            await self.client.__aexit__(None, None, None)
            self.client = None

    async def health_check(self) -> bool:
        """Ping Binance; any failure reports unhealthy."""
        if self.client is None:
            return False
        try:
            return await self.client.ping()
        except (VenueError, RuntimeError) as e:
            logger.error(f"Binance health check failed: {e}")
            return False

    async def fetch_ticker(self, symbol: str) -> VenueTicker:
        """
        Fetch the 24h ticker for a BASE/QUOTE symbol.

        The session is opened lazily on first use.
        """
        if self.client is None:
            await self.initialize()
        return await self.client.get_ticker(symbol)
