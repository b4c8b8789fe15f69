"""
Venue Interface - Abstract Contract for All Trading Venues

This module defines the abstract base class every venue adapter implements.
The arbitrage scanner only ever talks to VenueInterface, so adding a venue
never touches the analytics core.

The contract is narrow: the scanner needs a top-of-book ticker
and nothing else. Adapters translate venue-specific failures into the
exceptions in core.exceptions (VenueError with an ErrorCode) so the rate
limiter can decide whether a failure is worth retrying.

Example:
    class KrakenVenue(VenueInterface):
        name = "kraken"
        capabilities = {"ticker": True, "order_book": False}

        async def fetch_ticker(self, symbol):
            # Kraken-specific implementation
            ...

    venue = manager.get_venue("kraken")
    ticker = await venue.fetch_ticker("BTC/USDT")

Capabilities System:
    Each venue declares which features it supports via the `capabilities`
    dict. The scanner skips venues without "ticker" support instead of
    calling into them.
"""

from abc import ABC, abstractmethod
from typing import Dict

from core.schemas import VenueTicker


class VenueInterface(ABC):
    """
    Abstract Base Class for Venue Adapters

    Class Attributes:
        name: Unique identifier for the venue (lowercase, e.g. "binance")
        capabilities: Dictionary indicating which features this venue supports

    Abstract Methods:
        - fetch_ticker: Fetch the current ticker for one symbol

    Optional Methods (can be overridden):
        - initialize: Setup connections, sessions, etc.
        - shutdown: Cleanup connections
        - health_check: Verify the venue API is accessible
    """

    name: str
    """Unique venue identifier (lowercase). Example: "binance", "kraken" """

    capabilities: Dict[str, bool] = {
        "ticker": False,
        "order_book": False,
        "trades": False,
        "candles": False,
    }
    """Dictionary indicating which features this venue supports"""

    @abstractmethod
    async def fetch_ticker(self, symbol: str) -> VenueTicker:
        """
        Fetch the current ticker for a symbol.

        Args:
            symbol: Trading pair in BASE/QUOTE form (e.g. "BTC/USDT")

        Returns:
            VenueTicker: Bid/ask/last/volume; fields the venue omitted are None

        Raises:
            VenueError: With an ErrorCode describing the failure. Terminal
                        codes (invalid symbol, credentials...) stop retries.
            NotImplementedError: If the venue cannot serve tickers

        Example:
            >>> ticker = await venue.fetch_ticker("BTC/USDT")
            >>> print(ticker.bid, ticker.ask)
        """
        ...

    # ============================================
    # Optional Lifecycle Methods
    # ============================================

    async def initialize(self) -> None:
        """
        Initialize the venue adapter (open sessions, load markets).

        Called by VenueManager.initialize_all(). Should be idempotent.
        """
        pass

    async def shutdown(self) -> None:
        """Close sessions and release resources. Should not raise."""
        pass

    async def health_check(self) -> bool:
        """
        Check if the venue API is reachable.

        Returns:
            bool: True if healthy. Implementations return False on errors
                  rather than raising.
        """
        return True

    # ============================================
    # Helper Methods
    # ============================================

    def supports(self, feature: str) -> bool:
        """
        Check if this venue supports a specific feature.

        Example:
            >>> venue.supports("ticker")
            True
        """
        return self.capabilities.get(feature, False)

    def supports_ticker(self) -> bool:
        return self.supports("ticker")

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}(name='{self.name}')>"
