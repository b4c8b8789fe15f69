"""
Venue Manager - Central Registry for Venue Adapters

The VenueManager is the registry the scanner and request layer resolve venue
ids against. It owns adapter lifecycle (initialize/shutdown/health) and
isolates failures so one broken venue never takes the others down.

The manager is constructed explicitly by the application root and passed to
the services that need it; there is no module-level instance.

Example Usage:
    manager = VenueManager.from_settings()
    await manager.initialize_all()

    venue = manager.get_venue("binance")
    ticker = await venue.fetch_ticker("BTC/USDT")

    await manager.shutdown_all()
"""

from typing import Dict, Iterable, List, Optional, Tuple

from core.exceptions import UnknownVenueError
from core.logging import get_logger
from core.venue_interface import VenueInterface


logger = get_logger(__name__)


class VenueManager:
    """
    Central Manager for Venue Adapters

    Attributes:
        venues: Dictionary mapping venue ids to adapter instances

    Example:
        >>> manager = VenueManager([BinanceVenue(), CcxtVenue("kraken")])
        >>> manager.list_venues()
        ['binance', 'kraken']
        >>> manager.validate_venues(["binance", "nowhere"])
        (['binance'], ['nowhere'])
    """

    def __init__(self, venues: Optional[Iterable[VenueInterface]] = None):
        self.venues: Dict[str, VenueInterface] = {}
        for venue in venues or []:
            self.register(venue)

    @classmethod
    def from_settings(cls, config=None) -> "VenueManager":
        """
        Build a manager with the venues listed in ENABLED_VENUES.

        "binance" uses the native aiohttp adapter; every other id is served by
        ccxt. Ids ccxt does not know are logged and skipped.
        """
        # Adapters import from core, so they cannot be imported at module level
        from core.config import settings
        from exchanges.binance import BinanceVenue
        from exchanges.generic import CcxtVenue, is_ccxt_venue

        config = config or settings
        manager = cls()

        for venue_id in config.enabled_venues_list:
            if venue_id == "binance":
                manager.register(BinanceVenue(base_url=config.binance_base_url, timeout=config.request_timeout))
            elif is_ccxt_venue(venue_id):
                manager.register(CcxtVenue(venue_id, timeout=config.request_timeout))
            else:
                logger.error(f"Venue '{venue_id}' is not available in ccxt; skipping")

        logger.info(f"VenueManager initialized with {len(manager)} venue(s): {', '.join(manager.list_venues())}")
        return manager

    # ============================================
    # Registration and Retrieval
    # ============================================

    def register(self, venue: VenueInterface) -> None:
        """Add (or replace) an adapter under its lowercase name."""
        self.venues[venue.name.lower()] = venue
        logger.debug(f"Registered venue: {venue.name}")

    def get_venue(self, venue_id: str) -> VenueInterface:
        """
        Get a venue adapter by id.

        Raises:
            UnknownVenueError: If the venue is not registered
        """
        venue_id = venue_id.lower()

        if venue_id not in self.venues:
            logger.error(f"Venue '{venue_id}' not found. Available: {', '.join(self.venues)}")
            raise UnknownVenueError(venue_id, self.list_venues())

        return self.venues[venue_id]

    def has_venue(self, venue_id: str) -> bool:
        return venue_id.lower() in self.venues

    def list_venues(self) -> List[str]:
        return list(self.venues.keys())

    def validate_venues(self, venue_ids: Iterable[str]) -> Tuple[List[str], List[str]]:
        """
        Split venue ids into registered and unknown ones, preserving order.

        Returns:
            (known, unknown)
        """
        known, unknown = [], []
        for venue_id in venue_ids:
            (known if self.has_venue(venue_id) else unknown).append(venue_id.lower())
        return known, unknown

    # ============================================
    # Lifecycle Management
    # ============================================

    async def initialize_all(self) -> None:
        """Initialize every adapter; failures are logged and do not stop the rest."""
        logger.info("Initializing all venues...")

        for name, venue in self.venues.items():
            try:
                await venue.initialize()
                logger.info(f"✓ {name} initialized")
            except Exception as e:
                logger.error(f"✗ Failed to initialize {name}: {e}")

    async def shutdown_all(self) -> None:
        """Shutdown every adapter; failures are logged and do not stop the rest."""
        logger.info("Shutting down all venues...")

        for name, venue in self.venues.items():
            try:
                await venue.shutdown()
                logger.debug(f"✓ {name} shut down")
            except Exception as e:
                logger.error(f"✗ Error shutting down {name}: {e}")

    async def health_check_all(self) -> Dict[str, bool]:
        """
        Check health status of all venues.

        Returns:
            Dict[str, bool]: venue id -> healthy. A health check that raises
                             counts as unhealthy.
        """
        health_status = {}
        for name, venue in self.venues.items():
            try:
                health_status[name] = await venue.health_check()
            except Exception as e:
                logger.error(f"Health check failed for {name}: {e}")
                health_status[name] = False

        return health_status

    # ============================================
    # Capability Queries
    # ============================================

    def get_venues_with_feature(self, feature: str) -> List[str]:
        return [name for name, venue in self.venues.items() if venue.supports(feature)]

    def get_venue_capabilities(self, venue_id: str) -> Dict[str, bool]:
        """
        Raises:
            UnknownVenueError: If the venue is not registered
        """
        return self.get_venue(venue_id).capabilities.copy()

    def __repr__(self) -> str:
        return f"<VenueManager(venues={self.list_venues()})>"

    def __len__(self) -> int:
        return len(self.venues)
