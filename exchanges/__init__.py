"""
Venue Adapters Package

Each venue adapter implements core.venue_interface.VenueInterface:
- binance/: native Binance Spot REST adapter (aiohttp)
- generic/: ccxt-backed adapter for every other venue id

New venues plug in by subclassing VenueInterface and registering with the
VenueManager; the arbitrage scanner needs no changes.
"""
