"""
Shared fixtures for the unit tests.
"""

import pytest

from core.venue_manager import VenueManager
from services.arbitrage_scanner import ArbitrageScanner
from services.quote_cache import QuoteCache
from services.rate_limiter import AdaptiveRateLimiter
from tests.fakes import FakeVenue, RecordingSleep, zero_fee_model


@pytest.fixture
def recording_sleep():
    return RecordingSleep()


@pytest.fixture
def limiter(recording_sleep):
    """Deterministic limiter: no jitter, no real sleeping"""
    return AdaptiveRateLimiter(max_jitter=0, sleep=recording_sleep)


@pytest.fixture
def alpha_beta_venues():
    """A{bid 100, ask 101} and B{bid 103, ask 104}, 5000 base volume each"""
    return [
        FakeVenue("alpha", bid=100.0, ask=101.0, volume=5000.0),
        FakeVenue("beta", bid=103.0, ask=104.0, volume=5000.0),
    ]


@pytest.fixture
def scanner_factory(limiter):
    """Build a scanner over the given venues with a fresh cache (zero fees by default)"""

    def build(venues, fee_model=None, **kwargs):
        return ArbitrageScanner(
            VenueManager(venues),
            QuoteCache(),
            limiter,
            fee_model or zero_fee_model(*(v.name for v in venues)),
            **kwargs
        )

    return build
