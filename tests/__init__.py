"""
Test Suite

Unit tests for the arbitrage analytics pipeline. No test talks to a real
venue: adapters are exercised against mocked sessions and ccxt exchanges,
and everything above them runs over the FakeVenue doubles in tests/fakes.py.

Structure:
- tests/fakes.py: Shared test doubles (FakeVenue, RecordingSleep, zero fees)
- tests/unit/: Tests for individual components and the REST routes

Uses pytest with pytest-asyncio for testing async functionality.
"""
