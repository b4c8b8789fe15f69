"""
Unit Tests for Binance API Client

These tests verify that the BinanceAPIClient:
- Requests the 24h ticker with Binance's symbol format
- Normalizes Binance responses to VenueTicker
- Maps Binance error payloads and HTTP statuses to ErrorCodes
- Never retries on its own

and that BinanceVenue opens its session lazily and reports health.

Run with:
    pytest tests/unit/test_binance_api_client.py -v
"""

import asyncio

import aiohttp
import pytest
import pytest_asyncio
from unittest.mock import AsyncMock, MagicMock

from core.exceptions import ErrorCode, VenueError
from core.schemas import VenueTicker
from exchanges.binance import BinanceVenue
from exchanges.binance.api_client import BinanceAPIClient, map_binance_error, to_binance_symbol


# ============================================
# Fixtures
# ============================================

@pytest_asyncio.fixture
async def api_client():
    """Create a BinanceAPIClient instance for testing"""
    async with BinanceAPIClient() as client:
        yield client


def mock_session(status: int, payload=None, side_effect=None) -> MagicMock:
    """aiohttp session double whose get() yields one canned response"""
    resp = MagicMock()
    resp.status = status
    resp.json = AsyncMock(return_value=payload)
    resp.text = AsyncMock(return_value=str(payload))

    session = MagicMock()
    session.get.return_value.__aenter__.return_value = resp
    if side_effect is not None:
        session.get.side_effect = side_effect
    return session


TICKER_PAYLOAD = {
    "symbol": "BTCUSDT",
    "bidPrice": "50000.00",
    "askPrice": "50010.00",
    "lastPrice": "50005.00",
    "volume": "1250.5",
    "closeTime": 1704110400000,
}


# ============================================
# Tests for Ticker Data
# ============================================

class TestGetTicker:
    """Tests for get_ticker method"""

    @pytest.mark.asyncio
    async def test_get_ticker_returns_venue_ticker(self, api_client, monkeypatch):
        """Verify get_ticker normalizes string prices to floats"""
        async def mock_get(path, params=None):
            return TICKER_PAYLOAD

        monkeypatch.setattr(api_client, "_get", mock_get)

        result = await api_client.get_ticker("BTC/USDT")

        assert isinstance(result, VenueTicker)
        assert result.symbol == "BTC/USDT"
        assert result.bid == 50000.0
        assert result.ask == 50010.0
        assert result.last == 50005.0
        assert result.base_volume == 1250.5
        assert result.timestamp_ms == 1704110400000

    @pytest.mark.asyncio
    async def test_get_ticker_uses_binance_symbol(self, api_client, monkeypatch):
        """Verify BASE/QUOTE is sent as BASEQUOTE on the 24hr endpoint"""
        called = {}

        async def mock_get(path, params=None):
            called["path"] = path
            called["params"] = params
            return TICKER_PAYLOAD

        monkeypatch.setattr(api_client, "_get", mock_get)

        await api_client.get_ticker("eth/usdt")

        assert called["path"] == "/api/v3/ticker/24hr"
        assert called["params"] == {"symbol": "ETHUSDT"}

    @pytest.mark.asyncio
    async def test_get_ticker_handles_missing_fields(self, api_client, monkeypatch):
        """Verify absent or empty fields become None"""
        async def mock_get(path, params=None):
            return {"symbol": "BTCUSDT", "bidPrice": "", "askPrice": "50010.00"}

        monkeypatch.setattr(api_client, "_get", mock_get)

        result = await api_client.get_ticker("BTC/USDT")

        assert result.bid is None
        assert result.ask == 50010.0
        assert result.base_volume is None
        assert result.timestamp_ms is None

    def test_to_binance_symbol(self):
        assert to_binance_symbol("btc/usdt") == "BTCUSDT"
        assert to_binance_symbol("ETHBTC") == "ETHBTC"


# ============================================
# Tests for Error Handling
# ============================================

class TestErrorMapping:
    """Tests for map_binance_error"""

    @pytest.mark.parametrize("binance_code, expected", [
        (-1003, ErrorCode.RATE_LIMIT_EXCEEDED),
        (-1015, ErrorCode.RATE_LIMIT_EXCEEDED),
        (-2015, ErrorCode.INVALID_CREDENTIALS),
        (-1121, ErrorCode.INVALID_SYMBOL),
        (-1100, ErrorCode.INVALID_SYMBOL),
        (-1013, ErrorCode.MARKET_NOT_AVAILABLE),
        (-1016, ErrorCode.EXCHANGE_MAINTENANCE),
    ])
    def test_payload_code_wins(self, binance_code, expected):
        """Verify the Binance code decides, whatever the HTTP status"""
        error = map_binance_error(400, {"code": binance_code, "msg": "boom"}, "/api/v3/ticker/24hr")
        assert error.code == expected
        assert error.venue_id == "binance"
        assert "boom" in str(error)

    @pytest.mark.parametrize("status, expected", [
        (401, ErrorCode.INVALID_CREDENTIALS),
        (403, ErrorCode.PERMISSION_DENIED),
        (418, ErrorCode.RATE_LIMIT_EXCEEDED),
        (429, ErrorCode.RATE_LIMIT_EXCEEDED),
        (503, ErrorCode.EXCHANGE_MAINTENANCE),
        (502, ErrorCode.NETWORK_ERROR),
        (404, ErrorCode.UNKNOWN_ERROR),
    ])
    def test_http_status_fallback(self, status, expected):
        """Verify statuses map when the payload carries no known code"""
        assert map_binance_error(status, "<html>error</html>").code == expected


class TestRequestHandling:
    """Tests for _get against a mocked session"""

    @pytest.mark.asyncio
    async def test_requires_session(self):
        """Verify using the client outside 'async with' fails loudly"""
        client = BinanceAPIClient()
        with pytest.raises(RuntimeError):
            await client._get("/api/v3/ping")

    @pytest.mark.asyncio
    async def test_success_returns_json(self):
        client = BinanceAPIClient(base_url="https://example.test/")
        client.session = mock_session(200, {"ok": True})

        assert await client._get("/api/v3/ping") == {"ok": True}
        url = client.session.get.call_args.args[0]
        assert url == "https://example.test/api/v3/ping"

    @pytest.mark.asyncio
    async def test_requests_are_unauthenticated(self):
        """Verify only public endpoints are used: no API key header is sent"""
        client = BinanceAPIClient()
        client.session = mock_session(200, TICKER_PAYLOAD)

        await client.get_ticker("BTC/USDT")

        headers = client.session.get.call_args.kwargs["headers"]
        assert "X-MBX-APIKEY" not in headers
        with pytest.raises(TypeError):
            BinanceAPIClient(api_key="secret")

    @pytest.mark.asyncio
    async def test_bad_symbol_raises_terminal_error(self):
        """Verify a -1121 response surfaces as INVALID_SYMBOL after one request"""
        client = BinanceAPIClient()
        client.session = mock_session(400, {"code": -1121, "msg": "Invalid symbol."})

        with pytest.raises(VenueError) as exc_info:
            await client.get_ticker("FOO/BAR")

        assert exc_info.value.code == ErrorCode.INVALID_SYMBOL
        assert exc_info.value.retryable is False
        assert client.session.get.call_count == 1

    @pytest.mark.asyncio
    async def test_rate_limit_is_retryable(self):
        client = BinanceAPIClient()
        client.session = mock_session(429, {"code": -1003, "msg": "Too many requests"})

        with pytest.raises(VenueError) as exc_info:
            await client.get_ticker("BTC/USDT")

        assert exc_info.value.code == ErrorCode.RATE_LIMIT_EXCEEDED
        assert exc_info.value.retryable is True

    @pytest.mark.asyncio
    @pytest.mark.parametrize("failure", [
        asyncio.TimeoutError(),
        aiohttp.ClientConnectionError("connection refused"),
    ])
    async def test_transport_failures_are_network_errors(self, failure):
        """Verify timeouts and connection errors become NETWORK_ERROR"""
        client = BinanceAPIClient()
        client.session = mock_session(200, side_effect=failure)

        with pytest.raises(VenueError) as exc_info:
            await client.get_ticker("BTC/USDT")

        assert exc_info.value.code == ErrorCode.NETWORK_ERROR
        assert exc_info.value.__cause__ is failure


# ============================================
# Tests for the Venue Adapter
# ============================================

class TestBinanceVenue:
    """Tests for BinanceVenue lifecycle"""

    @pytest.mark.asyncio
    async def test_fetch_ticker_opens_session_lazily(self, monkeypatch):
        """Verify fetch_ticker works without an explicit initialize()"""
        async def fake_get_ticker(self, symbol):
            return VenueTicker(symbol=symbol, bid=1.0, ask=2.0)

        monkeypatch.setattr(BinanceAPIClient, "get_ticker", fake_get_ticker)
        venue = BinanceVenue()

        ticker = await venue.fetch_ticker("BTC/USDT")

        assert ticker.ask == 2.0
        assert venue.client is not None
        await venue.shutdown()
        assert venue.client is None

    @pytest.mark.asyncio
    async def test_initialize_is_idempotent(self):
        venue = BinanceVenue()
        await venue.initialize()
        client = venue.client
        await venue.initialize()
        assert venue.client is client
        await venue.shutdown()

    @pytest.mark.asyncio
    async def test_health_check_without_session(self):
        assert await BinanceVenue().health_check() is False

    @pytest.mark.asyncio
    async def test_health_check_reports_failures(self, monkeypatch):
        """Verify a failing ping reports unhealthy instead of raising"""
        async def failing_ping(self):
            raise VenueError("down", ErrorCode.EXCHANGE_MAINTENANCE, "binance")

        monkeypatch.setattr(BinanceAPIClient, "ping", failing_ping)
        venue = BinanceVenue()
        await venue.initialize()

        assert await venue.health_check() is False
        await venue.shutdown()

    def test_capabilities(self):
        venue = BinanceVenue()
        assert venue.name == "binance"
        assert venue.supports_ticker() is True
        assert venue.supports("order_book") is False
