"""
Binance Spot REST API Client

This module provides an async HTTP client for the public Binance Spot REST
API. It handles:
- HTTP requests over a shared aiohttp session
- Translation of Binance error payloads and HTTP statuses into VenueError
- Normalization of ticker payloads to VenueTicker

The client never retries on its own. Every failure is raised as a VenueError
carrying an ErrorCode, and the rate limiter decides whether to try again.

API Documentation:
    https://developers.binance.com/docs/binance-spot-api-docs/rest-api

Usage:
    async with BinanceAPIClient() as client:
        ticker = await client.get_ticker("BTC/USDT")
"""

import asyncio
from typing import Any, Dict, Optional

import aiohttp

from core.exceptions import ErrorCode, VenueError
from core.logging import get_logger
from core.schemas import VenueTicker


# Binance API error codes that map to terminal failures
# https://developers.binance.com/docs/binance-spot-api-docs/errors
BINANCE_ERROR_CODES = {
    -1003: ErrorCode.RATE_LIMIT_EXCEEDED,   # TOO_MANY_REQUESTS
    -1015: ErrorCode.RATE_LIMIT_EXCEEDED,   # TOO_MANY_ORDERS
    -1002: ErrorCode.INVALID_CREDENTIALS,   # UNAUTHORIZED
    -2014: ErrorCode.INVALID_CREDENTIALS,   # BAD_API_KEY_FMT
    -2015: ErrorCode.INVALID_CREDENTIALS,   # REJECTED_MBX_KEY
    -1121: ErrorCode.INVALID_SYMBOL,        # BAD_SYMBOL
    -1100: ErrorCode.INVALID_SYMBOL,        # ILLEGAL_CHARS
    -1013: ErrorCode.MARKET_NOT_AVAILABLE,  # INVALID_MESSAGE (filter failure)
    -1016: ErrorCode.EXCHANGE_MAINTENANCE,  # SERVICE_SHUTTING_DOWN
}


def to_binance_symbol(symbol: str) -> str:
    """
    Convert a BASE/QUOTE symbol to Binance's concatenated form.

    Example:
        >>> to_binance_symbol("btc/usdt")
        'BTCUSDT'
    """
    return symbol.replace("/", "").upper()


def map_binance_error(status: int, payload: Any, path: str = "") -> VenueError:
    """
    Translate a failed Binance response into a VenueError.

    The Binance error code in the payload wins over the HTTP status, since
    Binance returns HTTP 400 for both bad symbols and malformed requests.

    Args:
        status: HTTP status code
        payload: Decoded JSON body ({"code": -1121, "msg": "Invalid symbol."}) or raw text
        path: Request path, for the error message

    Returns:
        VenueError with the matching ErrorCode
    """
    binance_code = None
    message = str(payload)
    if isinstance(payload, dict):
        binance_code = payload.get("code")
        message = payload.get("msg", message)

    if binance_code in BINANCE_ERROR_CODES:
        code = BINANCE_ERROR_CODES[binance_code]
    elif status == 401:
        code = ErrorCode.INVALID_CREDENTIALS
    elif status == 403:
        code = ErrorCode.PERMISSION_DENIED
    elif status in (418, 429):
        # 418 = IP auto-banned after ignoring 429s
        code = ErrorCode.RATE_LIMIT_EXCEEDED
    elif status == 503:
        code = ErrorCode.EXCHANGE_MAINTENANCE
    elif status >= 500:
        code = ErrorCode.NETWORK_ERROR
    else:
        code = ErrorCode.UNKNOWN_ERROR

    return VenueError(f"Binance HTTP {status} on {path}: {message}", code, "binance")


class BinanceAPIClient:
    """
    Async HTTP client for the Binance Spot REST API

    Attributes:
        base_url: Binance Spot API base URL
        timeout: Total request timeout in seconds
        session: aiohttp ClientSession for HTTP requests

    Example:
        >>> async with BinanceAPIClient() as client:
        ...     ticker = await client.get_ticker("ETH/USDT")
        ...     print(ticker.bid, ticker.ask)
    """

    BASE_URL = "https://api.binance.com"

    def __init__(self, base_url: Optional[str] = None, timeout: float = 10):
        self.base_url = (base_url or self.BASE_URL).rstrip("/")
        self.timeout = timeout
        self.logger = get_logger(__name__)
        self.session: Optional[aiohttp.ClientSession] = None

    # ============================================
    # Context Manager for Session Management
    # ============================================

    async def __aenter__(self):
        self.session = aiohttp.ClientSession()
        self.logger.debug("BinanceAPIClient session created")
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        if self.session:
            await self.session.close()
            self.session = None
            self.logger.debug("BinanceAPIClient session closed")

    # ============================================
    # HTTP Request Handler
    # ============================================

    async def _get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        """
        Make a single GET request to the Binance API.

        Args:
            path: API endpoint path (e.g. "/api/v3/ticker/24hr")
            params: Optional query parameters

        Returns:
            Decoded JSON response

        Raises:
            RuntimeError: If the session was never opened
            VenueError: On non-200 responses (see map_binance_error), timeouts
                        and connection failures (NETWORK_ERROR)
        """
        if not self.session:
            raise RuntimeError("Client session not initialized. Use 'async with' statement.")

        url = f"{self.base_url}{path}"
        headers = {"Content-Type": "application/json"}

        try:
            async with self.session.get(
                url,
                params=params,
                headers=headers,
                timeout=aiohttp.ClientTimeout(total=self.timeout)
            ) as resp:
                if resp.status == 200:
                    data = await resp.json()
                    self.logger.debug(f"GET {path} - Success")
                    return data

                try:
                    payload = await resp.json(content_type=None)
                except ValueError:
                    payload = await resp.text()

                error = map_binance_error(resp.status, payload, path)
                self.logger.error(f"{error} [{error.code.name}]")
                raise error

        except asyncio.TimeoutError as e:
            raise VenueError(f"Timeout on {path} after {self.timeout}s", ErrorCode.NETWORK_ERROR, "binance") from e

        except aiohttp.ClientError as e:
            raise VenueError(f"Request failed on {path}: {e}", ErrorCode.NETWORK_ERROR, "binance") from e

    # ============================================
    # API Methods
    # ============================================

    async def get_ticker(self, symbol: str) -> VenueTicker:
        """
        Fetch the 24h rolling ticker for a symbol.

        Args:
            symbol: Trading pair in BASE/QUOTE form (e.g. "BTC/USDT")

        Returns:
            VenueTicker with best bid/ask, last price and 24h base volume

        Binance Endpoint:
            GET /api/v3/ticker/24hr?symbol=BTCUSDT

        Response Format (abridged):
            {
              "symbol": "BTCUSDT",
              "bidPrice": "50000.00",
              "askPrice": "50010.00",
              "lastPrice": "50005.00",
              "volume": "1250.5",
              "closeTime": 1704110400000
            }
        """
        data = await self._get("/api/v3/ticker/24hr", {"symbol": to_binance_symbol(symbol)})

        return VenueTicker(
            symbol=symbol.upper(),
            bid=_to_float(data.get("bidPrice")),
            ask=_to_float(data.get("askPrice")),
            last=_to_float(data.get("lastPrice")),
            base_volume=_to_float(data.get("volume")),
            timestamp_ms=data.get("closeTime"),
        )

    async def ping(self) -> bool:
        """Test connectivity (GET /api/v3/ping returns {})."""
        await self._get("/api/v3/ping")
        return True


def _to_float(value: Any) -> Optional[float]:
    if value is None or value == "":
        return None
    return float(value)
