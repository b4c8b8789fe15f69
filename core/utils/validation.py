"""
Request Input Validation

The analytics core expects lowercase venue ids and BASE/QUOTE symbols.
These helpers enforce that at the request boundary so malformed input is
rejected before any venue is contacted.
"""

import re
from typing import Iterable, List

from core.exceptions import ErrorCode, ValidationError


MAX_VENUE_ID_LENGTH = 50
MAX_SYMBOL_LENGTH = 20

_VENUE_ID_RE = re.compile(r"^[a-z0-9]+$")


def validate_venue_id(venue_id: str) -> str:
    """
    Validate a venue identifier.

    Args:
        venue_id: Venue identifier, e.g. "binance"

    Returns:
        The venue id unchanged

    Raises:
        ValidationError: If the id is missing, too long, or not lowercase alphanumeric
    """
    if not venue_id or not isinstance(venue_id, str):
        raise ValidationError("Venue ID is required", ErrorCode.EXCHANGE_NOT_SUPPORTED)

    if len(venue_id) > MAX_VENUE_ID_LENGTH:
        raise ValidationError(
            f"Invalid venue ID (max length: {MAX_VENUE_ID_LENGTH})",
            ErrorCode.EXCHANGE_NOT_SUPPORTED,
        )

    if not _VENUE_ID_RE.match(venue_id):
        raise ValidationError(
            "Invalid venue ID format (only lowercase letters and numbers allowed)",
            ErrorCode.EXCHANGE_NOT_SUPPORTED,
        )

    return venue_id


def validate_venue_ids(venue_ids: Iterable[str]) -> List[str]:
    """Validate several venue ids, dropping duplicates while keeping order."""
    return list(dict.fromkeys(validate_venue_id(v) for v in venue_ids))


def normalize_symbol(symbol: str) -> str:
    """
    Normalize a symbol to BASE/QUOTE form.

    Examples:
        >>> normalize_symbol("btc usdt")
        'BTC/USDT'
        >>> normalize_symbol("eth-usdt")
        'ETH/USDT'
    """
    normalized = symbol.strip().upper()
    normalized = re.sub(r"\s+", "/", normalized)
    for separator in (":", "-", "_"):
        normalized = normalized.replace(separator, "/")
    return normalized


def validate_symbol(symbol: str) -> str:
    """
    Validate and normalize a trading symbol.

    Raises:
        ValidationError: If the symbol is missing, too long, or has no separator
    """
    if not symbol or not isinstance(symbol, str):
        raise ValidationError("Symbol is required", ErrorCode.INVALID_SYMBOL)

    if len(symbol) > MAX_SYMBOL_LENGTH:
        raise ValidationError(
            f"Symbol too long (max length: {MAX_SYMBOL_LENGTH})",
            ErrorCode.INVALID_SYMBOL,
        )

    normalized = normalize_symbol(symbol)
    base, sep, quote = normalized.partition("/")
    if not sep or not base or not quote or "/" in quote:
        raise ValidationError(
            f"Invalid symbol format: {symbol}. Expected format: BTC/USDT",
            ErrorCode.INVALID_SYMBOL,
        )

    return normalized
