"""
Time Utilities

Quote and opportunity times are integer milliseconds since the epoch (what
ccxt and Binance report); scan and retry bookkeeping uses timezone-aware UTC
datetimes for observability output.
"""

from datetime import datetime, timezone


def datetime_to_timestamp(dt: datetime, milliseconds: bool = False) -> int:
    """
    Convert a datetime object to Unix timestamp.

    Naive datetimes are treated as UTC.

    Examples:
        >>> dt = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)
        >>> datetime_to_timestamp(dt, milliseconds=True)
        1704110400000
    """
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)

    if milliseconds:
        return int(dt.timestamp() * 1000)
    return int(dt.timestamp())


def current_utc_timestamp(milliseconds: bool = False) -> int:
    """
    Get current UTC timestamp.

    Examples:
        >>> current_utc_timestamp()
        1704110400

        >>> current_utc_timestamp(milliseconds=True)
        1704110400123
    """
    return datetime_to_timestamp(datetime.now(timezone.utc), milliseconds)


def current_utc_datetime() -> datetime:
    """Get current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)
