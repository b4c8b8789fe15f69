"""
Error Taxonomy

Venue adapters translate transport- and venue-specific failures into the
exceptions defined here, so the rate limiter can decide what is worth
retrying without knowing anything about a particular venue.

Categories:
    - Transient venue errors (network, rate limits, maintenance): retried
    - Terminal venue errors (credentials, permissions, unknown symbol or
      market, unsupported method, unknown venue): raised immediately
    - Exhausted retries: MaxRetriesExceededError naming the venue and cause
"""

from enum import Enum
from typing import Optional


class ErrorCode(str, Enum):
    """Stable error codes carried on VenueError.code"""

    EXCHANGE_NOT_SUPPORTED = "TAPS001"
    INVALID_CREDENTIALS = "TAPS002"
    RATE_LIMIT_EXCEEDED = "TAPS003"
    MARKET_NOT_AVAILABLE = "TAPS006"
    EXCHANGE_MAINTENANCE = "TAPS007"
    NETWORK_ERROR = "TAPS008"
    PERMISSION_DENIED = "TAPS010"
    INVALID_SYMBOL = "TAPS011"
    METHOD_NOT_SUPPORTED = "TAPS012"
    UNKNOWN_ERROR = "TAPS999"


NON_RETRYABLE_CODES = frozenset({
    ErrorCode.EXCHANGE_NOT_SUPPORTED,
    ErrorCode.INVALID_CREDENTIALS,
    ErrorCode.PERMISSION_DENIED,
    ErrorCode.INVALID_SYMBOL,
    ErrorCode.MARKET_NOT_AVAILABLE,
    ErrorCode.METHOD_NOT_SUPPORTED,
})


class VenueError(Exception):
    """
    Failure reported by (or about) a trading venue.

    Attributes:
        code: ErrorCode classifying the failure
        venue_id: Venue the failure belongs to (if known)
    """

    def __init__(self, message: str, code: ErrorCode = ErrorCode.UNKNOWN_ERROR, venue_id: Optional[str] = None):
        super().__init__(message)
        self.code = code
        self.venue_id = venue_id

    @property
    def retryable(self) -> bool:
        return self.code not in NON_RETRYABLE_CODES


class UnknownVenueError(VenueError):
    """Raised when a venue id is not registered with the venue manager"""

    def __init__(self, venue_id: str, available=None):
        message = f"Venue '{venue_id}' is not supported"
        if available:
            message += f". Available venues: {', '.join(available)}"
        super().__init__(message, ErrorCode.EXCHANGE_NOT_SUPPORTED, venue_id)


class MaxRetriesExceededError(VenueError):
    """
    Raised once a venue operation keeps failing past the retry ceiling.

    Attributes:
        max_retries: The configured ceiling
        context: Optional description of the operation
        last_error: The final underlying exception (also chained as __cause__)
    """

    def __init__(self, venue_id: str, max_retries: int, last_error: Exception, context: Optional[str] = None):
        context_str = f" ({context})" if context else ""
        super().__init__(
            f"Max retries ({max_retries}) exceeded for {venue_id}{context_str}. Last error: {last_error}",
            getattr(last_error, "code", ErrorCode.UNKNOWN_ERROR),
            venue_id,
        )
        self.max_retries = max_retries
        self.context = context
        self.last_error = last_error


class ValidationError(ValueError):
    """Invalid request input (venue id or symbol)"""

    def __init__(self, message: str, code: ErrorCode):
        super().__init__(message)
        self.code = code


class CacheConfigurationError(ValueError):
    """Invalid quote cache limits (non-positive TTL or capacity)"""


class ScannerAlreadyRunningError(RuntimeError):
    """Continuous scanning was requested while a loop is already active"""
