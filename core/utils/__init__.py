"""
Core Utilities Package

This package contains utility functions and helpers used throughout the application.

Modules:
    - time: UTC timestamps and datetimes
    - validation: Venue id and symbol validation for the request layer
"""

from core.utils.time import current_utc_datetime, current_utc_timestamp
from core.utils.validation import validate_symbol, validate_venue_id

__all__ = ["current_utc_datetime", "current_utc_timestamp", "validate_symbol", "validate_venue_id"]
