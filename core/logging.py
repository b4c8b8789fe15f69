"""
Unified Logging Configuration

This module sets up a centralized logging system for the entire application.
All modules should import and use the logger from this module instead of
using print() statements.

Usage:
    from core.logging import logger, get_logger

    logger.info("Scanner started")

    log = get_logger(__name__)
    log.debug("Ticker cache miss")

Log Levels (from most to least verbose):
    DEBUG    - Cache hits/misses, individual venue requests
    INFO     - Scan summaries, lifecycle events
    WARNING  - Retries, venues dropped from a scan
    ERROR    - Terminal venue failures, failed scan iterations
    CRITICAL - Severe errors that may crash the service

Configuration:
    Log level is controlled by the LOG_LEVEL setting in .env file.
"""

import logging
import sys
from typing import Optional


ROOT_LOGGER_NAME = "arbscanner"


def setup_logging(
    log_level: str = "INFO",
    log_format: Optional[str] = None,
    include_timestamp: bool = True,
    include_module: bool = True
) -> logging.Logger:
    """
    Configure and return the application logger.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_format: Custom log format string (uses default if None)
        include_timestamp: Include timestamp in log messages
        include_module: Include module name in log messages

    Returns:
        logging.Logger: Configured logger instance

    Example:
        >>> logger = setup_logging(log_level="DEBUG")
        >>> logger.info("Application started")
        2024-01-01 12:00:00 [INFO] arbscanner Application started
    """
    if log_format is None:
        format_parts = []

        if include_timestamp:
            format_parts.append("%(asctime)s")

        format_parts.append("[%(levelname)s]")

        if include_module:
            format_parts.append("%(name)s")

        format_parts.append("%(message)s")

        log_format = " ".join(format_parts)

    logging.basicConfig(
        level=getattr(logging, log_level.upper(), logging.INFO),
        format=log_format,
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stdout,
        force=True
    )

    logger = logging.getLogger(ROOT_LOGGER_NAME)
    logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))

    return logger


# ============================================
# Initialize Logger with Settings
# ============================================

try:
    from core.config import settings
    log_level = settings.log_level if hasattr(settings, 'log_level') else "INFO"
except ImportError:
    log_level = "INFO"

logger = setup_logging(log_level=log_level)


# ============================================
# Convenience Functions
# ============================================

def get_logger(name: str) -> logging.Logger:
    """
    Get a logger for a specific module or component.

    Args:
        name: Name for the logger (typically __name__)

    Returns:
        logging.Logger: Logger instance under the application namespace

    Example:
        >>> log = get_logger("services.rate_limiter")
        >>> log.warning("Retry 1/5 for kraken")
        2024-01-01 12:00:00 [WARNING] arbscanner.services.rate_limiter Retry 1/5 for kraken
    """
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")


# ============================================
# Log Helper Functions
# ============================================

def log_venue_request(venue: str, operation: str, symbol: str = None) -> None:
    """
    Log an outgoing venue request with consistent formatting.

    Example:
        >>> log_venue_request("kraken", "fetch_ticker", "BTC/USDT")
        [DEBUG] Venue request: kraken fetch_ticker | Symbol: BTC/USDT
    """
    symbol_str = f" | Symbol: {symbol}" if symbol else ""
    logger.debug(f"Venue request: {venue} {operation}{symbol_str}")


def log_retry_attempt(venue: str, attempt: int, max_retries: int, error: Exception, context: str = None) -> None:
    """
    Log a retry of a failed venue operation.

    Example:
        >>> log_retry_attempt("okx", 2, 5, TimeoutError("read timeout"), "Fetching BTC/USDT ticker")
        [WARNING] Retry 2/5 for okx (Fetching BTC/USDT ticker): read timeout
    """
    context_str = f" ({context})" if context else ""
    logger.warning(f"Retry {attempt}/{max_retries} for {venue}{context_str}: {error}")


def log_opportunity(opportunity) -> None:
    """
    Log a single arbitrage opportunity on one line.

    Example:
        >>> log_opportunity(opp)
        [INFO]   binance -> kraken: $12.40 (0.215%) risk=6.0 conf=71
    """
    logger.info(
        f"  {opportunity.buy_venue} -> {opportunity.sell_venue}: "
        f"${opportunity.net_profit:.2f} ({opportunity.net_profit_percent:.3f}%) "
        f"risk={opportunity.risk_score:.1f} conf={opportunity.confidence:.0f}"
    )


logger.debug("Logging system initialized")
