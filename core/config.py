"""
Configuration Management Module

This module handles loading, validating, and providing access to application configuration
from environment variables (.env file).

Uses Pydantic Settings for automatic validation and type conversion.

Key Features:
- Loads configuration from .env file
- Validates all required settings
- Provides type-safe access to configuration values
- Converts comma-separated strings to lists (venues, symbols)
- Handles optional settings with sensible defaults

Usage:
    from core.config import settings

    # Access configuration values
    print(settings.ticker_cache_ttl)
    print(settings.scan_symbols_list)  # Returns a list of strings
"""

import re
from typing import List
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field


VENUE_ID_PATTERN = re.compile(r"^[a-z0-9]+$")


class Settings(BaseSettings):
    """
    Application Settings

    This class defines all configuration parameters for the application.
    Values are automatically loaded from environment variables or .env file.

    Attributes:
        app_host: Host address for FastAPI server
        app_port: Port number for FastAPI server
        environment: Current environment (development, production)
        debug: Enable debug mode with verbose logging
        log_level: Logging level name
        enabled_venues: Venues registered with the venue manager
        binance_base_url: Base URL for the Binance spot REST API
        request_timeout: Timeout for venue HTTP requests in seconds
        *_cache_ttl / *_cache_size: Freshness window and capacity per cache class
        max_retries: Retry ceiling per venue before a terminal error
        base_delay_seconds / max_delay_seconds / max_jitter_seconds: Backoff shape
        batch_stagger_seconds: Pause before each venue group in a batch (after the first)
        venue_concurrency: Venue groups allowed in flight at once during a batch
        min_profit_percent / max_risk_score / min_volume: Default scan thresholds
        scan_venues / scan_symbols / scan_interval_seconds: Continuous scan defaults
        opportunity_retention_seconds: Age after which stored opportunities are evicted
        scanner_stop_timeout_seconds: Wait for the current pass on stop before cancelling it
    """

    # ============================================
    # Application Configuration
    # ============================================

    app_host: str = Field(
        default="0.0.0.0",
        description="FastAPI server host address"
    )

    app_port: int = Field(
        default=8000,
        description="FastAPI server port"
    )

    environment: str = Field(
        default="development",
        description="Application environment (development, production)"
    )

    debug: bool = Field(
        default=True,
        description="Enable debug mode"
    )

    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)"
    )

    cors_origins: str = Field(
        default="http://localhost:3000,http://localhost:5173",
        description="Comma-separated list of allowed CORS origins"
    )

    # ============================================
    # Venue Configuration
    # ============================================

    enabled_venues: str = Field(
        default="binance,coinbase,kraken,okx,gateio,kucoin",
        description="Comma-separated list of venues to register"
    )

    binance_base_url: str = Field(
        default="https://api.binance.com",
        description="Binance spot API base URL"
    )

    request_timeout: int = Field(
        default=10,
        description="Venue HTTP request timeout in seconds"
    )

    # ============================================
    # Quote Cache
    # ============================================

    ticker_cache_ttl: float = Field(default=10.0, description="Ticker freshness window (seconds)")
    ticker_cache_size: int = Field(default=500, description="Ticker cache capacity")

    order_book_cache_ttl: float = Field(default=5.0, description="Order book freshness window (seconds)")
    order_book_cache_size: int = Field(default=200, description="Order book cache capacity")

    trades_cache_ttl: float = Field(default=10.0, description="Recent trades freshness window (seconds)")
    trades_cache_size: int = Field(default=200, description="Recent trades cache capacity")

    candles_cache_ttl: float = Field(default=60.0, description="Candle freshness window (seconds)")
    candles_cache_size: int = Field(default=300, description="Candle cache capacity")

    markets_cache_ttl: float = Field(default=3600.0, description="Market metadata freshness window (seconds)")
    markets_cache_size: int = Field(default=1000, description="Market metadata cache capacity")

    # ============================================
    # Adaptive Rate Limiter
    # ============================================

    max_retries: int = Field(
        default=5,
        description="Retries per venue before the failure becomes terminal"
    )

    base_delay_seconds: float = Field(
        default=1.0,
        description="Base backoff delay, doubled on every retry"
    )

    max_delay_seconds: float = Field(
        default=60.0,
        description="Upper bound for a single backoff delay"
    )

    max_jitter_seconds: float = Field(
        default=1.0,
        description="Random jitter added to each backoff delay"
    )

    batch_stagger_seconds: float = Field(
        default=0.1,
        description="Delay inserted before each venue group in a batch (after the first)"
    )

    venue_concurrency: int = Field(
        default=1,
        description="Venue groups executed concurrently in a batch (1 = serialized)"
    )

    # ============================================
    # Arbitrage Scanner
    # ============================================

    min_profit_percent: float = Field(
        default=0.1,
        description="Minimum net profit percent for an opportunity to be reported"
    )

    max_risk_score: float = Field(
        default=7.0,
        description="Maximum acceptable risk score (1-10)"
    )

    min_volume: float = Field(
        default=100.0,
        description="Minimum available volume (base units)"
    )

    include_trading_fees: bool = Field(default=True, description="Deduct taker fees on both legs")
    include_withdrawal_fees: bool = Field(default=True, description="Deduct the buy venue withdrawal fee")

    scan_venues: str = Field(
        default="binance,coinbase,kraken,okx,gateio,kucoin",
        description="Comma-separated list of venues scanned by default"
    )

    scan_symbols: str = Field(
        default="BTC/USDT,ETH/USDT,SOL/USDT",
        description="Comma-separated list of symbols for continuous scanning"
    )

    scan_interval_seconds: float = Field(
        default=5.0,
        description="Pause between full passes in continuous mode"
    )

    opportunity_retention_seconds: float = Field(
        default=300.0,
        description="Age after which stored opportunities are evicted"
    )

    scanner_autostart: bool = Field(
        default=False,
        description="Start continuous scanning when the API starts"
    )

    scanner_stop_timeout_seconds: float = Field(
        default=30.0,
        description="How long a stop waits for the current scan pass before cancelling it"
    )

    # ============================================
    # Pydantic Settings Configuration
    # ============================================

    model_config = SettingsConfigDict(
        # Look for .env file in the project root
        env_file=".env",
        # Ignore extra fields in .env that aren't defined here
        extra="ignore",
        # Case-insensitive environment variable matching
        case_sensitive=False
    )

    # ============================================
    # Custom Properties
    # ============================================

    @property
    def enabled_venues_list(self) -> List[str]:
        """
        Convert comma-separated venues string to a list.

        Example:
            >>> settings.enabled_venues_list
            ['binance', 'coinbase', 'kraken', 'okx', 'gateio', 'kucoin']
        """
        return _split_lower(self.enabled_venues)

    @property
    def scan_venues_list(self) -> List[str]:
        """Venues scanned when the caller does not name any."""
        return _split_lower(self.scan_venues)

    @property
    def scan_symbols_list(self) -> List[str]:
        """
        Convert comma-separated symbols string to a list.

        Example:
            >>> settings.scan_symbols_list
            ['BTC/USDT', 'ETH/USDT', 'SOL/USDT']
        """
        return [s.strip().upper() for s in self.scan_symbols.split(",") if s.strip()]

    @property
    def cors_origins_list(self) -> List[str]:
        """Convert comma-separated CORS origins string to a list."""
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    def cache_limits(self) -> dict:
        """
        Per-class (ttl_seconds, capacity) pairs for the quote cache.

        Returns:
            Dictionary keyed by cache class name
        """
        return {
            "ticker": (self.ticker_cache_ttl, self.ticker_cache_size),
            "order_book": (self.order_book_cache_ttl, self.order_book_cache_size),
            "trades": (self.trades_cache_ttl, self.trades_cache_size),
            "candles": (self.candles_cache_ttl, self.candles_cache_size),
            "markets": (self.markets_cache_ttl, self.markets_cache_size),
        }


def _split_lower(value: str) -> List[str]:
    return [v.strip().lower() for v in value.split(",") if v.strip()]


# ============================================
# Global Settings Instance
# ============================================

# Create a single instance of settings to be imported throughout the application
# This ensures configuration is loaded once and reused
settings = Settings()


# ============================================
# Configuration Validation
# ============================================

def validate_configuration(config: Settings = None) -> None:
    """
    Validate critical configuration settings on application startup.

    Args:
        config: Settings to validate (defaults to the global settings)

    Raises:
        ValueError: If required configuration is missing or invalid
    """
    # Import logger here to avoid circular import
    # (logging.py imports config.py, so we can't import at module level)
    from core.logging import logger

    config = config or settings

    if not (1 <= config.app_port <= 65535):
        raise ValueError(f"Invalid port number: {config.app_port}. Must be between 1 and 65535")

    valid_log_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
    if config.log_level.upper() not in valid_log_levels:
        raise ValueError(
            f"Invalid LOG_LEVEL: '{config.log_level}'. "
            f"Must be one of: {', '.join(valid_log_levels)}"
        )

    for name, (ttl, size) in config.cache_limits().items():
        if ttl <= 0:
            raise ValueError(f"{name.upper()}_CACHE_TTL must be positive, got {ttl}")
        if size <= 0:
            raise ValueError(f"{name.upper()}_CACHE_SIZE must be positive, got {size}")

    if config.max_retries < 0:
        raise ValueError(f"MAX_RETRIES cannot be negative: {config.max_retries}")
    if config.base_delay_seconds < 0 or config.max_delay_seconds < config.base_delay_seconds:
        raise ValueError(
            "Backoff delays must satisfy 0 <= BASE_DELAY_SECONDS <= MAX_DELAY_SECONDS"
        )
    if config.venue_concurrency < 1:
        raise ValueError(f"VENUE_CONCURRENCY must be at least 1, got {config.venue_concurrency}")

    if not (1 <= config.max_risk_score <= 10):
        raise ValueError(f"MAX_RISK_SCORE must be between 1 and 10, got {config.max_risk_score}")
    if config.scan_interval_seconds <= 0:
        raise ValueError("SCAN_INTERVAL_SECONDS must be positive")
    if config.scanner_stop_timeout_seconds <= 0:
        raise ValueError("SCANNER_STOP_TIMEOUT_SECONDS must be positive")

    for venue in config.enabled_venues_list + config.scan_venues_list:
        if not VENUE_ID_PATTERN.match(venue):
            raise ValueError(
                f"Venue '{venue}' must be lowercase letters and numbers only. "
                f"Please update ENABLED_VENUES / SCAN_VENUES in .env"
            )

    for symbol in config.scan_symbols_list:
        if "/" not in symbol:
            raise ValueError(f"Symbol '{symbol}' must be in BASE/QUOTE form (e.g., BTC/USDT)")

    # Log successful validation
    logger.info("Configuration validated successfully")
    logger.info(f"Venues: {', '.join(config.enabled_venues_list)}")
    logger.info(f"Scan symbols: {', '.join(config.scan_symbols_list)}")
    logger.info(
        f"Limiter: max_retries={config.max_retries} base={config.base_delay_seconds}s "
        f"cap={config.max_delay_seconds}s venue_concurrency={config.venue_concurrency}"
    )
    logger.info(f"Server: {config.app_host}:{config.app_port}")
    logger.info(f"Log level: {config.log_level.upper()}")
