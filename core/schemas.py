"""
Normalized Data Schemas

This module defines Pydantic models for every value that flows through the
analytics pipeline. Regardless of which venue a quote came from, it is
normalized into these schemas before the scanner looks at it.

Models:
    - VenueTicker: Raw top-of-book ticker returned by a venue adapter
    - PriceQuote: Immutable quote used for one scan iteration
    - FeeProfile / FeeBreakdown: Venue fee rates and the cost of one arbitrage
    - ArbitrageOpportunity: A ranked, fee-adjusted, risk-scored opportunity
    - ScanConfig: Caller-supplied thresholds for a scan
    - CacheStats / LimiterStats / ScannerStats: Observability snapshots
"""

from datetime import datetime
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field, field_validator, ConfigDict

from core.config import settings


# ============================================
# Quotes
# ============================================

class VenueTicker(BaseModel):
    """
    Ticker as reported by a venue adapter.

    Any numeric field may be None when the venue omits it; the scanner treats
    missing prices or volume as "no opportunity" rather than an error.
    """

    symbol: str = Field(..., description="Symbol in BASE/QUOTE form", examples=["BTC/USDT"])
    bid: Optional[float] = Field(None, description="Best bid price")
    ask: Optional[float] = Field(None, description="Best ask price")
    last: Optional[float] = Field(None, description="Last traded price")
    base_volume: Optional[float] = Field(None, description="24h volume in base asset")
    timestamp_ms: Optional[int] = Field(None, description="Venue timestamp in milliseconds")


class PriceQuote(BaseModel):
    """
    Price Quote

    A venue's ticker for one symbol, as seen by a single scan iteration.

    Attributes:
        venue_id: Venue identifier (lowercase)
        symbol: Trading pair in BASE/QUOTE form
        bid / ask / last: Prices (None when the venue omitted them)
        base_volume: 24h volume in the base asset (None when unknown)
        timestamp_ms: Quote time in milliseconds
        served_from_cache: True if the quote came from the ticker cache

    Example:
        >>> quote = PriceQuote(
        ...     venue_id="kraken", symbol="BTC/USDT",
        ...     bid=50000.0, ask=50010.0, last=50005.0,
        ...     base_volume=1250.0, timestamp_ms=1704110400000
        ... )
        >>> quote.with_cache_flag().served_from_cache
        True
    """

    venue_id: str
    symbol: str
    bid: Optional[float] = None
    ask: Optional[float] = None
    last: Optional[float] = None
    base_volume: Optional[float] = None
    timestamp_ms: int
    served_from_cache: bool = False

    model_config = ConfigDict(frozen=True)

    @field_validator('venue_id')
    @classmethod
    def validate_venue(cls, v: str) -> str:
        """Ensure venue is lowercase"""
        return v.lower()

    @field_validator('symbol')
    @classmethod
    def validate_symbol(cls, v: str) -> str:
        """Ensure symbol is uppercase"""
        return v.upper()

    def with_cache_flag(self) -> "PriceQuote":
        """Copy of this quote marked as served from cache."""
        return self.model_copy(update={"served_from_cache": True})


# ============================================
# Fees
# ============================================

class FeeProfile(BaseModel):
    """
    Fee rates of a single venue.

    Rates are fractions (0.001 = 0.1%). Negative maker rates are rebates.
    The withdrawal fee is a flat USD estimate per transfer.
    """

    venue_id: str
    maker_rate: float
    taker_rate: float
    withdrawal_fee_usd: float = Field(..., ge=0)

    model_config = ConfigDict(frozen=True)


class FeeBreakdown(BaseModel):
    """Cost of one buy-here/sell-there arbitrage"""

    buy_fee: float = 0.0
    sell_fee: float = 0.0
    withdrawal_fee: float = 0.0
    total: float = 0.0


# ============================================
# Opportunities
# ============================================

class OpportunityVolume(BaseModel):
    """Tradable volume in base units"""

    available: float = Field(..., gt=0, description="min of both venues' base volume")
    recommended: float = Field(..., ge=0, description="Risk-damped trade size")


class ArbitrageOpportunity(BaseModel):
    """
    Arbitrage Opportunity

    Buy `symbol` at `buy_price` on `buy_venue`, sell at `sell_price` on
    `sell_venue`. Profit figures are for the recommended volume, after fees.

    Attributes:
        id: "{symbol}-{buy_venue}-{sell_venue}-{created_at_ms}"
        spread: sell_price - buy_price (per unit)
        spread_percent: spread as a percentage of buy_price
        potential_profit: gross spread over the full available volume
        net_profit: spread x recommended volume - total fees
        net_profit_percent: net_profit relative to the buy notional
        risk_score: 1 (lowest) to 10 (highest)
        confidence: 0 to 100
        estimated_execution_seconds: order latency plus transfer allowance
        execution_steps: ordered plan for executing the trade
        warnings: distinct human-readable caveats
    """

    id: str
    symbol: str
    buy_venue: str
    sell_venue: str
    buy_price: float = Field(..., gt=0)
    sell_price: float = Field(..., gt=0)
    spread: float
    spread_percent: float
    potential_profit: float
    volume: OpportunityVolume
    fees: FeeBreakdown
    net_profit: float
    net_profit_percent: float
    risk_score: float = Field(..., ge=1, le=10)
    confidence: float = Field(..., ge=0, le=100)
    estimated_execution_seconds: int
    execution_steps: List[str]
    warnings: List[str] = Field(default_factory=list)
    created_at_ms: int

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "id": "BTC/USDT-binance-kraken-1704110400000",
                "symbol": "BTC/USDT",
                "buy_venue": "binance",
                "sell_venue": "kraken",
                "buy_price": 50000.0,
                "sell_price": 50600.0,
                "spread": 600.0,
                "spread_percent": 1.2,
                "potential_profit": 30000.0,
                "volume": {"available": 50.0, "recommended": 5.0},
                "fees": {"buy_fee": 250.0, "sell_fee": 657.8, "withdrawal_fee": 15.0, "total": 922.8},
                "net_profit": 2077.2,
                "net_profit_percent": 0.83,
                "risk_score": 6.0,
                "confidence": 82.0,
                "estimated_execution_seconds": 610,
                "execution_steps": ["1. Place buy order for BTC/USDT on binance"],
                "warnings": [],
                "created_at_ms": 1704110400000
            }
        }
    )

    @field_validator('warnings')
    @classmethod
    def dedupe_warnings(cls, v: List[str]) -> List[str]:
        """Warnings behave as a set; keep first-seen order"""
        return list(dict.fromkeys(v))


# ============================================
# Scan Configuration
# ============================================

class ScanConfig(BaseModel):
    """
    Caller-supplied scan thresholds.

    Passed per invocation and never persisted. Fields left out fall back to
    the values in core.config.settings.

    Example:
        >>> cfg = ScanConfig(min_profit_percent=0.5, venues=["binance", "kraken"])
        >>> cfg.max_risk_score
        7.0
    """

    min_profit_percent: float = Field(default_factory=lambda: settings.min_profit_percent)
    max_risk_score: float = Field(default_factory=lambda: settings.max_risk_score, ge=1, le=10)
    min_volume: float = Field(default_factory=lambda: settings.min_volume, ge=0)
    include_trading_fees: bool = Field(default_factory=lambda: settings.include_trading_fees)
    include_withdrawal_fees: bool = Field(default_factory=lambda: settings.include_withdrawal_fees)
    venues: List[str] = Field(default_factory=lambda: settings.scan_venues_list)
    symbols: List[str] = Field(default_factory=lambda: settings.scan_symbols_list)
    scan_interval_seconds: float = Field(default_factory=lambda: settings.scan_interval_seconds, gt=0)

    @field_validator('venues')
    @classmethod
    def lowercase_venues(cls, v: List[str]) -> List[str]:
        return [venue.lower() for venue in v]


# ============================================
# Batch Execution
# ============================================

class BatchResult(BaseModel):
    """Settled outcome of one operation in a rate-limited batch"""

    venue_id: str
    context: Optional[str] = None
    success: bool
    result: Any = None
    error: Optional[BaseException] = None

    model_config = ConfigDict(arbitrary_types_allowed=True)


# ============================================
# Observability
# ============================================

class CacheClassStats(BaseModel):
    size: int
    max_size: int
    hits: int
    misses: int
    hit_rate: float = Field(..., description="Percent, rounded to 2 decimals")
    ttl_seconds: float


class CacheStats(BaseModel):
    classes: Dict[str, CacheClassStats]
    total_hits: int
    total_misses: int
    overall_hit_rate: float


class RetryStateSnapshot(BaseModel):
    retry_count: int
    consecutive_errors: int
    last_error_at: Optional[datetime] = None
    last_success_at: Optional[datetime] = None


class LimiterStats(BaseModel):
    venues: Dict[str, RetryStateSnapshot]


class ScannerStats(BaseModel):
    is_running: bool
    phase: str
    last_scan_time: Optional[datetime] = None
    total_opportunities: int
    top_opportunity: Optional[ArbitrageOpportunity] = None
