"""
FastAPI Application - Cross-Venue Arbitrage Analytics API

Exposes on-demand arbitrage scans, the continuous scanner and the
observability of the quote cache and rate limiter.

Service objects (venue manager, quote cache, rate limiter, fee model,
scanner) are built once here and shared by every route.

Usage:
    uvicorn app.main:app --reload --host 0.0.0.0 --port 8000

Docs:
    - Swagger: http://localhost:8000/docs
    - ReDoc: http://localhost:8000/redoc
"""

from contextlib import asynccontextmanager
from typing import List, Optional

from fastapi import FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware

from core.config import settings, validate_configuration
from core.exceptions import ScannerAlreadyRunningError, UnknownVenueError, ValidationError
from core.fees import FeeModel
from core.logging import logger
from core.schemas import ArbitrageOpportunity, CacheStats, LimiterStats, ScanConfig, ScannerStats
from core.utils.validation import validate_symbol, validate_venue_ids
from core.venue_manager import VenueManager
from services.arbitrage_scanner import ArbitrageScanner
from services.quote_cache import DataClass, QuoteCache
from services.rate_limiter import AdaptiveRateLimiter


# ============================================
# Lifespan Management
# ============================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Handle application startup and shutdown."""
    logger.info("=== Application Starting ===")
    try:
        validate_configuration()
        await manager.initialize_all()
        if settings.scanner_autostart:
            scanner.start_background()
        logger.info("=== Started Successfully ===")
    except Exception as e:
        logger.error(f"Startup failed: {e}")
        raise

    yield

    logger.info("=== Shutting Down ===")
    try:
        await scanner.stop_background(timeout=settings.scanner_stop_timeout_seconds)
        await manager.shutdown_all()
        quote_cache.clear_all()
        logger.info("=== Shutdown Complete ===")
    except Exception as e:
        logger.error(f"Shutdown error: {e}")


# ============================================
# FastAPI Application
# ============================================

app = FastAPI(
    title="Cross-Venue Arbitrage Analytics API",
    description=(
        "Finds fee-adjusted, risk-scored arbitrage opportunities across trading venues.\n\n"
        "## Endpoints\n"
        "- `GET /arbitrage/scan?symbol=BTC/USDT&venues=binance,kraken` - One-off scan\n"
        "- `GET /arbitrage/opportunities` - Stored opportunities, best first\n"
        "- `GET /arbitrage/scanner` - Continuous scanner status\n"
        "- `POST /arbitrage/scanner/start` / `POST /arbitrage/scanner/stop`\n"
        "- `GET /cache/stats`, `DELETE /cache` - Quote cache\n"
        "- `GET /limiter/stats` - Per-venue retry state\n"
        "- `GET /venues`, `GET /health`\n\n"
        "Opportunities are analytics only; nothing is ever traded."
    ),
    version="1.0.0",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc"
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"]
)

manager = VenueManager.from_settings()
quote_cache = QuoteCache.from_settings()
limiter = AdaptiveRateLimiter.from_settings()
fee_model = FeeModel()
scanner = ArbitrageScanner(
    manager,
    quote_cache,
    limiter,
    fee_model,
    retention_seconds=settings.opportunity_retention_seconds,
)


# ============================================
# Request Helpers
# ============================================

def _resolve_venues(venues: Optional[str], defaults: List[str]) -> List[str]:
    """
    Validate a comma-separated venue list against the registry.

    Without an explicit list, the configured defaults that are registered are
    used.

    Raises:
        HTTPException: 400 for malformed ids, 404 for unregistered venues
    """
    if not venues:
        return [v for v in defaults if manager.has_venue(v)]

    requested = [v.strip() for v in venues.split(",") if v.strip()]
    try:
        requested = validate_venue_ids(requested)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))

    known, unknown = manager.validate_venues(requested)
    if unknown:
        raise HTTPException(status_code=404, detail=str(UnknownVenueError(unknown[0], manager.list_venues())))
    return known


# ============================================
# System Endpoints
# ============================================

@app.get("/", tags=["System"])
async def root():
    """API information and registered venues."""
    return {
        "name": "Cross-Venue Arbitrage Analytics API",
        "version": "1.0.0",
        "status": "operational",
        "docs": "/docs",
        "venues": manager.list_venues()
    }


@app.get("/health", tags=["System"])
async def health_check():
    """Health check - tests connectivity to all venues."""
    health = await manager.health_check_all()
    return {
        "status": "healthy" if all(health.values()) else "degraded",
        "venues": health,
        "scanner_running": scanner.is_running
    }


@app.get("/venues", tags=["System"])
async def list_venues():
    """List registered venues with their capabilities and fee profile."""
    return {
        "venues": [
            {
                "name": name,
                "capabilities": manager.get_venue_capabilities(name),
                "fees": fee_model.fees_for(name)
            }
            for name in manager.list_venues()
        ]
    }


# ============================================
# Arbitrage Endpoints
# ============================================

@app.get("/arbitrage/scan", response_model=List[ArbitrageOpportunity], tags=["Arbitrage"])
async def scan_arbitrage(
    symbol: str = Query(..., description="Trading pair, e.g. BTC/USDT"),
    venues: Optional[str] = Query(default=None, description="Comma-separated venue ids"),
    min_profit_percent: Optional[float] = Query(default=None),
    max_risk_score: Optional[float] = Query(default=None, ge=1, le=10),
    min_volume: Optional[float] = Query(default=None, ge=0),
    include_trading_fees: Optional[bool] = Query(default=None),
    include_withdrawal_fees: Optional[bool] = Query(default=None)
):
    """
    Scan one symbol across venues and return opportunities, best net profit first.

    Thresholds left out fall back to the configured defaults.
    """
    try:
        symbol = validate_symbol(symbol)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))

    overrides = {
        "min_profit_percent": min_profit_percent,
        "max_risk_score": max_risk_score,
        "min_volume": min_volume,
        "include_trading_fees": include_trading_fees,
        "include_withdrawal_fees": include_withdrawal_fees,
    }
    config = ScanConfig(**{k: v for k, v in overrides.items() if v is not None})
    config.venues = _resolve_venues(venues, config.venues)

    try:
        return await scanner.scan_for_arbitrage(symbol, config.venues, config)
    except Exception as e:
        logger.error(f"Scan failed for {symbol}: {e}")
        raise HTTPException(status_code=500, detail=f"Scan failed: {e}")


@app.get("/arbitrage/opportunities", response_model=List[ArbitrageOpportunity], tags=["Arbitrage"])
async def list_opportunities(
    limit: int = Query(default=50, ge=1, le=500, description="Maximum opportunities returned")
):
    """Stored opportunities from previous scans, best net profit first."""
    return scanner.get_opportunities()[:limit]


@app.get("/arbitrage/scanner", response_model=ScannerStats, tags=["Arbitrage"])
async def scanner_status():
    """Continuous scanner status and the current top opportunity."""
    return scanner.stats()


@app.post("/arbitrage/scanner/start", response_model=ScannerStats, tags=["Arbitrage"])
async def start_scanner(config: Optional[ScanConfig] = None):
    """
    Start continuous scanning in the background.

    Venues named in the body must be registered (404 otherwise); without
    them, the configured scan venues that are registered are used.
    Returns 400 when that leaves no symbol or no venue to scan, and 409 if
    the scanner is already running.
    """
    config = config or ScanConfig()
    try:
        config.symbols = [validate_symbol(s) for s in config.symbols]
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if "venues" in config.model_fields_set:
        config.venues = _resolve_venues(",".join(config.venues), [])
    else:
        config.venues = _resolve_venues(None, config.venues)

    if not config.symbols:
        raise HTTPException(status_code=400, detail="At least one symbol is required to start scanning")
    if not config.venues:
        raise HTTPException(status_code=400, detail="At least one registered venue is required to start scanning")

    try:
        scanner.start_background(config)
    except ScannerAlreadyRunningError as e:
        raise HTTPException(status_code=409, detail=str(e))

    return scanner.stats()


@app.post("/arbitrage/scanner/stop", response_model=ScannerStats, tags=["Arbitrage"])
async def stop_scanner():
    """Stop continuous scanning (no-op if it is not running)."""
    await scanner.stop_background(timeout=settings.scanner_stop_timeout_seconds)
    return scanner.stats()


# ============================================
# Cache and Limiter Endpoints
# ============================================

@app.get("/cache/stats", response_model=CacheStats, tags=["Observability"])
async def cache_stats():
    """Per-class hit/miss statistics of the quote cache."""
    return quote_cache.stats()


@app.delete("/cache", tags=["Observability"])
async def clear_cache(
    data_class: Optional[DataClass] = Query(default=None, description="Clear only this class")
):
    """Clear one cache class, or every class when none is given."""
    if data_class is None:
        quote_cache.clear_all()
        return {"cleared": [dc.value for dc in DataClass]}

    quote_cache.clear(data_class)
    return {"cleared": [data_class.value]}


@app.get("/limiter/stats", response_model=LimiterStats, tags=["Observability"])
async def limiter_stats():
    """Per-venue retry state of the rate limiter."""
    return limiter.stats()
