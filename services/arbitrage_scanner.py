"""
Cross-Venue Arbitrage Scanner

Compares one symbol's ticker across venues and ranks fee-adjusted, risk-scored
buy-here/sell-there opportunities.

A scan moves through these phases (ScanPhase):

    IDLE -> FETCHING -> COMPARING -> SCORING -> FILTERING -> DONE

FETCHING    Ticker cache first; misses go to the venues as one batch through
            the rate limiter. Venues that fail are dropped from this scan.
COMPARING   Every ordered (buy, sell) pair with buy.ask < sell.bid.
SCORING     Spread, volume, risk, confidence, recommended size, fees and net
            profit. Pairs without usable volume or without net profit are
            discarded.
FILTERING   Caller thresholds (min profit %, max risk, min volume).

Results are sorted by absolute net profit and kept in memory by id until
they age out.

The risk/confidence weights below are a heuristic, not a model: they are
module constants so they can be tuned without touching the pipeline.

Usage:
    scanner = ArbitrageScanner(manager, cache, limiter, FeeModel())
    opportunities = await scanner.scan_for_arbitrage("BTC/USDT", ["binance", "kraken", "okx"])

    scanner.start_background(ScanConfig(symbols=["BTC/USDT", "ETH/USDT"]))
    ...
    await scanner.stop_background()
"""

import asyncio
import contextlib
import functools
from enum import Enum
from typing import Awaitable, Callable, Dict, List, Optional

from core.exceptions import ErrorCode, ScannerAlreadyRunningError, VenueError
from core.fees import FeeModel
from core.logging import get_logger, log_opportunity, log_venue_request
from core.schemas import (
    ArbitrageOpportunity,
    FeeBreakdown,
    OpportunityVolume,
    PriceQuote,
    ScanConfig,
    ScannerStats,
)
from core.utils.time import current_utc_datetime, current_utc_timestamp
from core.venue_manager import VenueManager
from services.quote_cache import QuoteCache
from services.rate_limiter import AdaptiveRateLimiter, BatchOperation


logger = get_logger(__name__)


# ============================================
# Scoring Heuristic
# ============================================

NEUTRAL_RISK_SCORE = 5.0
MIN_RISK_SCORE = 1.0
MAX_RISK_SCORE = 10.0

TIGHT_SPREAD_PERCENT = 0.5
NARROW_SPREAD_PERCENT = 1.0
WIDE_SPREAD_PERCENT = 2.0

LOW_VOLUME = 1_000
MODERATE_VOLUME = 10_000
DEEP_VOLUME = 100_000

CACHED_SIDE_RISK = 0.5

BASE_CONFIDENCE = 50.0
SPREAD_CONFIDENCE_WEIGHT = 10.0
RISK_CONFIDENCE_WEIGHT = 5.0
VOLUME_CONFIDENCE_BONUS = 10.0
LIVE_SIDE_CONFIDENCE_BONUS = 5.0

HIGH_RISK_WARNING_THRESHOLD = 7.0

# Fraction of the risk-adjusted volume actually recommended (fractional Kelly)
FRACTIONAL_KELLY = 0.25

ORDER_EXECUTION_SECONDS = 10
TRANSFER_SECONDS = 600

TOP_OPPORTUNITIES_LOGGED = 3


class ScanPhase(str, Enum):
    """Where the most recent scan currently is"""

    IDLE = "idle"
    FETCHING = "fetching"
    COMPARING = "comparing"
    SCORING = "scoring"
    FILTERING = "filtering"
    DONE = "done"


def risk_score(spread_percent: float, volume: float, buy_cached: bool, sell_cached: bool) -> float:
    """
    Risk score from 1 (lowest) to 10 (highest).

    Tight spreads may close before both legs fill, thin volume means
    slippage, and cached prices may already be stale.
    """
    score = NEUTRAL_RISK_SCORE

    if spread_percent < TIGHT_SPREAD_PERCENT:
        score += 2
    elif spread_percent < NARROW_SPREAD_PERCENT:
        score += 1
    elif spread_percent > WIDE_SPREAD_PERCENT:
        score -= 1

    if volume < LOW_VOLUME:
        score += 2
    elif volume < MODERATE_VOLUME:
        score += 1
    elif volume > DEEP_VOLUME:
        score -= 1

    if buy_cached:
        score += CACHED_SIDE_RISK
    if sell_cached:
        score += CACHED_SIDE_RISK

    return max(MIN_RISK_SCORE, min(MAX_RISK_SCORE, score))


def confidence_score(
    spread_percent: float,
    volume: float,
    risk: float,
    buy_cached: bool,
    sell_cached: bool
) -> float:
    """Confidence from 0 to 100."""
    confidence = BASE_CONFIDENCE
    confidence += spread_percent * SPREAD_CONFIDENCE_WEIGHT
    confidence += (MAX_RISK_SCORE - risk) * RISK_CONFIDENCE_WEIGHT

    if volume > MODERATE_VOLUME:
        confidence += VOLUME_CONFIDENCE_BONUS
    if volume > DEEP_VOLUME:
        confidence += VOLUME_CONFIDENCE_BONUS

    if not buy_cached:
        confidence += LIVE_SIDE_CONFIDENCE_BONUS
    if not sell_cached:
        confidence += LIVE_SIDE_CONFIDENCE_BONUS

    return max(0.0, min(100.0, confidence))


def recommended_volume(available: float, risk: float) -> float:
    """
    Risk-damped trade size: risk 1 keeps 90% of the fractional-Kelly size,
    risk 10 recommends nothing.
    """
    risk_factor = (MAX_RISK_SCORE - risk) / MAX_RISK_SCORE
    return available * risk_factor * FRACTIONAL_KELLY


def estimated_execution_seconds(buy_venue: str, sell_venue: str) -> int:
    if buy_venue == sell_venue:
        return ORDER_EXECUTION_SECONDS
    return ORDER_EXECUTION_SECONDS + TRANSFER_SECONDS


def execution_steps(symbol: str, buy_venue: str, sell_venue: str) -> List[str]:
    return [
        f"1. Place buy order for {symbol} on {buy_venue}",
        "2. Wait for order fill confirmation",
        f"3. Withdraw to {sell_venue} (if different network)",
        "4. Wait for deposit confirmation",
        f"5. Place sell order on {sell_venue}",
        "6. Wait for order fill confirmation",
        "7. Calculate final profit/loss",
    ]


def opportunity_warnings(buy: PriceQuote, sell: PriceQuote, spread_percent: float, risk: float) -> List[str]:
    warnings = []
    if spread_percent < TIGHT_SPREAD_PERCENT:
        warnings.append("Very tight spread - high execution risk")
    if risk > HIGH_RISK_WARNING_THRESHOLD:
        warnings.append("High risk score - proceed with caution")
    if buy.served_from_cache or sell.served_from_cache:
        warnings.append("Using cached data - prices may have changed")
    if buy.base_volume < LOW_VOLUME or sell.base_volume < LOW_VOLUME:
        warnings.append("Low volume - may face liquidity issues")
    return warnings


class ArbitrageScanner:
    """
    Cross-venue arbitrage scanner.

    Args:
        venue_manager: Registry used to resolve venue ids
        cache: Quote cache consulted before any venue call
        limiter: Rate limiter every live fetch goes through
        fee_model: Fee lookup used to net out trading and transfer costs
        clock: Current time in milliseconds (injectable for tests)
        sleep: Awaitable sleep used between continuous passes
        retention_seconds: Age after which stored opportunities are evicted
                           during continuous scanning
    """

    def __init__(
        self,
        venue_manager: VenueManager,
        cache: QuoteCache,
        limiter: AdaptiveRateLimiter,
        fee_model: Optional[FeeModel] = None,
        clock: Callable[[], int] = functools.partial(current_utc_timestamp, milliseconds=True),
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        retention_seconds: float = 300.0
    ):
        self.venue_manager = venue_manager
        self.cache = cache
        self.limiter = limiter
        self.fee_model = fee_model or FeeModel()
        self._clock = clock
        self._sleep = sleep
        self.retention_seconds = retention_seconds

        self.phase = ScanPhase.IDLE
        self.last_scan_time = None
        self._opportunities: Dict[str, ArbitrageOpportunity] = {}
        self._running = False
        self._task: Optional[asyncio.Task] = None
        self._sleeping = False

    # ============================================
    # Single Scan
    # ============================================

    async def scan_for_arbitrage(
        self,
        symbol: str,
        venues: Optional[List[str]] = None,
        config: Optional[ScanConfig] = None
    ) -> List[ArbitrageOpportunity]:
        """
        Scan one symbol across venues.

        Args:
            symbol: Trading pair in BASE/QUOTE form
            venues: Venue ids to compare (defaults to config.venues)
            config: Thresholds (defaults to ScanConfig())

        Returns:
            Opportunities passing the thresholds, best net profit first.
            An empty list is a normal outcome.
        """
        config = config or ScanConfig()
        symbol = symbol.upper()
        venue_ids = list(dict.fromkeys(v.lower() for v in (venues or config.venues)))

        self.phase = ScanPhase.FETCHING
        quotes = await self._fetch_quotes(symbol, venue_ids)

        self.phase = ScanPhase.COMPARING
        candidates = [
            (buy, sell)
            for buy in quotes
            for sell in quotes
            if buy.venue_id != sell.venue_id and _is_crossed(buy, sell)
        ]

        self.phase = ScanPhase.SCORING
        scored = []
        for buy, sell in candidates:
            opportunity = self._analyze(symbol, buy, sell, config)
            if opportunity is not None:
                scored.append(opportunity)

        self.phase = ScanPhase.FILTERING
        opportunities = [opp for opp in scored if _meets_thresholds(opp, config)]
        opportunities.sort(key=lambda opp: opp.net_profit, reverse=True)

        for opp in opportunities:
            self._opportunities[opp.id] = opp

        self.last_scan_time = current_utc_datetime()
        self.phase = ScanPhase.DONE

        logger.info(
            f"Scan {symbol}: {len(quotes)}/{len(venue_ids)} venues quoted, "
            f"{len(candidates)} crossed pairs, {len(opportunities)} opportunities"
        )
        return opportunities

    async def _fetch_quotes(self, symbol: str, venue_ids: List[str]) -> List[PriceQuote]:
        quotes: Dict[str, PriceQuote] = {}
        misses = []

        for venue_id in venue_ids:
            cached = self.cache.get_ticker(venue_id, symbol)
            if cached is not None:
                quotes[venue_id] = cached.with_cache_flag()
            else:
                misses.append(venue_id)

        if misses:
            results = await self.limiter.execute_batch([
                BatchOperation(
                    venue_id=venue_id,
                    operation=functools.partial(self._fetch_live_quote, venue_id, symbol),
                    context=f"Fetching {symbol} ticker",
                )
                for venue_id in misses
            ])
            for result in results:
                if result.success:
                    quotes[result.venue_id] = result.result
                else:
                    logger.warning(f"Dropping {result.venue_id} from {symbol} scan: {result.error}")

        return [quotes[venue_id] for venue_id in venue_ids if venue_id in quotes]

    async def _fetch_live_quote(self, venue_id: str, symbol: str) -> PriceQuote:
        venue = self.venue_manager.get_venue(venue_id)
        if not venue.supports_ticker():
            raise VenueError(
                f"Venue {venue_id} does not support fetching tickers",
                ErrorCode.METHOD_NOT_SUPPORTED,
                venue_id,
            )

        log_venue_request(venue_id, "fetch_ticker", symbol)
        ticker = await venue.fetch_ticker(symbol)

        quote = PriceQuote(
            venue_id=venue_id,
            symbol=symbol,
            bid=ticker.bid,
            ask=ticker.ask,
            last=ticker.last,
            base_volume=ticker.base_volume,
            timestamp_ms=ticker.timestamp_ms or self._clock(),
        )
        self.cache.set_ticker(venue_id, symbol, quote)
        return quote

    def _analyze(
        self,
        symbol: str,
        buy: PriceQuote,
        sell: PriceQuote,
        config: ScanConfig
    ) -> Optional[ArbitrageOpportunity]:
        """Score one crossed pair; None when it cannot be traded at a profit."""
        if not buy.base_volume or not sell.base_volume or buy.base_volume <= 0 or sell.base_volume <= 0:
            return None

        buy_price, sell_price = buy.ask, sell.bid
        spread = sell_price - buy_price
        spread_percent = spread / buy_price * 100
        available = min(buy.base_volume, sell.base_volume)

        risk = risk_score(spread_percent, available, buy.served_from_cache, sell.served_from_cache)
        confidence = confidence_score(
            spread_percent, available, risk, buy.served_from_cache, sell.served_from_cache
        )
        recommended = recommended_volume(available, risk)

        fees = self._fees(buy.venue_id, sell.venue_id, buy_price * recommended, sell_price * recommended, config)
        net_profit = spread * recommended - fees.total
        if net_profit <= 0:
            return None

        created_at_ms = self._clock()
        return ArbitrageOpportunity(
            id=f"{symbol}-{buy.venue_id}-{sell.venue_id}-{created_at_ms}",
            symbol=symbol,
            buy_venue=buy.venue_id,
            sell_venue=sell.venue_id,
            buy_price=buy_price,
            sell_price=sell_price,
            spread=spread,
            spread_percent=spread_percent,
            potential_profit=spread * available,
            volume=OpportunityVolume(available=available, recommended=recommended),
            fees=fees,
            net_profit=net_profit,
            net_profit_percent=net_profit / (buy_price * recommended) * 100,
            risk_score=risk,
            confidence=confidence,
            estimated_execution_seconds=estimated_execution_seconds(buy.venue_id, sell.venue_id),
            execution_steps=execution_steps(symbol, buy.venue_id, sell.venue_id),
            warnings=opportunity_warnings(buy, sell, spread_percent, risk),
            created_at_ms=created_at_ms,
        )

    def _fees(
        self,
        buy_venue: str,
        sell_venue: str,
        buy_notional: float,
        sell_notional: float,
        config: ScanConfig
    ) -> FeeBreakdown:
        fees = self.fee_model.arbitrage_fees(
            buy_venue, sell_venue, buy_notional, sell_notional,
            include_withdrawal=config.include_withdrawal_fees,
        )
        if config.include_trading_fees:
            return fees
        return FeeBreakdown(withdrawal_fee=fees.withdrawal_fee, total=fees.withdrawal_fee)

    # ============================================
    # Stored Opportunities
    # ============================================

    def get_opportunities(self) -> List[ArbitrageOpportunity]:
        """Stored opportunities, best net profit first."""
        return sorted(self._opportunities.values(), key=lambda opp: opp.net_profit, reverse=True)

    def clear_old_opportunities(self, max_age_seconds: float = 300) -> int:
        """
        Evict opportunities older than `max_age_seconds`.

        Returns:
            Number of opportunities removed
        """
        now = self._clock()
        expired = [
            opp_id for opp_id, opp in self._opportunities.items()
            if now - opp.created_at_ms > max_age_seconds * 1000
        ]
        for opp_id in expired:
            del self._opportunities[opp_id]

        if expired:
            logger.debug(f"Evicted {len(expired)} expired opportunities")
        return len(expired)

    def stats(self) -> ScannerStats:
        opportunities = self.get_opportunities()
        return ScannerStats(
            is_running=self.is_running,
            phase=self.phase.value,
            last_scan_time=self.last_scan_time,
            total_opportunities=len(opportunities),
            top_opportunity=opportunities[0] if opportunities else None,
        )

    # ============================================
    # Continuous Scanning
    # ============================================

    @property
    def is_running(self) -> bool:
        return self._running

    async def start_continuous_scanning(self, config: Optional[ScanConfig] = None) -> None:
        """
        Scan every configured symbol, sleep, repeat until stop_scanning().

        A failing symbol is logged and skipped; it never ends the loop.

        Raises:
            ScannerAlreadyRunningError: If a loop is already running
        """
        if self._running:
            raise ScannerAlreadyRunningError("Scanner is already running")

        self._running = True
        await self._run_loop(config or ScanConfig())

    async def _run_loop(self, config: ScanConfig) -> None:
        logger.info(
            f"Starting continuous arbitrage scanning: {', '.join(config.symbols)} "
            f"across {', '.join(config.venues)} every {config.scan_interval_seconds}s"
        )

        try:
            while self._running:
                for symbol in config.symbols:
                    try:
                        opportunities = await self.scan_for_arbitrage(symbol, config.venues, config)
                    except Exception as e:
                        logger.error(f"Scanner error for {symbol}: {e}")
                        continue

                    if opportunities:
                        logger.info(f"Found {len(opportunities)} opportunities for {symbol}")
                        for opportunity in opportunities[:TOP_OPPORTUNITIES_LOGGED]:
                            log_opportunity(opportunity)

                self.clear_old_opportunities(self.retention_seconds)
                if not self._running:
                    break

                self._sleeping = True
                try:
                    await self._sleep(config.scan_interval_seconds)
                finally:
                    self._sleeping = False
        finally:
            self._running = False
            self.phase = ScanPhase.IDLE

    def stop_scanning(self) -> None:
        """Ask the continuous loop to stop once its current pass completes."""
        if self._running:
            logger.info("Stopping arbitrage scanner...")
        self._running = False

    def start_background(self, config: Optional[ScanConfig] = None) -> asyncio.Task:
        """
        Run start_continuous_scanning as an asyncio task.

        Raises:
            ScannerAlreadyRunningError: If a loop is already running
        """
        if self._running or (self._task is not None and not self._task.done()):
            raise ScannerAlreadyRunningError("Scanner is already running")

        self._running = True
        self._task = asyncio.create_task(self._run_loop(config or ScanConfig()), name="arbitrage_scanner")
        return self._task

    async def stop_background(self, timeout: Optional[float] = None) -> None:
        """
        Stop the background loop and wait for its task to finish.

        A pass in progress runs to completion, so in-flight venue fetches are
        never interrupted. Only the sleep between passes is cancelled.

        Args:
            timeout: Seconds to wait for the current pass before cancelling it
                     (None waits indefinitely)
        """
        self.stop_scanning()
        task = self._task
        if task is None:
            return

        if self._sleeping:
            task.cancel()

        try:
            await asyncio.wait_for(asyncio.shield(task), timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Scanner pass still running after {timeout}s; cancelling it")
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        except asyncio.CancelledError:
            if not task.cancelled():
                raise
        finally:
            if task.done():
                self._task = None


def _is_crossed(buy: PriceQuote, sell: PriceQuote) -> bool:
    return (
        buy.ask is not None and sell.bid is not None
        and buy.ask > 0 and sell.bid > 0
        and buy.ask < sell.bid
    )


def _meets_thresholds(opportunity: ArbitrageOpportunity, config: ScanConfig) -> bool:
    return (
        opportunity.net_profit_percent >= config.min_profit_percent
        and opportunity.risk_score <= config.max_risk_score
        and opportunity.volume.available >= config.min_volume
    )
