"""
Adaptive Rate Limiter

Runs venue operations with per-venue exponential backoff, and runs batches of
operations grouped by venue so no venue is hit in parallel with itself.

Backoff:
    Before retry n (n >= 1) the limiter sleeps
        min(2^(n-1) * base_delay + U[0, max_jitter), max_delay)
    i.e. ~1s, 2s, 4s, 8s, 16s with the defaults. After `max_retries` retries
    the venue's state is reset and MaxRetriesExceededError is raised.

Each venue has a lock held for a whole retry sequence, so concurrent callers
(the continuous scanner and an on-demand scan, say) never have two attempts
in flight against one venue or share a retry count.

Non-retryable failures (bad credentials, unknown symbol or market, method not
supported) propagate after a single attempt. They are recognised by
VenueError code, by NotImplementedError, or by message content for errors
raised outside the adapters.

Usage:
    limiter = AdaptiveRateLimiter.from_settings()
    ticker = await limiter.execute_with_backoff(
        "kraken", lambda: venue.fetch_ticker("BTC/USDT"), "Fetching BTC/USDT ticker"
    )
"""

import asyncio
import random
from typing import Any, Awaitable, Callable, Dict, List, Optional

from pydantic import BaseModel

from core.exceptions import ErrorCode, MaxRetriesExceededError, VenueError
from core.logging import get_logger, log_retry_attempt
from core.schemas import BatchResult, LimiterStats, RetryStateSnapshot
from core.utils.time import current_utc_datetime


# Substrings that mark an error as terminal when it carries no ErrorCode
NON_RETRYABLE_MESSAGES = (
    "API key",
    "authentication",
    "symbol",
    "market",
    "not supported",
    "not implemented",
)


def is_non_retryable(error: BaseException) -> bool:
    """
    Decide whether retrying `error` is pointless.

    A VenueError with a specific code is judged by its code alone, so a
    rate-limit error whose message happens to mention a symbol is still
    retried.

    Example:
        >>> is_non_retryable(VenueError("bad", ErrorCode.INVALID_SYMBOL))
        True
        >>> is_non_retryable(ConnectionResetError("peer reset"))
        False
    """
    if isinstance(error, NotImplementedError):
        return True

    if isinstance(error, VenueError) and error.code != ErrorCode.UNKNOWN_ERROR:
        return not error.retryable

    message = str(error)
    return any(fragment in message for fragment in NON_RETRYABLE_MESSAGES)


class BatchOperation(BaseModel):
    """One deferred venue call inside a batch"""

    venue_id: str
    operation: Callable[[], Awaitable[Any]]
    context: Optional[str] = None


class _RetryState:
    __slots__ = ("retry_count", "consecutive_errors", "last_error_at", "last_success_at")

    def __init__(self):
        self.retry_count = 0
        self.consecutive_errors = 0
        self.last_error_at = None
        self.last_success_at = None

    def snapshot(self) -> RetryStateSnapshot:
        return RetryStateSnapshot(
            retry_count=self.retry_count,
            consecutive_errors=self.consecutive_errors,
            last_error_at=self.last_error_at,
            last_success_at=self.last_success_at,
        )


class AdaptiveRateLimiter:
    """
    Per-venue retry/backoff executor.

    Args:
        max_retries: Retries allowed after the first attempt
        base_delay: Backoff base in seconds
        max_delay: Backoff ceiling in seconds
        max_jitter: Upper bound of the uniform jitter added to each delay
        batch_stagger: Pause before every venue group after the first in a batch
        venue_concurrency: Venue groups allowed in flight at once (1 = serialized)
        sleep: Awaitable sleep, injectable for tests
    """

    def __init__(
        self,
        max_retries: int = 5,
        base_delay: float = 1.0,
        max_delay: float = 60.0,
        max_jitter: float = 1.0,
        batch_stagger: float = 0.1,
        venue_concurrency: int = 1,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep
    ):
        if venue_concurrency < 1:
            raise ValueError(f"venue_concurrency must be >= 1, got {venue_concurrency}")

        self.max_retries = max_retries
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.max_jitter = max_jitter
        self.batch_stagger = batch_stagger
        self.venue_concurrency = venue_concurrency
        self._sleep = sleep
        self._states: Dict[str, _RetryState] = {}
        self._locks: Dict[str, asyncio.Lock] = {}
        self._logger = get_logger(__name__)

    @classmethod
    def from_settings(cls, config=None, sleep: Callable[[float], Awaitable[None]] = asyncio.sleep) -> "AdaptiveRateLimiter":
        from core.config import settings
        config = config or settings
        return cls(
            max_retries=config.max_retries,
            base_delay=config.base_delay_seconds,
            max_delay=config.max_delay_seconds,
            max_jitter=config.max_jitter_seconds,
            batch_stagger=config.batch_stagger_seconds,
            venue_concurrency=config.venue_concurrency,
            sleep=sleep,
        )

    # ============================================
    # Single Operation
    # ============================================

    def calculate_delay(self, retry_count: int) -> float:
        """Backoff delay before retry number `retry_count` (1-based)."""
        exponential = (2 ** (retry_count - 1)) * self.base_delay
        jitter = random.uniform(0, self.max_jitter) if self.max_jitter > 0 else 0.0
        return min(exponential + jitter, self.max_delay)

    async def execute_with_backoff(
        self,
        venue_id: str,
        operation: Callable[[], Awaitable[Any]],
        context: Optional[str] = None
    ) -> Any:
        """
        Run `operation`, retrying transient failures with backoff.

        Calls for the same venue are serialized: a second caller waits until
        the first call's whole retry sequence (backoff sleeps included) ends.

        Args:
            venue_id: Venue whose retry state governs this call
            operation: Zero-argument callable returning an awaitable
            context: Short description used in logs and errors

        Returns:
            Whatever the operation returns

        Raises:
            MaxRetriesExceededError: After max_retries retries (the last error
                                     is chained as __cause__)
            Exception: The operation's own error if it is non-retryable
        """
        lock = self._locks.setdefault(venue_id, asyncio.Lock())

        async with lock:
            state = self._states.setdefault(venue_id, _RetryState())

            while True:
                if state.retry_count > 0:
                    delay = self.calculate_delay(state.retry_count)
                    self._logger.debug(f"Backing off {delay:.2f}s before retry {state.retry_count} for {venue_id}")
                    await self._sleep(delay)

                try:
                    result = await operation()
                except Exception as exc:
                    state.retry_count += 1
                    state.consecutive_errors += 1
                    state.last_error_at = current_utc_datetime()

                    if state.retry_count > self.max_retries:
                        self._reset(state)
                        self._logger.error(f"Giving up on {venue_id} after {self.max_retries} retries: {exc}")
                        raise MaxRetriesExceededError(venue_id, self.max_retries, exc, context) from exc

                    if is_non_retryable(exc):
                        self._reset(state)
                        self._logger.error(f"Non-retryable error from {venue_id}: {exc}")
                        raise

                    log_retry_attempt(venue_id, state.retry_count, self.max_retries, exc, context)
                    continue

                self._reset(state)
                state.last_success_at = current_utc_datetime()
                return result

    @staticmethod
    def _reset(state: _RetryState) -> None:
        state.retry_count = 0
        state.consecutive_errors = 0

    # ============================================
    # Batches
    # ============================================

    async def execute_batch(self, operations: List[BatchOperation]) -> List[BatchResult]:
        """
        Run many operations, grouped by venue in first-seen order.

        Groups start one after another with `batch_stagger` between them.
        Inside a group operations run sequentially through
        execute_with_backoff. Nothing raises for the batch as a whole.

        Returns:
            One settled BatchResult per operation, in request order
        """
        results: List[Optional[BatchResult]] = [None] * len(operations)

        groups: Dict[str, List[int]] = {}
        for index, op in enumerate(operations):
            groups.setdefault(op.venue_id, []).append(index)

        semaphore = asyncio.Semaphore(self.venue_concurrency)

        async def run_group(indexes: List[int]) -> None:
            async with semaphore:
                for index in indexes:
                    results[index] = await self._settle(operations[index])

        tasks = []
        for group_number, indexes in enumerate(groups.values()):
            if group_number > 0:
                await self._sleep(self.batch_stagger)

            if self.venue_concurrency == 1:
                await run_group(indexes)
            else:
                tasks.append(asyncio.create_task(run_group(indexes)))

        if tasks:
            await asyncio.gather(*tasks)

        return results

    async def _settle(self, op: BatchOperation) -> BatchResult:
        try:
            result = await self.execute_with_backoff(op.venue_id, op.operation, op.context)
            return BatchResult(venue_id=op.venue_id, context=op.context, success=True, result=result)
        except Exception as e:
            return BatchResult(venue_id=op.venue_id, context=op.context, success=False, error=e)

    # ============================================
    # Observability
    # ============================================

    def get_state(self, venue_id: str) -> Optional[RetryStateSnapshot]:
        state = self._states.get(venue_id)
        return state.snapshot() if state else None

    def stats(self) -> LimiterStats:
        return LimiterStats(venues={venue_id: state.snapshot() for venue_id, state in self._states.items()})

    def clear_all(self) -> None:
        """Forget every venue's retry state."""
        self._states.clear()
