"""
Unit Tests for the Adaptive Rate Limiter

Sleeping is replaced by a recorder (the recording_sleep fixture) and jitter
is disabled, so backoff delays can be asserted exactly.

Run with:
    pytest tests/unit/test_rate_limiter.py -v
"""

import asyncio

import pytest

from core.exceptions import ErrorCode, MaxRetriesExceededError, VenueError
from services.rate_limiter import AdaptiveRateLimiter, BatchOperation, is_non_retryable


class FlakyOperation:
    """Fails `failures` times with `error`, then returns `result`"""

    def __init__(self, failures: int, error: Exception = None, result="ok"):
        self.failures = failures
        self.error = error or ConnectionError("connection reset by peer")
        self.result = result
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        if self.calls <= self.failures:
            raise self.error
        return self.result


class TestErrorClassification:
    """Tests for is_non_retryable"""

    @pytest.mark.parametrize("code", [
        ErrorCode.INVALID_CREDENTIALS,
        ErrorCode.PERMISSION_DENIED,
        ErrorCode.INVALID_SYMBOL,
        ErrorCode.MARKET_NOT_AVAILABLE,
        ErrorCode.METHOD_NOT_SUPPORTED,
        ErrorCode.EXCHANGE_NOT_SUPPORTED,
    ])
    def test_terminal_codes(self, code):
        assert is_non_retryable(VenueError("failed", code)) is True

    @pytest.mark.parametrize("code", [
        ErrorCode.RATE_LIMIT_EXCEEDED,
        ErrorCode.NETWORK_ERROR,
        ErrorCode.EXCHANGE_MAINTENANCE,
    ])
    def test_transient_codes(self, code):
        assert is_non_retryable(VenueError("failed", code)) is False

    @pytest.mark.parametrize("message", [
        "Invalid API key",
        "authentication failed",
        "unknown symbol FOO/BAR",
        "market is closed",
        "fetchOHLCV not supported",
        "feature not implemented",
    ])
    def test_terminal_messages(self, message):
        """Verify uncoded errors are classified by message content"""
        assert is_non_retryable(RuntimeError(message)) is True

    def test_not_implemented_error_is_terminal(self):
        assert is_non_retryable(NotImplementedError()) is True

    def test_code_wins_over_message(self):
        """Verify a coded rate-limit error mentioning a symbol is still retried"""
        error = VenueError("rate limited while fetching symbol BTC/USDT", ErrorCode.RATE_LIMIT_EXCEEDED)
        assert is_non_retryable(error) is False

    def test_plain_network_error_is_transient(self):
        assert is_non_retryable(ConnectionError("connection reset by peer")) is False


class TestBackoffDelays:
    """Tests for calculate_delay"""

    def test_exponential_without_jitter(self):
        limiter = AdaptiveRateLimiter(max_jitter=0)
        assert [limiter.calculate_delay(n) for n in range(1, 6)] == [1.0, 2.0, 4.0, 8.0, 16.0]

    def test_capped_at_max_delay(self):
        limiter = AdaptiveRateLimiter(max_jitter=0, max_delay=60.0)
        assert limiter.calculate_delay(10) == 60.0

    def test_jitter_bounds(self):
        """Verify jitter adds less than max_jitter"""
        limiter = AdaptiveRateLimiter(max_jitter=1.0)
        for _ in range(50):
            assert 1.0 <= limiter.calculate_delay(1) < 2.0


class TestExecuteWithBackoff:
    """Tests for execute_with_backoff"""

    @pytest.mark.asyncio
    async def test_success_first_try(self, limiter, recording_sleep):
        """Verify no sleeping and a recorded success"""
        result = await limiter.execute_with_backoff("kraken", FlakyOperation(0))

        assert result == "ok"
        assert recording_sleep.delays == []
        state = limiter.get_state("kraken")
        assert state.retry_count == 0
        assert state.last_success_at is not None

    @pytest.mark.asyncio
    async def test_transient_errors_retried_with_backoff(self, limiter, recording_sleep):
        """Verify two failures cost 1s + 2s of backoff, then succeed"""
        operation = FlakyOperation(2)

        result = await limiter.execute_with_backoff("kraken", operation, "Fetching BTC/USDT ticker")

        assert result == "ok"
        assert operation.calls == 3
        assert recording_sleep.delays == [1.0, 2.0]
        assert limiter.get_state("kraken").retry_count == 0

    @pytest.mark.asyncio
    async def test_max_retries_exceeded(self, limiter, recording_sleep):
        """Verify six attempts, then MaxRetriesExceededError chained to the last error"""
        operation = FlakyOperation(100)

        with pytest.raises(MaxRetriesExceededError) as exc_info:
            await limiter.execute_with_backoff("okx", operation, "Fetching ETH/USDT ticker")

        error = exc_info.value
        assert operation.calls == 6
        assert recording_sleep.delays == [1.0, 2.0, 4.0, 8.0, 16.0]
        assert error.venue_id == "okx"
        assert error.max_retries == 5
        assert error.context == "Fetching ETH/USDT ticker"
        assert error.__cause__ is operation.error
        assert "okx" in str(error)

    @pytest.mark.asyncio
    async def test_state_reset_after_exhaustion(self, limiter, recording_sleep):
        """Verify the next call after exhaustion starts without delay"""
        with pytest.raises(MaxRetriesExceededError):
            await limiter.execute_with_backoff("okx", FlakyOperation(100))

        assert limiter.get_state("okx").retry_count == 0
        recording_sleep.delays.clear()

        assert await limiter.execute_with_backoff("okx", FlakyOperation(0)) == "ok"
        assert recording_sleep.delays == []

    @pytest.mark.asyncio
    async def test_non_retryable_propagates_after_one_attempt(self, limiter, recording_sleep):
        """Verify terminal errors are re-raised unchanged after a single call"""
        error = VenueError("Invalid symbol", ErrorCode.INVALID_SYMBOL, "binance")
        operation = FlakyOperation(100, error=error)

        with pytest.raises(VenueError) as exc_info:
            await limiter.execute_with_backoff("binance", operation)

        assert exc_info.value is error
        assert operation.calls == 1
        assert recording_sleep.delays == []
        assert limiter.get_state("binance").retry_count == 0

    @pytest.mark.asyncio
    async def test_delays_capped(self, recording_sleep):
        """Verify the ceiling applies to every retry"""
        limiter = AdaptiveRateLimiter(max_jitter=0, max_delay=3.0, sleep=recording_sleep)

        with pytest.raises(MaxRetriesExceededError):
            await limiter.execute_with_backoff("kraken", FlakyOperation(100))

        assert recording_sleep.delays == [1.0, 2.0, 3.0, 3.0, 3.0]

    @pytest.mark.asyncio
    async def test_concurrent_callers_serialized_per_venue(self, limiter, recording_sleep):
        """Verify one attempt in flight per venue and an intact retry ceiling under contention"""
        in_flight = 0
        peak = 0

        def tracked(operation):
            async def run():
                nonlocal in_flight, peak
                in_flight += 1
                peak = max(peak, in_flight)
                try:
                    await asyncio.sleep(0)
                    return await operation()
                finally:
                    in_flight -= 1
            return run

        failing = FlakyOperation(100)
        succeeding = [FlakyOperation(0) for _ in range(20)]

        results = await asyncio.gather(
            limiter.execute_with_backoff("kraken", tracked(failing)),
            *(limiter.execute_with_backoff("kraken", tracked(op)) for op in succeeding),
            return_exceptions=True,
        )

        assert isinstance(results[0], MaxRetriesExceededError)
        assert failing.calls == 6
        assert recording_sleep.delays == [1.0, 2.0, 4.0, 8.0, 16.0]
        assert results[1:] == ["ok"] * 20
        assert peak == 1

    @pytest.mark.asyncio
    async def test_different_venues_not_serialized(self, limiter):
        """Verify the per-venue lock does not block other venues"""
        started = asyncio.Event()

        async def waits_for_other_venue():
            await asyncio.wait_for(started.wait(), timeout=1.0)
            return "kraken"

        async def signals():
            started.set()
            return "okx"

        results = await asyncio.gather(
            limiter.execute_with_backoff("kraken", waits_for_other_venue),
            limiter.execute_with_backoff("okx", signals),
        )
        assert results == ["kraken", "okx"]


class TestExecuteBatch:
    """Tests for execute_batch"""

    @pytest.mark.asyncio
    async def test_results_in_request_order(self, limiter):
        """Verify grouping by venue does not reorder results"""
        order = []

        def op(name):
            async def run():
                order.append(name)
                return name
            return run

        results = await limiter.execute_batch([
            BatchOperation(venue_id="x", operation=op("x1")),
            BatchOperation(venue_id="y", operation=op("y1")),
            BatchOperation(venue_id="x", operation=op("x2")),
        ])

        assert [r.result for r in results] == ["x1", "y1", "x2"]
        assert order == ["x1", "x2", "y1"]

    @pytest.mark.asyncio
    async def test_stagger_between_venue_groups(self, limiter, recording_sleep):
        """Verify one 100ms pause per venue group after the first"""
        await limiter.execute_batch([
            BatchOperation(venue_id=venue, operation=FlakyOperation(0))
            for venue in ("x", "y", "z", "x")
        ])
        assert recording_sleep.delays == [0.1, 0.1]

    @pytest.mark.asyncio
    async def test_failures_are_settled(self, limiter):
        """Verify one failing venue does not sink the batch"""
        error = VenueError("bad symbol", ErrorCode.INVALID_SYMBOL, "x")

        results = await limiter.execute_batch([
            BatchOperation(venue_id="x", operation=FlakyOperation(100, error=error), context="x ticker"),
            BatchOperation(venue_id="y", operation=FlakyOperation(0, result=42)),
        ])

        assert len(results) == 2
        assert results[0].success is False
        assert results[0].error is error
        assert results[0].context == "x ticker"
        assert results[1].success is True
        assert results[1].result == 42

    @pytest.mark.asyncio
    async def test_concurrent_venue_groups(self, recording_sleep):
        """Verify venue_concurrency > 1 still returns every result in order"""
        limiter = AdaptiveRateLimiter(max_jitter=0, venue_concurrency=3, sleep=recording_sleep)

        results = await limiter.execute_batch([
            BatchOperation(venue_id=venue, operation=FlakyOperation(0, result=venue))
            for venue in ("a", "b", "c", "a")
        ])

        assert [r.result for r in results] == ["a", "b", "c", "a"]
        assert all(r.success for r in results)

    def test_invalid_concurrency_rejected(self):
        with pytest.raises(ValueError):
            AdaptiveRateLimiter(venue_concurrency=0)


class TestLimiterStats:
    """Tests for stats and clear_all"""

    @pytest.mark.asyncio
    async def test_stats_per_venue(self, limiter):
        await limiter.execute_with_backoff("kraken", FlakyOperation(1))
        stats = limiter.stats()
        assert set(stats.venues) == {"kraken"}
        assert stats.venues["kraken"].retry_count == 0
        assert stats.venues["kraken"].last_error_at is not None

    @pytest.mark.asyncio
    async def test_clear_all(self, limiter):
        await limiter.execute_with_backoff("kraken", FlakyOperation(0))
        limiter.clear_all()
        assert limiter.stats().venues == {}
        assert limiter.get_state("kraken") is None
