"""Retry wrapper unit tests: backoff schedule, transient classification, exhaustion."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm.exc import StaleDataError

from questline.db.retry import RetryPolicy, compute_delay, is_transient, run_with_policy, with_retry
from questline.exceptions import AlreadyCompletedError, TransientStorageError


def _operational() -> OperationalError:
    return OperationalError("SELECT 1", {}, Exception("database is locked"))


class TestIsTransient:
    """Which failures are worth retrying."""

    def test_storage_failures_are_transient(self):
        assert is_transient(_operational())
        assert is_transient(StaleDataError("version mismatch"))
        assert is_transient(asyncio.TimeoutError())
        assert is_transient(TransientStorageError("busy"))

    def test_domain_and_integrity_errors_are_not(self):
        assert not is_transient(AlreadyCompletedError(1))
        assert not is_transient(IntegrityError("INSERT", {}, Exception("UNIQUE constraint failed")))
        assert not is_transient(ValueError("bad input"))


class TestComputeDelay:
    """Exponential backoff with jitter, capped."""

    def test_exponential_growth_with_zero_jitter(self):
        with patch("questline.db.retry.random.uniform", return_value=0.0):
            assert compute_delay(1, 1.0, 8.0) == 1.0
            assert compute_delay(2, 1.0, 8.0) == 2.0
            assert compute_delay(3, 1.0, 8.0) == 4.0

    def test_capped_at_max_delay(self):
        with patch("questline.db.retry.random.uniform", return_value=1.0):
            assert compute_delay(10, 1.0, 8.0) == 8.0

    def test_jitter_bounded_by_base_delay(self):
        for _ in range(50):
            delay = compute_delay(2, 0.5, 100.0)
            assert 1.0 <= delay <= 1.5


class TestWithRetry:
    """with_retry behaviour."""

    @pytest.mark.asyncio
    async def test_success_first_try_does_not_sleep(self):
        sleep = AsyncMock()
        operation = AsyncMock(return_value="ok")

        result = await with_retry(operation, sleep=sleep)

        assert result == "ok"
        assert operation.await_count == 1
        sleep.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_retries_transient_then_succeeds(self):
        sleep = AsyncMock()
        operation = AsyncMock(side_effect=[_operational(), StaleDataError("stale"), "done"])

        result = await with_retry(operation, max_attempts=3, base_delay=0.1, max_delay=1.0, sleep=sleep)

        assert result == "done"
        assert operation.await_count == 3
        assert sleep.await_count == 2

    @pytest.mark.asyncio
    async def test_exhaustion_reraises_last_error_unmodified(self):
        sleep = AsyncMock()
        last = _operational()
        operation = AsyncMock(side_effect=[_operational(), _operational(), last])

        with pytest.raises(OperationalError) as exc_info:
            await with_retry(operation, max_attempts=3, sleep=sleep)

        assert exc_info.value is last
        assert operation.await_count == 3
        assert sleep.await_count == 2

    @pytest.mark.asyncio
    async def test_non_transient_error_is_not_retried(self):
        sleep = AsyncMock()
        operation = AsyncMock(side_effect=AlreadyCompletedError(1))

        with pytest.raises(AlreadyCompletedError):
            await with_retry(operation, max_attempts=5, sleep=sleep)

        assert operation.await_count == 1
        sleep.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_sleeps_follow_backoff_schedule(self):
        sleep = AsyncMock()
        operation = AsyncMock(side_effect=[_operational(), _operational(), _operational(), "ok"])

        with patch("questline.db.retry.random.uniform", return_value=0.0):
            await with_retry(operation, max_attempts=4, base_delay=1.0, max_delay=3.0, sleep=sleep)

        assert [c.args[0] for c in sleep.await_args_list] == [1.0, 2.0, 3.0]

    @pytest.mark.asyncio
    async def test_attempt_timeout_counts_as_transient(self):
        sleep = AsyncMock()
        calls = 0

        async def operation():
            nonlocal calls
            calls += 1
            if calls == 1:
                await asyncio.sleep(1)
            return calls

        result = await with_retry(operation, max_attempts=2, attempt_timeout=0.01, sleep=sleep)

        assert result == 2
        assert sleep.await_count == 1

    @pytest.mark.asyncio
    async def test_rejects_zero_attempts(self):
        with pytest.raises(ValueError, match="max_attempts"):
            await with_retry(AsyncMock(), max_attempts=0)


class TestRetryPolicy:
    """RetryPolicy wiring."""

    def test_from_settings(self):
        from questline.config import Settings

        settings = Settings(
            retry_max_attempts=4,
            retry_base_delay_seconds=0.5,
            retry_max_delay_seconds=2.0,
            db_attempt_timeout_seconds=3.0,
        )
        policy = RetryPolicy.from_settings(settings)
        assert policy == RetryPolicy(max_attempts=4, base_delay=0.5, max_delay=2.0, attempt_timeout=3.0)

    @pytest.mark.asyncio
    async def test_run_with_policy_honours_max_attempts(self):
        operation = AsyncMock(side_effect=_operational())
        policy = RetryPolicy(max_attempts=2, base_delay=0.001, max_delay=0.001, attempt_timeout=None)

        with pytest.raises(OperationalError):
            await run_with_policy(operation, policy)

        assert operation.await_count == 2
