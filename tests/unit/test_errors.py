"""Tests for the error hierarchy and retry helpers."""

from __future__ import annotations

import pytest

from swarmweave.errors import (
    ConfigurationError,
    CoordinationError,
    ErrorCategory,
    ExecutionFailure,
    LoopDetected,
    RollbackFailed,
    TransientWorkerError,
    ValidationFailure,
    WorkerTimeoutError,
)
from swarmweave.utilities.retry import is_retryable, retry_async


class TestErrors:
    def test_base_defaults(self) -> None:
        e = CoordinationError("boom")
        assert e.category == ErrorCategory.INTERNAL
        assert not e.retryable
        assert e.details == {}
        assert "CoordinationError" in repr(e)

    def test_categories(self) -> None:
        assert ValidationFailure("x").category == ErrorCategory.VALIDATION
        assert ExecutionFailure("x").category == ErrorCategory.EXECUTION
        assert ConfigurationError("x").category == ErrorCategory.CONFIGURATION
        assert RollbackFailed("main", "locked").category == ErrorCategory.MERGE
        assert LoopDetected("x").category == ErrorCategory.ROUTING

    def test_worker_timeout_is_not_retryable(self) -> None:
        e = WorkerTimeoutError("coder", 2.5, subtask_id="t-part1")
        assert str(e) == "Worker 'coder' timed out after 2.5s"
        assert e.subtask_id == "t-part1"
        assert not e.retryable

    def test_transient_is_retryable(self) -> None:
        assert TransientWorkerError("rate limited", role="coder").retryable

    def test_routing_abort_carries_trace(self) -> None:
        e = LoopDetected("cycling", trace=["a"], iterations=4)
        assert e.trace == ["a"]
        assert e.details == {"iterations": 4}


class TestRetry:
    def test_is_retryable(self) -> None:
        assert is_retryable(TransientWorkerError("429"))
        assert is_retryable(ConnectionError())
        assert not is_retryable(ExecutionFailure("bad prompt"))
        assert not is_retryable(ValueError())

    @pytest.mark.asyncio
    async def test_transient_errors_are_retried(self) -> None:
        attempts = 0

        async def flaky() -> str:
            nonlocal attempts
            attempts += 1
            if attempts < 3:
                raise TransientWorkerError("overloaded")
            return "ok"

        assert await retry_async(flaky, max_attempts=3, min_wait=0, max_wait=0) == "ok"
        assert attempts == 3

    @pytest.mark.asyncio
    async def test_permanent_errors_are_not_retried(self) -> None:
        attempts = 0

        async def broken() -> str:
            nonlocal attempts
            attempts += 1
            raise ExecutionFailure("bad prompt")

        with pytest.raises(ExecutionFailure):
            await retry_async(broken, max_attempts=3, min_wait=0, max_wait=0)
        assert attempts == 1

    @pytest.mark.asyncio
    async def test_last_error_is_reraised(self) -> None:
        seen: list[int] = []

        async def always() -> str:
            raise TransientWorkerError("still down")

        with pytest.raises(TransientWorkerError):
            await retry_async(
                always,
                max_attempts=2,
                min_wait=0,
                max_wait=0,
                on_retry=lambda state: seen.append(state.attempt_number),
            )
        assert seen == [1]
