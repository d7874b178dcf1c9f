"""Swarmweave error hierarchy."""

from __future__ import annotations

from enum import StrEnum
from typing import Any


class ErrorCategory(StrEnum):
    """Category of error for classification and handling."""

    VALIDATION = "validation"
    MERGE = "merge"
    EXECUTION = "execution"
    ROUTING = "routing"
    STATE = "state"
    CONFIGURATION = "configuration"
    INTERNAL = "internal"


class CoordinationError(Exception):
    """Base error for all coordination exceptions."""

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory = ErrorCategory.INTERNAL,
        retryable: bool = False,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.category = category
        self.retryable = retryable
        self.details: dict[str, Any] = details or {}

    def __repr__(self) -> str:
        return f"{type(self).__name__}({str(self)!r}, category={self.category!r})"


class ValidationFailure(CoordinationError):
    """A plan was rejected before any side effect happened."""

    def __init__(self, message: str, **kwargs: Any) -> None:
        super().__init__(message, category=ErrorCategory.VALIDATION, retryable=True, **kwargs)


class MergeConflictError(CoordinationError):
    """One or more history lines could not be integrated into the base line.

    ``report`` is the :class:`~swarmweave.coordinator.merger.MergeReport`
    describing every attempt of the batch.
    """

    def __init__(self, message: str, *, report: Any) -> None:
        conflicts = getattr(report, "conflicts", [])
        super().__init__(
            message,
            category=ErrorCategory.MERGE,
            retryable=False,
            details={"conflicts": [getattr(c, "history_line_id", str(c)) for c in conflicts]},
        )
        self.report = report


class RollbackFailed(CoordinationError):
    """A conflicted integration attempt could not be rolled back."""

    def __init__(self, base_line: str, reason: str) -> None:
        super().__init__(
            f"Could not restore '{base_line}' after a failed merge: {reason}",
            category=ErrorCategory.MERGE,
            retryable=False,
            details={"base_line": base_line},
        )
        self.base_line = base_line


class ExecutionFailure(CoordinationError):
    """A single subtask or role step failed."""

    def __init__(
        self,
        message: str,
        *,
        subtask_id: str | None = None,
        role: str | None = None,
        retryable: bool = False,
        **kwargs: Any,
    ) -> None:
        super().__init__(message, category=ErrorCategory.EXECUTION, retryable=retryable, **kwargs)
        self.subtask_id = subtask_id
        self.role = role


class TransientWorkerError(ExecutionFailure):
    """Worker failed for a reason that is expected to go away (rate limit, network)."""

    def __init__(self, message: str, *, role: str | None = None) -> None:
        super().__init__(message, role=role, retryable=True)


class WorkerTimeoutError(ExecutionFailure):
    """Worker invocation exceeded its supervising timeout and was terminated."""

    def __init__(self, role: str, timeout: float, *, subtask_id: str | None = None) -> None:
        super().__init__(
            f"Worker '{role}' timed out after {timeout:g}s",
            subtask_id=subtask_id,
            role=role,
        )
        self.timeout = timeout


class RoutingAbort(CoordinationError):
    """Routing stopped by a safety guard. Carries the full trace."""

    def __init__(self, message: str, *, trace: Any = None, iterations: int = 0) -> None:
        super().__init__(
            message,
            category=ErrorCategory.ROUTING,
            retryable=False,
            details={"iterations": iterations},
        )
        self.trace = trace
        self.iterations = iterations


class LoopDetected(RoutingAbort):
    """The last transitions bounced between the same roles."""


class IterationExceeded(RoutingAbort):
    """The hard iteration ceiling was reached."""


class InvalidTransitionError(CoordinationError):
    """A subtask status change would regress or leave a terminal state."""

    def __init__(self, subtask_id: str, current: str, requested: str) -> None:
        super().__init__(
            f"Subtask {subtask_id}: illegal status change {current} -> {requested}",
            category=ErrorCategory.STATE,
            retryable=False,
        )
        self.subtask_id = subtask_id
        self.current = current
        self.requested = requested


class ConfigurationError(CoordinationError):
    """Invalid or missing configuration."""

    def __init__(self, message: str) -> None:
        super().__init__(message, category=ErrorCategory.CONFIGURATION, retryable=False)
