"""Core data types shared by the coordination engine."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from swarmweave.errors import InvalidTransitionError, ValidationFailure


class SubtaskStatus(StrEnum):
    PENDING = "pending"
    PROVISIONING = "provisioning"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


TERMINAL_STATUSES = frozenset({SubtaskStatus.COMPLETED, SubtaskStatus.FAILED, SubtaskStatus.CANCELLED})

# Terminal states share the highest rank: failed/cancelled are reachable from
# any non-terminal state, and nothing leaves a terminal state.
_STATUS_RANK: dict[SubtaskStatus, int] = {
    SubtaskStatus.PENDING: 0,
    SubtaskStatus.PROVISIONING: 1,
    SubtaskStatus.RUNNING: 2,
    SubtaskStatus.COMPLETED: 3,
    SubtaskStatus.FAILED: 3,
    SubtaskStatus.CANCELLED: 3,
}


@dataclass(frozen=True, slots=True)
class SubtaskSpec:
    """One independently executable piece of a decomposed task."""

    role: str
    description: str
    target_files: frozenset[str] = frozenset()
    depends_on: tuple[int, ...] = ()


@dataclass(slots=True)
class SubtaskExecution:
    """Mutable record of one subtask run, owned by the parallel coordinator."""

    id: str
    spec: SubtaskSpec
    history_line_id: str | None = None
    sandbox_handle: Any = None
    status: SubtaskStatus = SubtaskStatus.PENDING
    started_at: float = 0.0
    finished_at: float | None = None
    cost: float = 0.0
    duration_ms: int = 0
    output: str = ""
    error: str | None = None
    log: list[str] = field(default_factory=list)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def transition(self, status: SubtaskStatus) -> None:
        """Move to *status*; statuses only ever move forward."""
        if self.is_terminal or _STATUS_RANK[status] <= _STATUS_RANK[self.status]:
            raise InvalidTransitionError(self.id, self.status.value, status.value)
        self.status = status
        if status == SubtaskStatus.PROVISIONING and not self.started_at:
            self.started_at = time.time()
        if status in TERMINAL_STATUSES:
            self.finished_at = time.time()

    def record(self, line: str) -> None:
        self.log.append(line)


@dataclass(slots=True)
class MergeOutcome:
    """Result of one attempt to integrate a history line into the base line."""

    history_line_id: str
    merged: bool
    conflicted_paths: list[str] = field(default_factory=list)
    subtask_id: str = ""
    error: str | None = None


@dataclass(frozen=True, slots=True)
class RoutingDecision:
    """Where the router goes after a role step.

    ``explicit`` is False when the decision was inferred by a fallback
    rule instead of being stated by the worker.
    """

    next_role: str | None
    reason: str
    is_complete: bool
    explicit: bool


@dataclass(slots=True)
class Plan:
    """Decomposition verdict for one task."""

    parallel: bool
    parts: list[SubtaskSpec] = field(default_factory=list)
    reason: str = ""
    complexity: float | None = None

    def raise_for_rejection(self) -> None:
        """Raise :class:`ValidationFailure` when the split was not accepted."""
        if not self.parallel:
            raise ValidationFailure(
                self.reason or "Plan rejected",
                details={"complexity": self.complexity},
            )


@dataclass(slots=True)
class RolePlan:
    """Ordered role sequence chosen for a task by the planner."""

    role_sequence: list[str]
    task_type: str = "implementation"
    complexity: str = "medium"
    reasoning: str = ""
    estimated_duration: str = ""
    skip_reason: str | None = None
    strategy: str = ""
    dropped_roles: list[str] = field(default_factory=list)
    cost: float = 0.0
