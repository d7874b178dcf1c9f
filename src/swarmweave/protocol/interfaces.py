"""Collaborator interfaces the coordination engine depends on.

Workers, sandboxes and history lines live outside the engine; these
protocols are the whole contract. Concrete git and subprocess
implementations live in :mod:`swarmweave.workspace` and
:mod:`swarmweave.adapters`.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from swarmweave.protocol.models import RoutingDecision

if TYPE_CHECKING:
    from swarmweave.roles import RoleDescriptor


@dataclass(slots=True)
class WorkerReply:
    """What a worker hands back for one invocation.

    ``decision`` is set by workers that report routing intent as structured
    data; when it is None the router parses ``text`` instead.
    """

    text: str
    cost: float = 0.0
    duration_ms: int = 0
    decision: RoutingDecision | None = None


@dataclass(slots=True)
class IntegrationResult:
    success: bool
    conflicted_paths: list[str] = field(default_factory=list)


@dataclass(slots=True)
class SandboxSpec:
    name: str
    history_line_id: str
    role: str = ""


@dataclass(slots=True)
class SandboxHandle:
    sandbox_id: str
    history_line_id: str
    path: str = ""
    destroyed: bool = False
    metadata: dict[str, Any] = field(default_factory=dict)


class WorkerInvoker(Protocol):
    async def invoke(self, role: str, prompt: str) -> WorkerReply: ...


class SandboxProvider(Protocol):
    async def create(self, spec: SandboxSpec) -> SandboxHandle: ...

    async def destroy(self, handle: SandboxHandle) -> None:
        """Release the sandbox. Must be safe to call more than once."""
        ...


@runtime_checkable
class SandboxFinalizer(Protocol):
    """Optional extension: record a sandbox's work on its history line."""

    async def finalize(self, handle: SandboxHandle, message: str) -> None: ...


class HistoryLineProvider(Protocol):
    async def fork(self, base: str, name: str) -> str: ...

    async def integrate(self, base: str, line_id: str) -> IntegrationResult: ...

    async def discard_attempt(self, base: str) -> None: ...

    async def delete(self, line_id: str) -> None: ...


class RoleLookup(Protocol):
    """Read-only view of the roles a run may use."""

    def has(self, role: str) -> bool: ...

    def list_all(self) -> list[RoleDescriptor]: ...

    def validate(self, names: Iterable[str]) -> list[str]: ...

    def estimate_cost(self, sequence: Iterable[str]) -> float: ...

    def handoff_targets(self, current: str) -> list[str]: ...

    def summary(self) -> str: ...
