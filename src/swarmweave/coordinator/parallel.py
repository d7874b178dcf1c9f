"""ParallelCoordinator: run independent subtasks in isolated sandboxes.

Each part of an accepted plan goes through:

1. Fork a private history line from the base line.
2. Provision a sandbox bound to that line.
3. Invoke the role-bound worker under a supervising timeout.
4. Finalize the sandbox (record the work on its line) when supported.
5. Destroy the sandbox, whatever happened before.

Subtasks share nothing mutable. A failing subtask never cancels its
siblings; the batch always settles and returns an aggregate result.
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from typing import Any

from swarmweave.config.schema import ParallelConfig
from swarmweave.errors import WorkerTimeoutError
from swarmweave.protocol.interfaces import (
    HistoryLineProvider,
    SandboxFinalizer,
    SandboxHandle,
    SandboxProvider,
    SandboxSpec,
    WorkerInvoker,
)
from swarmweave.protocol.models import SubtaskExecution, SubtaskSpec, SubtaskStatus

logger = logging.getLogger(__name__)

InvokerFactory = Callable[[SandboxHandle], WorkerInvoker]
SubtaskPromptBuilder = Callable[[SubtaskSpec, SandboxHandle], str]


# ---------------------------------------------------------------------------
# Data types
# ---------------------------------------------------------------------------


@dataclass(slots=True)
class SubtaskFailure:
    id: str
    error: str
    history_line_id: str | None = None


@dataclass(slots=True)
class ParallelResult:
    """Aggregate outcome of one parallel batch. Always fully settled."""

    completed: list[SubtaskExecution] = field(default_factory=list)
    failed: list[SubtaskFailure] = field(default_factory=list)
    total_cost: float = 0.0
    wall_duration_ms: int = 0
    executions: list[SubtaskExecution] = field(default_factory=list)

    @property
    def all_succeeded(self) -> bool:
        return not self.failed and bool(self.completed)


def build_subtask_prompt(spec: SubtaskSpec, handle: SandboxHandle) -> str:
    files = "\n".join(f"- {f}" for f in sorted(spec.target_files)) or "- (not specified)"
    return f"""You are the **{spec.role}** agent working on one part of a larger task.

**Your part:** {spec.description}

**Files you own (do not modify anything else):**
{files}

**Working directory:** {handle.path or '(sandbox default)'}

Other agents are working on the remaining parts in parallel. Stay within your files.
When finished, summarise what you changed."""


def new_task_id() -> str:
    return uuid.uuid4().hex[:8]


# ---------------------------------------------------------------------------
# ParallelCoordinator
# ---------------------------------------------------------------------------


class ParallelCoordinator:
    """Semaphore-gated, settle-all executor for independent subtasks."""

    def __init__(
        self,
        invoker: WorkerInvoker,
        sandboxes: SandboxProvider,
        history: HistoryLineProvider,
        config: ParallelConfig | None = None,
        *,
        task_id: str | None = None,
        invoker_factory: InvokerFactory | None = None,
        prompt_builder: SubtaskPromptBuilder | None = None,
    ) -> None:
        self._invoker = invoker
        self._sandboxes = sandboxes
        self._history = history
        self._config = config or ParallelConfig()
        self._task_id = task_id or new_task_id()
        self._invoker_factory = invoker_factory
        self._prompt_builder = prompt_builder or build_subtask_prompt
        self._semaphore = asyncio.Semaphore(max(self._config.max_concurrency, 1))

        self._executions: dict[str, SubtaskExecution] = {}
        self._tasks: dict[str, asyncio.Task[None]] = {}
        self._status_callbacks: list[Callable[[SubtaskExecution], Any]] = []

    @property
    def task_id(self) -> str:
        return self._task_id

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def run_parallel(self, base_line: str, parts: Sequence[SubtaskSpec]) -> ParallelResult:
        """Run every part concurrently and wait for all of them to settle."""
        started = time.monotonic()
        self._executions = {}
        self._tasks = {}
        for number, spec in enumerate(parts, 1):
            sub_id = f"{self._task_id}-part{number}"
            self._executions[sub_id] = SubtaskExecution(id=sub_id, spec=spec)

        logger.info("Launching %d subtasks in parallel from '%s'", len(parts), base_line)
        for sub_id, execution in self._executions.items():
            self._tasks[sub_id] = asyncio.create_task(
                self._run_subtask(execution, base_line),
                name=f"subtask-{sub_id}",
            )

        monitor: asyncio.Task[None] | None = None
        if self._config.progress_interval_seconds > 0:
            monitor = asyncio.create_task(self._monitor_progress(self._config.progress_interval_seconds))
        try:
            results = await asyncio.gather(*self._tasks.values(), return_exceptions=True)
        finally:
            if monitor is not None:
                monitor.cancel()

        for execution, outcome in zip(self._executions.values(), results):
            if isinstance(outcome, BaseException) and not execution.is_terminal:
                # Cancelled before the subtask body ever ran.
                execution.error = execution.error or f"{type(outcome).__name__}: {outcome}"
                execution.transition(
                    SubtaskStatus.CANCELLED
                    if isinstance(outcome, asyncio.CancelledError)
                    else SubtaskStatus.FAILED
                )

        result = ParallelResult(executions=list(self._executions.values()))
        for execution in self._executions.values():
            result.total_cost += execution.cost
            if execution.status == SubtaskStatus.COMPLETED:
                result.completed.append(execution)
            else:
                result.failed.append(
                    SubtaskFailure(
                        id=execution.id,
                        error=execution.error or execution.status.value,
                        history_line_id=execution.history_line_id,
                    )
                )
        result.wall_duration_ms = int((time.monotonic() - started) * 1000)
        logger.info(
            "Parallel batch settled: %d completed, %d failed in %.1fs (cost $%.4f)",
            len(result.completed),
            len(result.failed),
            result.wall_duration_ms / 1000,
            result.total_cost,
        )
        return result

    def snapshot(self) -> list[dict[str, Any]]:
        """Current status of every subtask in the running (or last) batch."""
        return [
            {
                "id": e.id,
                "role": e.spec.role,
                "status": e.status.value,
                "history_line_id": e.history_line_id,
                "cost": e.cost,
                "duration_ms": e.duration_ms,
                "error": e.error,
            }
            for e in self._executions.values()
        ]

    async def cancel_all(self) -> int:
        """Cancel every unfinished subtask and release its sandbox.

        Returns the number of subtasks that were cancelled.
        """
        pending = [
            self._tasks[sub_id]
            for sub_id, execution in self._executions.items()
            if not execution.is_terminal and sub_id in self._tasks
        ]
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

        cancelled = 0
        for execution in self._executions.values():
            if execution.status == SubtaskStatus.CANCELLED:
                cancelled += 1
                continue
            if execution.is_terminal:
                continue
            execution.error = execution.error or "cancelled"
            execution.transition(SubtaskStatus.CANCELLED)
            cancelled += 1
            if isinstance(execution.sandbox_handle, SandboxHandle):
                await self._release(execution, execution.sandbox_handle)
        if cancelled:
            logger.warning("Cancelled %d subtask(s)", cancelled)
        return cancelled

    def on_status_change(self, callback: Callable[[SubtaskExecution], Any]) -> None:
        """Register a callback invoked after every subtask status change."""
        self._status_callbacks.append(callback)

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    async def _run_subtask(self, execution: SubtaskExecution, base_line: str) -> None:
        spec = execution.spec
        handle: SandboxHandle | None = None
        started = time.monotonic()
        timeout = self._config.worker_timeout_seconds
        try:
            async with self._semaphore:
                started = time.monotonic()
                self._set_status(execution, SubtaskStatus.PROVISIONING)
                line_name = f"{self._config.line_prefix}{execution.id}"
                execution.history_line_id = await self._history.fork(base_line, line_name)
                execution.record(f"forked {execution.history_line_id} from {base_line}")

                handle = await self._sandboxes.create(
                    SandboxSpec(name=execution.id, history_line_id=execution.history_line_id, role=spec.role)
                )
                execution.sandbox_handle = handle
                execution.record(f"sandbox {handle.sandbox_id} ready")

                self._set_status(execution, SubtaskStatus.RUNNING)
                invoker = self._invoker_factory(handle) if self._invoker_factory else self._invoker
                prompt = self._prompt_builder(spec, handle)
                try:
                    reply = await asyncio.wait_for(invoker.invoke(spec.role, prompt), timeout=timeout)
                except asyncio.TimeoutError as exc:
                    raise WorkerTimeoutError(spec.role, timeout, subtask_id=execution.id) from exc
                execution.output = reply.text
                execution.cost = reply.cost
                execution.record(f"worker finished (cost ${reply.cost:.4f})")

                if isinstance(self._sandboxes, SandboxFinalizer):
                    await self._sandboxes.finalize(handle, f"{execution.id}: {spec.description}")
                    execution.record("sandbox finalized")

                self._set_status(execution, SubtaskStatus.COMPLETED)
        except asyncio.CancelledError:
            if not execution.is_terminal:
                execution.error = execution.error or "cancelled"
                self._set_status(execution, SubtaskStatus.CANCELLED)
            raise
        except Exception as exc:
            execution.error = str(exc) or type(exc).__name__
            execution.record(f"failed: {execution.error}")
            logger.warning("Subtask %s (%s) failed: %s", execution.id, spec.role, execution.error)
            if not execution.is_terminal:
                self._set_status(execution, SubtaskStatus.FAILED)
        finally:
            execution.duration_ms = int((time.monotonic() - started) * 1000)
            if handle is not None:
                await self._release(execution, handle)

    async def _release(self, execution: SubtaskExecution, handle: SandboxHandle) -> None:
        try:
            await self._sandboxes.destroy(handle)
            execution.record(f"sandbox {handle.sandbox_id} destroyed")
        except Exception as exc:
            execution.record(f"sandbox destroy failed: {exc}")
            logger.warning("Failed to destroy sandbox %s for %s: %s", handle.sandbox_id, execution.id, exc)

    def _set_status(self, execution: SubtaskExecution, status: SubtaskStatus) -> None:
        execution.transition(status)
        execution.record(f"status -> {status.value}")
        logger.debug("Subtask %s -> %s", execution.id, status.value)
        for cb in self._status_callbacks:
            try:
                cb(execution)
            except Exception as exc:
                logger.debug("Status callback error: %s", exc)

    async def _monitor_progress(self, interval: float) -> None:
        while True:
            await asyncio.sleep(interval)
            statuses = [e.status for e in self._executions.values()]
            done = sum(1 for s in statuses if s == SubtaskStatus.COMPLETED)
            running = sum(1 for s in statuses if s == SubtaskStatus.RUNNING)
            failed = sum(1 for s in statuses if s in (SubtaskStatus.FAILED, SubtaskStatus.CANCELLED))
            logger.info(
                "Progress: %d/%d complete (%d running, %d failed)",
                done,
                len(statuses),
                running,
                failed,
            )
