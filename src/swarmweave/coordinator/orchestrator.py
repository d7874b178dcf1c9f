"""TaskRunner: one coordination run from task description to result.

Flow:
    1. Decompose the task (skipped when parallel mode is disabled).
    2. Parallel path: run every part in its own sandbox, merge the
       completed lines into the base line, delete merged lines.
    3. Sequential path: plan a role sequence, then route from its
       first role until completion or a guard trips.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass

from swarmweave.config.schema import SwarmweaveConfig
from swarmweave.coordinator.decomposer import TaskDecomposer
from swarmweave.coordinator.merger import HistoryMerger, MergeReport
from swarmweave.coordinator.parallel import InvokerFactory, ParallelCoordinator, ParallelResult, new_task_id
from swarmweave.coordinator.planner import TaskPlanner
from swarmweave.coordinator.router import AgentRouter, RoutingResult
from swarmweave.protocol.interfaces import HistoryLineProvider, RoleLookup, SandboxProvider, WorkerInvoker
from swarmweave.protocol.models import Plan, RolePlan

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class RunResult:
    task: str
    mode: str  # "parallel" | "sequential"
    success: bool
    plan: Plan
    role_plan: RolePlan | None = None
    parallel: ParallelResult | None = None
    merge: MergeReport | None = None
    routing: RoutingResult | None = None
    total_cost: float = 0.0
    duration_ms: int = 0
    message: str = ""


class TaskRunner:
    """Wires decomposer, planner, router, parallel coordinator and merger."""

    def __init__(
        self,
        config: SwarmweaveConfig,
        registry: RoleLookup,
        invoker: WorkerInvoker,
        sandboxes: SandboxProvider,
        history: HistoryLineProvider,
        *,
        invoker_factory: InvokerFactory | None = None,
    ) -> None:
        self._config = config
        self._registry = registry
        self._invoker = invoker
        self._sandboxes = sandboxes
        self._history = history
        self._invoker_factory = invoker_factory

        self.decomposer = TaskDecomposer(invoker, config.decomposer)
        self.planner = TaskPlanner.from_config(registry, config.planner, invoker)
        self.router = AgentRouter(invoker, registry, config.router)
        self.merger = HistoryMerger(history)

    async def run(
        self,
        task: str,
        *,
        base_line: str | None = None,
        allow_parallel: bool = True,
    ) -> RunResult:
        base = base_line or self._config.run.base_line
        started = time.monotonic()

        if allow_parallel:
            plan = await self.decomposer.decompose(task)
        else:
            plan = Plan(parallel=False, reason="parallel execution disabled")

        if plan.parallel:
            result = await self._run_parallel(task, base, plan)
        else:
            logger.info("Sequential execution: %s", plan.reason)
            result = await self._run_sequential(task, plan)

        result.duration_ms = int((time.monotonic() - started) * 1000)
        return result

    async def _run_parallel(self, task: str, base: str, plan: Plan) -> RunResult:
        coordinator = ParallelCoordinator(
            self._invoker,
            self._sandboxes,
            self._history,
            self._config.parallel,
            task_id=self._config.run.task_id or new_task_id(),
            invoker_factory=self._invoker_factory,
        )
        batch = await coordinator.run_parallel(base, plan.parts)
        result = RunResult(
            task=task,
            mode="parallel",
            success=False,
            plan=plan,
            parallel=batch,
            total_cost=batch.total_cost,
        )

        if batch.failed and not self._config.merge.merge_partial_results:
            failed = ", ".join(f.id for f in batch.failed)
            result.message = f"{len(batch.failed)} subtask(s) failed ({failed}); nothing merged"
            logger.error(result.message)
            return result

        report = await self.merger.merge_all(base, batch.completed)
        result.merge = report
        if self._config.merge.delete_merged_lines and report.merged:
            await self.merger.cleanup_lines(report.merged)

        result.success = report.success and not batch.failed
        if not report.success:
            result.message = f"{len(report.conflicts)} merge conflict(s); manual resolution required"
        elif batch.failed:
            result.message = f"merged {len(report.merged)} line(s); {len(batch.failed)} subtask(s) failed"
        else:
            result.message = f"merged {len(report.merged)} line(s) into {base}"
        return result

    async def _run_sequential(self, task: str, plan: Plan) -> RunResult:
        role_plan = await self.planner.plan(task)
        first = role_plan.role_sequence[0] if role_plan.role_sequence else self._config.router.fallback_role
        routing = await self.router.route(task, first)
        return RunResult(
            task=task,
            mode="sequential",
            success=routing.completed,
            plan=plan,
            role_plan=role_plan,
            routing=routing,
            total_cost=routing.total_cost + role_plan.cost,
            message=routing.reason,
        )
