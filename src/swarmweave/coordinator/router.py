"""Agent router: a state machine that hands a task from role to role.

States are role names plus COMPLETE. Each iteration runs the worker bound
to the current role, records the step in the :class:`ExecutionTrace`, and
moves to the role the worker asked for (or to the fallback role when that
name is unknown). Before every step the router checks, in order:

1. the hard iteration ceiling,
2. ping-pong detection (last three steps drawn from at most two roles),
3. per-role visit counts (warning only).
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from enum import StrEnum

from swarmweave.config.schema import RouterConfig
from swarmweave.coordinator.decision import DecisionParser, MarkerDecisionParser, resolve_decision
from swarmweave.coordinator.trace import ExecutionTrace, TraceEntry
from swarmweave.errors import ExecutionFailure, IterationExceeded, LoopDetected
from swarmweave.protocol.interfaces import RoleLookup, WorkerInvoker

logger = logging.getLogger(__name__)

LOOP_WINDOW = 3
LOOP_MAX_DISTINCT = 2

PromptBuilder = Callable[[str, str, ExecutionTrace, Sequence[str]], str]


class RoutingStatus(StrEnum):
    COMPLETED = "completed"
    ITERATION_LIMIT = "iteration_limit"
    LOOP_DETECTED = "loop_detected"
    FAILED = "failed"


@dataclass(slots=True)
class RoutingResult:
    status: RoutingStatus
    trace: ExecutionTrace
    iterations: int
    visit_counts: dict[str, int] = field(default_factory=dict)
    final_role: str | None = None
    reason: str = ""
    error: str | None = None

    @property
    def completed(self) -> bool:
        return self.status == RoutingStatus.COMPLETED

    @property
    def total_cost(self) -> float:
        return self.trace.total_cost

    def raise_for_status(self) -> None:
        """Convert a non-completed outcome into the matching exception."""
        if self.status == RoutingStatus.LOOP_DETECTED:
            raise LoopDetected(self.reason, trace=self.trace, iterations=self.iterations)
        if self.status == RoutingStatus.ITERATION_LIMIT:
            raise IterationExceeded(self.reason, trace=self.trace, iterations=self.iterations)
        if self.status == RoutingStatus.FAILED:
            raise ExecutionFailure(self.error or self.reason, role=self.final_role)


def detect_loop(
    roles: Sequence[str],
    window: int = LOOP_WINDOW,
    max_distinct: int = LOOP_MAX_DISTINCT,
) -> bool:
    """True when the last *window* steps use at most *max_distinct* roles."""
    if len(roles) < window:
        return False
    return len(set(roles[-window:])) <= max_distinct


def build_role_prompt(
    task: str,
    role: str,
    trace: ExecutionTrace,
    handoff_targets: Sequence[str],
) -> str:
    targets = ", ".join(handoff_targets) or "none"
    return f"""You are the **{role}** agent.

**Task:** {task}

**Previous Work:**
{trace.condensed()}

**Next Step Decision (REQUIRED at end):**
```
NEXT: [agent-name] | COMPLETE
REASON: [brief why]
```

**Available Agents:** {targets}

Use COMPLETE if done, or hand off to another agent if more work is needed."""


class AgentRouter:
    """Runs one role at a time until completion or a safety guard trips."""

    def __init__(
        self,
        invoker: WorkerInvoker,
        registry: RoleLookup,
        config: RouterConfig | None = None,
        *,
        parser: DecisionParser | None = None,
        prompt_builder: PromptBuilder | None = None,
    ) -> None:
        self._invoker = invoker
        self._registry = registry
        self._config = config or RouterConfig()
        self._parser = parser or MarkerDecisionParser(self._config.fallback_role)
        self._prompt_builder = prompt_builder or build_role_prompt

    async def route(
        self,
        task: str,
        initial_role: str,
        trace: ExecutionTrace | None = None,
    ) -> RoutingResult:
        trace = trace if trace is not None else ExecutionTrace()
        max_iterations = self._config.max_iterations
        current = initial_role
        if not self._registry.has(current):
            logger.warning(
                "Initial role '%s' is not registered; starting with %s",
                current,
                self._config.fallback_role,
            )
            current = self._config.fallback_role

        iterations = 0
        used_recoveries: set[str] = set()

        while True:
            if iterations >= max_iterations:
                logger.error("Max iterations reached: no completion within %d steps", max_iterations)
                return self._result(
                    RoutingStatus.ITERATION_LIMIT,
                    trace,
                    iterations,
                    current,
                    f"Task did not complete within {max_iterations} role steps",
                )
            if detect_loop(trace.roles()):
                recent = " -> ".join(trace.roles()[-LOOP_WINDOW:])
                logger.error("Agent loop detected (%s); stopping", recent)
                return self._result(
                    RoutingStatus.LOOP_DETECTED,
                    trace,
                    iterations,
                    current,
                    f"Last {LOOP_WINDOW} steps cycled between the same roles: {recent}",
                )

            visits = trace.visit_count(current)
            if visits >= self._config.revisit_warning:
                logger.warning("Role '%s' is being visited for the %d. time", current, visits + 1)

            iterations += 1
            logger.info("Iteration %d/%d: %s", iterations, max_iterations, current)
            prompt = self._prompt_builder(task, current, trace, self._registry.handoff_targets(current))
            started = time.monotonic()
            try:
                reply = await asyncio.wait_for(
                    self._invoker.invoke(current, prompt),
                    timeout=self._config.step_timeout_seconds,
                )
            except asyncio.TimeoutError:
                error = f"Role '{current}' timed out after {self._config.step_timeout_seconds:g}s"
                recovery = self._recovery_for(current, used_recoveries)
                if recovery is None:
                    return self._result(RoutingStatus.FAILED, trace, iterations, current, error, error=error)
                logger.warning("%s; recovering with %s", error, recovery)
                current = recovery
                continue
            except Exception as exc:
                error = f"Role '{current}' failed: {exc}"
                recovery = self._recovery_for(current, used_recoveries)
                if recovery is None:
                    logger.error("%s; cannot recover, stopping", error)
                    return self._result(RoutingStatus.FAILED, trace, iterations, current, error, error=error)
                logger.warning("%s; recovering with %s", error, recovery)
                current = recovery
                continue

            duration_ms = reply.duration_ms or int((time.monotonic() - started) * 1000)
            decision = resolve_decision(reply, self._parser, current)
            trace.append(
                TraceEntry(
                    role=current,
                    timestamp=time.time(),
                    duration_ms=duration_ms,
                    cost=reply.cost,
                    decision=decision,
                    output=reply.text,
                )
            )
            logger.info(
                "%s decided: %s (%s)",
                current,
                "COMPLETE" if decision.is_complete else decision.next_role,
                decision.reason,
            )

            if decision.is_complete:
                reason = decision.reason
                if not decision.explicit:
                    reason = f"{reason} (inferred)"
                return self._result(RoutingStatus.COMPLETED, trace, iterations, current, reason)

            next_role = decision.next_role
            if not next_role:
                return self._result(
                    RoutingStatus.COMPLETED,
                    trace,
                    iterations,
                    current,
                    "No next role named and task not marked complete; assuming complete",
                )
            if not self._registry.has(next_role):
                logger.warning(
                    "Unknown role requested: '%s'; routing to %s",
                    next_role,
                    self._config.fallback_role,
                )
                next_role = self._config.fallback_role
            current = next_role

    def _recovery_for(self, role: str, used: set[str]) -> str | None:
        """Each recovery edge is taken at most once per run."""
        target = self._config.recovery.get(role)
        if target is None or role in used or not self._registry.has(target):
            return None
        used.add(role)
        return target

    @staticmethod
    def _result(
        status: RoutingStatus,
        trace: ExecutionTrace,
        iterations: int,
        final_role: str | None,
        reason: str,
        *,
        error: str | None = None,
    ) -> RoutingResult:
        return RoutingResult(
            status=status,
            trace=trace,
            iterations=iterations,
            visit_counts=trace.visit_counts(),
            final_role=final_role,
            reason=reason,
            error=error,
        )
