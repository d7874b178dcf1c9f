"""Task decomposer: decide whether a task can be split into parallel parts.

A planning worker proposes a split as JSON. The proposal is accepted only
if it survives, in order: structural validation, the planner's own verdict,
the complexity floor, the part-count bounds and the independence check.
Any failure yields a sequential plan with the reason attached; nothing is
ever partially accepted, and nothing raises past :meth:`decompose`.
"""

from __future__ import annotations

import asyncio
import logging
import math
from typing import Any

from swarmweave.config.schema import DecomposerConfig
from swarmweave.coordinator.conflicts import validate_independence
from swarmweave.coordinator.parsing import extract_json_object
from swarmweave.protocol.interfaces import WorkerInvoker
from swarmweave.protocol.models import Plan, SubtaskSpec

logger = logging.getLogger(__name__)

ANALYSIS_FAILED = "analysis failed"


def build_decomposition_prompt(task: str, config: DecomposerConfig) -> str:
    roles = "|".join(config.allowed_roles)
    return f"""Analyze this coding task and determine if it can be split into independent parallel subtasks.

Task Description:
{task}

Respond with ONLY a JSON object (no markdown, no explanation):
{{
  "complexity": <number 1-10, where 1=trivial, 10=very complex>,
  "canParallelize": <boolean>,
  "reasoning": "<why or why not>",
  "parts": [
    {{
      "role": "<{roles}>",
      "description": "<specific subtask description>",
      "files": ["<estimated files to create/modify>"],
      "dependencies": [<indices of other parts this depends on>]
    }}
  ]
}}

Requirements for parallelization:
1. Parts must be truly independent (no two parts touch the same file)
2. Each part should be substantial enough to warrant a separate agent
3. Must have {config.min_parts}-{config.max_parts} parts total
4. If a part depends on another, list the dependency
5. Complexity must be >= {config.min_complexity:g} to warrant parallelization
"""


class TaskDecomposer:
    """Turns a planning worker's proposal into an accepted or rejected :class:`Plan`."""

    def __init__(
        self,
        invoker: WorkerInvoker,
        config: DecomposerConfig | None = None,
    ) -> None:
        self._invoker = invoker
        self._config = config or DecomposerConfig()
        self._allowed_roles = frozenset(r.lower() for r in self._config.allowed_roles)

    @property
    def config(self) -> DecomposerConfig:
        return self._config

    async def decompose(self, task_description: str) -> Plan:
        """Ask the planning worker for a split and validate it. Never raises."""
        prompt = build_decomposition_prompt(task_description, self._config)
        try:
            reply = await asyncio.wait_for(
                self._invoker.invoke(self._config.planning_role, prompt),
                timeout=self._config.timeout_seconds,
            )
        except asyncio.TimeoutError:
            logger.warning(
                "Task analysis timed out after %.0fs; defaulting to sequential execution",
                self._config.timeout_seconds,
            )
            return Plan(
                parallel=False,
                reason=f"{ANALYSIS_FAILED}: planning worker timed out after {self._config.timeout_seconds:g}s",
            )
        except Exception as exc:
            logger.warning("Task analysis failed: %s; defaulting to sequential execution", exc)
            return Plan(parallel=False, reason=f"{ANALYSIS_FAILED}: {str(exc) or type(exc).__name__}")

        raw = extract_json_object(reply.text)
        if raw is None:
            logger.warning("Could not parse JSON from planning worker; defaulting to sequential execution")
            return Plan(
                parallel=False,
                reason=f"{ANALYSIS_FAILED}: could not parse a JSON object from the planning worker response",
            )

        try:
            plan = self.evaluate(raw)
        except Exception as exc:
            logger.warning("Could not evaluate planning worker proposal: %s", exc)
            return Plan(parallel=False, reason=f"{ANALYSIS_FAILED}: {str(exc) or type(exc).__name__}")
        if plan.parallel:
            logger.info("Task accepted for parallel execution with %d parts", len(plan.parts))
        else:
            logger.info("Sequential execution: %s", plan.reason)
        return plan

    def evaluate(self, raw: Any) -> Plan:
        """Apply the acceptance pipeline to an already-parsed proposal."""
        if not isinstance(raw, dict) or not isinstance(raw.get("parts"), list):
            return Plan(parallel=False, reason="Invalid analysis format: expected an object with a 'parts' list")

        complexity = _coerce_number(raw.get("complexity"))
        can_parallelize = raw.get("canParallelize", raw.get("can_parallelize"))
        if not isinstance(can_parallelize, bool):
            return Plan(
                parallel=False,
                reason="Invalid analysis format: missing boolean 'canParallelize'",
                complexity=complexity,
            )

        parts, error = self._build_parts(raw["parts"])
        if error is not None:
            return Plan(parallel=False, reason=error, complexity=complexity)

        reasoning = str(raw.get("reasoning") or "").strip()
        if not can_parallelize:
            return Plan(
                parallel=False,
                reason=f"Planner declined parallel execution: {reasoning or 'no reason given'}",
                complexity=complexity,
            )

        if complexity is None:
            return Plan(parallel=False, reason="Missing numeric complexity estimate", complexity=None)
        if complexity < self._config.min_complexity:
            return Plan(
                parallel=False,
                reason=(
                    f"Task complexity ({complexity:g}) below threshold "
                    f"({self._config.min_complexity:g}); not worth parallelizing"
                ),
                complexity=complexity,
            )

        count = len(parts)
        if count < self._config.min_parts:
            return Plan(
                parallel=False,
                reason=f"Only {count} parts identified; need at least {self._config.min_parts} for parallelization",
                complexity=complexity,
            )
        if count > self._config.max_parts:
            return Plan(
                parallel=False,
                reason=f"Too many parts ({count}); maximum is {self._config.max_parts}",
                complexity=complexity,
            )

        verdict = validate_independence(parts)
        if not verdict.valid:
            return Plan(parallel=False, reason=verdict.reason or "Parts are not independent", complexity=complexity)

        return Plan(
            parallel=True,
            parts=parts,
            reason=reasoning or f"Parallel execution with {count} independent parts",
            complexity=complexity,
        )

    def _build_parts(self, raw_parts: list[Any]) -> tuple[list[SubtaskSpec], str | None]:
        parts: list[SubtaskSpec] = []
        for number, item in enumerate(raw_parts, 1):
            if not isinstance(item, dict):
                return [], f"Part {number} is not an object"
            role = item.get("role")
            description = item.get("description")
            files = item.get("files")
            if not isinstance(role, str) or not role.strip():
                return [], f"Part {number} is missing required field 'role'"
            if not isinstance(description, str) or not description.strip():
                return [], f"Part {number} is missing required field 'description'"
            if not isinstance(files, list) or not all(isinstance(f, str) for f in files):
                return [], f"Part {number} is missing required field 'files' (list of paths)"
            role_name = role.strip().lower()
            if role_name not in self._allowed_roles:
                allowed = ", ".join(sorted(self._allowed_roles))
                return [], f"Invalid role '{role}' in part {number}; must be one of: {allowed}"
            deps = _coerce_indices(item.get("dependencies", []))
            if deps is None:
                return [], f"Part {number} has malformed 'dependencies' (expected a list of part indices)"
            parts.append(
                SubtaskSpec(
                    role=role_name,
                    description=description.strip(),
                    target_files=frozenset(f.strip() for f in files if f.strip()),
                    depends_on=deps,
                )
            )
        return parts, None


def summarize(plan: Plan) -> str:
    """Human-readable summary of a decomposition verdict."""
    if not plan.parallel:
        return f"Sequential execution ({plan.reason})"
    lines = [f"Parallel execution with {len(plan.parts)} parts:"]
    for i, part in enumerate(plan.parts, 1):
        files = ", ".join(sorted(part.target_files)) or "no files declared"
        lines.append(f"  {i}. {part.role}: {part.description} [{files}]")
    return "\n".join(lines)


def _coerce_number(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    try:
        if isinstance(value, (int, float)):
            number = float(value)
        elif isinstance(value, str):
            number = float(value.strip())
        else:
            return None
    except (ValueError, OverflowError):
        return None
    # NaN and infinities never count as an estimate.
    return number if math.isfinite(number) else None


def _coerce_indices(value: Any) -> tuple[int, ...] | None:
    if value is None:
        return ()
    if not isinstance(value, list):
        return None
    out: list[int] = []
    for item in value:
        if isinstance(item, bool):
            return None
        if isinstance(item, int):
            out.append(item)
        elif isinstance(item, str):
            try:
                out.append(int(item.strip()))
            except ValueError:
                return None
        else:
            return None
    return tuple(out)
