"""Task planner: choose the ordered role sequence for the sequential path.

Planning runs an explicit chain of strategies. Each returns a tagged
:class:`StrategyOutcome`; the first ``ok`` outcome wins. The built-in chain
is ``[WorkerPlanningStrategy, HeuristicPlanningStrategy]`` when a planning
worker is enabled, otherwise just the heuristic. The heuristic never calls
out and always succeeds, so the chain always terminates with a plan.
"""

from __future__ import annotations

import asyncio
import logging
import re
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any, Protocol

from swarmweave.config.schema import PlannerConfig
from swarmweave.coordinator.parsing import extract_json_object
from swarmweave.protocol.interfaces import RoleLookup, WorkerInvoker
from swarmweave.protocol.models import RolePlan

logger = logging.getLogger(__name__)

DEFAULT_SEQUENCE = ("architect", "coder", "reviewer")
TASK_TYPES = ("analysis", "implementation", "fix", "documentation", "security", "performance", "testing")
COMPLEXITY_LEVELS = ("simple", "medium", "complex")

_STOP_WORDS = frozenset({
    "the", "a", "an", "and", "or", "but", "in", "on", "at", "to", "for",
    "of", "with", "by", "from", "as", "is", "was", "are", "be", "been",
    "this", "that", "these", "those", "what", "which", "who", "when", "where",
    "how", "why", "does", "do", "did", "should", "could", "would", "can",
})
_WORD_SPLIT_RE = re.compile(r"[\s,.:;!?()\[\]{}]+")
_STEM_SUFFIXES = ("ing", "ed", "s", "er", "tion", "ness")

# Substring cues that point straight at a specialist role.
ROLE_CUES: dict[str, tuple[str, ...]] = {
    "security": ("auth", "security", "password", "token", "vulnerab", "permission"),
    "performance": ("optimiz", "optimis", "performance", "speed", "slow", "latency"),
    "tester": ("test", "coverage", "edge case"),
    "documenter": ("document", "readme", "docstring", "changelog"),
}
CUE_BONUS = 3

_ANALYSIS_VERBS = ("analyze", "analyse", "review", "assess", "evaluate")
_CHANGE_VERBS = ("implement", "fix", "add", "create")


# ---------------------------------------------------------------------------
# Strategy contract
# ---------------------------------------------------------------------------


@dataclass(slots=True)
class StrategyOutcome:
    ok: bool
    plan: RolePlan | None = None
    reason: str = ""

    @classmethod
    def success(cls, plan: RolePlan) -> StrategyOutcome:
        return cls(ok=True, plan=plan)

    @classmethod
    def failure(cls, reason: str) -> StrategyOutcome:
        return cls(ok=False, reason=reason)


class PlanningStrategy(Protocol):
    name: str

    async def propose(self, task: str) -> StrategyOutcome: ...


# ---------------------------------------------------------------------------
# Worker strategy
# ---------------------------------------------------------------------------


def build_planning_prompt(task: str, registry: RoleLookup) -> str:
    return f"""You are a task planning expert. Analyze this task and determine the optimal sequence of agents.

**Task:** {task}

**Available Agents:**
{registry.summary()}

**Guidelines:**
1. Use MINIMUM agents needed (don't over-engineer)
2. Skip architect for simple fixes, coder for analysis-only tasks
3. Add security for auth/security tasks, performance for optimization tasks,
   documenter for documentation tasks

**Respond in this JSON format:**
```json
{{
  "taskType": "{'|'.join(TASK_TYPES)}",
  "agents": ["agent1", "agent2"],
  "reasoning": "Brief explanation of why these agents in this order",
  "estimatedDuration": "30s-5min",
  "complexity": "{'|'.join(COMPLEXITY_LEVELS)}",
  "skipReason": "Why certain agents were skipped (if any)"
}}
```"""


def parse_role_plan(text: str, registry: RoleLookup) -> StrategyOutcome:
    """Parse a planning worker's reply, keeping only registered roles."""
    raw = extract_json_object(text)
    if raw is None:
        return StrategyOutcome.failure("no JSON object found in planner response")
    agents = raw.get("agents", raw.get("role_sequence"))
    if not isinstance(agents, list):
        return StrategyOutcome.failure("planner response is missing an 'agents' list")

    names = [a.strip().lower() for a in agents if isinstance(a, str) and a.strip()]
    dropped = registry.validate(names)
    if dropped:
        logger.warning("Plan includes unknown roles: %s", ", ".join(dropped))
    sequence = [n for n in names if registry.has(n)]
    if not sequence:
        return StrategyOutcome.failure("no valid roles in planner response")

    task_type = str(raw.get("taskType") or "implementation")
    complexity = str(raw.get("complexity") or "medium")
    skip = raw.get("skipReason")
    return StrategyOutcome.success(
        RolePlan(
            role_sequence=sequence,
            task_type=task_type if task_type in TASK_TYPES else "implementation",
            complexity=complexity if complexity in COMPLEXITY_LEVELS else "medium",
            reasoning=str(raw.get("reasoning") or "Worker-generated plan"),
            estimated_duration=str(raw.get("estimatedDuration") or "2-5min"),
            skip_reason=str(skip) if skip else None,
            dropped_roles=dropped,
        )
    )


class WorkerPlanningStrategy:
    name = "worker"

    def __init__(
        self,
        invoker: WorkerInvoker,
        registry: RoleLookup,
        *,
        planning_role: str = "planner",
        timeout: float = 120.0,
    ) -> None:
        self._invoker = invoker
        self._registry = registry
        self._planning_role = planning_role
        self._timeout = timeout

    async def propose(self, task: str) -> StrategyOutcome:
        prompt = build_planning_prompt(task, self._registry)
        try:
            reply = await asyncio.wait_for(
                self._invoker.invoke(self._planning_role, prompt),
                timeout=self._timeout,
            )
        except asyncio.TimeoutError:
            return StrategyOutcome.failure(f"planning worker timed out after {self._timeout:g}s")
        except Exception as exc:
            return StrategyOutcome.failure(f"planning worker failed: {exc}")

        outcome = parse_role_plan(reply.text, self._registry)
        if outcome.plan is not None:
            outcome.plan.cost = reply.cost
        return outcome


# ---------------------------------------------------------------------------
# Heuristic strategy
# ---------------------------------------------------------------------------


def extract_relevant_words(text: str) -> list[str]:
    words = _WORD_SPLIT_RE.split(text.lower())
    return [w for w in words if len(w) > 2 and w not in _STOP_WORDS]


def simple_stem(word: str) -> str:
    for suffix in _STEM_SUFFIXES:
        if word.endswith(suffix):
            word = word[: -len(suffix)]
    return word


def are_similar(a: str, b: str) -> bool:
    """Loose match that tolerates hyphenation, plurals and common suffixes."""
    s1 = a.lower().replace("-", "").replace("_", "")
    s2 = b.lower().replace("-", "").replace("_", "")
    if s1 in s2 or s2 in s1:
        return True
    return simple_stem(s1) == simple_stem(s2)


def classify_task(task: str) -> tuple[str, str, str]:
    """Return ``(task_type, complexity, reasoning)`` from keyword rules."""
    t = task.lower()
    if _is_analysis_only(t):
        return "analysis", "simple", "Analysis-only task, no code changes needed"
    if "fix" in t and any(k in t for k in ("typo", "simple", "quick")):
        return "fix", "simple", "Simple fix, skip planning phase"
    if "document" in t or "readme" in t or ("comment" in t and "uncomment" not in t):
        return "documentation", "simple", "Documentation task, use specialized documenter"
    if any(k in t for k in ("auth", "security", "password", "token")):
        return "security", "complex", "Security-critical task, add security validation"
    if any(k in t for k in ("optimize", "optimise", "performance", "speed", "slow")):
        return "performance", "medium", "Performance task, add performance analysis"
    if "test" in t and "fix" not in t:
        return "testing", "medium", "Testing task, use test specialist"
    if any(k in t for k in ("refactor", "redesign", "migrate", "rewrite")):
        return "implementation", "complex", "Complex changes require full workflow"
    return "implementation", "medium", "Standard implementation workflow"


def estimate_duration(complexity: str, role_count: int) -> str:
    if complexity == "simple":
        return "1-2min" if role_count <= 2 else "2-3min"
    if complexity == "complex":
        return "4-6min" if role_count > 3 else "3-5min"
    return "2-3min"


def explain_skips(sequence: Sequence[str]) -> str | None:
    """Describe which of the standard architect/coder/reviewer roles were skipped."""
    reasons: list[str] = []
    if "architect" not in sequence:
        reasons.append("Architect skipped (task is straightforward, no planning needed)")
    if "coder" not in sequence:
        reasons.append("Coder skipped (analysis-only, no code changes)")
    if "reviewer" not in sequence:
        reasons.append("Reviewer skipped (low-risk changes, self-review sufficient)")
    return "; ".join(reasons) or None


def _is_analysis_only(task_lower: str) -> bool:
    return any(v in task_lower for v in _ANALYSIS_VERBS) and not any(
        v in task_lower for v in _CHANGE_VERBS
    )


class HeuristicPlanningStrategy:
    """Keyword and capability scoring. Deterministic, no worker calls."""

    name = "heuristic"

    def __init__(self, registry: RoleLookup, default_sequence: Sequence[str] = DEFAULT_SEQUENCE) -> None:
        self._registry = registry
        self._default = [r for r in default_sequence if registry.has(r)]

    def score_roles(self, task: str) -> list[tuple[str, int]]:
        """Registered roles with a positive score, best first (ties keep registry order)."""
        task_lower = task.lower()
        words = extract_relevant_words(task)
        scores: list[tuple[str, int]] = []
        for role in self._registry.list_all():
            score = 0
            for capability in role.capabilities:
                for word in words:
                    if capability in word or word in capability:
                        score += 2
                    elif are_similar(capability, word):
                        score += 1
            cues = ROLE_CUES.get(role.name, ())
            score += CUE_BONUS * sum(1 for cue in cues if cue in task_lower)
            if score > 0:
                scores.append((role.name, score))
        scores.sort(key=lambda item: item[1], reverse=True)
        return scores

    def recommend(self, task: str) -> list[str]:
        ranked = self.score_roles(task)
        if not ranked:
            return list(self._default)

        top = ranked[0][0]
        if top in ("documenter", "tester"):
            return [top]
        if _is_analysis_only(task.lower()):
            return [top]

        specialist = top
        if top == "architect" and len(ranked) > 1:
            specialist = ranked[1][0]
        if specialist == "security":
            return self._known(["architect", "coder", "security", "reviewer"])
        if specialist == "performance":
            return self._known(["architect", "performance", "coder", "reviewer"])
        if top not in ("architect", "coder", "reviewer", "security", "performance"):
            # Custom roles are self-contained.
            return [top]
        return list(self._default)

    async def propose(self, task: str) -> StrategyOutcome:
        sequence = self.recommend(task) or list(self._default)
        task_type, complexity, reasoning = classify_task(task)
        return StrategyOutcome.success(
            RolePlan(
                role_sequence=sequence,
                task_type=task_type,
                complexity=complexity,
                reasoning=reasoning,
                estimated_duration=estimate_duration(complexity, len(sequence)),
                skip_reason=explain_skips(sequence),
            )
        )

    def _known(self, sequence: list[str]) -> list[str]:
        return [r for r in sequence if self._registry.has(r)]


# ---------------------------------------------------------------------------
# Planner
# ---------------------------------------------------------------------------


class TaskPlanner:
    """Runs planning strategies in order until one produces a plan."""

    def __init__(self, registry: RoleLookup, strategies: Sequence[PlanningStrategy]) -> None:
        if not strategies:
            raise ValueError("TaskPlanner needs at least one strategy")
        self._registry = registry
        self._strategies = list(strategies)

    @classmethod
    def from_config(
        cls,
        registry: RoleLookup,
        config: PlannerConfig | None = None,
        invoker: WorkerInvoker | None = None,
    ) -> TaskPlanner:
        config = config or PlannerConfig()
        strategies: list[Any] = []
        if config.use_worker and invoker is not None:
            strategies.append(
                WorkerPlanningStrategy(
                    invoker,
                    registry,
                    planning_role=config.planning_role,
                    timeout=config.timeout_seconds,
                )
            )
        strategies.append(HeuristicPlanningStrategy(registry, config.default_sequence))
        return cls(registry, strategies)

    @property
    def strategies(self) -> list[PlanningStrategy]:
        return list(self._strategies)

    async def plan(self, task_description: str) -> RolePlan:
        failures: list[str] = []
        for strategy in self._strategies:
            outcome = await strategy.propose(task_description)
            if outcome.ok and outcome.plan is not None:
                plan = outcome.plan
                plan.strategy = strategy.name
                logger.info(
                    "Task plan (%s): type=%s roles=%s",
                    strategy.name,
                    plan.task_type,
                    " -> ".join(plan.role_sequence),
                )
                return plan
            logger.warning("Planning strategy '%s' failed: %s", strategy.name, outcome.reason)
            failures.append(f"{strategy.name}: {outcome.reason}")

        # Only reachable with a custom chain that lacks the heuristic.
        sequence = [r for r in DEFAULT_SEQUENCE if self._registry.has(r)]
        return RolePlan(
            role_sequence=sequence,
            reasoning=f"Fallback to default sequence ({'; '.join(failures)})",
            estimated_duration="3-5min",
            strategy="default",
        )

    def estimate_cost(self, plan: RolePlan) -> float:
        return self._registry.estimate_cost(plan.role_sequence)


def format_plan(plan: RolePlan) -> str:
    lines = [
        f"Task Plan ({plan.strategy or 'unknown'}):",
        f"  Roles: {' -> '.join(plan.role_sequence)}",
        f"  Task Type: {plan.task_type}",
        f"  Complexity: {plan.complexity}",
        f"  Estimated Duration: {plan.estimated_duration}",
        f"  Reasoning: {plan.reasoning}",
    ]
    if plan.skip_reason:
        lines.append(f"  Optimizations: {plan.skip_reason}")
    if plan.dropped_roles:
        lines.append(f"  Dropped unknown roles: {', '.join(plan.dropped_roles)}")
    return "\n".join(lines)
