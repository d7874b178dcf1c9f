"""Configuration schema for swarmweave YAML files."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(slots=True)
class RunConfig:
    working_dir: str = "."
    base_line: str = "main"
    task_id: str = ""  # empty = generated per run
    debug: bool = False
    json_logs: bool = False


@dataclass(slots=True)
class DecomposerConfig:
    planning_role: str = "architect"
    min_parts: int = 2
    max_parts: int = 5
    min_complexity: float = 3.0  # 1-10 scale
    allowed_roles: list[str] = field(default_factory=lambda: ["coder", "tester", "documenter"])
    timeout_seconds: float = 120.0


@dataclass(slots=True)
class ParallelConfig:
    max_concurrency: int = 5
    worker_timeout_seconds: float = 300.0
    kill_grace_seconds: float = 5.0
    progress_interval_seconds: float = 10.0  # 0 disables progress logging
    line_prefix: str = "task-"
    worktrees_dir: str = ".swarmweave/worktrees"


@dataclass(slots=True)
class MergeConfig:
    delete_merged_lines: bool = True
    merge_partial_results: bool = False  # merge successful parts even if siblings failed


@dataclass(slots=True)
class RouterConfig:
    max_iterations: int = 10
    fallback_role: str = "reviewer"
    revisit_warning: int = 2
    step_timeout_seconds: float = 300.0
    recovery: dict[str, str] = field(default_factory=lambda: {"architect": "coder", "coder": "reviewer"})


@dataclass(slots=True)
class PlannerConfig:
    use_worker: bool = False
    planning_role: str = "planner"
    timeout_seconds: float = 120.0
    default_sequence: list[str] = field(default_factory=lambda: ["architect", "coder", "reviewer"])


@dataclass(slots=True)
class WorkerConfig:
    command: list[str] = field(default_factory=lambda: ["claude", "-p", "{prompt}"])
    max_attempts: int = 3
    min_retry_wait_seconds: float = 1.0
    max_retry_wait_seconds: float = 30.0


@dataclass(slots=True)
class SwarmweaveConfig:
    version: int = 1
    run: RunConfig = field(default_factory=RunConfig)
    decomposer: DecomposerConfig = field(default_factory=DecomposerConfig)
    parallel: ParallelConfig = field(default_factory=ParallelConfig)
    merge: MergeConfig = field(default_factory=MergeConfig)
    router: RouterConfig = field(default_factory=RouterConfig)
    planner: PlannerConfig = field(default_factory=PlannerConfig)
    worker: WorkerConfig = field(default_factory=WorkerConfig)
    roles: dict[str, dict[str, Any]] = field(default_factory=dict)
