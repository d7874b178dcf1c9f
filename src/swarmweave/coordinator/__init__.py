"""Coordination engine: decomposition, parallel execution, merging, routing, planning."""

from swarmweave.coordinator.conflicts import (
    FileConflict,
    ValidationResult,
    find_dependency_cycle,
    find_file_conflict,
    validate_independence,
)
from swarmweave.coordinator.decision import DecisionParser, MarkerDecisionParser, resolve_decision
from swarmweave.coordinator.decomposer import TaskDecomposer, summarize
from swarmweave.coordinator.merger import HistoryMerger, MergeReport, format_conflicts
from swarmweave.coordinator.orchestrator import RunResult, TaskRunner
from swarmweave.coordinator.parallel import ParallelCoordinator, ParallelResult, SubtaskFailure
from swarmweave.coordinator.planner import (
    HeuristicPlanningStrategy,
    StrategyOutcome,
    TaskPlanner,
    WorkerPlanningStrategy,
)
from swarmweave.coordinator.router import AgentRouter, RoutingResult, RoutingStatus, detect_loop
from swarmweave.coordinator.trace import ExecutionTrace, TraceEntry

__all__ = [
    "AgentRouter",
    "DecisionParser",
    "ExecutionTrace",
    "FileConflict",
    "HeuristicPlanningStrategy",
    "HistoryMerger",
    "MarkerDecisionParser",
    "MergeReport",
    "ParallelCoordinator",
    "ParallelResult",
    "RoutingResult",
    "RoutingStatus",
    "RunResult",
    "StrategyOutcome",
    "SubtaskFailure",
    "TaskDecomposer",
    "TaskPlanner",
    "TaskRunner",
    "TraceEntry",
    "ValidationResult",
    "WorkerPlanningStrategy",
    "detect_loop",
    "find_dependency_cycle",
    "find_file_conflict",
    "format_conflicts",
    "resolve_decision",
    "summarize",
    "validate_independence",
]
