"""CLI entrypoint for swarmweave."""

from __future__ import annotations

import asyncio
import logging
import shutil
from pathlib import Path

import click

from swarmweave.adapters.subprocess_worker import SubprocessWorkerInvoker
from swarmweave.config.loader import find_config, load_config, validate_config
from swarmweave.config.schema import SwarmweaveConfig
from swarmweave.coordinator.decomposer import TaskDecomposer, summarize
from swarmweave.coordinator.merger import format_conflicts
from swarmweave.coordinator.orchestrator import RunResult, TaskRunner
from swarmweave.coordinator.planner import TaskPlanner, format_plan
from swarmweave.errors import ConfigurationError
from swarmweave.roles import RoleRegistry, build_role_registry
from swarmweave.utilities.logger import setup_logging
from swarmweave.workspace.git_lines import GitHistoryLines, is_git_repo
from swarmweave.workspace.sandbox import WorktreeSandboxProvider

logger = logging.getLogger(__name__)

_config_option = click.option(
    "--config",
    "config_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="YAML config file (default: .swarmweave.yaml in the working directory)",
)


@click.group()
@click.option("--debug", "debug_flag", is_flag=True, help="Enable debug logging")
@click.option("--json-logs", is_flag=True, help="Emit logs as JSON lines")
@click.pass_context
def main(ctx: click.Context, debug_flag: bool, json_logs: bool) -> None:
    """Swarmweave parallel task coordinator."""
    ctx.ensure_object(dict)
    ctx.obj["debug"] = debug_flag
    ctx.obj["json_logs"] = json_logs


def _load(ctx: click.Context, config_path: Path | None) -> tuple[SwarmweaveConfig, RoleRegistry]:
    path = config_path or find_config(Path.cwd())
    cfg = load_config(path)
    setup_logging(
        debug=ctx.obj.get("debug", False) or cfg.run.debug,
        json_output=ctx.obj.get("json_logs", False) or cfg.run.json_logs,
    )
    registry = build_role_registry(cfg.roles)
    try:
        validate_config(cfg, registry)
    except ConfigurationError as exc:
        raise click.ClickException(str(exc)) from exc
    if path is not None:
        logger.debug("Loaded config from %s", path)
    return cfg, registry


def _task_text(task: tuple[str, ...]) -> str:
    text = " ".join(task).strip()
    if not text:
        raise click.ClickException("Task description is required")
    return text


def _make_invoker(cfg: SwarmweaveConfig) -> SubprocessWorkerInvoker:
    return SubprocessWorkerInvoker.from_config(
        cfg.worker,
        cwd=str(Path(cfg.run.working_dir).resolve()),
        timeout=cfg.parallel.worker_timeout_seconds,
        kill_grace=cfg.parallel.kill_grace_seconds,
    )


def _print_run(result: RunResult) -> None:
    click.echo(f"Mode: {result.mode}")
    if result.mode == "parallel" and result.parallel is not None:
        click.echo(summarize(result.plan))
        for execution in result.parallel.executions:
            line = f"  [{execution.status.value}] {execution.id} ({execution.spec.role})"
            if execution.error:
                line += f" - {execution.error}"
            click.echo(line)
        if result.merge is not None and not result.merge.success:
            click.echo(format_conflicts(result.merge))
    elif result.routing is not None:
        if result.role_plan is not None:
            click.echo(format_plan(result.role_plan))
        trace = result.routing.trace.summary()
        click.echo(f"Routing: {result.routing.status.value} after {result.routing.iterations} step(s)")
        click.echo(f"  Sequence: {' -> '.join(trace['sequence']) or '(none)'}")
        click.echo(f"  Visits: {trace['visit_counts']}")
    click.echo(f"Result: {'success' if result.success else 'failed'} - {result.message}")
    click.echo(f"Total cost: ${result.total_cost:.4f} in {result.duration_ms / 1000:.1f}s")


@main.command("plan")
@click.argument("task", nargs=-1)
@_config_option
@click.option("--use-worker", is_flag=True, help="Ask a planning worker before falling back to heuristics")
@click.pass_context
def plan_command(ctx: click.Context, task: tuple[str, ...], config_path: Path | None, use_worker: bool) -> None:
    """Print the role sequence chosen for TASK."""
    cfg, registry = _load(ctx, config_path)
    text = _task_text(task)
    if use_worker:
        cfg.planner.use_worker = True
    invoker = _make_invoker(cfg) if cfg.planner.use_worker else None
    planner = TaskPlanner.from_config(registry, cfg.planner, invoker)
    role_plan = asyncio.run(planner.plan(text))
    click.echo(format_plan(role_plan))
    click.echo(f"  Estimated Cost: ${planner.estimate_cost(role_plan):.4f}")


@main.command("decompose")
@click.argument("task", nargs=-1)
@_config_option
@click.pass_context
def decompose_command(ctx: click.Context, task: tuple[str, ...], config_path: Path | None) -> None:
    """Ask the planning worker whether TASK can run in parallel."""
    cfg, _registry = _load(ctx, config_path)
    text = _task_text(task)
    decomposer = TaskDecomposer(_make_invoker(cfg), cfg.decomposer)
    plan = asyncio.run(decomposer.decompose(text))
    click.echo(summarize(plan))
    if plan.complexity is not None:
        click.echo(f"Complexity: {plan.complexity:g}/10")


@main.command("run")
@click.argument("task", nargs=-1)
@_config_option
@click.option("--parallel/--sequential", "allow_parallel", default=True, help="Allow the parallel path")
@click.option("--base-line", default=None, help="Branch to fork from and merge into")
@click.pass_context
def run_command(
    ctx: click.Context,
    task: tuple[str, ...],
    config_path: Path | None,
    allow_parallel: bool,
    base_line: str | None,
) -> None:
    """Run TASK end to end: decompose, execute, merge or route."""
    cfg, registry = _load(ctx, config_path)
    text = _task_text(task)
    repo = Path(cfg.run.working_dir).resolve()
    if allow_parallel and not is_git_repo(repo):
        raise click.ClickException(f"{repo} is not a git repository; use --sequential")

    invoker = _make_invoker(cfg)
    runner = TaskRunner(
        cfg,
        registry,
        invoker,
        WorktreeSandboxProvider(repo, cfg.parallel.worktrees_dir),
        GitHistoryLines(repo),
        invoker_factory=lambda handle: invoker.with_cwd(handle.path),
    )
    result = asyncio.run(runner.run(text, base_line=base_line, allow_parallel=allow_parallel))
    _print_run(result)
    raise SystemExit(0 if result.success else 1)


@main.command("roles")
@_config_option
@click.pass_context
def roles_command(ctx: click.Context, config_path: Path | None) -> None:
    """List registered roles and their capabilities."""
    _cfg, registry = _load(ctx, config_path)
    click.echo(f"{len(registry)} role(s):\n")
    click.echo(registry.summary())


@main.command("doctor")
@_config_option
@click.pass_context
def doctor_command(ctx: click.Context, config_path: Path | None) -> None:
    """Check that the worker binary and git repository are usable."""
    cfg, _registry = _load(ctx, config_path)
    repo = Path(cfg.run.working_dir).resolve()
    binary = cfg.worker.command[0]
    checks = [
        ("worker", shutil.which(binary) is not None, f"binary `{binary}`"),
        ("git", shutil.which("git") is not None, "git on PATH"),
        ("repository", is_git_repo(repo), str(repo)),
    ]
    click.echo("Preflight:")
    all_ok = True
    for name, ok, details in checks:
        click.echo(f"  [{'OK' if ok else 'FAIL'}] {name} - {details}")
        all_ok = all_ok and ok
    raise SystemExit(0 if all_ok else 1)
