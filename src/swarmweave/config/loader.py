"""YAML config loader for swarmweave."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml

from swarmweave.config.schema import (
    DecomposerConfig,
    MergeConfig,
    ParallelConfig,
    PlannerConfig,
    RouterConfig,
    RunConfig,
    SwarmweaveConfig,
    WorkerConfig,
)
from swarmweave.errors import ConfigurationError
from swarmweave.protocol.interfaces import RoleLookup

DEFAULT_CONFIG_NAMES = (".swarmweave.yaml", "swarmweave.yaml")


def find_config(start: str | Path = ".") -> Path | None:
    """Return the first default config file found in *start*, if any."""
    root = Path(start)
    for name in DEFAULT_CONFIG_NAMES:
        candidate = root / name
        if candidate.is_file():
            return candidate
    return None


def load_config(path: str | Path | None = None) -> SwarmweaveConfig:
    if path is None:
        return SwarmweaveConfig()
    p = Path(path)
    raw = yaml.safe_load(p.read_text(encoding="utf-8")) if p.exists() else {}
    return config_from_dict(raw)


def config_from_dict(raw: Any) -> SwarmweaveConfig:
    if not isinstance(raw, dict):
        raw = {}

    run = RunConfig(**_pick(_section(raw, "run"), RunConfig))
    decomposer = DecomposerConfig(**_pick(_section(raw, "decomposer"), DecomposerConfig))
    parallel = ParallelConfig(**_pick(_section(raw, "parallel"), ParallelConfig))
    merge = MergeConfig(**_pick(_section(raw, "merge"), MergeConfig))
    router = RouterConfig(**_pick(_section(raw, "router"), RouterConfig))
    planner = PlannerConfig(**_pick(_section(raw, "planner"), PlannerConfig))
    worker = WorkerConfig(**_pick(_section(raw, "worker"), WorkerConfig))

    roles: dict[str, dict[str, Any]] = {}
    raw_roles = raw.get("roles", {})
    if isinstance(raw_roles, dict):
        for name, overrides in raw_roles.items():
            roles[str(name)] = overrides if isinstance(overrides, dict) else {}

    return SwarmweaveConfig(
        version=int(raw.get("version", 1)),
        run=run,
        decomposer=decomposer,
        parallel=parallel,
        merge=merge,
        router=router,
        planner=planner,
        worker=worker,
        roles=roles,
    )


def validate_config(config: SwarmweaveConfig, registry: RoleLookup | None = None) -> None:
    """Raise :class:`ConfigurationError` for settings the engine cannot honour."""
    dec = config.decomposer
    if dec.min_parts < 2:
        raise ConfigurationError(f"decomposer.min_parts must be >= 2, got {dec.min_parts}")
    if dec.max_parts < dec.min_parts:
        raise ConfigurationError(
            f"decomposer.max_parts ({dec.max_parts}) is below min_parts ({dec.min_parts})"
        )
    if not dec.allowed_roles:
        raise ConfigurationError("decomposer.allowed_roles must not be empty")
    if config.router.max_iterations < 1:
        raise ConfigurationError("router.max_iterations must be >= 1")
    if config.parallel.max_concurrency < 1:
        raise ConfigurationError("parallel.max_concurrency must be >= 1")
    for name, value in (
        ("decomposer.timeout_seconds", dec.timeout_seconds),
        ("parallel.worker_timeout_seconds", config.parallel.worker_timeout_seconds),
        ("parallel.kill_grace_seconds", config.parallel.kill_grace_seconds),
        ("router.step_timeout_seconds", config.router.step_timeout_seconds),
        ("planner.timeout_seconds", config.planner.timeout_seconds),
    ):
        if value <= 0:
            raise ConfigurationError(f"{name} must be positive, got {value}")
    if not config.worker.command:
        raise ConfigurationError("worker.command must not be empty")

    if registry is not None:
        if not registry.has(config.router.fallback_role):
            raise ConfigurationError(
                f"router.fallback_role '{config.router.fallback_role}' is not a registered role"
            )
        missing = registry.validate(config.planner.default_sequence)
        if missing:
            raise ConfigurationError(
                f"planner.default_sequence names unknown roles: {', '.join(missing)}"
            )


def _section(raw: dict[str, Any], key: str) -> dict[str, Any]:
    value = raw.get(key, {})
    return value if isinstance(value, dict) else {}


def _pick(raw: dict[str, Any], model_type: type[Any]) -> dict[str, Any]:
    allowed = set(model_type.__dataclass_fields__.keys())
    return {k: v for k, v in raw.items() if k in allowed}
