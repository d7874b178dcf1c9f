"""Configuration: dataclass schema and YAML loading."""

from swarmweave.config.loader import config_from_dict, find_config, load_config, validate_config
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

__all__ = [
    "DecomposerConfig",
    "MergeConfig",
    "ParallelConfig",
    "PlannerConfig",
    "RouterConfig",
    "RunConfig",
    "SwarmweaveConfig",
    "WorkerConfig",
    "config_from_dict",
    "find_config",
    "load_config",
    "validate_config",
]
