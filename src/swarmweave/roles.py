"""Role registry: the named capability profiles workers are bound to.

Standard roles (always available unless a run opts out):
- **architect**: analyses structure, produces implementation plans.
- **coder**: implements changes, fixes bugs, refactors.
- **reviewer**: checks quality, validates requirements.
- **security**: scans for vulnerabilities.
- **documenter**: writes documentation.
- **tester**: writes tests, hunts edge cases.
- **performance**: finds bottlenecks, proposes optimisations.

A :class:`RoleRegistry` is built per coordination run and passed to the
planner and router; there is no process-wide registry.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field, replace
from typing import Any

from swarmweave.errors import ConfigurationError


@dataclass
class RoleDescriptor:
    """Configuration for one role."""

    name: str
    description: str = ""
    capabilities: list[str] = field(default_factory=list)
    estimated_cost: float = 0.02
    read_only: bool = False
    metadata: dict[str, Any] = field(default_factory=dict)


STANDARD_ROLES: dict[str, RoleDescriptor] = {
    "architect": RoleDescriptor(
        "architect",
        description="Analyzes project structure, creates implementation plans, provides technical guidance",
        capabilities=["analysis", "planning", "architecture", "design"],
        estimated_cost=0.01,
        read_only=True,
    ),
    "coder": RoleDescriptor(
        "coder",
        description="Implements code changes, writes tests, fixes bugs, refactors code",
        capabilities=["implementation", "coding", "testing", "debugging", "refactoring"],
        estimated_cost=0.04,
    ),
    "reviewer": RoleDescriptor(
        "reviewer",
        description="Reviews code quality, validates requirements, provides actionable feedback",
        capabilities=["review", "quality-assurance", "validation", "feedback"],
        estimated_cost=0.01,
        read_only=True,
    ),
    "security": RoleDescriptor(
        "security",
        description="Scans code for security vulnerabilities, validates security best practices",
        capabilities=["security", "scanning", "vulnerability-detection", "compliance"],
        estimated_cost=0.015,
        read_only=True,
    ),
    "documenter": RoleDescriptor(
        "documenter",
        description="Writes and updates documentation, README files, code comments",
        capabilities=["documentation", "writing", "explanation"],
        estimated_cost=0.025,
    ),
    "tester": RoleDescriptor(
        "tester",
        description="Writes comprehensive tests, identifies edge cases, validates test coverage",
        capabilities=["testing", "test-design", "edge-case-analysis", "coverage"],
        estimated_cost=0.03,
    ),
    "performance": RoleDescriptor(
        "performance",
        description="Analyzes performance bottlenecks, suggests optimizations",
        capabilities=["performance", "profiling", "optimization", "analysis"],
        estimated_cost=0.02,
        read_only=True,
    ),
}

# Typical hand-off targets offered to a worker in its prompt.
HANDOFF_PATTERNS: dict[str, list[str]] = {
    "architect": ["coder", "reviewer", "security", "tester"],
    "coder": ["reviewer", "security", "tester"],
    "reviewer": ["coder", "security"],
    "security": ["coder", "reviewer"],
    "documenter": ["reviewer"],
    "tester": ["coder", "reviewer"],
    "performance": ["coder", "reviewer"],
}


class RoleRegistry:
    """Name → :class:`RoleDescriptor` map with capability queries."""

    def __init__(self, roles: Iterable[RoleDescriptor] = ()) -> None:
        self._roles: dict[str, RoleDescriptor] = {}
        for role in roles:
            self.register(role)

    def register(self, role: RoleDescriptor) -> RoleRegistry:
        if not role.name:
            raise ConfigurationError("Role name is required")
        self._roles[role.name] = role
        return self

    def unregister(self, name: str) -> bool:
        return self._roles.pop(name, None) is not None

    def get(self, name: str) -> RoleDescriptor | None:
        return self._roles.get(name)

    def has(self, name: str) -> bool:
        return name in self._roles

    def list_all(self) -> list[RoleDescriptor]:
        return list(self._roles.values())

    def names(self) -> list[str]:
        return list(self._roles)

    def find_by_capability(self, capability: str) -> list[RoleDescriptor]:
        return [r for r in self._roles.values() if capability in r.capabilities]

    def validate(self, names: Iterable[str]) -> list[str]:
        """Return the names that are not registered, in input order."""
        return [n for n in names if n not in self._roles]

    def estimate_cost(self, sequence: Iterable[str]) -> float:
        total = 0.0
        for name in sequence:
            role = self._roles.get(name)
            if role is not None:
                total += role.estimated_cost
        return total

    def handoff_targets(self, current: str) -> list[str]:
        """Roles a worker in *current* may hand off to."""
        pattern = HANDOFF_PATTERNS.get(current)
        if pattern is None:
            return [n for n in self._roles if n != current]
        return [n for n in pattern if n in self._roles and n != current]

    def summary(self) -> str:
        lines: list[str] = []
        for role in self._roles.values():
            caps = ", ".join(role.capabilities) or "none"
            lines.append(
                f"  - {role.name}: {role.description}\n"
                f"    Capabilities: {caps}\n"
                f"    Est. Cost: ${role.estimated_cost:.4f}"
            )
        return "\n\n".join(lines)

    def __contains__(self, name: object) -> bool:
        return name in self._roles

    def __iter__(self) -> Iterator[RoleDescriptor]:
        return iter(self._roles.values())

    def __len__(self) -> int:
        return len(self._roles)


def get_role_descriptor(
    role_name: str,
    overrides: dict[str, Any] | None = None,
) -> RoleDescriptor:
    """Get a role descriptor, optionally with field overrides.

    Unknown role names produce a bare descriptor with no capabilities.
    """
    builtin = STANDARD_ROLES.get(role_name)
    if builtin is None:
        base = RoleDescriptor(name=role_name)
    else:
        base = replace(
            builtin,
            capabilities=list(builtin.capabilities),
            metadata=dict(builtin.metadata),
        )

    if overrides:
        for key, val in overrides.items():
            if key != "name" and hasattr(base, key):
                setattr(base, key, val)

    return base


def build_role_registry(
    roles_config: dict[str, dict[str, Any]] | None = None,
    *,
    include_standard: bool = True,
) -> RoleRegistry:
    """Build a registry from the standard roles plus configured overrides.

    Args:
        roles_config: Mapping of role name → field overrides from YAML.
        include_standard: Start from the standard role set.
    """
    registry = RoleRegistry()
    if include_standard:
        for name in STANDARD_ROLES:
            registry.register(get_role_descriptor(name))
    if roles_config:
        for name, overrides in roles_config.items():
            registry.register(get_role_descriptor(name, overrides))
    return registry
