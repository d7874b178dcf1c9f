"""Independence checks for a proposed set of parallel subtasks.

A plan is independent when no two parts target the same file and no part
depends on another. Dependency cycles and dangling dependency indices are
reported separately so the reason string says what actually went wrong.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

from swarmweave.protocol.models import SubtaskSpec


@dataclass(frozen=True, slots=True)
class FileConflict:
    """Two parts (1-based numbers) that both target *path*."""

    path: str
    parts: tuple[int, int]


@dataclass(frozen=True, slots=True)
class ValidationResult:
    valid: bool
    reason: str | None = None
    conflict: FileConflict | None = None
    cycle: tuple[int, ...] | None = None


def normalize_path(path: str) -> str:
    """Canonical form used for overlap checks (``./A/b.py`` == ``a/b.py``)."""
    p = path.strip().replace("\\", "/")
    while p.startswith("./"):
        p = p[2:]
    return p.casefold()


def find_file_conflict(parts: Sequence[SubtaskSpec]) -> FileConflict | None:
    """Return the first pair of parts sharing a target file, or None."""
    owners: dict[str, int] = {}
    for index, part in enumerate(parts):
        for path in sorted(part.target_files):
            key = normalize_path(path)
            if not key:
                continue
            owner = owners.get(key)
            if owner is not None and owner != index:
                return FileConflict(path=path, parts=(owner + 1, index + 1))
            owners[key] = index
    return None


def find_invalid_dependency(parts: Sequence[SubtaskSpec]) -> str | None:
    """Describe the first self-referencing or out-of-range dependency."""
    count = len(parts)
    for index, part in enumerate(parts):
        for dep in part.depends_on:
            if dep == index:
                return f"Part {index + 1} depends on itself"
            if not 0 <= dep < count:
                return f"Part {index + 1} depends on unknown part index {dep}"
    return None


def find_dependency_cycle(parts: Sequence[SubtaskSpec]) -> list[int] | None:
    """Return the first dependency cycle as 0-based indices, or None.

    Iterative DFS with colouring from every node:
      - WHITE (0): unvisited
      - GREY  (1): on current path
      - BLACK (2): fully explored
    The returned chain starts and ends with the same index.
    """
    WHITE, GREY, BLACK = 0, 1, 2
    count = len(parts)
    graph = [sorted({d for d in part.depends_on if 0 <= d < count}) for part in parts]
    colour = [WHITE] * count

    for start in range(count):
        if colour[start] != WHITE:
            continue
        colour[start] = GREY
        path = [start]
        stack = [iter(graph[start])]
        while stack:
            advanced = False
            for child in stack[-1]:
                if colour[child] == GREY:
                    return path[path.index(child):] + [child]
                if colour[child] == WHITE:
                    colour[child] = GREY
                    path.append(child)
                    stack.append(iter(graph[child]))
                    advanced = True
                    break
            if not advanced:
                colour[path.pop()] = BLACK
                stack.pop()
    return None


def validate_independence(parts: Sequence[SubtaskSpec]) -> ValidationResult:
    """Check that *parts* can safely run in parallel.

    Only the first conflicting file pair is reported. Any declared
    dependency disqualifies the plan: ordered work belongs on the
    sequential routing path.
    """
    conflict = find_file_conflict(parts)
    if conflict is not None:
        a, b = conflict.parts
        return ValidationResult(
            valid=False,
            reason=f'File conflict detected: "{conflict.path}" would be modified by parts {a} and {b}',
            conflict=conflict,
        )

    invalid = find_invalid_dependency(parts)
    if invalid is not None:
        return ValidationResult(valid=False, reason=f"Invalid dependency: {invalid}")

    cycle = find_dependency_cycle(parts)
    if cycle is not None:
        numbered = tuple(i + 1 for i in cycle)
        chain = " -> ".join(f"part {n}" for n in numbered)
        return ValidationResult(
            valid=False,
            reason=f"Circular dependency detected: {chain}",
            cycle=numbered,
        )

    dependent = [i + 1 for i, p in enumerate(parts) if p.depends_on]
    if dependent:
        listed = ", ".join(str(n) for n in dependent)
        return ValidationResult(
            valid=False,
            reason=(
                f"Parts {listed} depend on other parts; only fully independent "
                "parts can run in parallel"
            ),
        )

    return ValidationResult(valid=True)
