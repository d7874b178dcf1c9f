"""Append-only execution trace shared by the role steps of one routing run."""

from __future__ import annotations

from collections import Counter
from collections.abc import Iterator
from dataclasses import dataclass
from typing import Any

from swarmweave.protocol.models import RoutingDecision


@dataclass(frozen=True, slots=True)
class TraceEntry:
    role: str
    timestamp: float
    duration_ms: int
    cost: float
    decision: RoutingDecision
    output: str = ""


class ExecutionTrace:
    """Ordered record of role steps. Entries can be added, never changed."""

    def __init__(self) -> None:
        self._entries: list[TraceEntry] = []

    def append(self, entry: TraceEntry) -> None:
        self._entries.append(entry)

    @property
    def entries(self) -> tuple[TraceEntry, ...]:
        return tuple(self._entries)

    def roles(self) -> list[str]:
        return [e.role for e in self._entries]

    def visit_count(self, role: str) -> int:
        return sum(1 for e in self._entries if e.role == role)

    def visit_counts(self) -> dict[str, int]:
        return dict(Counter(e.role for e in self._entries))

    @property
    def total_cost(self) -> float:
        return sum(e.cost for e in self._entries)

    @property
    def total_duration_ms(self) -> int:
        return sum(e.duration_ms for e in self._entries)

    def condensed(self, *, max_entries: int = 6, max_chars: int = 400) -> str:
        """Short textual view of recent steps, used as worker context."""
        if not self._entries:
            return "No previous work."
        recent = self._entries[-max_entries:]
        skipped = len(self._entries) - len(recent)
        lines: list[str] = []
        if skipped:
            lines.append(f"({skipped} earlier step(s) omitted)")
        for offset, entry in enumerate(recent, skipped + 1):
            text = " ".join(entry.output.split())
            if len(text) > max_chars:
                text = text[: max_chars - 3] + "..."
            target = "COMPLETE" if entry.decision.is_complete else (entry.decision.next_role or "?")
            lines.append(f"{offset}. {entry.role} ({entry.duration_ms / 1000:.1f}s) -> {target}: {text}")
        return "\n".join(lines)

    def summary(self) -> dict[str, Any]:
        count = len(self._entries)
        return {
            "steps": count,
            "sequence": self.roles(),
            "total_cost": self.total_cost,
            "total_duration_ms": self.total_duration_ms,
            "average_cost": self.total_cost / count if count else 0.0,
            "average_duration_ms": self.total_duration_ms / count if count else 0.0,
            "visit_counts": self.visit_counts(),
        }

    def __iter__(self) -> Iterator[TraceEntry]:
        return iter(tuple(self._entries))

    def __len__(self) -> int:
        return len(self._entries)
