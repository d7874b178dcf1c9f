"""History merger: fold completed subtask lines back into the base line.

Merges run strictly one at a time, in the caller's order. A conflicted
attempt is always rolled back before the next line is tried, so after
:meth:`HistoryMerger.merge_all` the base line holds exactly the lines that
merged cleanly.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field

from swarmweave.errors import MergeConflictError, RollbackFailed
from swarmweave.protocol.interfaces import HistoryLineProvider
from swarmweave.protocol.models import MergeOutcome, SubtaskExecution, SubtaskStatus

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class MergeReport:
    base_line: str
    merged: list[str] = field(default_factory=list)
    conflicts: list[MergeOutcome] = field(default_factory=list)
    outcomes: list[MergeOutcome] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return not self.conflicts

    def raise_for_conflicts(self) -> None:
        if self.conflicts:
            lines = ", ".join(c.history_line_id for c in self.conflicts)
            raise MergeConflictError(
                f"{len(self.conflicts)} line(s) could not be merged into '{self.base_line}': {lines}",
                report=self,
            )


class HistoryMerger:
    def __init__(self, history: HistoryLineProvider) -> None:
        self._history = history

    async def merge_all(
        self,
        base_line: str,
        completed: Sequence[SubtaskExecution],
    ) -> MergeReport:
        """Integrate each completed execution's line into *base_line*.

        Raises:
            RollbackFailed: a conflicted attempt could not be undone, so the
                base line may be in a half-merged state.
        """
        report = MergeReport(base_line=base_line)
        for execution in completed:
            line_id = execution.history_line_id
            if not line_id:
                logger.warning("Subtask %s has no history line; skipping merge", execution.id)
                continue
            if execution.status != SubtaskStatus.COMPLETED:
                logger.warning(
                    "Subtask %s is %s, not completed; skipping merge",
                    execution.id,
                    execution.status.value,
                )
                continue

            outcome = await self._merge_one(base_line, line_id, execution.id)
            report.outcomes.append(outcome)
            if outcome.merged:
                report.merged.append(line_id)
                logger.info("Merged %s into %s", line_id, base_line)
            else:
                report.conflicts.append(outcome)
                logger.warning(
                    "Merge conflict for %s: %s",
                    line_id,
                    ", ".join(outcome.conflicted_paths) or outcome.error or "unknown",
                )

        logger.info(
            "Merge summary for %s: %d merged, %d conflicted",
            base_line,
            len(report.merged),
            len(report.conflicts),
        )
        return report

    async def _merge_one(self, base_line: str, line_id: str, subtask_id: str) -> MergeOutcome:
        try:
            result = await self._history.integrate(base_line, line_id)
        except Exception as exc:
            # Treated like a conflict so the attempt is still rolled back.
            await self._rollback(base_line)
            return MergeOutcome(
                history_line_id=line_id,
                merged=False,
                subtask_id=subtask_id,
                error=str(exc) or type(exc).__name__,
            )

        if result.success:
            return MergeOutcome(history_line_id=line_id, merged=True, subtask_id=subtask_id)

        await self._rollback(base_line)
        return MergeOutcome(
            history_line_id=line_id,
            merged=False,
            conflicted_paths=list(result.conflicted_paths),
            subtask_id=subtask_id,
        )

    async def _rollback(self, base_line: str) -> None:
        try:
            await self._history.discard_attempt(base_line)
        except Exception as exc:
            raise RollbackFailed(base_line, str(exc)) from exc

    async def cleanup_lines(self, line_ids: Iterable[str]) -> list[str]:
        """Delete temporary history lines. Failures are logged, never raised.

        Returns the ids that were deleted.
        """
        deleted: list[str] = []
        for line_id in line_ids:
            try:
                await self._history.delete(line_id)
                deleted.append(line_id)
            except Exception as exc:
                logger.warning("Failed to delete history line %s: %s", line_id, exc)
        return deleted


def format_conflicts(report: MergeReport) -> str:
    """Manual-resolution instructions for a report with conflicts."""
    if report.success:
        return f"All {len(report.merged)} line(s) merged cleanly into '{report.base_line}'."
    lines = [
        f"{len(report.conflicts)} line(s) could not be merged into '{report.base_line}'.",
        "",
    ]
    for outcome in report.conflicts:
        label = f"{outcome.history_line_id}"
        if outcome.subtask_id:
            label += f" (subtask {outcome.subtask_id})"
        lines.append(f"- {label}")
        for path in outcome.conflicted_paths:
            lines.append(f"    conflict: {path}")
        if outcome.error:
            lines.append(f"    error: {outcome.error}")
    lines += [
        "",
        "To resolve manually:",
        f"  1. Check out '{report.base_line}'",
        "  2. Merge each line listed above and resolve the conflicting files",
        "  3. Commit the result",
    ]
    if report.merged:
        lines.append(f"Already merged: {', '.join(report.merged)}")
    return "\n".join(lines)
