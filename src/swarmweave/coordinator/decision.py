"""Routing decision parsing.

Workers that return a structured :class:`RoutingDecision` bypass parsing
entirely. For workers that only produce text, :class:`MarkerDecisionParser`
reads the hand-off markers::

    NEXT: <role> | COMPLETE
    REASON: <text>
"""

from __future__ import annotations

import logging
import re
from typing import Protocol

from swarmweave.protocol.interfaces import WorkerReply
from swarmweave.protocol.models import RoutingDecision

logger = logging.getLogger(__name__)

COMPLETION_KEYWORDS = frozenset({"complete", "completed", "done", "finish", "finished"})
COMPLETION_PHRASES = ("task complete", "all done", "finished", "no further", "analysis complete")

_NEXT_RE = re.compile(r"NEXT:\s*([^\n|]+)", re.IGNORECASE)
_REASON_RE = re.compile(r"REASON:\s*([^\n]+)", re.IGNORECASE)


class DecisionParser(Protocol):
    def parse(self, text: str, role: str) -> RoutingDecision: ...


class MarkerDecisionParser:
    """Text grammar for hand-off decisions.

    Without a ``NEXT:`` marker, completion phrases mark the task complete;
    anything else routes to *safe_role*. Both fallbacks set
    ``explicit=False``.
    """

    def __init__(self, safe_role: str = "reviewer") -> None:
        self.safe_role = safe_role

    def parse(self, text: str, role: str) -> RoutingDecision:
        next_match = _NEXT_RE.search(text or "")
        if next_match is None:
            return self._infer(text or "", role)

        target = next_match.group(1).strip(" \t[]`*'\"").lower()
        reason_match = _REASON_RE.search(text)
        reason = reason_match.group(1).strip() if reason_match else "No reason provided"

        if target in COMPLETION_KEYWORDS:
            return RoutingDecision(next_role=None, reason=reason, is_complete=True, explicit=True)
        if not target:
            return self._infer(text, role)
        return RoutingDecision(next_role=target, reason=reason, is_complete=False, explicit=True)

    def _infer(self, text: str, role: str) -> RoutingDecision:
        logger.warning("No explicit decision found from %s", role)
        lowered = text.lower()
        if any(phrase in lowered for phrase in COMPLETION_PHRASES):
            return RoutingDecision(
                next_role=None,
                reason="Inferred completion from worker response",
                is_complete=True,
                explicit=False,
            )
        return RoutingDecision(
            next_role=self.safe_role,
            reason=f"No explicit decision, routing to {self.safe_role} for validation",
            is_complete=False,
            explicit=False,
        )


def resolve_decision(reply: WorkerReply, parser: DecisionParser, role: str) -> RoutingDecision:
    """Use the worker's structured decision if it gave one, else parse its text."""
    if reply.decision is not None:
        return reply.decision
    return parser.parse(reply.text, role)
