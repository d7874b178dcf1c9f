"""Tests for hand-off decision parsing."""

from __future__ import annotations

import pytest

from swarmweave.coordinator.decision import MarkerDecisionParser, resolve_decision
from swarmweave.protocol.interfaces import WorkerReply
from swarmweave.protocol.models import RoutingDecision


@pytest.fixture
def parser() -> MarkerDecisionParser:
    return MarkerDecisionParser()


class TestMarkers:
    def test_next_role_with_reason(self, parser: MarkerDecisionParser) -> None:
        d = parser.parse("Plan written.\nNEXT: coder\nREASON: implementation needed", "architect")
        assert d == RoutingDecision(next_role="coder", reason="implementation needed", is_complete=False, explicit=True)

    @pytest.mark.parametrize("word", ["COMPLETE", "complete", "Done", "finish", "FINISHED"])
    def test_completion_words(self, parser: MarkerDecisionParser, word: str) -> None:
        d = parser.parse(f"All good.\nNEXT: {word}\nREASON: tests pass", "reviewer")
        assert d.is_complete
        assert d.next_role is None
        assert d.explicit

    def test_decoration_is_stripped(self, parser: MarkerDecisionParser) -> None:
        assert parser.parse("**NEXT:** [Reviewer]", "coder").next_role == "reviewer"
        assert parser.parse("NEXT: `security`", "coder").next_role == "security"

    def test_pipe_separated_reason_is_ignored_for_role(self, parser: MarkerDecisionParser) -> None:
        assert parser.parse("NEXT: tester | needs coverage", "coder").next_role == "tester"

    def test_first_marker_wins(self, parser: MarkerDecisionParser) -> None:
        text = "NEXT: tester\nREASON: needs coverage\nIf that fails, NEXT: reviewer\nREASON: fallback"
        decision = parser.parse(text, "coder")
        assert decision.next_role == "tester"
        assert decision.reason == "needs coverage"

    def test_missing_reason_gets_placeholder(self, parser: MarkerDecisionParser) -> None:
        assert parser.parse("NEXT: coder", "architect").reason == "No reason provided"


class TestFallbacks:
    @pytest.mark.parametrize(
        "text",
        ["Task complete, nothing else to do.", "All done!", "Analysis complete.", "No further changes needed."],
    )
    def test_completion_phrase_without_marker(self, parser: MarkerDecisionParser, text: str) -> None:
        d = parser.parse(text, "reviewer")
        assert d.is_complete
        assert not d.explicit

    def test_no_marker_routes_to_safe_role(self, parser: MarkerDecisionParser) -> None:
        d = parser.parse("I changed three files.", "coder")
        assert d.next_role == "reviewer"
        assert not d.is_complete
        assert not d.explicit

    def test_custom_safe_role(self) -> None:
        assert MarkerDecisionParser("tester").parse("hmm", "coder").next_role == "tester"

    def test_empty_text(self, parser: MarkerDecisionParser) -> None:
        d = parser.parse("", "coder")
        assert d.next_role == "reviewer"
        assert not d.explicit


def test_structured_decision_bypasses_parsing(parser: MarkerDecisionParser) -> None:
    decision = RoutingDecision(next_role="security", reason="auth code", is_complete=False, explicit=True)
    reply = WorkerReply(text="NEXT: COMPLETE", decision=decision)
    assert resolve_decision(reply, parser, "coder") is decision


def test_text_reply_is_parsed(parser: MarkerDecisionParser) -> None:
    assert resolve_decision(WorkerReply(text="NEXT: coder"), parser, "architect").next_role == "coder"
