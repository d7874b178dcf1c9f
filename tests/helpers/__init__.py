"""Test helpers: in-memory collaborators for the coordination engine."""

from tests.helpers.fakes import FakeHistoryLines, FakeSandboxes, FinalizingSandboxes, ScriptedWorker, StaticRoles

__all__ = ["FakeHistoryLines", "FakeSandboxes", "FinalizingSandboxes", "ScriptedWorker", "StaticRoles"]
