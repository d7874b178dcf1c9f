"""Global test fixtures for swarmweave."""

from __future__ import annotations

import pytest

from swarmweave.roles import RoleRegistry, build_role_registry
from tests.helpers.fakes import FakeHistoryLines, FakeSandboxes


@pytest.fixture
def registry() -> RoleRegistry:
    return build_role_registry()


@pytest.fixture
def history() -> FakeHistoryLines:
    return FakeHistoryLines({"main": {"README.md": "hello\n"}})


@pytest.fixture
def sandboxes() -> FakeSandboxes:
    return FakeSandboxes()
