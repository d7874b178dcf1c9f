from __future__ import annotations

import json
from pathlib import Path

import pytest
from click.testing import CliRunner

from swarmweave.cli import main
from tests.helpers.fakes import ScriptedWorker


@pytest.fixture(autouse=True)
def _isolated(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr("swarmweave.cli.setup_logging", lambda **_: None)


def _write_config(path: Path, text: str) -> Path:
    path.write_text(text, encoding="utf-8")
    return path


def test_roles_lists_standard_roles() -> None:
    result = CliRunner().invoke(main, ["roles"])
    assert result.exit_code == 0
    assert "7 role(s):" in result.output
    assert "- security:" in result.output


def test_roles_picks_up_default_config_file(tmp_path: Path) -> None:
    _write_config(
        tmp_path / ".swarmweave.yaml",
        "roles:\n  translator:\n    description: Translates UI strings\n",
    )
    result = CliRunner().invoke(main, ["roles"])
    assert result.exit_code == 0
    assert "8 role(s):" in result.output
    assert "- translator: Translates UI strings" in result.output


def test_invalid_config_is_reported(tmp_path: Path) -> None:
    cfg = _write_config(tmp_path / "bad.yaml", "router:\n  max_iterations: 0\n")
    result = CliRunner().invoke(main, ["roles", "--config", str(cfg)])
    assert result.exit_code == 1
    assert "router.max_iterations must be >= 1" in result.output


def test_plan_prints_heuristic_plan() -> None:
    result = CliRunner().invoke(main, ["plan", "Add", "JWT", "authentication"])
    assert result.exit_code == 0
    assert "Roles: architect -> coder -> security -> reviewer" in result.output
    assert "Estimated Cost: $0.0750" in result.output


def test_plan_requires_task() -> None:
    result = CliRunner().invoke(main, ["plan"])
    assert result.exit_code == 1
    assert "Task description is required" in result.output


def test_decompose_prints_summary(monkeypatch: pytest.MonkeyPatch) -> None:
    proposal = {
        "complexity": 6,
        "canParallelize": True,
        "reasoning": "separate modules",
        "parts": [
            {"role": "coder", "description": "Build the API", "files": ["api.py"], "dependencies": []},
            {"role": "tester", "description": "Test the CLI", "files": ["test_cli.py"], "dependencies": []},
        ],
    }
    worker = ScriptedWorker({"architect": [json.dumps(proposal)]})
    monkeypatch.setattr("swarmweave.cli._make_invoker", lambda cfg: worker)

    result = CliRunner().invoke(main, ["decompose", "Build", "an", "API", "and", "CLI", "tests"])

    assert result.exit_code == 0
    assert "Parallel execution with 2 parts:" in result.output
    assert "2. tester: Test the CLI [test_cli.py]" in result.output
    assert "Complexity: 6/10" in result.output


def test_run_sequential(monkeypatch: pytest.MonkeyPatch) -> None:
    worker = ScriptedWorker({"reviewer": ["Looks fine.\nNEXT: COMPLETE\nREASON: no issues"]})
    monkeypatch.setattr("swarmweave.cli._make_invoker", lambda cfg: worker)

    result = CliRunner().invoke(main, ["run", "--sequential", "Review the code quality"])

    assert result.exit_code == 0
    assert "Mode: sequential" in result.output
    assert "Routing: completed after 1 step(s)" in result.output
    assert "Result: success - no issues" in result.output


def test_run_sequential_failure_exits_nonzero(monkeypatch: pytest.MonkeyPatch) -> None:
    worker = ScriptedWorker({"reviewer": [RuntimeError("worker crashed")]})
    monkeypatch.setattr("swarmweave.cli._make_invoker", lambda cfg: worker)

    result = CliRunner().invoke(main, ["run", "--sequential", "Review the code quality"])

    assert result.exit_code == 1
    assert "Routing: failed" in result.output


def test_run_parallel_needs_git_repo() -> None:
    result = CliRunner().invoke(main, ["run", "Add", "a", "feature"])
    assert result.exit_code == 1
    assert "is not a git repository" in result.output


def test_doctor_fails_when_binary_missing(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr("shutil.which", lambda _: None)
    result = CliRunner().invoke(main, ["doctor"])
    assert result.exit_code == 1
    assert "[FAIL] worker - binary `claude`" in result.output
