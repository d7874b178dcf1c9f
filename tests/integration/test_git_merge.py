"""Parallel runs against a real git repository with worktree sandboxes."""

from __future__ import annotations

import shutil
import subprocess
from pathlib import Path

import pytest

from swarmweave.config.schema import ParallelConfig
from swarmweave.coordinator.merger import HistoryMerger
from swarmweave.coordinator.parallel import ParallelCoordinator
from swarmweave.protocol.interfaces import SandboxHandle, WorkerReply
from swarmweave.protocol.models import SubtaskSpec
from swarmweave.workspace.git_lines import GitHistoryLines
from swarmweave.workspace.sandbox import WorktreeSandboxProvider

pytestmark = [
    pytest.mark.integration,
    pytest.mark.skipif(shutil.which("git") is None, reason="git not installed"),
]


def _git(repo: Path, *args: str) -> str:
    return subprocess.run(["git", *args], cwd=repo, check=True, capture_output=True, text=True).stdout


@pytest.fixture
def repo(tmp_path: Path) -> Path:
    root = tmp_path / "repo"
    root.mkdir()
    _git(root, "init", "-q")
    _git(root, "symbolic-ref", "HEAD", "refs/heads/main")
    _git(root, "config", "user.email", "dev@example.com")
    _git(root, "config", "user.name", "Dev")
    (root / "app.py").write_text("print('v0')\n", encoding="utf-8")
    _git(root, "add", "app.py")
    _git(root, "commit", "-q", "-m", "initial")
    return root


class FileWriter:
    """Worker that writes fixed files into its sandbox."""

    def __init__(self, root: Path, files: dict[str, str]) -> None:
        self.root = root
        self.files = files

    async def invoke(self, role: str, prompt: str) -> WorkerReply:
        for rel, content in self.files.items():
            (self.root / rel).write_text(content, encoding="utf-8")
        return WorkerReply(text="done")


async def _run(repo: Path, tmp_path: Path, writes: dict[str, dict[str, str]]):  # type: ignore[no-untyped-def]
    history = GitHistoryLines(repo)
    sandboxes = WorktreeSandboxProvider(repo, tmp_path / "worktrees")

    def factory(handle: SandboxHandle) -> FileWriter:
        return FileWriter(Path(handle.path), writes[handle.sandbox_id])

    coordinator = ParallelCoordinator(
        FileWriter(repo, {}),
        sandboxes,
        history,
        ParallelConfig(max_concurrency=1, progress_interval_seconds=0),
        task_id="it",
        invoker_factory=factory,
    )
    parts = [
        SubtaskSpec(role="coder", description=f"part {i}", target_files=frozenset(files))
        for i, files in enumerate(writes.values(), 1)
    ]
    batch = await coordinator.run_parallel("main", parts)
    merger = HistoryMerger(history)
    report = await merger.merge_all("main", batch.completed)
    return batch, report, merger


@pytest.mark.asyncio
async def test_disjoint_parts_merge_cleanly(repo: Path, tmp_path: Path) -> None:
    batch, report, merger = await _run(
        repo,
        tmp_path,
        {"it-part1": {"api.py": "API = 1\n"}, "it-part2": {"docs.md": "# Docs\n"}},
    )

    assert batch.all_succeeded
    assert report.success
    assert report.merged == ["task-it-part1", "task-it-part2"]
    assert (repo / "api.py").read_text() == "API = 1\n"
    assert (repo / "docs.md").read_text() == "# Docs\n"
    assert not list((tmp_path / "worktrees").glob("it-part*"))

    deleted = await merger.cleanup_lines(report.merged)
    assert deleted == report.merged
    assert "task-it-part1" not in _git(repo, "branch", "--list")


@pytest.mark.asyncio
async def test_conflict_is_rolled_back_and_later_lines_merge(repo: Path, tmp_path: Path) -> None:
    batch, report, _ = await _run(
        repo,
        tmp_path,
        {
            "it-part1": {"app.py": "print('one')\n"},
            "it-part2": {"app.py": "print('two')\n"},
            "it-part3": {"new.py": "NEW = 3\n"},
        },
    )

    assert batch.all_succeeded
    assert report.merged == ["task-it-part1", "task-it-part3"]
    assert [c.history_line_id for c in report.conflicts] == ["task-it-part2"]
    assert report.conflicts[0].conflicted_paths == ["app.py"]

    assert (repo / "app.py").read_text() == "print('one')\n"
    assert (repo / "new.py").read_text() == "NEW = 3\n"
    assert _git(repo, "status", "--porcelain").strip() == ""
    assert not (repo / ".git" / "MERGE_HEAD").exists()
    assert "task-it-part2" in _git(repo, "branch", "--list")


@pytest.mark.asyncio
async def test_uncommitted_changes_on_base_survive_a_refused_merge(repo: Path, tmp_path: Path) -> None:
    (repo / "notes.txt").write_text("n0\n", encoding="utf-8")
    _git(repo, "add", "notes.txt")
    _git(repo, "commit", "-q", "-m", "notes")
    (repo / "app.py").write_text("print('local')\n", encoding="utf-8")
    (repo / "notes.txt").write_text("n1\n", encoding="utf-8")

    batch, report, _ = await _run(repo, tmp_path, {"it-part1": {"app.py": "print('one')\n"}})

    assert batch.all_succeeded
    assert report.merged == []
    assert [c.history_line_id for c in report.conflicts] == ["task-it-part1"]
    assert "uncommitted changes" in (report.conflicts[0].error or "")
    assert (repo / "app.py").read_text() == "print('local')\n"
    assert (repo / "notes.txt").read_text() == "n1\n"
    assert "task-it-part1" in _git(repo, "branch", "--list")


@pytest.mark.asyncio
async def test_rerun_does_not_overwrite_unmerged_line(repo: Path, tmp_path: Path) -> None:
    await _run(
        repo,
        tmp_path,
        {"it-part1": {"app.py": "print('one')\n"}, "it-part2": {"app.py": "print('two')\n"}},
    )
    kept = _git(repo, "rev-parse", "task-it-part2")

    batch, report, _ = await _run(
        repo,
        tmp_path,
        {"it-part1": {"lib.py": "LIB = 1\n"}, "it-part2": {"other.py": "OTHER = 2\n"}},
    )

    assert [f.id for f in batch.failed] == ["it-part2"]
    assert "already exists" in batch.failed[0].error
    assert report.merged == ["task-it-part1"]
    assert _git(repo, "rev-parse", "task-it-part2") == kept
