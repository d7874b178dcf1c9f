"""Tests for the git history-line and worktree sandbox adapters."""

from __future__ import annotations

import subprocess
from pathlib import Path
from unittest.mock import MagicMock, call, patch

import pytest

from swarmweave.errors import ExecutionFailure
from swarmweave.protocol.interfaces import SandboxHandle, SandboxSpec
from swarmweave.workspace.git_lines import GitHistoryLines, _delete_branch, is_git_repo, run_git
from swarmweave.workspace.sandbox import COMMIT_IDENTITY, WorktreeSandboxProvider


def _done(returncode: int = 0, stdout: str = "", stderr: str = "") -> subprocess.CompletedProcess[str]:
    return subprocess.CompletedProcess(args=["git"], returncode=returncode, stdout=stdout, stderr=stderr)


def _git(repo: Path, *args: str, check: bool = True):  # type: ignore[no-untyped-def]
    return call(["git", *args], cwd=repo, check=check, capture_output=True, text=True)


# ---------------------------------------------------------------------------
# run_git helpers
# ---------------------------------------------------------------------------


@patch("swarmweave.workspace.git_lines.subprocess.run")
def test_run_git_passes_args(mock_run: MagicMock) -> None:
    mock_run.return_value = _done(stdout="ok")
    assert run_git(Path("/repo"), "status").stdout == "ok"
    mock_run.assert_called_once_with(
        ["git", "status"],
        cwd=Path("/repo"),
        check=True,
        capture_output=True,
        text=True,
    )


@patch(
    "swarmweave.workspace.git_lines.subprocess.run",
    side_effect=subprocess.CalledProcessError(128, "git", stderr="fatal: not a git repository"),
)
def test_run_git_wraps_errors(mock_run: MagicMock) -> None:
    with pytest.raises(ExecutionFailure, match="git status failed: fatal: not a git repository"):
        run_git(Path("/repo"), "status")


@patch("swarmweave.workspace.git_lines.subprocess.run", side_effect=FileNotFoundError("git"))
def test_is_git_repo_without_git_binary(mock_run: MagicMock) -> None:
    assert not is_git_repo(Path("/repo"))


@patch("swarmweave.workspace.git_lines.subprocess.run")
def test_is_git_repo(mock_run: MagicMock) -> None:
    mock_run.return_value = _done(stdout="true\n")
    assert is_git_repo(Path("/repo"))
    mock_run.return_value = _done(returncode=128, stderr="fatal")
    assert not is_git_repo(Path("/repo"))


@patch("swarmweave.workspace.git_lines.subprocess.run")
def test_delete_branch_ignores_missing_branch(mock_run: MagicMock) -> None:
    mock_run.return_value = _done(returncode=1, stderr="error: branch not found")
    _delete_branch(Path("/repo"), "task-x")
    assert mock_run.call_args == _git(Path("/repo"), "branch", "-D", "task-x", check=False)


# ---------------------------------------------------------------------------
# GitHistoryLines
# ---------------------------------------------------------------------------


class TestGitHistoryLines:
    @pytest.mark.asyncio
    @patch("swarmweave.workspace.git_lines.subprocess.run")
    async def test_fork_creates_branch(self, mock_run: MagicMock, tmp_path: Path) -> None:
        mock_run.side_effect = [_done(returncode=1), _done()]
        assert await GitHistoryLines(tmp_path).fork("main", "task-a-part1") == "task-a-part1"
        repo = tmp_path.resolve()
        assert mock_run.call_args_list == [
            _git(repo, "rev-parse", "--quiet", "--verify", "refs/heads/task-a-part1", check=False),
            _git(repo, "branch", "task-a-part1", "main"),
        ]

    @pytest.mark.asyncio
    @patch("swarmweave.workspace.git_lines.subprocess.run")
    async def test_fork_replaces_merged_stale_branch(self, mock_run: MagicMock, tmp_path: Path) -> None:
        mock_run.return_value = _done()
        await GitHistoryLines(tmp_path).fork("main", "task-a-part1")
        repo = tmp_path.resolve()
        assert mock_run.call_args_list == [
            _git(repo, "rev-parse", "--quiet", "--verify", "refs/heads/task-a-part1", check=False),
            _git(repo, "merge-base", "--is-ancestor", "task-a-part1", "main", check=False),
            _git(repo, "branch", "-D", "task-a-part1", check=False),
            _git(repo, "branch", "task-a-part1", "main"),
        ]

    @pytest.mark.asyncio
    @patch("swarmweave.workspace.git_lines.subprocess.run")
    async def test_fork_keeps_branch_with_unmerged_work(self, mock_run: MagicMock, tmp_path: Path) -> None:
        mock_run.side_effect = [_done(), _done(returncode=1)]
        with pytest.raises(ExecutionFailure, match="already exists with commits not in main"):
            await GitHistoryLines(tmp_path).fork("main", "task-a-part1")
        assert mock_run.call_count == 2

    @pytest.mark.asyncio
    @patch("swarmweave.workspace.git_lines.subprocess.run")
    async def test_clean_integration(self, mock_run: MagicMock, tmp_path: Path) -> None:
        mock_run.side_effect = [_done(), _done(), _done(stdout="abc123\n"), _done()]
        result = await GitHistoryLines(tmp_path).integrate("main", "L1")
        assert result.success
        repo = tmp_path.resolve()
        assert mock_run.call_args_list == [
            _git(repo, "status", "--porcelain", "--untracked-files=no"),
            _git(repo, "checkout", "main"),
            _git(repo, "rev-parse", "HEAD"),
            _git(repo, "merge", "--no-ff", "--no-edit", "-m", "Merge L1 into main", "L1", check=False),
        ]

    @pytest.mark.asyncio
    @patch("swarmweave.workspace.git_lines.subprocess.run")
    async def test_dirty_checkout_is_refused_untouched(self, mock_run: MagicMock, tmp_path: Path) -> None:
        mock_run.return_value = _done(stdout=" M app.py\nM  notes.txt\n")
        with pytest.raises(ExecutionFailure, match=r"uncommitted changes \(app.py, notes.txt\)"):
            await GitHistoryLines(tmp_path).integrate("main", "L1")
        assert mock_run.call_args_list == [
            _git(tmp_path.resolve(), "status", "--porcelain", "--untracked-files=no"),
        ]

    @pytest.mark.asyncio
    @patch("swarmweave.workspace.git_lines.subprocess.run")
    async def test_conflicted_integration_reports_paths(self, mock_run: MagicMock, tmp_path: Path) -> None:
        mock_run.side_effect = [
            _done(),
            _done(),
            _done(stdout="abc123\n"),
            _done(returncode=1, stdout="CONFLICT (content): Merge conflict in app.py"),
            _done(stdout="app.py\nlib/util.py\n"),
        ]
        result = await GitHistoryLines(tmp_path).integrate("main", "L2")
        assert not result.success
        assert result.conflicted_paths == ["app.py", "lib/util.py"]

    @pytest.mark.asyncio
    @patch("swarmweave.workspace.git_lines.subprocess.run")
    async def test_merge_error_without_conflicts_raises(self, mock_run: MagicMock, tmp_path: Path) -> None:
        mock_run.side_effect = [
            _done(),
            _done(),
            _done(stdout="abc123\n"),
            _done(returncode=128, stderr="fatal: refusing to merge unrelated histories"),
            _done(stdout=""),
        ]
        with pytest.raises(ExecutionFailure, match="unrelated histories"):
            await GitHistoryLines(tmp_path).integrate("main", "L3")

    @pytest.mark.asyncio
    @patch("swarmweave.workspace.git_lines.subprocess.run")
    async def test_discard_without_merge_in_progress_does_nothing(
        self, mock_run: MagicMock, tmp_path: Path
    ) -> None:
        mock_run.return_value = _done(returncode=1)
        await GitHistoryLines(tmp_path).discard_attempt("main")
        assert mock_run.call_args_list == [
            _git(tmp_path.resolve(), "rev-parse", "--quiet", "--verify", "MERGE_HEAD", check=False),
        ]

    @pytest.mark.asyncio
    @patch("swarmweave.workspace.git_lines.subprocess.run")
    async def test_discard_aborts_merge(self, mock_run: MagicMock, tmp_path: Path) -> None:
        mock_run.return_value = _done()
        await GitHistoryLines(tmp_path).discard_attempt("main")
        repo = tmp_path.resolve()
        assert mock_run.call_args_list == [
            _git(repo, "rev-parse", "--quiet", "--verify", "MERGE_HEAD", check=False),
            _git(repo, "merge", "--abort", check=False),
        ]

    @pytest.mark.asyncio
    @patch("swarmweave.workspace.git_lines.subprocess.run")
    async def test_discard_falls_back_to_recorded_head(self, mock_run: MagicMock, tmp_path: Path) -> None:
        mock_run.side_effect = [
            _done(),
            _done(),
            _done(stdout="abc123\n"),
            _done(returncode=1),
            _done(stdout="app.py\n"),
            _done(),
            _done(returncode=128, stderr="fatal: There is no merge to abort"),
            _done(),
        ]
        lines = GitHistoryLines(tmp_path)
        await lines.integrate("main", "L2")
        await lines.discard_attempt("main")
        assert mock_run.call_args_list[-1] == _git(tmp_path.resolve(), "reset", "--merge", "abc123")

    @pytest.mark.asyncio
    @patch(
        "swarmweave.workspace.git_lines.subprocess.run",
        side_effect=subprocess.CalledProcessError(1, "git", stderr="error: branch 'L9' not found"),
    )
    async def test_delete_propagates_errors(self, mock_run: MagicMock, tmp_path: Path) -> None:
        with pytest.raises(ExecutionFailure):
            await GitHistoryLines(tmp_path).delete("L9")


# ---------------------------------------------------------------------------
# WorktreeSandboxProvider
# ---------------------------------------------------------------------------


class TestWorktreeSandboxes:
    @pytest.mark.asyncio
    @patch("swarmweave.workspace.git_lines.subprocess.run")
    async def test_create_adds_worktree_on_line(self, mock_run: MagicMock, tmp_path: Path) -> None:
        mock_run.return_value = _done()
        provider = WorktreeSandboxProvider(tmp_path)
        handle = await provider.create(SandboxSpec(name="t-part1", history_line_id="task-t-part1", role="coder"))

        repo = tmp_path.resolve()
        expected = repo / ".swarmweave" / "worktrees" / "t-part1"
        assert handle.path == str(expected)
        assert handle.sandbox_id == "t-part1"
        assert handle.metadata == {"role": "coder"}
        assert expected.parent.is_dir()
        assert mock_run.call_args_list[-1] == _git(repo, "worktree", "add", str(expected), "task-t-part1")

    @pytest.mark.asyncio
    @patch("swarmweave.workspace.git_lines.subprocess.run")
    async def test_finalize_commits_with_fallback_identity(self, mock_run: MagicMock, tmp_path: Path) -> None:
        mock_run.side_effect = [_done(), _done(returncode=1), _done(returncode=1), _done()]
        handle = SandboxHandle(sandbox_id="s", history_line_id="L", path=str(tmp_path))
        await WorktreeSandboxProvider(tmp_path).finalize(handle, "coder: work")
        assert mock_run.call_args_list[-1] == _git(tmp_path, *COMMIT_IDENTITY, "commit", "-m", "coder: work")

    @pytest.mark.asyncio
    @patch("swarmweave.workspace.git_lines.subprocess.run")
    async def test_finalize_skips_empty_commit(self, mock_run: MagicMock, tmp_path: Path) -> None:
        mock_run.return_value = _done()
        handle = SandboxHandle(sandbox_id="s", history_line_id="L", path=str(tmp_path))
        await WorktreeSandboxProvider(tmp_path).finalize(handle, "nothing")
        assert mock_run.call_count == 2

    @pytest.mark.asyncio
    @patch("swarmweave.workspace.git_lines.subprocess.run")
    async def test_destroy_is_idempotent(self, mock_run: MagicMock, tmp_path: Path) -> None:
        mock_run.return_value = _done()
        handle = SandboxHandle(sandbox_id="s", history_line_id="L", path=str(tmp_path / "wt"))
        provider = WorktreeSandboxProvider(tmp_path)
        await provider.destroy(handle)
        calls = mock_run.call_count
        await provider.destroy(handle)
        assert handle.destroyed
        assert mock_run.call_count == calls

    @pytest.mark.asyncio
    @patch("swarmweave.workspace.git_lines.subprocess.run")
    async def test_destroy_falls_back_to_rmtree(self, mock_run: MagicMock, tmp_path: Path) -> None:
        mock_run.return_value = _done(returncode=128, stderr="fatal: not a working tree")
        leftover = tmp_path / "wt"
        (leftover / "sub").mkdir(parents=True)
        handle = SandboxHandle(sandbox_id="s", history_line_id="L", path=str(leftover))
        await WorktreeSandboxProvider(tmp_path).destroy(handle)
        assert not leftover.exists()
