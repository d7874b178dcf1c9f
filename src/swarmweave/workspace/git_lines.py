"""Git-backed history lines: one local branch per subtask."""

from __future__ import annotations

import asyncio
import logging
import subprocess
from pathlib import Path

from swarmweave.errors import ExecutionFailure
from swarmweave.protocol.interfaces import IntegrationResult

log = logging.getLogger(__name__)


def run_git(repo_root: Path, *args: str, check: bool = True) -> subprocess.CompletedProcess[str]:
    """Run ``git *args`` in *repo_root*; raise ExecutionFailure on error when *check*."""
    try:
        return subprocess.run(
            ["git", *args],
            cwd=repo_root,
            check=check,
            capture_output=True,
            text=True,
        )
    except subprocess.CalledProcessError as exc:
        detail = (exc.stderr or exc.stdout or "").strip()
        raise ExecutionFailure(f"git {' '.join(args)} failed: {detail}") from exc


def is_git_repo(path: Path) -> bool:
    try:
        result = run_git(path, "rev-parse", "--is-inside-work-tree", check=False)
    except (FileNotFoundError, NotADirectoryError):
        return False
    return result.returncode == 0 and result.stdout.strip() == "true"


def _delete_branch(repo_root: Path, branch_name: str) -> None:
    """Force-delete a branch that may be left over from a previous run."""
    result = run_git(repo_root, "branch", "-D", branch_name, check=False)
    if result.returncode == 0:
        log.debug("Deleted stale branch %s", branch_name)


def _branch_exists(repo_root: Path, branch_name: str) -> bool:
    result = run_git(repo_root, "rev-parse", "--quiet", "--verify", f"refs/heads/{branch_name}", check=False)
    return result.returncode == 0


def _merge_in_progress(repo_root: Path) -> bool:
    result = run_git(repo_root, "rev-parse", "--quiet", "--verify", "MERGE_HEAD", check=False)
    return result.returncode == 0


def _dirty_paths(repo_root: Path) -> list[str]:
    """Tracked paths with uncommitted changes. Untracked files are ignored."""
    result = run_git(repo_root, "status", "--porcelain", "--untracked-files=no")
    return [line[3:].strip() for line in result.stdout.splitlines() if line.strip()]


def _conflicted_paths(repo_root: Path) -> list[str]:
    result = run_git(repo_root, "diff", "--name-only", "--diff-filter=U", check=False)
    return [line.strip() for line in result.stdout.splitlines() if line.strip()]


class GitHistoryLines:
    """History lines as local branches of the repository at *repo_root*.

    Integration happens in the main checkout: the base branch is checked
    out and the line is merged with ``--no-ff`` so each subtask leaves one
    merge commit. Integration refuses to start on a checkout with
    uncommitted changes; rollback only undoes the merge in progress.
    """

    def __init__(self, repo_root: str | Path) -> None:
        self.repo_root = Path(repo_root).resolve()
        self._attempt_heads: dict[str, str] = {}

    async def fork(self, base: str, name: str) -> str:
        return await asyncio.to_thread(self._fork, base, name)

    async def integrate(self, base: str, line_id: str) -> IntegrationResult:
        return await asyncio.to_thread(self._integrate, base, line_id)

    async def discard_attempt(self, base: str) -> None:
        await asyncio.to_thread(self._discard_attempt, base)

    async def delete(self, line_id: str) -> None:
        await asyncio.to_thread(run_git, self.repo_root, "branch", "-D", line_id)
        log.info("Deleted branch %s", line_id)

    def current_branch(self) -> str:
        return run_git(self.repo_root, "rev-parse", "--abbrev-ref", "HEAD").stdout.strip()

    def head(self, ref: str = "HEAD") -> str:
        return run_git(self.repo_root, "rev-parse", ref).stdout.strip()

    # ------------------------------------------------------------------
    # Blocking implementations
    # ------------------------------------------------------------------

    def _fork(self, base: str, name: str) -> str:
        if _branch_exists(self.repo_root, name):
            merged = run_git(self.repo_root, "merge-base", "--is-ancestor", name, base, check=False)
            if merged.returncode != 0:
                raise ExecutionFailure(
                    f"Branch {name} already exists with commits not in {base}; "
                    "merge or delete it, or use another task id"
                )
            _delete_branch(self.repo_root, name)
        run_git(self.repo_root, "branch", name, base)
        log.info("Created branch %s from %s", name, base)
        return name

    def _integrate(self, base: str, line_id: str) -> IntegrationResult:
        self._attempt_heads.pop(base, None)
        dirty = _dirty_paths(self.repo_root)
        if dirty:
            raise ExecutionFailure(
                f"Cannot merge {line_id} into {base}: the checkout has uncommitted changes "
                f"({', '.join(dirty[:5])})"
            )
        run_git(self.repo_root, "checkout", base)
        self._attempt_heads[base] = self.head()
        result = run_git(
            self.repo_root,
            "merge",
            "--no-ff",
            "--no-edit",
            "-m",
            f"Merge {line_id} into {base}",
            line_id,
            check=False,
        )
        if result.returncode == 0:
            return IntegrationResult(success=True)

        paths = _conflicted_paths(self.repo_root)
        if not paths:
            detail = (result.stderr or result.stdout).strip()
            raise ExecutionFailure(f"git merge {line_id} failed: {detail}")
        return IntegrationResult(success=False, conflicted_paths=paths)

    def _discard_attempt(self, base: str) -> None:
        head = self._attempt_heads.pop(base, None) or "HEAD"
        if not _merge_in_progress(self.repo_root):
            log.info("No merge in progress on %s; nothing to roll back", base)
            return
        aborted = run_git(self.repo_root, "merge", "--abort", check=False)
        if aborted.returncode != 0:
            log.warning("git merge --abort failed on %s (%s); resetting to %s", base, aborted.stderr.strip(), head)
            run_git(self.repo_root, "reset", "--merge", head)
        log.info("Rolled back merge attempt on %s", base)
