"""Sandboxes as git worktrees, one per subtask, checked out on its history line."""

from __future__ import annotations

import asyncio
import logging
import shutil
from pathlib import Path

from swarmweave.protocol.interfaces import SandboxHandle, SandboxSpec
from swarmweave.workspace.git_lines import run_git

log = logging.getLogger(__name__)

COMMIT_IDENTITY = ("-c", "user.name=swarmweave", "-c", "user.email=swarmweave@localhost")


def _prune_worktrees(repo_root: Path) -> None:
    result = run_git(repo_root, "worktree", "prune", check=False)
    if result.returncode != 0:
        log.warning("git worktree prune failed: %s", result.stderr.strip())


class WorktreeSandboxProvider:
    """Creates ``<worktrees_dir>/<name>`` worktrees and commits their changes."""

    def __init__(self, repo_root: str | Path, worktrees_dir: str | Path = ".swarmweave/worktrees") -> None:
        self.repo_root = Path(repo_root).resolve()
        root = Path(worktrees_dir)
        self.worktrees_root = root if root.is_absolute() else self.repo_root / root

    async def create(self, spec: SandboxSpec) -> SandboxHandle:
        path = await asyncio.to_thread(self._create, spec)
        return SandboxHandle(
            sandbox_id=spec.name,
            history_line_id=spec.history_line_id,
            path=str(path),
            metadata={"role": spec.role},
        )

    async def finalize(self, handle: SandboxHandle, message: str) -> None:
        await asyncio.to_thread(self._commit_all, Path(handle.path), message)

    async def destroy(self, handle: SandboxHandle) -> None:
        if handle.destroyed:
            return
        await asyncio.to_thread(self._remove, Path(handle.path))
        handle.destroyed = True

    def _create(self, spec: SandboxSpec) -> Path:
        path = self.worktrees_root / spec.name
        _prune_worktrees(self.repo_root)
        if path.exists():
            log.warning("Removing leftover worktree at %s", path)
            self._remove(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        run_git(self.repo_root, "worktree", "add", str(path), spec.history_line_id)
        log.info("Created worktree %s on %s", path, spec.history_line_id)
        return path

    def _commit_all(self, path: Path, message: str) -> None:
        run_git(path, "add", "-A")
        staged = run_git(path, "diff", "--cached", "--quiet", check=False)
        if staged.returncode == 0:
            log.info("No changes to commit in %s", path)
            return
        identity: tuple[str, ...] = ()
        if run_git(path, "config", "user.email", check=False).returncode != 0:
            identity = COMMIT_IDENTITY
        run_git(path, *identity, "commit", "-m", message)
        log.info("Committed sandbox changes in %s", path)

    def _remove(self, path: Path) -> None:
        result = run_git(self.repo_root, "worktree", "remove", "--force", str(path), check=False)
        if result.returncode != 0:
            log.warning("git worktree remove %s failed: %s", path.name, result.stderr.strip())
            if path.exists():
                shutil.rmtree(path)
        _prune_worktrees(self.repo_root)
