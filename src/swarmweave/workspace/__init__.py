"""Git-backed history lines and worktree sandboxes."""

from swarmweave.workspace.git_lines import GitHistoryLines, is_git_repo, run_git
from swarmweave.workspace.sandbox import WorktreeSandboxProvider

__all__ = ["GitHistoryLines", "WorktreeSandboxProvider", "is_git_repo", "run_git"]
