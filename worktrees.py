"""Worktree listing with tmux, merge and pull request state."""

from dataclasses import dataclass
from pathlib import Path
from typing import Iterable

import git_utils
import github_utils
import tmux_utils
from config import Config, RuntimeContext
from error_handler import GitCommandError, NotFoundError, TmuxError
from logging_config import get_logger
from models import PrSummary, WorktreeInfo

logger = get_logger(__name__)


@dataclass
class ListRow:
    """One rendered line of `agentmux list`."""

    repo: str
    handle: str
    branch: str
    state: str
    pr: str
    tmux: str
    path: str


def live_window_names(ctx: RuntimeContext | None = None) -> set[str]:
    """Names of all tmux windows; empty when tmux is not running."""
    if not tmux_utils.is_running(ctx):
        return set()
    try:
        return tmux_utils.get_all_window_names(ctx)
    except TmuxError as e:
        logger.warning(f"Failed to list tmux windows: {e}")
        return set()


def _unmerged_branches(repo_root: Path, main_branch: str | None) -> set[str]:
    if main_branch is None:
        return set()
    try:
        base = git_utils.get_merge_base(main_branch, repo_root)
        return git_utils.get_unmerged_branches(base, repo_root)
    except GitCommandError as e:
        logger.debug(f"Unmerged branch check failed in {repo_root}: {e}")
        return set()


def list_in_repo(repo_root: Path, config: Config, fetch_pr_status: bool = False,
                 window_names: set[str] | None = None,
                 ctx: RuntimeContext | None = None) -> list[WorktreeInfo]:
    """Worktrees of one repository."""
    if not git_utils.is_git_repo(repo_root):
        raise NotFoundError(f"Not in a git repository: {repo_root}")

    worktrees_data = git_utils.list_worktrees(repo_root)
    if not worktrees_data:
        return []

    # one tmux query for all worktrees
    if window_names is None:
        window_names = live_window_names(ctx)

    main_branch = config.main_branch
    if main_branch is None:
        try:
            main_branch = git_utils.get_default_branch(repo_root)
        except GitCommandError as e:
            logger.debug(str(e))
    unmerged = _unmerged_branches(repo_root, main_branch)

    pr_map = github_utils.list_prs(repo_root) if fetch_pr_status else {}

    prefix = config.window_prefix_or_default()
    worktrees = []
    for path, branch in worktrees_data:
        handle = path.name or branch
        prefixed_name = tmux_utils.prefixed(prefix, handle)
        has_tmux = any(
            tmux_utils.window_matches_handle(name, handle, prefixed_name) for name in window_names
        )
        has_unmerged = (
            main_branch is not None
            and branch not in (main_branch, git_utils.DETACHED)
            and branch in unmerged
        )
        worktrees.append(WorktreeInfo(
            branch=branch,
            handle=handle,
            path=path,
            has_tmux=has_tmux,
            has_unmerged=has_unmerged,
            pr_info=pr_map.get(branch),
        ))
    return worktrees


def format_pr_status(pr: PrSummary | None) -> str:
    if pr is None:
        return "-"
    if pr.state == "OPEN":
        label = "draft" if pr.is_draft else "open"
    elif pr.state == "MERGED":
        label = "merged"
    elif pr.state == "CLOSED":
        label = "closed"
    else:
        label = "unknown"
    return f"#{pr.number} {label}"


def format_path(path: Path, home: Path | None) -> str:
    """Show paths under the home directory with `~`."""
    if home is not None:
        if path == home:
            return "~"
        try:
            return f"~/{path.relative_to(home)}"
        except ValueError:
            pass
    return str(path)


def build_rows(repo: str, worktrees: Iterable[WorktreeInfo], show_all: bool = False,
               home: Path | None = None) -> list[ListRow]:
    """Table rows; worktrees without a tmux window only with show_all."""
    rows = []
    for wt in worktrees:
        if not wt.has_tmux and not show_all:
            continue
        rows.append(ListRow(
            repo=repo,
            handle=wt.handle,
            branch=wt.branch,
            state="active" if wt.has_tmux else "inactive",
            pr=format_pr_status(wt.pr_info),
            tmux="1" if wt.has_tmux else "0",
            path=format_path(wt.path, home),
        ))
    return rows
