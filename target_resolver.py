"""Resolution of a worktree handle to one tmux pane or window.

Handles are short and may collide: the same name can exist in several
repositories, tmux renames duplicate windows to `name-2`, and a window
usually holds a shell pane next to the agent pane. Every live pane whose
window matches the handle becomes a candidate; candidates are then narrowed
until exactly one remains, or the caller gets an error listing all of them.
"""

from pathlib import Path

import config as config_module
import git_utils
import tmux_utils
from config import Config, RuntimeContext
from error_handler import AmbiguityError, GitCommandError, LocationMismatchError, NotFoundError
from logging_config import get_logger
from models import AgentPaneTarget, AgentRole, Candidate, CloseTarget, TmuxPane
from repo_paths import repo_label, resolve_repo_roots
from tmux_utils import TmuxWindow

logger = get_logger(__name__)


def resolve_handle(handle: str | None, ctx: RuntimeContext) -> str:
    """The given handle, or the directory name of the current worktree."""
    if handle:
        return handle
    return git_utils.ensure_repo_root(ctx.cwd).name


def find_worktree_path(repo_root: Path, handle: str) -> Path | None:
    """Path of the worktree in repo_root whose directory name is handle."""
    try:
        worktrees = git_utils.list_worktrees(repo_root)
    except GitCommandError as e:
        logger.warning(f"Failed to list worktrees in {repo_root}: {e}")
        return None
    for path, _branch in worktrees:
        if path.name == handle:
            return path
    return None


def path_is_under(path: Path, root: Path) -> bool:
    try:
        path = path.resolve()
        root = root.resolve()
    except OSError:
        pass
    return path == root or root in path.parents


def collect_candidates(handle: str, repo_roots: list[Path], panes: list[TmuxPane],
                       ctx: RuntimeContext) -> list[Candidate]:
    """Panes whose window matches handle in any repository, each pane once."""
    candidates = []
    seen = set()
    for repo_root in repo_roots:
        repo_config = config_module.load_config_for_repo(repo_root, ctx=ctx)
        prefixed_name = tmux_utils.prefixed(repo_config.window_prefix_or_default(), handle)
        matching = [
            pane for pane in panes
            if tmux_utils.window_matches_handle(pane.window_name, handle, prefixed_name)
        ]
        if not matching:
            continue

        expected_path = find_worktree_path(repo_root, handle)
        for pane in matching:
            if pane.pane_id in seen:
                continue
            seen.add(pane.pane_id)
            candidates.append(Candidate(
                pane_id=pane.pane_id,
                session=pane.session,
                window_name=pane.window_name,
                current_command=pane.current_command,
                current_path=pane.current_path,
                status=pane.status,
                role=pane.role,
                agent_command=repo_config.agent_or_default(),
                repo_root=repo_root,
                path_match=None if expected_path is None else path_is_under(pane.current_path, expected_path),
            ))
    return candidates


def is_agent_candidate(candidate: Candidate, ctx: RuntimeContext | None = None) -> bool:
    """Tagged as an agent pane, carrying a status, or running the agent command."""
    return (
        candidate.role is AgentRole.AGENT
        or candidate.status is not None
        or config_module.is_agent_command(candidate.current_command, candidate.agent_command, ctx)
    )


def _no_agent_pane(handle: str) -> NotFoundError:
    return NotFoundError(
        f"No agent panes found for handle '{handle}'. Use `agentmux list --all` to check handles."
    )


def _target(candidate: Candidate) -> AgentPaneTarget:
    return AgentPaneTarget(
        pane_id=candidate.pane_id,
        session=candidate.session,
        window_name=candidate.window_name,
        repo_root=candidate.repo_root,
        agent_command=candidate.agent_command,
    )


def select_agent_candidate(handle: str, candidates: list[Candidate], pane_id: str | None = None,
                           ctx: RuntimeContext | None = None) -> Candidate:
    """Narrow candidates down to the one agent pane for handle."""
    if not candidates:
        raise _no_agent_pane(handle)

    if pane_id is not None:
        for candidate in candidates:
            if candidate.pane_id == pane_id:
                return candidate
        raise NotFoundError(f"Pane id '{pane_id}' not found for handle '{handle}'")

    agents = [c for c in candidates if is_agent_candidate(c, ctx)]

    if any(c.path_match for c in agents):
        agents = [c for c in agents if c.path_match]
    elif len(agents) == 1 and agents[0].path_match is False:
        only = agents[0]
        raise LocationMismatchError(
            f"The only agent pane for handle '{handle}' is not inside its worktree. "
            f"Re-run with --pane-id {only.pane_id} to use it anyway.\n{only.describe()}",
            candidates=agents,
        )

    if not agents:
        raise _no_agent_pane(handle)

    if len(agents) > 1:
        lines = [f"Multiple agent panes found for handle '{handle}'. Re-run with --pane-id."]
        lines += [c.describe() for c in agents]
        raise AmbiguityError("\n".join(lines), candidates=agents)

    return agents[0]


def resolve_agent_pane(handle: str, pane_id: str | None = None, repo_filter: str | None = None,
                       ctx: RuntimeContext | None = None, config: Config | None = None) -> AgentPaneTarget:
    """Find the pane running the agent for a worktree handle."""
    ctx = ctx or RuntimeContext.from_environ()
    config = config or config_module.load_config(ctx=ctx)
    repo_set = resolve_repo_roots(config, repo_filter, ctx)

    panes = tmux_utils.list_panes(ctx)
    if not panes:
        raise NotFoundError("No tmux panes found. Is tmux running?")

    candidates = collect_candidates(handle, repo_set.roots, panes, ctx)
    logger.debug(f"{len(candidates)} candidate pane(s) for handle '{handle}'")
    return _target(select_agent_candidate(handle, candidates, pane_id, ctx))


def resolve_worktree_target(handle: str, repo_filter: str | None = None, config: Config | None = None,
                            ctx: RuntimeContext | None = None) -> CloseTarget:
    """Find the one repository that has a worktree named handle."""
    ctx = ctx or RuntimeContext.from_environ()
    config = config or config_module.load_config(ctx=ctx)
    repo_set = resolve_repo_roots(config, repo_filter, ctx)

    matches = []
    for repo_root in repo_set.roots:
        worktree_path = find_worktree_path(repo_root, handle)
        if worktree_path is None:
            continue
        repo_config = config_module.load_config_for_repo(repo_root, ctx=ctx)
        matches.append(CloseTarget(
            handle=handle,
            repo_root=repo_root,
            worktree_path=worktree_path,
            window_prefix=repo_config.window_prefix_or_default(),
        ))

    if not matches:
        raise NotFoundError(
            f"No worktree found with name '{handle}'. Use 'agentmux list' to see available worktrees."
        )
    if len(matches) > 1:
        lines = [f"Multiple worktrees named '{handle}'. Re-run with --repo."]
        lines += [f"  repo={repo_label(m.repo_root)} path={m.repo_root}" for m in matches]
        raise AmbiguityError("\n".join(lines), candidates=matches)
    return matches[0]


def resolve_window(handle: str, prefixed_name: str, ctx: RuntimeContext | None = None) -> TmuxWindow:
    """The single live window for handle."""
    matches = [
        window for window in tmux_utils.list_windows(ctx)
        if tmux_utils.window_matches_handle(window.name, handle, prefixed_name)
    ]
    if not matches:
        raise NotFoundError(
            f"No active tmux window found for '{handle}'. The worktree exists but has no open window."
        )
    if len(matches) > 1:
        lines = [f"Multiple tmux windows matched '{handle}'. Re-run with --repo or close manually."]
        lines += [f"  window={w.name} session={w.session}" for w in matches]
        raise AmbiguityError("\n".join(lines), candidates=matches)
    return matches[0]


def resolve_window_name(handle: str, prefixed_name: str, ctx: RuntimeContext | None = None) -> str:
    return resolve_window(handle, prefixed_name, ctx).name
