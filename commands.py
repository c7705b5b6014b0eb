"""Command implementations behind the agentmux CLI."""

from pathlib import Path
from typing import IO, Optional

import config as config_module
import ref_resolver
import tmux_utils
import worktrees
from config import RuntimeContext
from error_handler import AgentmuxError, NotFoundError, UsageError
from logging_config import get_logger
from models import AgentPaneTarget, PrCheckoutResult, ReferenceResolution, RepoSet
from repo_paths import repo_label, resolve_repo_roots
from target_resolver import resolve_agent_pane, resolve_handle, resolve_window, resolve_worktree_target
from worktrees import ListRow

logger = get_logger(__name__)

CLOSE_DELAY_MS = 100


# send

def read_message(message: Optional[str], stdin: IO[str]) -> str:
    """The message argument, or everything on stdin when it is omitted."""
    if message is None:
        try:
            message = stdin.read()
        except OSError as e:
            raise UsageError(f"Failed to read stdin: {e}") from e
    if not message.strip():
        raise UsageError("Message is empty")
    return message


def deliver_message(target: AgentPaneTarget, message: str, as_command: bool,
                    ctx: Optional[RuntimeContext] = None) -> None:
    """Type a message into the target pane."""
    if as_command:
        trimmed = message.rstrip("\r\n")
        if "\n" in trimmed:
            raise UsageError(
                "--command only supports single-line input; remove newlines or use without --command"
            )
        tmux_utils.send_keys_to_agent(target.pane_id, trimmed, target.agent_command, ctx)
    elif "\n" in message:
        tmux_utils.paste_multiline(target.pane_id, message, ctx)
    else:
        tmux_utils.send_keys(target.pane_id, message, ctx)


def send(handle: Optional[str], message: str, pane_id: Optional[str] = None,
         repo_filter: Optional[str] = None, as_command: bool = False,
         ctx: Optional[RuntimeContext] = None) -> AgentPaneTarget:
    ctx = ctx or RuntimeContext.from_environ()
    handle = resolve_handle(handle, ctx)
    target = resolve_agent_pane(handle, pane_id, repo_filter, ctx)
    deliver_message(target, message, as_command, ctx)
    logger.info(f"Sent message to pane {target.pane_id} ({target.window_name})")
    return target


# capture

def trim_output_lines(output: str, lines: int) -> str:
    """Keep the last lines of output, each with its own line ending."""
    if lines <= 0:
        return ""
    parts = output.split("\n")
    segments = [part + "\n" for part in parts[:-1]]
    if parts[-1]:
        segments.append(parts[-1])
    if len(segments) <= lines:
        return output
    return "".join(segments[-lines:])


def capture(handle: Optional[str], pane_id: Optional[str] = None, repo_filter: Optional[str] = None,
            lines: int = 200, ansi: bool = False, ctx: Optional[RuntimeContext] = None) -> str:
    ctx = ctx or RuntimeContext.from_environ()
    handle = resolve_handle(handle, ctx)
    target = resolve_agent_pane(handle, pane_id, repo_filter, ctx)
    output = tmux_utils.capture_pane(target.pane_id, lines, ansi=ansi, ctx=ctx)
    if output is None:
        raise AgentmuxError(f"Failed to capture pane {target.pane_id}")
    return trim_output_lines(output, lines)


# close

def close(name: Optional[str], repo_filter: Optional[str] = None,
          ctx: Optional[RuntimeContext] = None) -> Optional[str]:
    """Close a worktree's tmux window, keeping the worktree.

    Returns the message to print, or None when the current window is closing.
    """
    ctx = ctx or RuntimeContext.from_environ()
    config = config_module.load_config(ctx=ctx)
    current = tmux_utils.current_window_name(ctx)

    if name:
        target = resolve_worktree_target(name, repo_filter, config, ctx)
        window = resolve_window(name, tmux_utils.prefixed(target.window_prefix, name), ctx)
        window_name = window.name
        window_target = window.window_id or window.name
        is_current = current == window_name
    else:
        prefix = config.window_prefix_or_default()
        if current is not None and current.startswith(prefix):
            window_name, is_current = current, True
        else:
            window_name = tmux_utils.prefixed(prefix, resolve_handle(None, ctx))
            is_current = False

        windows = [w for w in tmux_utils.list_windows(ctx) if w.name == window_name]
        if not windows:
            raise NotFoundError(
                f"No active tmux window found for '{window_name}'. "
                f"The worktree exists but has no open window."
            )
        window_target = windows[0].window_id or window_name
        if is_current and ctx.getenv("TMUX_PANE"):
            window_target = ctx.getenv("TMUX_PANE")

    if is_current:
        # let this process exit before its own window goes away
        tmux_utils.schedule_window_close(window_target, CLOSE_DELAY_MS, ctx)
        return None

    tmux_utils.kill_window(window_target, ctx)
    return f"✓ Closed window '{window_name}' (worktree kept)"


# list

def list_rows(show_all: bool = False, fetch_pr_status: bool = False,
              ctx: Optional[RuntimeContext] = None) -> tuple[RepoSet, list[ListRow]]:
    """Rows for every worktree across the repository set."""
    ctx = ctx or RuntimeContext.from_environ()
    config = config_module.load_config(ctx=ctx)
    repo_set = resolve_repo_roots(config, None, ctx)
    window_names = worktrees.live_window_names(ctx)

    rows = []
    for repo_root in repo_set.roots:
        try:
            repo_config = (
                config_module.load_config_for_repo(repo_root, ctx=ctx) if repo_set.multi_repo else config
            )
            infos = worktrees.list_in_repo(repo_root, repo_config, fetch_pr_status, window_names, ctx)
        except AgentmuxError as e:
            if not repo_set.multi_repo:
                raise
            logger.warning(f"Skipping {repo_root}: {e}")
            continue
        rows.extend(worktrees.build_rows(repo_label(repo_root), infos, show_all, ctx.home))
    return repo_set, rows


# resolve-ref

def resolve_ref(branch: str, base: Optional[str] = None,
                ctx: Optional[RuntimeContext] = None) -> ReferenceResolution:
    ctx = ctx or RuntimeContext.from_environ()
    return ref_resolver.detect_remote_branch(branch, base, ref_resolver.GitRemoteContext(ctx.cwd))


def resolve_pr(pr_number: int, branch_name: Optional[str] = None,
               ctx: Optional[RuntimeContext] = None) -> PrCheckoutResult:
    ctx = ctx or RuntimeContext.from_environ()
    return ref_resolver.resolve_pr_ref(pr_number, branch_name, ctx.cwd)


# init

def init(ctx: Optional[RuntimeContext] = None) -> Path:
    ctx = ctx or RuntimeContext.from_environ()
    return config_module.init_project_config(ctx.cwd)
