"""tmux operations for agentmux."""

import re
import subprocess
import time
from dataclasses import dataclass
from pathlib import Path
from typing import List

from error_handler import TmuxError
from logging_config import get_logger
from models import AgentRole, TmuxPane

logger = get_logger(__name__)

# tmux user options
STATUS_OPTION = "@agentmux_status"
PANE_STATUS_OPTION = "@agentmux_pane_status"
PANE_STATUS_TS_OPTION = "@agentmux_pane_status_ts"
PANE_ROLE_OPTION = "@agentmux_pane_role"

SOCKET_ENV = "AGENTMUX_TMUX_SOCKET"
PASTE_BUFFER = "agentmux-send"
STATUS_FORMAT_OPTIONS = ("window-status-format", "window-status-current-format")
STATUS_FORMAT_PREFIX = f"#{{?{STATUS_OPTION},#{{{STATUS_OPTION}}} ,}}"

PANE_FORMAT = "\t".join([
    "#{pane_id}",
    "#{session_name}",
    "#{window_name}",
    "#{pane_current_command}",
    "#{pane_current_path}",
    # pane scoped; the window option is inherited by every pane in the window
    f"#{{{PANE_STATUS_OPTION}}}",
    f"#{{{PANE_ROLE_OPTION}}}",
    "#{window_id}",
])
WINDOW_FORMAT = "\t".join(["#{window_id}", "#{session_name}", "#{window_name}"])

_DUPLICATE_SUFFIX_RE = re.compile(r"^(.+)-(\d+)$")
_NO_SERVER_MARKERS = ("no server running", "error connecting to", "no current client")


@dataclass
class TmuxWindow:
    window_id: str
    session: str
    name: str


def _tmux_command(args: List[str], ctx=None) -> list[str]:
    cmd = ["tmux"]
    socket = ctx.getenv(SOCKET_ENV) if ctx is not None else None
    if socket:
        cmd += ["-S", socket]
    return cmd + list(args)


def run_tmux(args: List[str], ctx=None, check: bool = True,
             input_text: str | None = None) -> subprocess.CompletedProcess[str]:
    """Run a tmux command with safe argument passing."""
    cmd = _tmux_command(args, ctx)
    logger.debug(f"Running: {' '.join(cmd)}")
    try:
        return subprocess.run(
            cmd,
            check=check,
            input=input_text,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
        )
    except FileNotFoundError:
        raise TmuxError("tmux not found on PATH.")
    except subprocess.CalledProcessError as e:
        raise TmuxError(e.stderr.strip() or str(e))


def _is_no_server(stderr: str) -> bool:
    text = stderr.lower()
    return any(marker in text for marker in _NO_SERVER_MARKERS)


def _query_lines(args: List[str], ctx=None) -> list[str]:
    """Run a listing command; no tmux server means no lines."""
    cp = run_tmux(args, ctx, check=False)
    if cp.returncode != 0:
        if _is_no_server(cp.stderr):
            return []
        raise TmuxError(cp.stderr.strip() or f"tmux {args[0]} failed")
    return [line for line in cp.stdout.splitlines() if line]


def is_running(ctx=None) -> bool:
    """True if a tmux server is reachable."""
    try:
        return run_tmux(["list-sessions"], ctx, check=False).returncode == 0
    except TmuxError:
        return False


def parse_pane_line(line: str) -> TmuxPane | None:
    """Parse one `list-panes` line produced with PANE_FORMAT."""
    fields = line.split("\t")
    if len(fields) < 7:
        logger.debug(f"Skipping malformed pane line: {line!r}")
        return None
    return TmuxPane(
        pane_id=fields[0],
        session=fields[1],
        window_name=fields[2],
        current_command=fields[3],
        current_path=Path(fields[4]),
        status=fields[5] or None,
        role=AgentRole.parse(fields[6]),
        window_id=fields[7] if len(fields) > 7 else "",
    )


def list_panes(ctx=None) -> list[TmuxPane]:
    """All panes across all sessions, in tmux order."""
    panes = []
    for line in _query_lines(["list-panes", "-a", "-F", PANE_FORMAT], ctx):
        pane = parse_pane_line(line)
        if pane is not None:
            panes.append(pane)
    return panes


def list_windows(ctx=None) -> list[TmuxWindow]:
    """All windows across all sessions, in tmux order."""
    windows = []
    for line in _query_lines(["list-windows", "-a", "-F", WINDOW_FORMAT], ctx):
        fields = line.split("\t")
        if len(fields) >= 3:
            windows.append(TmuxWindow(window_id=fields[0], session=fields[1], name=fields[2]))
    return windows


def get_all_window_names(ctx=None) -> set[str]:
    return {w.name for w in list_windows(ctx)}


def window_exists(name: str, ctx=None) -> bool:
    return name in get_all_window_names(ctx)


def current_window_name(ctx=None) -> str | None:
    """Name of the window this process runs in, None outside tmux."""
    if ctx is None or not ctx.getenv("TMUX"):
        return None
    args = ["display-message", "-p"]
    pane = ctx.getenv("TMUX_PANE")
    if pane:
        args += ["-t", pane]
    cp = run_tmux(args + ["#{window_name}"], ctx, check=False)
    if cp.returncode != 0:
        return None
    return cp.stdout.strip() or None


def prefixed(prefix: str, handle: str) -> str:
    return f"{prefix}{handle}"


def window_matches_handle(window_name: str, handle: str, prefixed_name: str) -> bool:
    """Match a window to a handle, ignoring the `-N` suffix tmux gives duplicates."""
    if window_name in (handle, prefixed_name):
        return True
    m = _DUPLICATE_SUFFIX_RE.match(window_name)
    return bool(m) and m.group(1) in (handle, prefixed_name)


def set_option(key: str, value: str, target: str, window: bool = True, ctx=None) -> None:
    """Set a tmux option on a window (or pane when window is False)."""
    scope = "-w" if window else "-p"
    run_tmux(["set-option", scope, "-t", target, key, value], ctx)


def unset_option(key: str, target: str, window: bool = True, ctx=None) -> None:
    scope = "-uw" if window else "-up"
    run_tmux(["set-option", scope, "-t", target, key], ctx)


def set_hook(hook: str, command: str, target: str, ctx=None) -> None:
    """Register a window hook."""
    run_tmux(["set-hook", "-w", "-t", target, hook, command], ctx)


def capture_pane(pane_id: str, lines: int, ansi: bool = False, ctx=None) -> str | None:
    """Capture the last lines of a pane; None when tmux fails."""
    args = ["capture-pane", "-p", "-t", pane_id, "-S", f"-{lines}"]
    if ansi:
        args.append("-e")
    try:
        cp = run_tmux(args, ctx, check=False)
    except TmuxError as e:
        logger.debug(f"capture-pane failed: {e}")
        return None
    if cp.returncode != 0:
        logger.debug(f"capture-pane failed: {cp.stderr.strip()}")
        return None
    return cp.stdout


def send_keys(pane_id: str, text: str, ctx=None) -> None:
    """Type a line into a pane and press Enter."""
    run_tmux(["send-keys", "-t", pane_id, "-l", text], ctx)
    run_tmux(["send-keys", "-t", pane_id, "Enter"], ctx)


def send_keys_to_agent(pane_id: str, text: str, agent: str | None = None, ctx=None) -> None:
    """Type a command into an agent pane.

    Agent TUIs open completion menus for slash commands, so Enter is sent
    after a short pause.
    """
    run_tmux(["send-keys", "-t", pane_id, "-l", text], ctx)
    if text.startswith("/"):
        time.sleep(0.1)
    run_tmux(["send-keys", "-t", pane_id, "Enter"], ctx)
    logger.debug(f"Sent command to {agent or 'agent'} pane {pane_id}")


def paste_multiline(pane_id: str, text: str, ctx=None) -> None:
    """Paste text into a pane as a single bracketed paste, then press Enter."""
    run_tmux(["load-buffer", "-b", PASTE_BUFFER, "-"], ctx, input_text=text)
    run_tmux(["paste-buffer", "-b", PASTE_BUFFER, "-d", "-p", "-t", pane_id], ctx)
    run_tmux(["send-keys", "-t", pane_id, "Enter"], ctx)


def kill_window(target: str, ctx=None) -> None:
    run_tmux(["kill-window", "-t", target], ctx)


def schedule_window_close(target: str, delay_ms: int = 100, ctx=None) -> None:
    """Kill a window after a delay, so the calling pane can exit first."""
    delay = f"{delay_ms / 1000:.3f}"
    kill = " ".join(_tmux_command(["kill-window", "-t", target], ctx))
    run_tmux(["run-shell", "-b", f"sleep {delay}; {kill} >/dev/null 2>&1"], ctx)


def ensure_status_format(pane_id: str, ctx=None) -> None:
    """Prefix the window status formats with the agent status icon, once."""
    for option in STATUS_FORMAT_OPTIONS:
        cp = run_tmux(["show-option", "-wqv", "-t", pane_id, option], ctx, check=False)
        current = cp.stdout.rstrip("\n") if cp.returncode == 0 else ""
        if not current:
            cp = run_tmux(["show-option", "-gwqv", option], ctx, check=False)
            current = cp.stdout.rstrip("\n") if cp.returncode == 0 else ""
        if STATUS_OPTION in current:
            continue
        run_tmux(["set-option", "-w", "-t", pane_id, option, STATUS_FORMAT_PREFIX + current], ctx)


def global_path(ctx=None) -> str | None:
    """PATH from tmux's global environment, None when unavailable."""
    try:
        cp = run_tmux(["show-environment", "-g", "PATH"], ctx, check=False)
    except TmuxError:
        return None
    if cp.returncode != 0:
        return None
    line = cp.stdout.strip()
    if not line.startswith("PATH="):
        return None
    return line[len("PATH="):]
