"""Agent status shown in the tmux window list.

The status lives in tmux, not in this process: the window option
`@agentmux_status` holds the icon that the window status format renders,
and the agent pane mirrors the status name and the time it was set.
`waiting` and `done` clear themselves when the window gains focus, unless
the status changed again in the meantime.

Nothing here raises. The command runs from agent hook scripts, where a
failure must not break the agent.
"""

import time

import tmux_utils
from config import Config, RuntimeContext, StatusIcons, load_config
from error_handler import AgentmuxError
from logging_config import get_logger
from models import StatusCommand
from tmux_utils import PANE_STATUS_OPTION, PANE_STATUS_TS_OPTION, STATUS_OPTION

logger = get_logger(__name__)

FOCUS_HOOK = "pane-focus-in"
AUTO_CLEAR = (StatusCommand.WAITING, StatusCommand.DONE)


def icon_for(command: StatusCommand, icons: StatusIcons) -> str | None:
    if command is StatusCommand.WORKING:
        return icons.working_icon()
    if command is StatusCommand.WAITING:
        return icons.waiting_icon()
    if command is StatusCommand.DONE:
        return icons.done_icon()
    return None


def focus_clear_hook(icon: str, pane: str) -> str:
    """tmux command that clears the status only if it still shows icon."""
    clear = (
        f"set-option -uw -t {pane} {STATUS_OPTION} ; "
        f"set-option -up -t {pane} {PANE_STATUS_OPTION} ; "
        f"set-option -up -t {pane} {PANE_STATUS_TS_OPTION}"
    )
    return f'if-shell -F "#{{==:#{{{STATUS_OPTION}}},{icon}}}" "{clear}"'


def set_status(pane: str, command: StatusCommand, icon: str, ctx: RuntimeContext | None = None) -> None:
    try:
        tmux_utils.set_option(STATUS_OPTION, icon, pane, window=True, ctx=ctx)
        tmux_utils.set_option(PANE_STATUS_OPTION, command.value, pane, window=False, ctx=ctx)
        tmux_utils.set_option(PANE_STATUS_TS_OPTION, str(int(time.time())), pane, window=False, ctx=ctx)
    except AgentmuxError as e:
        logger.warning(f"failed to set window status: {e}")
        return

    if command in AUTO_CLEAR:
        try:
            tmux_utils.set_hook(FOCUS_HOOK, focus_clear_hook(icon, pane), pane, ctx=ctx)
        except AgentmuxError as e:
            logger.warning(f"failed to set auto-clear hook: {e}")


def clear_status(pane: str, ctx: RuntimeContext | None = None) -> None:
    for key, window in ((STATUS_OPTION, True), (PANE_STATUS_OPTION, False), (PANE_STATUS_TS_OPTION, False)):
        try:
            tmux_utils.unset_option(key, pane, window=window, ctx=ctx)
        except AgentmuxError as e:
            logger.warning(f"failed to clear window status: {e}")


def set_window_status(command: StatusCommand, ctx: RuntimeContext | None = None) -> None:
    """Apply a status to the window of $TMUX_PANE; a no-op outside tmux."""
    ctx = ctx or RuntimeContext.from_environ()
    pane = ctx.getenv("TMUX_PANE")
    if not pane:
        return

    if command is StatusCommand.CLEAR:
        clear_status(pane, ctx)
        return

    try:
        config = load_config(ctx=ctx)
    except AgentmuxError as e:
        logger.warning(f"failed to load config, using defaults: {e}")
        config = Config()

    if config.status_format_enabled():
        try:
            tmux_utils.ensure_status_format(pane, ctx)
        except AgentmuxError as e:
            logger.debug(f"failed to update window status format: {e}")

    set_status(pane, command, icon_for(command, config.status_icons), ctx)
