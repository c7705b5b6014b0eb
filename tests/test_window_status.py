"""Tests for the set-window-status command."""

from unittest.mock import call, patch

from config import StatusIcons
from error_handler import ConfigError, TmuxError
from models import StatusCommand
from tmux_utils import PANE_STATUS_OPTION, PANE_STATUS_TS_OPTION, STATUS_OPTION
from window_status import (
    FOCUS_HOOK,
    clear_status,
    focus_clear_hook,
    icon_for,
    set_status,
    set_window_status,
)


class TestIcons:
    def test_defaults(self):
        icons = StatusIcons()
        assert icon_for(StatusCommand.WORKING, icons) == "🤖"
        assert icon_for(StatusCommand.WAITING, icons) == "💬"
        assert icon_for(StatusCommand.DONE, icons) == "✅"
        assert icon_for(StatusCommand.CLEAR, icons) is None

    def test_configured(self):
        assert icon_for(StatusCommand.DONE, StatusIcons(done="OK")) == "OK"


class TestFocusClearHook:
    def test_guarded_by_current_icon(self):
        hook = focus_clear_hook("✅", "%3")
        assert hook.startswith('if-shell -F "#{==:#{@agentmux_status},✅}"')
        assert "set-option -uw -t %3 @agentmux_status" in hook
        assert "set-option -up -t %3 @agentmux_pane_status ;" in hook
        assert "set-option -up -t %3 @agentmux_pane_status_ts" in hook


class TestSetStatus:
    """Tests for set_status and clear_status."""

    def test_working_sets_options_without_hook(self):
        with patch("tmux_utils.set_option") as set_option, \
             patch("tmux_utils.set_hook") as set_hook, \
             patch("time.time", return_value=1700000000.5):
            set_status("%3", StatusCommand.WORKING, "🤖")

        assert set_option.call_args_list == [
            call(STATUS_OPTION, "🤖", "%3", window=True, ctx=None),
            call(PANE_STATUS_OPTION, "working", "%3", window=False, ctx=None),
            call(PANE_STATUS_TS_OPTION, "1700000000", "%3", window=False, ctx=None),
        ]
        set_hook.assert_not_called()

    def test_done_registers_focus_hook(self):
        with patch("tmux_utils.set_option"), patch("tmux_utils.set_hook") as set_hook:
            set_status("%3", StatusCommand.DONE, "✅")
        set_hook.assert_called_once_with(FOCUS_HOOK, focus_clear_hook("✅", "%3"), "%3", ctx=None)

    def test_waiting_registers_focus_hook(self):
        with patch("tmux_utils.set_option"), patch("tmux_utils.set_hook") as set_hook:
            set_status("%3", StatusCommand.WAITING, "💬")
        set_hook.assert_called_once()

    def test_tmux_failure_is_logged(self, caplog):
        with patch("tmux_utils.set_option", side_effect=TmuxError("no server")), \
             patch("tmux_utils.set_hook") as set_hook:
            set_status("%3", StatusCommand.DONE, "✅")
        set_hook.assert_not_called()
        assert "failed to set window status: no server" in caplog.text

    def test_clear_unsets_everything(self):
        with patch("tmux_utils.unset_option") as unset:
            clear_status("%3")
        assert unset.call_args_list == [
            call(STATUS_OPTION, "%3", window=True, ctx=None),
            call(PANE_STATUS_OPTION, "%3", window=False, ctx=None),
            call(PANE_STATUS_TS_OPTION, "%3", window=False, ctx=None),
        ]

    def test_clear_keeps_going_after_failure(self):
        with patch("tmux_utils.unset_option", side_effect=TmuxError("gone")) as unset:
            clear_status("%3")
        assert unset.call_count == 3


class TestSetWindowStatus:
    """Tests for set_window_status."""

    def test_noop_outside_tmux(self, make_ctx):
        with patch("window_status.load_config") as load, patch("tmux_utils.set_option") as set_option:
            set_window_status(StatusCommand.DONE, make_ctx())
        load.assert_not_called()
        set_option.assert_not_called()

    def test_clear(self, make_ctx):
        with patch("window_status.clear_status") as clear, patch("window_status.load_config") as load:
            set_window_status(StatusCommand.CLEAR, make_ctx(TMUX_PANE="%3"))
        clear.assert_called_once()
        assert clear.call_args[0][0] == "%3"
        load.assert_not_called()

    def test_uses_configured_icons(self, temp_git_repo, make_ctx):
        (temp_git_repo / ".agentmux.yaml").write_text("status_icons:\n  working: W\n")
        ctx = make_ctx(cwd=temp_git_repo, TMUX_PANE="%3")
        with patch("tmux_utils.ensure_status_format") as ensure, \
             patch("window_status.set_status") as set_status_mock:
            set_window_status(StatusCommand.WORKING, ctx)
        ensure.assert_called_once_with("%3", ctx)
        set_status_mock.assert_called_once_with("%3", StatusCommand.WORKING, "W", ctx)

    def test_status_format_disabled(self, temp_git_repo, make_ctx):
        (temp_git_repo / ".agentmux.yaml").write_text("status_format: false\n")
        ctx = make_ctx(cwd=temp_git_repo, TMUX_PANE="%3")
        with patch("tmux_utils.ensure_status_format") as ensure, patch("window_status.set_status"):
            set_window_status(StatusCommand.DONE, ctx)
        ensure.assert_not_called()

    def test_bad_config_falls_back_to_defaults(self, make_ctx, caplog):
        ctx = make_ctx(TMUX_PANE="%3")
        with patch("window_status.load_config", side_effect=ConfigError("broken")), \
             patch("tmux_utils.ensure_status_format"), \
             patch("window_status.set_status") as set_status_mock:
            set_window_status(StatusCommand.DONE, ctx)
        set_status_mock.assert_called_once_with("%3", StatusCommand.DONE, "✅", ctx)
        assert "using defaults" in caplog.text

    def test_status_format_failure_is_ignored(self, make_ctx):
        ctx = make_ctx(TMUX_PANE="%3")
        with patch("window_status.load_config") as load, \
             patch("tmux_utils.ensure_status_format", side_effect=TmuxError("nope")), \
             patch("window_status.set_status") as set_status_mock:
            load.return_value.status_format_enabled.return_value = True
            load.return_value.status_icons = StatusIcons()
            set_window_status(StatusCommand.WORKING, ctx)
        set_status_mock.assert_called_once()
