"""Tests for error reporting."""

from pathlib import Path

from error_handler import (
    AmbiguityError,
    ConfigError,
    ErrorCategory,
    ErrorSeverity,
    FetchError,
    GitCommandError,
    LocationMismatchError,
    get_error_handler,
    handle_configuration_error,
    handle_error,
    handle_git_error,
)


class TestHandleError:
    """Test cases for handle_error."""

    def test_agentmux_error_message_is_kept(self):
        info = handle_error(FetchError("Failed to fetch from remote 'origin'."))
        assert info.category is ErrorCategory.NETWORK
        assert info.user_message == "Failed to fetch from remote 'origin'."
        assert info.traceback_str is None

    def test_unexpected_error_gets_traceback(self):
        try:
            raise ValueError("boom")
        except ValueError as e:
            info = handle_error(e)
        assert info.category is ErrorCategory.UNKNOWN
        assert info.user_message == "An unexpected error occurred: boom"
        assert "ValueError: boom" in info.traceback_str

    def test_explicit_user_message(self):
        info = handle_error(RuntimeError("x"), user_message="Try again", severity=ErrorSeverity.WARNING)
        assert info.user_message == "Try again"
        assert info.severity is ErrorSeverity.WARNING

    def test_location_mismatch_is_ambiguity(self):
        error = LocationMismatchError("outside", candidates=["%1"])
        assert isinstance(error, AmbiguityError)
        assert handle_error(error).category is ErrorCategory.AMBIGUITY
        assert error.candidates == ["%1"]

    def test_global_handler(self):
        assert get_error_handler() is get_error_handler()


class TestSpecializedHandlers:
    def test_git_error_messages(self):
        info = handle_git_error(GitCommandError("fatal: not a git repository"), "list")
        assert info.user_message == "The current directory is not inside a Git repository."

        info = handle_git_error(GitCommandError("Could not resolve host: github.com"), "fetch", Path("/r"))
        assert "Network error during Git operation 'fetch'" in info.user_message
        assert info.context == {"operation": "fetch", "repo_path": "/r"}

    def test_configuration_error_uses_path(self):
        path = Path("/home/me/.config/agentmux/config.yaml")
        info = handle_configuration_error(ConfigError("bad", path))
        assert info.context == {"config_path": str(path)}
        assert info.user_message == "bad"
