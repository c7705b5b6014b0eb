"""Error types and centralized error reporting for agentmux."""

import traceback
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Optional, Dict, Any, List

from logging_config import get_logger

logger = get_logger(__name__)


class ErrorSeverity(Enum):
    """Error severity levels for user feedback."""
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class ErrorCategory(Enum):
    """Categories of errors for better organization."""
    CONFIGURATION = "configuration"
    AMBIGUITY = "ambiguity"
    NOT_FOUND = "not_found"
    ENVIRONMENT = "environment"
    NETWORK = "network"
    GIT_OPERATION = "git_operation"
    TMUX_OPERATION = "tmux_operation"
    PROVIDER = "provider"
    USAGE = "usage"
    UNKNOWN = "unknown"


class AgentmuxError(Exception):
    """Base class for every error agentmux reports to the user."""

    category = ErrorCategory.UNKNOWN


class ConfigError(AgentmuxError):
    """Malformed config file or invalid config value."""

    category = ErrorCategory.CONFIGURATION

    def __init__(self, message: str, path: Optional[Path] = None):
        super().__init__(message)
        self.path = path


class AmbiguityError(AgentmuxError):
    """More than one candidate matched; carries all of them."""

    category = ErrorCategory.AMBIGUITY

    def __init__(self, message: str, candidates: Optional[List[Any]] = None):
        super().__init__(message)
        self.candidates = list(candidates or [])


class LocationMismatchError(AmbiguityError):
    """The only agent pane for a handle runs outside the handle's worktree."""


class NotFoundError(AgentmuxError):
    """Nothing matched the requested handle, pane or repository."""

    category = ErrorCategory.NOT_FOUND


class EnvironmentLookupError(AgentmuxError):
    """Unset environment variable, missing home directory or bad glob."""

    category = ErrorCategory.ENVIRONMENT


class FetchError(AgentmuxError):
    """A git fetch failed (network, auth)."""

    category = ErrorCategory.NETWORK


class GitCommandError(AgentmuxError):
    """A git invocation failed."""

    category = ErrorCategory.GIT_OPERATION


class TmuxError(AgentmuxError):
    """A tmux invocation failed."""

    category = ErrorCategory.TMUX_OPERATION


class ProviderError(AgentmuxError):
    """The GitHub CLI is missing or returned unusable output."""

    category = ErrorCategory.PROVIDER


class UsageError(AgentmuxError):
    """Arguments that contradict each other or are malformed."""

    category = ErrorCategory.USAGE


@dataclass
class ErrorInfo:
    """Structured error information."""
    category: ErrorCategory
    severity: ErrorSeverity
    message: str
    user_message: str
    context: Dict[str, Any] = field(default_factory=dict)
    exception: Optional[BaseException] = None
    traceback_str: Optional[str] = None


class ErrorHandler:
    """Turns exceptions into log records and user-facing messages."""

    def handle_error(
        self,
        exception: BaseException,
        category: Optional[ErrorCategory] = None,
        severity: ErrorSeverity = ErrorSeverity.ERROR,
        user_message: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None
    ) -> ErrorInfo:
        """Handle an error with logging and a user message."""
        if category is None:
            category = getattr(exception, "category", ErrorCategory.UNKNOWN)

        # Expected errors are reported without a traceback
        traceback_str = None
        if not isinstance(exception, AgentmuxError):
            traceback_str = "".join(
                traceback.format_exception(type(exception), exception, exception.__traceback__)
            )

        error_info = ErrorInfo(
            category=category,
            severity=severity,
            message=str(exception),
            user_message=user_message or self._generate_user_message(exception, category),
            context=context or {},
            exception=exception,
            traceback_str=traceback_str
        )

        self._log_error(error_info)
        return error_info

    def handle_git_error(
        self,
        exception: BaseException,
        operation: str,
        repo_path: Optional[Path] = None,
        severity: ErrorSeverity = ErrorSeverity.ERROR
    ) -> ErrorInfo:
        """Handle Git-specific errors with contextual information."""
        context = {
            "operation": operation,
            "repo_path": str(repo_path) if repo_path else None
        }

        return self.handle_error(
            exception=exception,
            category=ErrorCategory.GIT_OPERATION,
            severity=severity,
            user_message=self._generate_git_user_message(exception, operation),
            context=context
        )

    def handle_configuration_error(
        self,
        exception: BaseException,
        config_path: Optional[Path] = None,
        severity: ErrorSeverity = ErrorSeverity.ERROR
    ) -> ErrorInfo:
        """Handle configuration-related errors."""
        if config_path is None:
            config_path = getattr(exception, "path", None)
        context = {"config_path": str(config_path) if config_path else None}

        return self.handle_error(
            exception=exception,
            category=ErrorCategory.CONFIGURATION,
            severity=severity,
            context=context
        )

    def _log_error(self, error_info: ErrorInfo):
        """Log error information based on severity."""
        log_message = f"[{error_info.category.value}] {error_info.message}"

        if any(v is not None for v in error_info.context.values()):
            log_message += f" | Context: {error_info.context}"

        if error_info.severity == ErrorSeverity.CRITICAL:
            logger.critical(log_message)
        elif error_info.severity == ErrorSeverity.ERROR:
            logger.debug(log_message)
        elif error_info.severity == ErrorSeverity.WARNING:
            logger.warning(log_message)
        else:
            logger.info(log_message)

        if error_info.traceback_str:
            logger.debug(error_info.traceback_str)

    def _generate_user_message(self, exception: BaseException, category: ErrorCategory) -> str:
        """Generate user-friendly error message."""
        if isinstance(exception, AgentmuxError):
            return str(exception)

        if category == ErrorCategory.CONFIGURATION:
            return f"Configuration error: {exception}"
        elif category == ErrorCategory.GIT_OPERATION:
            return f"Git operation failed: {exception}"
        elif category == ErrorCategory.TMUX_OPERATION:
            return f"tmux operation failed: {exception}"
        elif category == ErrorCategory.NETWORK:
            return f"Network error: {exception}"
        else:
            return f"An unexpected error occurred: {exception}"

    def _generate_git_user_message(self, exception: BaseException, operation: str) -> str:
        """Generate user-friendly Git error message."""
        error_msg = str(exception).lower()

        if "not a git repository" in error_msg:
            return "The current directory is not inside a Git repository."
        elif "permission denied" in error_msg:
            return f"Permission denied while performing Git operation '{operation}'. Check file permissions."
        elif "could not resolve host" in error_msg or "connection" in error_msg:
            return f"Network error during Git operation '{operation}'. Check your internet connection."
        else:
            return f"Git operation '{operation}' failed: {exception}"


# Global error handler instance
_error_handler = ErrorHandler()


def get_error_handler() -> ErrorHandler:
    """Get the global error handler instance."""
    return _error_handler


def handle_error(
    exception: BaseException,
    category: Optional[ErrorCategory] = None,
    severity: ErrorSeverity = ErrorSeverity.ERROR,
    user_message: Optional[str] = None,
    context: Optional[Dict[str, Any]] = None
) -> ErrorInfo:
    """Convenience function to handle errors using the global handler."""
    return _error_handler.handle_error(exception, category, severity, user_message, context)


def handle_git_error(
    exception: BaseException,
    operation: str,
    repo_path: Optional[Path] = None,
    severity: ErrorSeverity = ErrorSeverity.ERROR
) -> ErrorInfo:
    """Convenience function to handle Git errors."""
    return _error_handler.handle_git_error(exception, operation, repo_path, severity)


def handle_configuration_error(
    exception: BaseException,
    config_path: Optional[Path] = None,
    severity: ErrorSeverity = ErrorSeverity.ERROR
) -> ErrorInfo:
    """Convenience function to handle configuration errors."""
    return _error_handler.handle_configuration_error(exception, config_path, severity)
