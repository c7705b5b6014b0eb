"""Logging configuration for agentmux."""

import json
import logging
import logging.handlers
import sys
from datetime import datetime
from pathlib import Path

CONSOLE_FORMAT = "agentmux: %(message)s"
FILE_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(module)s:%(funcName)s:%(lineno)d - %(message)s"


class JSONFormatter(logging.Formatter):
    """Custom JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_entry = {
            'timestamp': datetime.fromtimestamp(record.created).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
            'module': record.module,
            'function': record.funcName,
            'line': record.lineno,
        }

        if record.exc_info:
            log_entry['exception'] = self.formatException(record.exc_info)

        if hasattr(record, 'extra_data'):
            log_entry['extra'] = record.extra_data

        return json.dumps(log_entry, ensure_ascii=False)


class ContextFilter(logging.Filter):
    """Add the tmux pane the process runs in to each record."""

    def __init__(self, pane: str | None = None):
        super().__init__()
        self.pane = pane

    def filter(self, record: logging.LogRecord) -> bool:
        record.tmux_pane = self.pane or "-"
        return True


def setup_logging(
    level: str = "WARNING",
    log_to_file: bool = False,
    log_to_console: bool = True,
    json_format: bool = False,
    max_file_size: int = 10 * 1024 * 1024,  # 10MB
    backup_count: int = 5,
    log_dir: Path | None = None,
    pane: str | None = None,
) -> logging.Logger:
    """
    Setup logging for a single CLI invocation.

    Args:
        level: Console logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_to_file: Whether to also log to rotating files under the config dir
        log_to_console: Whether to log to stderr
        json_format: Whether to use JSON formatting for file output
        max_file_size: Maximum log file size in bytes
        backup_count: Number of backup files to keep
        log_dir: Override for the log directory
        pane: tmux pane id recorded on every record

    Returns:
        Configured root logger
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)
    root_logger.handlers.clear()

    context_filter = ContextFilter(pane)

    # stdout is reserved for command output (capture, list)
    if log_to_console:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(getattr(logging, level.upper(), logging.WARNING))
        console_handler.setFormatter(logging.Formatter(CONSOLE_FORMAT))
        console_handler.addFilter(context_filter)
        root_logger.addHandler(console_handler)

    if log_to_file:
        if log_dir is None:
            # config imports error_handler, which imports this module
            from config import _config_dir
            log_dir = _config_dir() / "logs"
        log_dir.mkdir(parents=True, exist_ok=True)

        if json_format:
            formatter = JSONFormatter()
        else:
            formatter = logging.Formatter(FILE_FORMAT, datefmt='%Y-%m-%d %H:%M:%S')

        file_handler = logging.handlers.RotatingFileHandler(
            log_dir / "agentmux.log",
            maxBytes=max_file_size,
            backupCount=backup_count,
            encoding='utf-8'
        )
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(formatter)
        file_handler.addFilter(context_filter)
        root_logger.addHandler(file_handler)

        error_handler = logging.handlers.RotatingFileHandler(
            log_dir / "errors.log",
            maxBytes=max_file_size,
            backupCount=backup_count,
            encoding='utf-8'
        )
        error_handler.setLevel(logging.ERROR)
        error_handler.setFormatter(formatter)
        error_handler.addFilter(context_filter)
        root_logger.addHandler(error_handler)

    return root_logger


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance for a specific module."""
    return logging.getLogger(name)


def log_exception(logger: logging.Logger, message: str, exc_info: bool = True, **kwargs):
    """Log an exception with additional context."""
    logger.error(message, exc_info=exc_info, extra={'extra_data': kwargs})
