"""Expansion of `repo_paths` patterns into repository roots."""

import glob
import re
from pathlib import Path

import git_utils
from config import Config, RuntimeContext
from error_handler import ConfigError, EnvironmentLookupError, NotFoundError
from logging_config import get_logger
from models import ExpandedRepoPaths, RepoSet

logger = get_logger(__name__)

_VAR_CHAR_RE = re.compile(r"[A-Za-z0-9_]")
_VAR_NAME_RE = re.compile(r"^[A-Za-z0-9_]+$")


def expand_env_vars(value: str, ctx: RuntimeContext) -> str:
    """Expand `$NAME` and `${NAME}` references; unset variables are errors."""
    output = []
    i = 0
    n = len(value)
    while i < n:
        ch = value[i]
        if ch != "$":
            output.append(ch)
            i += 1
            continue

        if i + 1 < n and value[i + 1] == "{":
            close = value.find("}", i + 2)
            if close == -1:
                raise EnvironmentLookupError(
                    f"Missing closing '}}' for environment variable in path: {value}"
                )
            name = value[i + 2:close]
            if not name:
                raise EnvironmentLookupError(f"Empty environment variable in path: {value}")
            if not _VAR_NAME_RE.match(name):
                raise EnvironmentLookupError(
                    f"Invalid environment variable name '{name}' in path: {value}"
                )
            i = close + 1
        elif i + 1 < n and _VAR_CHAR_RE.match(value[i + 1]):
            j = i + 1
            while j < n and _VAR_CHAR_RE.match(value[j]):
                j += 1
            name = value[i + 1:j]
            i = j
        else:
            raise EnvironmentLookupError(f"Invalid environment variable reference in path: {value}")

        resolved = ctx.getenv(name)
        if resolved is None:
            raise EnvironmentLookupError(
                f"Environment variable '{name}' is not set (from path: {value})"
            )
        output.append(resolved)
    return "".join(output)


def expand_home(value: str, ctx: RuntimeContext) -> str:
    """Expand a leading `~` or `~/`."""
    if value == "~" or value.startswith("~/"):
        if ctx.home is None:
            raise EnvironmentLookupError("Cannot expand '~': home directory not found")
        if value == "~":
            return str(ctx.home)
        return str(ctx.home / value[2:])
    if value.startswith("~"):
        raise EnvironmentLookupError(f"Unsupported home expansion in path: {value}")
    return value


def _check_glob(pattern: str, original: str) -> None:
    """Reject bracket expressions that are never closed."""
    i = 0
    n = len(pattern)
    while i < n:
        if pattern[i] != "[":
            i += 1
            continue
        j = i + 1
        if j < n and pattern[j] in "!^":
            j += 1
        if j < n and pattern[j] == "]":
            j += 1
        close = pattern.find("]", j)
        if close == -1:
            raise EnvironmentLookupError(
                f"Invalid repo_paths pattern '{original}': unclosed '[' at position {i}"
            )
        i = close + 1


def expand_repo_paths(patterns: list[str], ctx: RuntimeContext | None = None) -> ExpandedRepoPaths:
    """Expand patterns in order, keeping the first occurrence of each path."""
    ctx = ctx or RuntimeContext.from_environ()
    result = ExpandedRepoPaths()
    seen = set()

    for pattern in patterns:
        expanded = expand_home(expand_env_vars(pattern, ctx), ctx)
        _check_glob(expanded, pattern)
        matches = sorted(glob.glob(expanded, recursive=True))
        if not matches:
            result.unmatched_patterns.append(pattern)
            continue
        for match in matches:
            path = Path(match)
            if path not in seen:
                seen.add(path)
                result.paths.append(path)

    return result


def repo_label(repo_root: Path) -> str:
    """Short name of a repository shown in listings and accepted by --repo."""
    return repo_root.name or str(repo_root)


def repo_matches_filter(repo_root: Path, repo_filter: str) -> bool:
    """--repo accepts the repository's directory name or its full path."""
    return repo_filter == repo_label(repo_root) or Path(repo_filter) == repo_root


def _validate_root(path: Path) -> str | None:
    """Reason to skip a repo_paths entry, or None if it is usable."""
    if not path.exists():
        return f"repo_paths entry '{path}' does not exist; skipping"
    if not path.is_dir():
        return f"repo_paths entry '{path}' is not a directory; skipping"
    if not git_utils.is_git_repo(path):
        return f"repo_paths entry '{path}' is not a git repository; skipping"
    return None


def resolve_repo_roots(config: Config, repo_filter: str | None = None,
                       ctx: RuntimeContext | None = None) -> RepoSet:
    """Repositories a multi-repo command runs against.

    Without `repo_paths` this is the current repository alone.
    """
    ctx = ctx or RuntimeContext.from_environ()

    if config.repo_paths is None:
        if repo_filter:
            raise ConfigError(
                "--repo requires repo_paths to be configured in ~/.config/agentmux/config.yaml"
            )
        return RepoSet(roots=[git_utils.ensure_repo_root(ctx.cwd)])

    diagnostics = []
    expanded = expand_repo_paths(config.repo_paths, ctx)
    for pattern in expanded.unmatched_patterns:
        message = f"repo_paths pattern '{pattern}' did not match any paths"
        logger.warning(message)
        diagnostics.append(message)

    if not expanded.paths:
        raise NotFoundError("repo_paths is set but no repositories matched the configured patterns")

    roots = []
    for path in expanded.paths:
        problem = _validate_root(path)
        if problem:
            logger.warning(problem)
            diagnostics.append(problem)
            continue
        roots.append(path)

    if not roots:
        raise NotFoundError("repo_paths did not yield any valid git repositories")

    if repo_filter:
        roots = [root for root in roots if repo_matches_filter(root, repo_filter)]
        if not roots:
            raise NotFoundError(f"No repositories matched --repo '{repo_filter}'")

    return RepoSet(roots=roots, multi_repo=True, diagnostics=diagnostics)
