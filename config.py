"""Configuration management for agentmux."""

import os
import shutil
import tempfile
from dataclasses import dataclass, field, replace
from enum import Enum
from pathlib import Path
from typing import Mapping

import yaml

import git_utils
import tmux_utils
from error_handler import ConfigError
from logging_config import get_logger

logger = get_logger(__name__)

APP_NAME = "agentmux"
DEFAULT_AGENT = "claude"
DEFAULT_WINDOW_PREFIX = "am-"
GLOBAL_PLACEHOLDER = "<global>"
AGENT_PLACEHOLDER = "<agent>"
PROJECT_CONFIG_NAMES = (".agentmux.yaml", ".agentmux.yml")
GLOBAL_CONFIG_NAMES = ("config.yaml", "config.yml")
JS_LOCKFILES = ("pnpm-lock.yaml", "package-lock.json", "yarn.lock")
AGENT_MARKER_FILE = "CLAUDE.md"

# Moves node_modules out of the worktree and deletes it in the background
NODE_MODULES_CLEANUP_SCRIPT = """\
find . -name node_modules -type d -prune | while read -r dir; do
  trash="$(mktemp -d "${TMPDIR:-/tmp}/agentmux-node-modules.XXXXXX")" || exit 0
  mv "$dir" "$trash/" && (rm -rf "$trash" >/dev/null 2>&1 &)
done
"""


@dataclass(frozen=True)
class RuntimeContext:
    """Process-level inputs passed explicitly instead of read from globals."""

    verbose: bool = False
    home: Path | None = None
    config_dir: Path | None = None
    cwd: Path = field(default_factory=Path.cwd)
    environ: Mapping[str, str] = field(default_factory=dict)

    @classmethod
    def from_environ(
        cls,
        verbose: bool = False,
        environ: Mapping[str, str] | None = None,
        cwd: Path | None = None,
    ) -> "RuntimeContext":
        """Build a context from the process environment (or an explicit mapping)."""
        env = dict(os.environ if environ is None else environ)

        home = None
        if env.get("HOME"):
            home = Path(env["HOME"])
        elif environ is None:
            try:
                home = Path.home()
            except RuntimeError:
                home = None

        config_dir = None
        if env.get("XDG_CONFIG_HOME"):
            config_dir = Path(env["XDG_CONFIG_HOME"]) / APP_NAME
        elif home is not None:
            config_dir = home / ".config" / APP_NAME

        return cls(
            verbose=verbose,
            home=home,
            config_dir=config_dir,
            cwd=cwd or Path.cwd(),
            environ=env,
        )

    def getenv(self, name: str) -> str | None:
        return self.environ.get(name)


def _config_dir(ctx: RuntimeContext | None = None) -> Path:
    """Get the configuration directory."""
    ctx = ctx or RuntimeContext.from_environ()
    if ctx.config_dir is not None:
        return ctx.config_dir
    return Path(tempfile.gettempdir()) / APP_NAME


def _config_path(ctx: RuntimeContext | None = None) -> Path | None:
    """Get the global configuration file path, if one exists."""
    ctx = ctx or RuntimeContext.from_environ()
    if ctx.config_dir is None:
        return None
    for name in GLOBAL_CONFIG_NAMES:
        candidate = ctx.config_dir / name
        if candidate.exists():
            return candidate
    return None


class SplitDirection(Enum):
    HORIZONTAL = "horizontal"
    VERTICAL = "vertical"


class MergeStrategy(Enum):
    MERGE = "merge"
    REBASE = "rebase"
    SQUASH = "squash"


class WorktreeNaming(Enum):
    """How worktree and window names are derived from branch names."""

    FULL = "full"
    BASENAME = "basename"

    def derive_name(self, branch: str) -> str:
        if self is WorktreeNaming.BASENAME:
            return branch.rstrip("/").rsplit("/", 1)[-1] or branch
        return branch


@dataclass
class PaneConfig:
    """One step of a tmux pane layout."""

    command: str | None = None
    focus: bool = False
    split: SplitDirection | None = None
    size: int | None = None
    percentage: int | None = None
    target: int | None = None  # index of an earlier pane to split


@dataclass
class FileConfig:
    copy: list[str] | None = None
    symlink: list[str] | None = None


@dataclass
class StatusIcons:
    working: str | None = None
    waiting: str | None = None
    done: str | None = None

    def working_icon(self) -> str:
        return self.working or "🤖"

    def waiting_icon(self) -> str:
        return self.waiting or "💬"

    def done_icon(self) -> str:
        return self.done or "✅"


@dataclass
class AutoNameConfig:
    model: str | None = None
    system_prompt: str | None = None


@dataclass
class DashboardConfig:
    commit: str | None = None
    merge: str | None = None
    preview_size: int | None = None

    def commit_text(self) -> str:
        return self.commit or "Commit staged changes with a descriptive message"

    def merge_text(self) -> str:
        return self.merge or f"!{APP_NAME} merge"

    def preview_percent(self) -> int:
        """Preview pane height, clamped to 10-90."""
        size = 60 if self.preview_size is None else self.preview_size
        return max(10, min(90, size))


@dataclass
class Config:
    """Settings read from the global config and `.agentmux.yaml`."""

    main_branch: str | None = None
    worktree_dir: str | None = None
    window_prefix: str | None = None
    repo_paths: list[str] | None = None
    panes: list[PaneConfig] | None = None
    post_create: list[str] | None = None
    pre_merge: list[str] | None = None
    pre_remove: list[str] | None = None
    agent: str | None = None
    merge_strategy: MergeStrategy | None = None
    worktree_naming: WorktreeNaming = WorktreeNaming.FULL
    worktree_prefix: str | None = None
    files: FileConfig = field(default_factory=FileConfig)
    status_format: bool | None = None
    status_icons: StatusIcons = field(default_factory=StatusIcons)
    auto_name: AutoNameConfig | None = None
    dashboard: DashboardConfig = field(default_factory=DashboardConfig)

    def window_prefix_or_default(self) -> str:
        return DEFAULT_WINDOW_PREFIX if self.window_prefix is None else self.window_prefix

    def agent_or_default(self) -> str:
        return self.agent or DEFAULT_AGENT

    def status_format_enabled(self) -> bool:
        return self.status_format is not False

    def merge(self, project: "Config") -> "Config":
        """Merge a project config over this (global) config."""
        return Config(
            main_branch=_first_set(project.main_branch, self.main_branch),
            worktree_dir=_first_set(project.worktree_dir, self.worktree_dir),
            window_prefix=_first_set(project.window_prefix, self.window_prefix),
            repo_paths=_first_set(project.repo_paths, self.repo_paths),
            panes=_first_set(project.panes, self.panes),
            post_create=merge_list_with_placeholder(self.post_create, project.post_create),
            pre_merge=merge_list_with_placeholder(self.pre_merge, project.pre_merge),
            pre_remove=merge_list_with_placeholder(self.pre_remove, project.pre_remove),
            agent=_first_set(project.agent, self.agent),
            merge_strategy=_first_set(project.merge_strategy, self.merge_strategy),
            # only an explicit non-default project value overrides
            worktree_naming=(
                project.worktree_naming
                if project.worktree_naming is not WorktreeNaming.FULL
                else self.worktree_naming
            ),
            worktree_prefix=_first_set(project.worktree_prefix, self.worktree_prefix),
            files=FileConfig(
                copy=merge_list_with_placeholder(self.files.copy, project.files.copy),
                symlink=merge_list_with_placeholder(self.files.symlink, project.files.symlink),
            ),
            status_format=_first_set(project.status_format, self.status_format),
            status_icons=StatusIcons(
                working=_first_set(project.status_icons.working, self.status_icons.working),
                waiting=_first_set(project.status_icons.waiting, self.status_icons.waiting),
                done=_first_set(project.status_icons.done, self.status_icons.done),
            ),
            auto_name=_first_set(project.auto_name, self.auto_name),
            dashboard=DashboardConfig(
                commit=_first_set(project.dashboard.commit, self.dashboard.commit),
                merge=_first_set(project.dashboard.merge, self.dashboard.merge),
                preview_size=_first_set(project.dashboard.preview_size, self.dashboard.preview_size),
            ),
        )


def _first_set(project_value, global_value):
    return project_value if project_value is not None else global_value


def merge_list_with_placeholder(global_items: list[str] | None,
                                project_items: list[str] | None) -> list[str] | None:
    """Merge list settings, expanding "<global>" in the project list to the global items."""
    if project_items is None:
        return global_items
    if GLOBAL_PLACEHOLDER not in project_items:
        return list(project_items)
    # an unset global list expands to nothing
    result = []
    for item in project_items:
        if item == GLOBAL_PLACEHOLDER:
            result.extend(global_items or [])
        else:
            result.append(item)
    return result


def default_panes() -> list[PaneConfig]:
    """Shell pane with a small pane split off below."""
    return [
        PaneConfig(focus=True),
        PaneConfig(command="clear", split=SplitDirection.HORIZONTAL),
    ]


def agent_default_panes() -> list[PaneConfig]:
    """Agent pane with a shell pane split off below."""
    return [
        PaneConfig(command=AGENT_PLACEHOLDER, focus=True),
        PaneConfig(command="clear", split=SplitDirection.HORIZONTAL),
    ]


def validate_panes_config(panes: list[PaneConfig]) -> None:
    """Raise ConfigError for the first pane that breaks a layout rule."""
    for i, pane in enumerate(panes):
        if i == 0:
            if pane.split is not None:
                raise ConfigError("First pane (index 0) cannot have a 'split' direction.")
            if pane.size is not None or pane.percentage is not None:
                raise ConfigError("First pane (index 0) cannot have 'size' or 'percentage'.")
        elif pane.split is None:
            raise ConfigError(f"Pane {i} must have a 'split' direction specified.")

        if pane.size is not None and pane.percentage is not None:
            raise ConfigError(f"Pane {i} cannot have both 'size' and 'percentage' specified.")

        if pane.percentage is not None and not 1 <= pane.percentage <= 100:
            raise ConfigError(
                f"Pane {i} has invalid percentage {pane.percentage}. Must be between 1 and 100."
            )

        if pane.target is not None and pane.target >= i:
            raise ConfigError(
                f"Pane {i} has invalid target {pane.target}. "
                f"Target must reference a previously created pane (0-{max(i - 1, 0)})."
            )


# YAML parsing

def _type_error(path: Path | None, key: str, expected: str) -> ConfigError:
    where = path if path is not None else "<string>"
    return ConfigError(f"Failed to parse config at {where}: '{key}' must be {expected}", path)


def _get_str(data: dict, key: str, path: Path | None, prefix: str = "") -> str | None:
    value = data.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise _type_error(path, prefix + key, "a string")
    return value


def _get_bool(data: dict, key: str, path: Path | None, prefix: str = "") -> bool | None:
    value = data.get(key)
    if value is None:
        return None
    if not isinstance(value, bool):
        raise _type_error(path, prefix + key, "true or false")
    return value


def _get_int(data: dict, key: str, path: Path | None, prefix: str = "") -> int | None:
    value = data.get(key)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise _type_error(path, prefix + key, "a non-negative integer")
    return value


def _get_str_list(data: dict, key: str, path: Path | None, prefix: str = "") -> list[str] | None:
    value = data.get(key)
    if value is None:
        return None
    if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
        raise _type_error(path, prefix + key, "a list of strings")
    return list(value)


def _get_enum(data: dict, key: str, enum_cls, path: Path | None, prefix: str = ""):
    value = data.get(key)
    if value is None:
        return None
    try:
        return enum_cls(value)
    except ValueError:
        choices = ", ".join(member.value for member in enum_cls)
        raise _type_error(path, prefix + key, f"one of: {choices}") from None


def _get_section(data: dict, key: str, path: Path | None) -> dict:
    value = data.get(key)
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise _type_error(path, key, "a mapping")
    return value


def _parse_panes(data: dict, path: Path | None) -> list[PaneConfig] | None:
    raw = data.get("panes")
    if raw is None:
        return None
    if not isinstance(raw, list):
        raise _type_error(path, "panes", "a list")
    panes = []
    for i, item in enumerate(raw):
        if not isinstance(item, dict):
            raise _type_error(path, f"panes[{i}]", "a mapping")
        prefix = f"panes[{i}]."
        panes.append(PaneConfig(
            command=_get_str(item, "command", path, prefix),
            focus=bool(_get_bool(item, "focus", path, prefix)),
            split=_get_enum(item, "split", SplitDirection, path, prefix),
            size=_get_int(item, "size", path, prefix),
            percentage=_get_int(item, "percentage", path, prefix),
            target=_get_int(item, "target", path, prefix),
        ))
    return panes


def parse_config(data, path: Path | None = None) -> Config:
    """Build a Config from parsed YAML, rejecting wrongly typed values."""
    if data is None:
        return Config()
    if not isinstance(data, dict):
        raise _type_error(path, "<root>", "a mapping")

    files = _get_section(data, "files", path)
    icons = _get_section(data, "status_icons", path)
    dashboard = _get_section(data, "dashboard", path)

    auto_name = None
    if data.get("auto_name") is not None:
        section = _get_section(data, "auto_name", path)
        auto_name = AutoNameConfig(
            model=_get_str(section, "model", path, "auto_name."),
            system_prompt=_get_str(section, "system_prompt", path, "auto_name."),
        )

    return Config(
        main_branch=_get_str(data, "main_branch", path),
        worktree_dir=_get_str(data, "worktree_dir", path),
        window_prefix=_get_str(data, "window_prefix", path),
        repo_paths=_get_str_list(data, "repo_paths", path),
        panes=_parse_panes(data, path),
        post_create=_get_str_list(data, "post_create", path),
        pre_merge=_get_str_list(data, "pre_merge", path),
        pre_remove=_get_str_list(data, "pre_remove", path),
        agent=_get_str(data, "agent", path),
        merge_strategy=_get_enum(data, "merge_strategy", MergeStrategy, path),
        worktree_naming=_get_enum(data, "worktree_naming", WorktreeNaming, path) or WorktreeNaming.FULL,
        worktree_prefix=_get_str(data, "worktree_prefix", path),
        files=FileConfig(
            copy=_get_str_list(files, "copy", path, "files."),
            symlink=_get_str_list(files, "symlink", path, "files."),
        ),
        status_format=_get_bool(data, "status_format", path),
        status_icons=StatusIcons(
            working=_get_str(icons, "working", path, "status_icons."),
            waiting=_get_str(icons, "waiting", path, "status_icons."),
            done=_get_str(icons, "done", path, "status_icons."),
        ),
        auto_name=auto_name,
        dashboard=DashboardConfig(
            commit=_get_str(dashboard, "commit", path, "dashboard."),
            merge=_get_str(dashboard, "merge", path, "dashboard."),
            preview_size=_get_int(dashboard, "preview_size", path, "dashboard."),
        ),
    )


def load_config_file(path: Path) -> Config | None:
    """Load one config file; None if it does not exist."""
    if not path.exists():
        return None
    logger.debug(f"Reading config file {path}")
    try:
        with path.open("r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Failed to parse config at {path}: {e}", path) from e
    except OSError as e:
        raise ConfigError(f"Failed to read config at {path}: {e}", path) from e
    return parse_config(data, path)


def load_global_config(ctx: RuntimeContext | None = None) -> Config | None:
    """Load `config.yaml` from the agentmux config directory."""
    path = _config_path(ctx)
    if path is None:
        return None
    return load_config_file(path)


def _find_project_config(search_dirs: list[Path]) -> Path | None:
    for directory in search_dirs:
        for name in PROJECT_CONFIG_NAMES:
            candidate = directory / name
            if candidate.exists():
                logger.debug(f"Found project config {candidate}")
                return candidate
    return None


def finalize_config(global_config: Config, project_config: Config,
                    cli_agent: str | None = None, repo_root: Path | None = None) -> Config:
    """Merge both layers and fill in the defaults that depend on the repository."""
    final_agent = cli_agent or project_config.agent or global_config.agent or DEFAULT_AGENT
    config = replace(global_config.merge(project_config), agent=final_agent)

    if repo_root is not None:
        has_node_modules = any((repo_root / name).exists() for name in JS_LOCKFILES)
        if config.panes is None:
            if (repo_root / AGENT_MARKER_FILE).exists():
                config.panes = agent_default_panes()
            else:
                config.panes = default_panes()
        if config.pre_remove is None and has_node_modules:
            config.pre_remove = [NODE_MODULES_CLEANUP_SCRIPT]
    elif config.panes is None:
        config.panes = default_panes()

    logger.debug(f"Loaded config: agent={config.agent} panes={len(config.panes)}")
    return config


def load_config(cli_agent: str | None = None, repo_root: Path | None = None,
                ctx: RuntimeContext | None = None) -> Config:
    """Load the config for the current directory.

    The project file is looked up in the current worktree root, then in the
    main worktree root. Outside a git repository only the global file is read.
    """
    ctx = ctx or RuntimeContext.from_environ()
    global_config = load_global_config(ctx) or Config()

    search_dirs = []
    if repo_root is None:
        repo_root = git_utils.get_repo_root(ctx.cwd)
    if repo_root is not None:
        search_dirs.append(repo_root)
        main_root = git_utils.get_main_worktree_root(repo_root)
        if main_root is not None and main_root != repo_root:
            search_dirs.append(main_root)

    project_path = _find_project_config(search_dirs)
    project_config = (load_config_file(project_path) if project_path else None) or Config()
    return finalize_config(global_config, project_config, cli_agent, repo_root)


def load_config_for_repo(repo_root: Path, cli_agent: str | None = None,
                         ctx: RuntimeContext | None = None) -> Config:
    """Load the config for a known repository root."""
    global_config = load_global_config(ctx) or Config()
    project_path = _find_project_config([repo_root])
    project_config = (load_config_file(project_path) if project_path else None) or Config()
    return finalize_config(global_config, project_config, cli_agent, repo_root)


# Agent command matching

def split_first_token(command: str) -> tuple[str, str] | None:
    """Split a command line into its executable and the rest."""
    trimmed = command.lstrip()
    if not trimmed:
        return None
    parts = trimmed.split(maxsplit=1)
    if len(parts) == 1:
        return parts[0], ""
    # keep the remainder's own spacing
    rest = trimmed[len(parts[0]):]
    return parts[0], rest[1:]


def resolve_executable_path(executable: str, ctx: RuntimeContext | None = None) -> str | None:
    """Resolve an executable name to an absolute path.

    Plain names are looked up on tmux's global PATH first, since panes run in
    tmux's environment, then on this process's PATH.
    """
    ctx = ctx or RuntimeContext.from_environ()
    exec_path = Path(executable)
    if exec_path.is_absolute():
        return executable
    if "/" in executable or os.sep in executable:
        return str(ctx.cwd / exec_path)

    tmux_path = tmux_utils.global_path(ctx)
    if tmux_path:
        found = shutil.which(executable, path=tmux_path)
        if found:
            return found
    return shutil.which(executable, path=ctx.getenv("PATH"))


def is_agent_command(command_line: str, agent_command: str, ctx: RuntimeContext | None = None) -> bool:
    """True if a command line runs the configured agent."""
    cmd = split_first_token(command_line.strip())
    if cmd is None:
        return False
    cmd_token = cmd[0]
    if cmd_token == AGENT_PLACEHOLDER:
        return True

    agent = split_first_token(agent_command)
    if agent is None:
        return False
    agent_token = agent[0]

    resolved_cmd = resolve_executable_path(cmd_token, ctx) or cmd_token
    resolved_agent = resolve_executable_path(agent_token, ctx) or agent_token
    cmd_stem = Path(resolved_cmd).stem
    return bool(cmd_stem) and cmd_stem == Path(resolved_agent).stem


# agentmux init

EXAMPLE_CONFIG = """\
# agentmux project configuration
# For global settings, edit ~/.config/agentmux/config.yaml
# All options below are commented out. Uncomment to override defaults.

#-------------------------------------------------------------------------------
# Git
#-------------------------------------------------------------------------------

# The primary branch to merge into.
# Default: detected from the remote HEAD, falling back to main/master.
# main_branch: main

# Merge strategy: merge (default), rebase, squash
# merge_strategy: rebase

#-------------------------------------------------------------------------------
# Naming & Paths
#-------------------------------------------------------------------------------

# Directory where worktrees are created, relative to the repo root or absolute.
# worktree_dir: .worktrees

# Deriving names from branch names: full (default), basename (part after last '/').
# worktree_naming: basename

# Prefix added to worktree directories and tmux window names.
# worktree_prefix: ""

# Prefix for tmux window names.
# Default: "am-"
# window_prefix: "am-"

#-------------------------------------------------------------------------------
# Tmux
#-------------------------------------------------------------------------------

# Pane layout. Default: shell pane plus a small pane below.
# When CLAUDE.md exists the first pane runs the agent.
# panes:
#   - command: <agent>
#     focus: true
#   - command: clear
#     split: horizontal
#     percentage: 30

# Show agent status icons in the tmux window list.
# Default: true
# status_format: true

# status_icons:
#   working: "🤖"
#   waiting: "💬"
#   done: "✅"

#-------------------------------------------------------------------------------
# Agent
#-------------------------------------------------------------------------------

# Agent command used for the '<agent>' placeholder and for finding agent panes.
# Default: "claude"
# agent: claude

# auto_name:
#   model: "gpt-4o-mini"
#   system_prompt: "Generate a kebab-case git branch name."

#-------------------------------------------------------------------------------
# Hooks
#-------------------------------------------------------------------------------

# Use "<global>" to insert the list from the global config at that position.
# Set to an empty list to disable: `post_create: []`
# post_create:
#   - "<global>"
#   - mise use

# pre_merge:
#   - "<global>"
#   - pytest

# Default: node_modules cleanup when a JS lockfile is present.
# pre_remove:
#   - ./scripts/save-test-artifacts.sh

#-------------------------------------------------------------------------------
# Files
#-------------------------------------------------------------------------------

# files:
#   copy:
#     - .env.local
#   symlink:
#     - "<global>"
#     - node_modules

#-------------------------------------------------------------------------------
# Dashboard
#-------------------------------------------------------------------------------

# dashboard:
#   commit: "Commit staged changes with a descriptive message"
#   merge: "!agentmux merge"
#   preview_size: 60
"""


def init_project_config(directory: Path) -> Path:
    """Write an example `.agentmux.yaml` into directory."""
    path = directory / PROJECT_CONFIG_NAMES[0]
    if path.exists():
        raise ConfigError(
            f"{PROJECT_CONFIG_NAMES[0]} already exists. Remove it first if you want to regenerate it.",
            path,
        )
    tmp = directory / ".agentmux.yaml.tmp"
    with tmp.open("w", encoding="utf-8") as f:
        f.write(EXAMPLE_CONFIG)
    tmp.replace(path)
    return path
