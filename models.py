"""Data models for agentmux."""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path


class AgentRole(Enum):
    """Declared role of a tmux pane, read from the `@agentmux_pane_role` option."""

    AGENT = "agent"
    OTHER = "other"

    @classmethod
    def parse(cls, value: str | None) -> "AgentRole":
        if value is not None and value.strip() == cls.AGENT.value:
            return cls.AGENT
        return cls.OTHER


class StatusCommand(Enum):
    """Agent status written to the tmux window."""

    WORKING = "working"
    WAITING = "waiting"
    DONE = "done"
    CLEAR = "clear"


@dataclass
class TmuxPane:
    """A live tmux pane as reported by `tmux list-panes -a`."""

    pane_id: str
    session: str
    window_name: str
    current_command: str
    current_path: Path
    status: str | None = None  # window status icon, None when unset
    role: AgentRole = AgentRole.OTHER
    window_id: str = ""


@dataclass
class Candidate:
    """A pane that may be the target of a send or capture."""

    pane_id: str
    session: str
    window_name: str
    current_command: str
    current_path: Path
    status: str | None
    role: AgentRole
    agent_command: str
    repo_root: Path
    path_match: bool | None = None  # None when no worktree path is known for the handle

    def describe(self) -> str:
        """One line for ambiguity reports."""
        if self.path_match is None:
            path_match = "n/a"
        else:
            path_match = "yes" if self.path_match else "no"
        return (
            f"  pane_id={self.pane_id} session={self.session} window={self.window_name} "
            f"status={self.status or '-'} cmd={self.current_command} path_match={path_match}"
        )


@dataclass
class AgentPaneTarget:
    """The single pane a send or capture acts on."""

    pane_id: str
    session: str
    window_name: str
    repo_root: Path
    agent_command: str | None = None


@dataclass
class CloseTarget:
    """A worktree handle resolved to its repository and window prefix."""

    handle: str
    repo_root: Path
    worktree_path: Path
    window_prefix: str


@dataclass
class PrSummary:
    """Pull request state shown in listings."""

    number: int
    title: str
    state: str  # OPEN, MERGED, CLOSED
    is_draft: bool


@dataclass
class PrDetails:
    """Pull request details needed to check out its head branch."""

    number: int
    title: str
    state: str
    is_draft: bool
    head_ref_name: str
    head_owner: str
    author: str

    def is_fork(self, repo_owner: str) -> bool:
        return self.head_owner.lower() != repo_owner.lower()


@dataclass
class WorktreeInfo:
    """A git worktree as shown by `agentmux list`."""

    branch: str
    handle: str  # worktree directory basename
    path: Path
    has_tmux: bool = False
    has_unmerged: bool = False
    pr_info: PrSummary | None = None


@dataclass
class ReferenceResolution:
    """Classification of a branch-like string."""

    remote_ref: str | None
    local_base_name: str

    @property
    def is_remote(self) -> bool:
        return self.remote_ref is not None


@dataclass
class PrCheckoutResult:
    """Local and remote branch names for a pull request checkout."""

    local_branch: str
    remote_branch: str
    pr: PrDetails | None = None


@dataclass
class ExpandedRepoPaths:
    """Paths matched by `repo_paths` patterns, plus the patterns that matched nothing."""

    paths: list[Path] = field(default_factory=list)
    unmatched_patterns: list[str] = field(default_factory=list)


@dataclass
class RepoSet:
    """Repository roots a multi-repo command operates on."""

    roots: list[Path]
    multi_repo: bool = False
    diagnostics: list[str] = field(default_factory=list)
