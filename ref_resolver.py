"""Resolution of branch-like strings into local, remote and fork references.

A raw branch argument is classified in this order:

1. ``owner:branch`` names a branch on a GitHub fork. A remote for the fork
   owner is added when missing.
2. ``remote/branch`` where ``remote`` is a configured remote. The tracking
   ref is fetched once when it is not known locally; if the remote has no
   such branch either, the whole string is a local branch name.
3. Anything else is a local branch name.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Protocol

import git_utils
import github_utils
from error_handler import AgentmuxError, FetchError, UsageError
from logging_config import get_logger
from models import PrCheckoutResult, ReferenceResolution

logger = get_logger(__name__)


@dataclass
class ForkBranchSpec:
    owner: str
    branch: str


class RemoteDetectionContext(Protocol):
    """Git operations the remote detection needs."""

    def list_remotes(self) -> list[str]: ...

    def ref_exists(self, ref_name: str) -> bool: ...

    def fetch_remote(self, remote: str) -> None: ...

    def resolve_fork(self, spec: ForkBranchSpec) -> ReferenceResolution: ...


class GitRemoteContext:
    """RemoteDetectionContext backed by the git CLI."""

    def __init__(self, cwd: Optional[Path] = None):
        self.cwd = cwd

    def list_remotes(self) -> list[str]:
        return git_utils.list_remotes(self.cwd)

    def ref_exists(self, ref_name: str) -> bool:
        return git_utils.ref_exists(ref_name, self.cwd)

    def fetch_remote(self, remote: str) -> None:
        git_utils.fetch_remote(remote, self.cwd)

    def resolve_fork(self, spec: ForkBranchSpec) -> ReferenceResolution:
        return resolve_fork_branch(spec, self.cwd)


def parse_fork_branch_spec(raw: str) -> Optional[ForkBranchSpec]:
    """Parse `owner:branch`; None for anything else."""
    if ":" not in raw or "://" in raw:
        return None
    owner, branch = raw.split(":", 1)
    if not owner or not branch or "/" in owner or any(c.isspace() for c in owner):
        return None
    return ForkBranchSpec(owner=owner, branch=branch)


def _pr_state_suffix(state: str, is_draft: bool) -> str:
    if state == "OPEN":
        return " (draft)" if is_draft else ""
    if state == "MERGED":
        return " (merged)"
    if state == "CLOSED":
        return " (closed)"
    return ""


def resolve_fork_branch(spec: ForkBranchSpec, cwd: Optional[Path] = None) -> ReferenceResolution:
    """Make sure a remote for the fork exists and point at its branch."""
    # PR lookup is informational only
    try:
        pr = github_utils.find_pr_by_head_ref(spec.owner, spec.branch, cwd)
    except AgentmuxError as e:
        logger.debug(f"PR lookup for {spec.owner}:{spec.branch} failed: {e}")
        pr = None
    if pr is not None:
        logger.info(f"PR #{pr.number}: {pr.title}{_pr_state_suffix(pr.state, pr.is_draft)}")

    remote = git_utils.ensure_fork_remote(spec.owner, cwd)
    # the branch itself is fetched and verified by whoever checks it out
    return ReferenceResolution(remote_ref=f"{remote}/{spec.branch}", local_base_name=spec.branch)


def detect_remote_branch(raw: str, base: Optional[str] = None,
                         ctx: Optional[RemoteDetectionContext] = None) -> ReferenceResolution:
    """Classify a branch argument as a fork, remote or local branch."""
    ctx = ctx or GitRemoteContext()

    fork_spec = parse_fork_branch_spec(raw)
    if fork_spec is not None:
        if base is not None:
            raise UsageError(
                f"Cannot use --base with 'owner:branch' syntax. "
                f"The branch '{fork_spec.branch}' from '{fork_spec.owner}' will be used as the base."
            )
        return ctx.resolve_fork(fork_spec)

    # longest remote name wins when one remote name prefixes another
    matching = [r for r in ctx.list_remotes() if raw.startswith(f"{r}/")]
    if not matching:
        return ReferenceResolution(remote_ref=None, local_base_name=raw)
    remote = max(matching, key=len)

    if base is not None:
        raise UsageError(
            f"Cannot use --base with a remote branch reference. "
            f"The remote branch '{raw}' will be used as the base."
        )

    branch = raw[len(remote) + 1:]
    if not branch:
        raise UsageError("Invalid remote branch format. Use <remote>/<branch>")

    # refs/remotes/ only, so a local branch named like "remote/x" is not mistaken for it
    tracking_ref = f"refs/remotes/{raw}"
    if not ctx.ref_exists(tracking_ref):
        logger.warning(f"Remote branch '{raw}' not found locally, fetching from '{remote}'...")
        try:
            ctx.fetch_remote(remote)
        except AgentmuxError as e:
            raise FetchError(
                f"Failed to fetch from remote '{remote}'. "
                f"Please check your network connection and try again. ({e})"
            ) from e

        if not ctx.ref_exists(tracking_ref):
            # not on the remote either: a local branch that happens to look remote
            return ReferenceResolution(remote_ref=None, local_base_name=raw)

    return ReferenceResolution(remote_ref=raw, local_base_name=branch)


def resolve_pr_ref(pr_number: int, custom_branch_name: Optional[str] = None,
                   cwd: Optional[Path] = None) -> PrCheckoutResult:
    """Local and remote branch names for checking out a pull request."""
    pr = github_utils.get_pr_details(pr_number, cwd)

    if pr.state != "OPEN":
        logger.warning(f"⚠️  Warning: PR #{pr_number} is {pr.state}. Proceeding with checkout...")
    if pr.is_draft:
        logger.warning(f"⚠️  Warning: PR #{pr_number} is a DRAFT.")

    local_branch = custom_branch_name or pr.head_ref_name

    repo_owner = git_utils.get_repo_owner(cwd)
    if pr.is_fork(repo_owner):
        remote = git_utils.ensure_fork_remote(pr.head_owner, cwd)
    else:
        remote = "origin"

    return PrCheckoutResult(
        local_branch=local_branch,
        remote_branch=f"{remote}/{pr.head_ref_name}",
        pr=pr,
    )
