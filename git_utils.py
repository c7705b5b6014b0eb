"""Git operations for agentmux."""

import re
import subprocess
from pathlib import Path
from typing import List

from error_handler import GitCommandError
from logging_config import get_logger

logger = get_logger(__name__)

DETACHED = "(detached)"

# scp-like (git@host:owner/repo.git) and URL forms (https://host/owner/repo)
_REMOTE_URL_RE = re.compile(r"^(?P<prefix>.*[:/])(?P<owner>[^/:]+)/(?P<repo>[^/]+)$")


def run_git(args: List[str], cwd: Path | None = None, check: bool = True) -> subprocess.CompletedProcess[str]:
    """Run a git command with safe argument passing."""
    cmd = ["git"] + list(args)
    logger.debug(f"Running: {' '.join(cmd)}")
    try:
        cp = subprocess.run(
            cmd,
            cwd=str(cwd) if cwd else None,
            check=check,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
        )
        return cp
    except FileNotFoundError:
        raise GitCommandError("Git not found on PATH.")
    except subprocess.CalledProcessError as e:
        # surface stderr to caller
        raise GitCommandError(e.stderr.strip() or str(e))


def get_repo_root(path: Path) -> Path | None:
    """Return the worktree root containing path, or None outside a repository."""
    cp = run_git(["-C", str(path), "rev-parse", "--show-toplevel"], check=False)
    if cp.returncode != 0:
        return None
    return Path(cp.stdout.strip())


def ensure_repo_root(path: Path) -> Path:
    """Return the repo root for any path inside a Git repo."""
    root = get_repo_root(path)
    if root is None:
        raise GitCommandError(f"Not in a git repository: {path}")
    return root


def get_main_worktree_root(repo_root: Path) -> Path | None:
    """Return the root of the main worktree that repo_root belongs to."""
    cp = run_git(["-C", str(repo_root), "rev-parse", "--git-common-dir"], check=False)
    if cp.returncode != 0:
        return None
    common_dir = Path(cp.stdout.strip())
    if not common_dir.is_absolute():
        common_dir = repo_root / common_dir
    common_dir = common_dir.resolve()
    if common_dir.name == ".git":
        return common_dir.parent
    return common_dir


def is_git_repo(path: Path) -> bool:
    """Check whether path is inside a git repository."""
    cp = run_git(["-C", str(path), "rev-parse", "--git-dir"], check=False)
    return cp.returncode == 0


def parse_porcelain_list(text: str) -> list[tuple[Path, str]]:
    """Parse `git worktree list --porcelain` into (path, branch) pairs."""
    results = []
    block = {}
    for line in text.splitlines():
        if not line.strip():
            if block:
                results.append(block)
                block = {}
            continue
        key, *rest = line.split(" ", 1)
        val = rest[0] if rest else ""
        block.setdefault(key, []).append(val)
    if block:
        results.append(block)
    return [_block_to_entry(b) for b in results if "bare" not in b and "worktree" in b]


def _block_to_entry(block: dict) -> tuple[Path, str]:
    """Convert a parsed block to a (path, branch) pair."""
    path = Path(block["worktree"][0])
    branch = DETACHED
    if "branch" in block:
        ref = block["branch"][0]
        branch = ref[len("refs/heads/"):] if ref.startswith("refs/heads/") else ref
    return path, branch


def list_worktrees(repo_root: Path) -> list[tuple[Path, str]]:
    """List all worktrees in a repository."""
    cp = run_git(["-C", str(repo_root), "worktree", "list", "--porcelain"])
    return parse_porcelain_list(cp.stdout)


def get_current_branch(cwd: Path | None = None) -> str | None:
    """Name of the checked out branch, None when detached."""
    cp = run_git(["symbolic-ref", "--quiet", "--short", "HEAD"], cwd=cwd, check=False)
    if cp.returncode != 0:
        return None
    return cp.stdout.strip() or None


def list_remotes(cwd: Path | None = None) -> list[str]:
    """Names of the configured remotes."""
    cp = run_git(["remote"], cwd=cwd)
    return [line.strip() for line in cp.stdout.splitlines() if line.strip()]


def ref_exists(ref_name: str, cwd: Path | None = None) -> bool:
    """Check whether a fully qualified ref (e.g. refs/remotes/origin/main) exists."""
    cp = run_git(["rev-parse", "--verify", "--quiet", ref_name], cwd=cwd, check=False)
    return cp.returncode == 0


def fetch_remote(remote: str, cwd: Path | None = None) -> None:
    """Fetch a remote; raises GitCommandError on failure."""
    run_git(["fetch", remote], cwd=cwd)


def get_remote_url(remote: str, cwd: Path | None = None) -> str | None:
    cp = run_git(["remote", "get-url", remote], cwd=cwd, check=False)
    if cp.returncode != 0:
        return None
    return cp.stdout.strip() or None


def parse_remote_owner(url: str) -> str | None:
    """Extract the owner from a GitHub-style remote URL."""
    m = _REMOTE_URL_RE.match(url.strip().rstrip("/"))
    return m.group("owner") if m else None


def fork_remote_url(origin_url: str, owner: str) -> str | None:
    """The origin URL with its owner replaced by owner."""
    m = _REMOTE_URL_RE.match(origin_url.strip().rstrip("/"))
    if not m:
        return None
    return f"{m.group('prefix')}{owner}/{m.group('repo')}"


def get_repo_owner(cwd: Path | None = None) -> str:
    """Owner of the repository the origin remote points at."""
    url = get_remote_url("origin", cwd)
    owner = parse_remote_owner(url) if url else None
    if not owner:
        raise GitCommandError("Failed to determine repository owner from origin remote")
    return owner


def ensure_fork_remote(owner: str, cwd: Path | None = None) -> str:
    """Return the remote for owner's fork, adding it next to origin if missing."""
    if owner in list_remotes(cwd):
        return owner

    origin_url = get_remote_url("origin", cwd)
    fork_url = fork_remote_url(origin_url, owner) if origin_url else None
    if not fork_url:
        raise GitCommandError(
            f"Cannot add a remote for fork owner '{owner}': origin remote URL is missing or not recognized"
        )

    run_git(["remote", "add", owner, fork_url], cwd=cwd)
    logger.info(f"Added remote '{owner}' -> {fork_url}")
    return owner


def get_default_branch(repo_root: Path) -> str:
    """Default branch from origin/HEAD, falling back to main or master."""
    cp = run_git(["-C", str(repo_root), "symbolic-ref", "--quiet", "refs/remotes/origin/HEAD"], check=False)
    if cp.returncode == 0 and cp.stdout.strip():
        return cp.stdout.strip().removeprefix("refs/remotes/origin/")

    for candidate in ("main", "master"):
        if ref_exists(f"refs/heads/{candidate}", cwd=repo_root):
            return candidate
    raise GitCommandError(f"Could not determine the default branch of {repo_root}")


def get_merge_base(main_branch: str, repo_root: Path) -> str:
    """Ref to compare branches against, preferring the remote tracking branch."""
    if ref_exists(f"refs/remotes/origin/{main_branch}", cwd=repo_root):
        return f"origin/{main_branch}"
    return main_branch


def get_unmerged_branches(base: str, repo_root: Path) -> set[str]:
    """Local branches with commits not merged into base."""
    cp = run_git([
        "-C", str(repo_root), "for-each-ref",
        "--format=%(refname:short)", f"--no-merged={base}", "refs/heads/",
    ])
    return {line.strip() for line in cp.stdout.splitlines() if line.strip()}
