"""GitHub pull request lookups through the gh CLI."""

import json
import shutil
import subprocess
from pathlib import Path
from typing import Dict, List, Optional

from error_handler import ProviderError
from logging_config import get_logger
from models import PrDetails, PrSummary

logger = get_logger(__name__)

GH_TIMEOUT = 30  # seconds
INSTALL_HINT = "GitHub CLI (gh) is required for --pr. Install from https://cli.github.com"


def find_gh_cli() -> Optional[str]:
    """Find the GitHub CLI executable."""
    return shutil.which("gh")


def _run_gh(args: List[str], cwd: Optional[Path] = None) -> Optional[subprocess.CompletedProcess]:
    """Run gh; None when it is not installed."""
    gh_cmd = find_gh_cli()
    if not gh_cmd:
        return None
    try:
        return subprocess.run(
            [gh_cmd] + args,
            cwd=str(cwd) if cwd else None,
            capture_output=True,
            text=True,
            timeout=GH_TIMEOUT
        )
    except FileNotFoundError:
        return None


def _parse_json(text: str):
    try:
        return json.loads(text)
    except json.JSONDecodeError as e:
        raise ProviderError(f"Failed to parse gh JSON output: {e}") from e


def _login(value) -> str:
    if isinstance(value, dict):
        return value.get("login") or ""
    return ""


def find_pr_by_head_ref(owner: str, branch: str, cwd: Optional[Path] = None) -> Optional[PrSummary]:
    """Find the PR opened from owner's branch, if any."""
    # --head only matches the branch name, so filter by owner here
    try:
        result = _run_gh([
            "pr", "list",
            "--head", branch,
            "--state", "all",
            "--json", "number,title,state,isDraft,headRepositoryOwner",
            "--limit", "50",
        ], cwd)
    except subprocess.TimeoutExpired:
        logger.debug(f"gh pr list timed out for {owner}:{branch}")
        return None

    if result is None:
        logger.debug("gh CLI not found, skipping PR lookup")
        return None
    if result.returncode != 0:
        logger.debug(f"gh pr list failed for {owner}:{branch}, treating as no PR found")
        return None

    for pr in _parse_json(result.stdout):
        if _login(pr.get("headRepositoryOwner")).lower() == owner.lower():
            return PrSummary(
                number=pr["number"],
                title=pr.get("title", ""),
                state=pr.get("state", ""),
                is_draft=bool(pr.get("isDraft")),
            )
    return None


def get_pr_details(pr_number: int, cwd: Optional[Path] = None) -> PrDetails:
    """Fetch the details of one PR; gh must be installed."""
    try:
        result = _run_gh([
            "pr", "view", str(pr_number),
            "--json", "headRefName,headRepositoryOwner,state,isDraft,title,author",
        ], cwd)
    except subprocess.TimeoutExpired as e:
        raise ProviderError(f"Failed to fetch PR #{pr_number}: gh timed out") from e

    if result is None:
        raise ProviderError(INSTALL_HINT)
    if result.returncode != 0:
        raise ProviderError(f"Failed to fetch PR #{pr_number}: {result.stderr.strip()}")

    data = _parse_json(result.stdout)
    try:
        return PrDetails(
            number=pr_number,
            title=data["title"],
            state=data["state"],
            is_draft=bool(data["isDraft"]),
            head_ref_name=data["headRefName"],
            head_owner=_login(data["headRepositoryOwner"]),
            author=_login(data.get("author")),
        )
    except (KeyError, TypeError) as e:
        raise ProviderError(f"Unexpected gh output for PR #{pr_number}: missing {e}") from e


def list_prs(repo_root: Optional[Path] = None) -> Dict[str, PrSummary]:
    """All PRs of a repository keyed by head branch; empty when gh is unavailable."""
    try:
        result = _run_gh([
            "pr", "list",
            "--state", "all",
            "--json", "number,title,state,isDraft,headRefName",
            "--limit", "200",
        ], repo_root)
    except subprocess.TimeoutExpired:
        logger.warning(f"gh pr list timed out in {repo_root}")
        return {}

    if result is None:
        logger.debug("gh CLI not found, skipping PR lookup")
        return {}
    if result.returncode != 0:
        logger.debug(f"gh pr list failed in {repo_root}: {result.stderr.strip()}")
        return {}

    try:
        prs = _parse_json(result.stdout)
    except ProviderError as e:
        logger.warning(str(e))
        return {}

    pr_map = {}
    for pr in prs:
        head, number = pr.get("headRefName"), pr.get("number")
        if not head or number is None:
            logger.debug(f"Skipping incomplete PR entry: {pr!r}")
            continue
        pr_map[head] = PrSummary(
            number=number,
            title=pr.get("title", ""),
            state=pr.get("state", ""),
            is_draft=bool(pr.get("isDraft")),
        )
    return pr_map
