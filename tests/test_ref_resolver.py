"""Tests for branch reference resolution."""

import logging
from pathlib import Path
from unittest.mock import patch

import pytest

from error_handler import FetchError, GitCommandError, ProviderError, UsageError
from models import PrDetails, PrSummary, ReferenceResolution
from ref_resolver import (
    ForkBranchSpec,
    detect_remote_branch,
    parse_fork_branch_spec,
    resolve_fork_branch,
    resolve_pr_ref,
)


class FakeRemotes:
    """Scripted git state for detect_remote_branch."""

    def __init__(self, remotes, refs=(), refs_after_fetch=(), fetch_error=None):
        self.remotes = list(remotes)
        self.refs = set(refs)
        self.refs_after_fetch = set(refs_after_fetch)
        self.fetch_error = fetch_error
        self.fetched = []
        self.forks = []

    def list_remotes(self):
        return self.remotes

    def ref_exists(self, ref_name):
        return ref_name in self.refs

    def fetch_remote(self, remote):
        self.fetched.append(remote)
        if self.fetch_error is not None:
            raise self.fetch_error
        self.refs |= self.refs_after_fetch

    def resolve_fork(self, spec):
        self.forks.append(spec)
        return ReferenceResolution(remote_ref=f"{spec.owner}/{spec.branch}", local_base_name=spec.branch)


class TestParseForkBranchSpec:
    """Tests for owner:branch parsing."""

    def test_owner_and_branch(self):
        assert parse_fork_branch_spec("alice:feature/x") == ForkBranchSpec("alice", "feature/x")

    def test_only_first_colon_splits(self):
        assert parse_fork_branch_spec("alice:a:b") == ForkBranchSpec("alice", "a:b")

    @pytest.mark.parametrize("raw", [
        "feature",
        "origin/feature",
        ":feature",
        "alice:",
        "https://github.com/alice/repo",
        "org/alice:feature",
        "al ice:feature",
    ])
    def test_not_a_fork_spec(self, raw: str):
        assert parse_fork_branch_spec(raw) is None


class TestDetectRemoteBranch:
    """Tests for detect_remote_branch."""

    def test_plain_local_branch(self):
        ctx = FakeRemotes(["origin"])
        assert detect_remote_branch("feature", ctx=ctx) == ReferenceResolution(None, "feature")
        assert ctx.fetched == []

    def test_local_branch_with_base(self):
        ctx = FakeRemotes(["origin"])
        assert detect_remote_branch("feature", "main", ctx) == ReferenceResolution(None, "feature")

    def test_known_remote_branch(self):
        ctx = FakeRemotes(["origin"], refs={"refs/remotes/origin/feature"})
        result = detect_remote_branch("origin/feature", ctx=ctx)
        assert result == ReferenceResolution("origin/feature", "feature")
        assert result.is_remote
        assert ctx.fetched == []

    def test_slash_without_matching_remote_is_local(self):
        ctx = FakeRemotes(["origin"])
        result = detect_remote_branch("feature/login", ctx=ctx)
        assert result == ReferenceResolution(None, "feature/login")

    def test_missing_ref_is_fetched(self, caplog):
        ctx = FakeRemotes(["origin"], refs_after_fetch={"refs/remotes/origin/feature"})
        with caplog.at_level(logging.WARNING):
            result = detect_remote_branch("origin/feature", ctx=ctx)
        assert result == ReferenceResolution("origin/feature", "feature")
        assert ctx.fetched == ["origin"]
        assert "not found locally, fetching from 'origin'" in caplog.text

    def test_missing_after_fetch_falls_back_to_local(self):
        ctx = FakeRemotes(["origin"])
        result = detect_remote_branch("origin/feature", ctx=ctx)
        assert result == ReferenceResolution(None, "origin/feature")
        assert ctx.fetched == ["origin"]

    def test_fetch_failure(self):
        ctx = FakeRemotes(["origin"], fetch_error=GitCommandError("could not resolve host"))
        with pytest.raises(FetchError, match="Failed to fetch from remote 'origin'") as exc_info:
            detect_remote_branch("origin/feature", ctx=ctx)
        assert "could not resolve host" in str(exc_info.value)

    def test_longest_remote_wins(self):
        ctx = FakeRemotes(["up", "up/stream"], refs={"refs/remotes/up/stream/fix"})
        result = detect_remote_branch("up/stream/fix", ctx=ctx)
        assert result == ReferenceResolution("up/stream/fix", "fix")

    def test_remote_branch_with_base(self):
        ctx = FakeRemotes(["origin"], refs={"refs/remotes/origin/feature"})
        with pytest.raises(UsageError, match="Cannot use --base with a remote branch reference"):
            detect_remote_branch("origin/feature", "main", ctx)

    def test_fork_spec(self):
        ctx = FakeRemotes(["origin"])
        result = detect_remote_branch("alice:feature", ctx=ctx)
        assert result == ReferenceResolution("alice/feature", "feature")
        assert ctx.forks == [ForkBranchSpec("alice", "feature")]

    def test_fork_spec_with_base(self):
        ctx = FakeRemotes(["origin"])
        with pytest.raises(UsageError, match="Cannot use --base with 'owner:branch' syntax") as exc_info:
            detect_remote_branch("alice:feature", "main", ctx)
        assert "The branch 'feature' from 'alice'" in str(exc_info.value)
        assert ctx.forks == []


class TestResolveForkBranch:
    """Tests for resolve_fork_branch."""

    def test_adds_fork_remote(self):
        with patch("github_utils.find_pr_by_head_ref", return_value=None), \
             patch("git_utils.ensure_fork_remote", return_value="alice") as ensure:
            result = resolve_fork_branch(ForkBranchSpec("alice", "fix"))
        ensure.assert_called_once_with("alice", None)
        assert result == ReferenceResolution("alice/fix", "fix")

    def test_pr_lookup_failure_is_ignored(self):
        with patch("github_utils.find_pr_by_head_ref", side_effect=ProviderError("no gh")), \
             patch("git_utils.ensure_fork_remote", return_value="alice"):
            result = resolve_fork_branch(ForkBranchSpec("alice", "fix"))
        assert result.remote_ref == "alice/fix"

    def test_pr_is_reported(self, caplog):
        pr = PrSummary(number=7, title="Fix it", state="OPEN", is_draft=True)
        with patch("github_utils.find_pr_by_head_ref", return_value=pr), \
             patch("git_utils.ensure_fork_remote", return_value="alice"), \
             caplog.at_level(logging.INFO):
            resolve_fork_branch(ForkBranchSpec("alice", "fix"))
        assert "PR #7: Fix it (draft)" in caplog.text


def _pr(**overrides) -> PrDetails:
    values = dict(
        number=42, title="Add feature", state="OPEN", is_draft=False,
        head_ref_name="feature", head_owner="acme", author="bob",
    )
    values.update(overrides)
    return PrDetails(**values)


class TestResolvePrRef:
    """Tests for resolve_pr_ref."""

    def test_same_repository_uses_origin(self):
        with patch("github_utils.get_pr_details", return_value=_pr()), \
             patch("git_utils.get_repo_owner", return_value="Acme"), \
             patch("git_utils.ensure_fork_remote") as ensure:
            result = resolve_pr_ref(42)
        ensure.assert_not_called()
        assert result.local_branch == "feature"
        assert result.remote_branch == "origin/feature"
        assert result.pr.number == 42

    def test_fork_adds_remote(self):
        pr = _pr(head_owner="alice")
        with patch("github_utils.get_pr_details", return_value=pr), \
             patch("git_utils.get_repo_owner", return_value="acme"), \
             patch("git_utils.ensure_fork_remote", return_value="alice") as ensure:
            result = resolve_pr_ref(42, cwd=Path("/repo"))
        ensure.assert_called_once_with("alice", Path("/repo"))
        assert result.remote_branch == "alice/feature"

    def test_custom_branch_name(self):
        with patch("github_utils.get_pr_details", return_value=_pr()), \
             patch("git_utils.get_repo_owner", return_value="acme"):
            result = resolve_pr_ref(42, "review-42")
        assert result.local_branch == "review-42"
        assert result.remote_branch == "origin/feature"

    def test_warns_about_closed_and_draft(self, caplog):
        pr = _pr(state="CLOSED", is_draft=True)
        with patch("github_utils.get_pr_details", return_value=pr), \
             patch("git_utils.get_repo_owner", return_value="acme"), \
             caplog.at_level(logging.WARNING):
            resolve_pr_ref(42)
        assert "PR #42 is CLOSED" in caplog.text
        assert "PR #42 is a DRAFT" in caplog.text

    def test_provider_error_propagates(self):
        with patch("github_utils.get_pr_details", side_effect=ProviderError("gh missing")):
            with pytest.raises(ProviderError, match="gh missing"):
                resolve_pr_ref(42)
