"""Tests for repo_paths expansion and repository set resolution."""

from pathlib import Path

import pytest

from config import Config
from error_handler import ConfigError, EnvironmentLookupError, NotFoundError
from repo_paths import (
    expand_env_vars,
    expand_home,
    expand_repo_paths,
    repo_label,
    repo_matches_filter,
    resolve_repo_roots,
)


class TestExpandEnvVars:
    """Tests for $NAME and ${NAME} expansion."""

    def test_plain_and_braced(self, make_ctx):
        ctx = make_ctx(CODE="/src", TEAM="core")
        assert expand_env_vars("$CODE/${TEAM}/*", ctx) == "/src/core/*"

    def test_name_stops_at_non_word_character(self, make_ctx):
        ctx = make_ctx(A="x")
        assert expand_env_vars("$A-suffix", ctx) == "x-suffix"

    def test_no_variables(self, make_ctx):
        assert expand_env_vars("/plain/path", make_ctx()) == "/plain/path"

    def test_unset_variable(self, make_ctx):
        with pytest.raises(EnvironmentLookupError, match="'MISSING' is not set"):
            expand_env_vars("$MISSING/repos", make_ctx())

    def test_missing_closing_brace(self, make_ctx):
        with pytest.raises(EnvironmentLookupError, match="Missing closing"):
            expand_env_vars("${CODE/repos", make_ctx(CODE="/src"))

    def test_empty_braced_name(self, make_ctx):
        with pytest.raises(EnvironmentLookupError, match="Empty environment variable"):
            expand_env_vars("${}/repos", make_ctx())

    def test_invalid_braced_name(self, make_ctx):
        with pytest.raises(EnvironmentLookupError, match="Invalid environment variable name 'A-B'"):
            expand_env_vars("${A-B}", make_ctx())

    @pytest.mark.parametrize("value", ["/code/$", "/code/$-x"])
    def test_bare_dollar(self, make_ctx, value: str):
        with pytest.raises(EnvironmentLookupError, match="Invalid environment variable reference"):
            expand_env_vars(value, make_ctx())


class TestExpandHome:
    """Tests for leading ~ expansion."""

    def test_tilde(self, make_ctx, temp_dir: Path):
        ctx = make_ctx(home=temp_dir / "me")
        assert expand_home("~", ctx) == str(temp_dir / "me")
        assert expand_home("~/code/*", ctx) == str(temp_dir / "me" / "code" / "*")

    def test_other_paths_untouched(self, make_ctx):
        assert expand_home("/abs/~/x", make_ctx()) == "/abs/~/x"

    def test_other_user_not_supported(self, make_ctx):
        with pytest.raises(EnvironmentLookupError, match="Unsupported home expansion"):
            expand_home("~bob/code", make_ctx())


class TestExpandRepoPaths:
    """Tests for glob expansion of repo_paths patterns."""

    def test_sorted_and_deduplicated(self, make_git_repo, make_ctx, temp_dir: Path):
        beta = make_git_repo("code/beta")
        alpha = make_git_repo("code/alpha")

        result = expand_repo_paths(
            [f"{temp_dir}/code/*", str(beta), f"{temp_dir}/code/alpha"], make_ctx()
        )

        assert result.paths == [alpha, beta]
        assert result.unmatched_patterns == []

    def test_pattern_order_is_kept(self, make_git_repo, make_ctx, temp_dir: Path):
        alpha = make_git_repo("code/alpha")
        beta = make_git_repo("code/beta")
        result = expand_repo_paths([str(beta), str(alpha)], make_ctx())
        assert result.paths == [beta, alpha]

    def test_unmatched_pattern_is_reported(self, make_ctx, temp_dir: Path):
        pattern = f"{temp_dir}/nothing-here/*"
        result = expand_repo_paths([pattern], make_ctx())
        assert result.paths == []
        assert result.unmatched_patterns == [pattern]

    def test_env_var_pattern(self, make_git_repo, make_ctx, temp_dir: Path):
        alpha = make_git_repo("code/alpha")
        result = expand_repo_paths(["$CODE/*"], make_ctx(CODE=str(temp_dir / "code")))
        assert result.paths == [alpha]

    def test_unclosed_bracket(self, make_ctx):
        with pytest.raises(EnvironmentLookupError, match="unclosed '\\['"):
            expand_repo_paths(["/code/[abc"], make_ctx())

    def test_closed_bracket_is_a_character_class(self, make_git_repo, make_ctx, temp_dir: Path):
        alpha = make_git_repo("code/alpha")
        make_git_repo("code/beta")
        result = expand_repo_paths([f"{temp_dir}/code/[a]*"], make_ctx())
        assert result.paths == [alpha]


class TestRepoFilter:
    def test_label_is_directory_name(self):
        assert repo_label(Path("/code/alpha")) == "alpha"

    def test_filter_by_name_or_path(self):
        root = Path("/code/alpha")
        assert repo_matches_filter(root, "alpha")
        assert repo_matches_filter(root, "/code/alpha")
        assert not repo_matches_filter(root, "beta")


class TestResolveRepoRoots:
    """Tests for resolve_repo_roots."""

    def test_without_repo_paths_uses_current_repo(self, temp_git_repo: Path, make_ctx):
        repo_set = resolve_repo_roots(Config(), ctx=make_ctx(cwd=temp_git_repo))
        assert repo_set.roots == [temp_git_repo]
        assert repo_set.multi_repo is False

    def test_repo_filter_requires_repo_paths(self, temp_git_repo: Path, make_ctx):
        with pytest.raises(ConfigError, match="--repo requires repo_paths"):
            resolve_repo_roots(Config(), "alpha", make_ctx(cwd=temp_git_repo))

    def test_without_repo_paths_outside_repository(self, temp_dir: Path, make_ctx):
        outside = temp_dir / "plain"
        outside.mkdir()
        with pytest.raises(Exception, match="Not in a git repository"):
            resolve_repo_roots(Config(), ctx=make_ctx(cwd=outside))

    def test_invalid_entries_are_skipped(self, make_git_repo, make_ctx, temp_dir: Path):
        alpha = make_git_repo("code/alpha")
        (temp_dir / "code" / "notes.txt").write_text("hi")
        (temp_dir / "code" / "plain").mkdir()

        repo_set = resolve_repo_roots(Config(repo_paths=[f"{temp_dir}/code/*"]), ctx=make_ctx())

        assert repo_set.roots == [alpha]
        assert repo_set.multi_repo is True
        assert len(repo_set.diagnostics) == 2
        assert any("is not a directory" in d for d in repo_set.diagnostics)
        assert any("is not a git repository" in d for d in repo_set.diagnostics)

    def test_unmatched_pattern_is_a_diagnostic(self, make_git_repo, make_ctx, temp_dir: Path):
        make_git_repo("code/alpha")
        config = Config(repo_paths=[f"{temp_dir}/code/*", f"{temp_dir}/missing/*"])
        repo_set = resolve_repo_roots(config, ctx=make_ctx())
        assert repo_set.diagnostics == [f"repo_paths pattern '{temp_dir}/missing/*' did not match any paths"]

    def test_nothing_matched(self, make_ctx, temp_dir: Path):
        config = Config(repo_paths=[f"{temp_dir}/missing/*"])
        with pytest.raises(NotFoundError, match="no repositories matched the configured patterns"):
            resolve_repo_roots(config, ctx=make_ctx())

    def test_no_valid_repositories(self, make_ctx, temp_dir: Path):
        (temp_dir / "code" / "plain").mkdir(parents=True)
        config = Config(repo_paths=[f"{temp_dir}/code/*"])
        with pytest.raises(NotFoundError, match="did not yield any valid git repositories"):
            resolve_repo_roots(config, ctx=make_ctx())

    def test_repo_filter(self, make_git_repo, make_ctx, temp_dir: Path):
        make_git_repo("code/alpha")
        beta = make_git_repo("code/beta")
        config = Config(repo_paths=[f"{temp_dir}/code/*"])

        assert resolve_repo_roots(config, "beta", make_ctx()).roots == [beta]
        with pytest.raises(NotFoundError, match="No repositories matched --repo 'gamma'"):
            resolve_repo_roots(config, "gamma", make_ctx())
