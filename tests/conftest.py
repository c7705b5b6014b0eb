"""Pytest configuration and fixtures for agentmux tests."""

import shutil
import subprocess
import tempfile
from collections.abc import Callable, Generator
from pathlib import Path
from unittest.mock import patch

import pytest

from config import RuntimeContext


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    temp_path = Path(tempfile.mkdtemp()).resolve()
    try:
        yield temp_path
    finally:
        shutil.rmtree(temp_path, ignore_errors=True)


def init_git_repo(path: Path) -> Path:
    """Initialize a git repository with one commit on `main`."""
    path.mkdir(parents=True, exist_ok=True)
    subprocess.run(["git", "init"], cwd=path, check=True, capture_output=True)
    subprocess.run(["git", "config", "user.name", "Test User"], cwd=path, check=True)
    subprocess.run(["git", "config", "user.email", "test@example.com"], cwd=path, check=True)
    subprocess.run(["git", "config", "commit.gpgsign", "false"], cwd=path, check=True)

    readme_file = path / "README.md"
    readme_file.write_text("# Test Repository\n")
    subprocess.run(["git", "add", "README.md"], cwd=path, check=True)
    subprocess.run(["git", "commit", "-m", "Initial commit"], cwd=path, check=True, capture_output=True)
    subprocess.run(["git", "branch", "-M", "main"], cwd=path, check=True)
    return path


@pytest.fixture
def temp_git_repo(temp_dir: Path) -> Path:
    """Create a temporary git repository for testing."""
    return init_git_repo(temp_dir / "repo")


@pytest.fixture
def make_git_repo(temp_dir: Path) -> Callable[[str], Path]:
    """Create named git repositories under the temporary directory."""
    def _make(name: str) -> Path:
        return init_git_repo(temp_dir / name)
    return _make


@pytest.fixture(autouse=True)
def isolated_environment(monkeypatch, tmp_path: Path):
    """Keep tests away from the real home directory and agentmux config."""
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.setenv("XDG_CONFIG_HOME", str(home / ".config"))
    monkeypatch.setenv("GIT_CONFIG_NOSYSTEM", "1")
    monkeypatch.delenv("TMUX", raising=False)
    monkeypatch.delenv("TMUX_PANE", raising=False)
    monkeypatch.delenv("AGENTMUX_TMUX_SOCKET", raising=False)
    return home


@pytest.fixture(autouse=True)
def no_tmux_global_path():
    """Executable lookups must not depend on a running tmux server."""
    with patch("tmux_utils.global_path", return_value=None):
        yield


@pytest.fixture
def make_ctx(temp_dir: Path) -> Callable[..., RuntimeContext]:
    """Build a RuntimeContext rooted in the temporary directory."""
    def _make(cwd: Path | None = None, home: Path | None = None, **env: str) -> RuntimeContext:
        home = home or temp_dir / "home"
        home.mkdir(parents=True, exist_ok=True)
        environ = {"HOME": str(home), "XDG_CONFIG_HOME": str(home / ".config")}
        environ.update(env)
        return RuntimeContext.from_environ(environ=environ, cwd=cwd or temp_dir)
    return _make


@pytest.fixture
def global_config_dir(temp_dir: Path) -> Path:
    """The agentmux config directory used by make_ctx contexts."""
    path = temp_dir / "home" / ".config" / "agentmux"
    path.mkdir(parents=True, exist_ok=True)
    return path
