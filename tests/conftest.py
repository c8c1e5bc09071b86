"""Shared fixtures: isolated config paths and throw-away git repositories."""

import shutil
import subprocess
from collections.abc import Callable
from pathlib import Path

import pytest

from wipctl.config import Settings
from wipctl.context import OperationContext
from wipctl.models import Repository

AI_ENV_VARS = [
    "WIPCTL_AI_PROVIDER",
    "WIPCTL_AI_ENDPOINT",
    "WIPCTL_AI_MODEL",
    "WIPCTL_AI_TOKEN",
    "WIPCTL_AI_EXEC",
    "WIPCTL_AI_MAX_TOKENS",
    "WIPCTL_AI_TEMPERATURE",
]


def git(cwd: Path, *args: str) -> str:
    """Runs a git command for test setup and returns its stdout."""
    res = subprocess.run(
        ["git", *args], cwd=cwd, capture_output=True, text=True, check=True
    )
    return res.stdout.strip()


@pytest.fixture(autouse=True)
def isolated_paths(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Keeps every test away from the real user config, name file and log."""
    config_dir = tmp_path / "_config"
    monkeypatch.setattr("wipctl.config.CONFIG_FILE", config_dir / "config.toml")
    monkeypatch.setattr("wipctl.cli.CONFIG_FILE", config_dir / "config.toml")
    monkeypatch.setattr("wipctl.system.MACHINE_NAME_FILE", config_dir / "machine_name")
    monkeypatch.setattr("wipctl.cli.LOG_FILE", tmp_path / "_state" / "wipctl.log")
    for name in AI_ENV_VARS:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def git_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Gives git a private identity and no system/global configuration."""
    if shutil.which("git") is None:
        pytest.skip("git is not installed")

    home = tmp_path / "_home"
    home.mkdir()
    gitconfig = home / ".gitconfig"
    gitconfig.write_text(
        "[init]\n\tdefaultBranch = main\n"
        "[commit]\n\tgpgsign = false\n"
        "[advice]\n\tdetachedHead = false\n"
    )
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.setenv("GIT_CONFIG_GLOBAL", str(gitconfig))
    monkeypatch.setenv("GIT_CONFIG_NOSYSTEM", "1")
    monkeypatch.setenv("GIT_AUTHOR_NAME", "Test Author")
    monkeypatch.setenv("GIT_AUTHOR_EMAIL", "author@example.com")
    monkeypatch.setenv("GIT_COMMITTER_NAME", "Test Author")
    monkeypatch.setenv("GIT_COMMITTER_EMAIL", "author@example.com")
    monkeypatch.delenv("GIT_DIR", raising=False)
    monkeypatch.delenv("GIT_WORK_TREE", raising=False)


@pytest.fixture
def workspace(tmp_path: Path) -> Path:
    path = tmp_path / "workspace"
    path.mkdir()
    return path


@pytest.fixture
def make_repo(
    tmp_path: Path, workspace: Path, git_env: None
) -> Callable[..., Path]:
    """Factory creating a committed repository (with a bare origin by default).

    Returns:
        Callable[..., Path]: ``make_repo(name, with_remote=True)`` -> work tree.
    """

    def _make(name: str = "project", with_remote: bool = True) -> Path:
        work = workspace / name
        work.mkdir(parents=True)
        git(work, "init", "-q")
        git(work, "checkout", "-q", "-B", "main")
        (work / "README.md").write_text("hello\n")
        git(work, "add", "README.md")
        git(work, "commit", "-q", "-m", "initial commit")

        if with_remote:
            origin = tmp_path / "remotes" / f"{name}.git"
            origin.parent.mkdir(parents=True, exist_ok=True)
            git(tmp_path, "init", "-q", "--bare", str(origin))
            git(work, "remote", "add", "origin", str(origin))
            git(work, "push", "-q", "-u", "origin", "main")
        return work

    return _make


@pytest.fixture
def clone_origin(tmp_path: Path, git_env: None) -> Callable[[Path, str], Path]:
    """Factory cloning a repository's origin into a second, independent checkout."""

    def _clone(work: Path, name: str = "other") -> Path:
        origin = git(work, "remote", "get-url", "origin")
        target = tmp_path / "clones" / name
        target.parent.mkdir(parents=True, exist_ok=True)
        git(tmp_path, "clone", "-q", origin, str(target))
        return target

    return _clone


@pytest.fixture
def settings(workspace: Path, tmp_path: Path) -> Settings:
    return Settings(
        workspace=workspace,
        host="testhost",
        report_dir=tmp_path / "reports",
        git_timeout=60,
    )


@pytest.fixture
def ctx() -> OperationContext:
    return OperationContext.create()


@pytest.fixture
def dry_ctx() -> OperationContext:
    return OperationContext.create(dry_run=True)


def as_repo(path: Path) -> Repository:
    return Repository.from_path(path)
