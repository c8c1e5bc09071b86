"""Tests for the Command Line Interface (CLI) module."""

import logging
from collections.abc import Callable, Iterator
from pathlib import Path
from unittest.mock import MagicMock

import pytest
from rich.console import Console

from conftest import git
from wipctl import cli
from wipctl.constants import APP_NAME


@pytest.fixture(autouse=True)
def wide_console(mocker: MagicMock) -> None:
    """Renders tables without wrapping so assertions can match whole cells."""
    mocker.patch("wipctl.cli.console", Console(width=200))
    mocker.patch("wipctl.git_wrapper.console", Console(width=200))


@pytest.fixture(autouse=True)
def reset_logging() -> Iterator[None]:
    """Removes the handlers `main` installs so each test configures logging afresh."""
    yield
    logger = logging.getLogger(APP_NAME)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.setLevel(logging.NOTSET)


def _main(workspace: Path, *args: str) -> None:
    cli.main(["--workspace", str(workspace), "--host", "box", *args])


def test_main_without_command_prints_help(capsys: pytest.CaptureFixture) -> None:
    cli.main([])

    captured = capsys.readouterr()
    assert "Synchronization:" in captured.out
    assert "checkpoint" in captured.out


def test_status_lists_repositories(
    make_repo: Callable[..., Path],
    workspace: Path,
    capsys: pytest.CaptureFixture,
) -> None:
    """Verifies that the status table shows every repository and its state.

    Args:
        make_repo (Callable[..., Path]): Repository factory fixture.
        workspace (Path): The workspace root.
        capsys (pytest.CaptureFixture): Pytest fixture for capturing stdout.
    """
    make_repo("alpha")
    beta = make_repo("beta")
    (beta / "new.txt").write_text("n\n")

    _main(workspace, "status")

    out = capsys.readouterr().out
    assert "alpha" in out
    assert "beta" in out
    assert "dirty" in out
    assert "2 repositories, 1 with changes" in out


def test_status_ai_synopsis(
    make_repo: Callable[..., Path],
    workspace: Path,
    capsys: pytest.CaptureFixture,
    mocker: MagicMock,
) -> None:
    make_repo("alpha")
    generator = mocker.patch("wipctl.cli.build_generator").return_value
    generator.generate.return_value = "All quiet on the workspace front."

    _main(workspace, "status", "--ai")

    out = capsys.readouterr().out
    assert "Workspace Synopsis" in out
    assert "All quiet" in out
    kind = generator.generate.call_args[0][0]
    assert kind == "synopsis"


def test_status_reports_empty_workspace(
    workspace: Path, capsys: pytest.CaptureFixture
) -> None:
    _main(workspace, "status")

    assert "No Git repositories found" in capsys.readouterr().out


def test_missing_workspace_exits(tmp_path: Path) -> None:
    with pytest.raises(SystemExit) as exc:
        _main(tmp_path / "nowhere", "status")
    assert exc.value.code == 1


def test_push_auto_add_end_to_end(
    make_repo: Callable[..., Path],
    workspace: Path,
    tmp_path: Path,
    capsys: pytest.CaptureFixture,
) -> None:
    """Verifies a full push run: WIP branches on origin and a saved report.

    Args:
        make_repo (Callable[..., Path]): Repository factory fixture.
        workspace (Path): The workspace root.
        tmp_path (Path): Pytest fixture for a temporary directory.
        capsys (pytest.CaptureFixture): Pytest fixture for capturing stdout.
    """
    work = make_repo("alpha")
    (work / "notes.md").write_text("todo\n")

    _main(workspace, "push", "--auto-add")

    out = capsys.readouterr().out
    assert "SUCCESS:" in out
    heads = git(work, "ls-remote", "--heads", "origin")
    assert "refs/heads/wip/box/" in heads
    assert git(work, "rev-parse", "--abbrev-ref", "HEAD") == "main"

    reports = list((workspace / ".wipctl").glob("wip-push-*.md"))
    assert len(reports) == 1
    assert "**alpha**: success" in reports[0].read_text(encoding="utf-8")


def test_push_prefix_names_branch(
    make_repo: Callable[..., Path], workspace: Path
) -> None:
    work = make_repo("alpha")

    _main(workspace, "push", "--prefix", "demo day")

    assert "refs/heads/wip/demo-day" in git(work, "ls-remote", "--heads", "origin")


def test_push_dry_run_changes_nothing(
    make_repo: Callable[..., Path],
    workspace: Path,
    capsys: pytest.CaptureFixture,
) -> None:
    work = make_repo("alpha")
    (work / "notes.md").write_text("todo\n")

    _main(workspace, "--dry-run", "push", "--auto-add")

    out = capsys.readouterr().out
    assert "DRY RUN" in out
    assert "Would run: git push" in out
    assert git(work, "ls-remote", "--heads", "origin", "wip/*") == ""
    assert git(work, "status", "--porcelain") == "?? notes.md"


def test_push_without_auto_add_skips_changes(
    make_repo: Callable[..., Path],
    workspace: Path,
    capsys: pytest.CaptureFixture,
) -> None:
    make_repo("alpha")
    (workspace / "alpha" / "notes.md").write_text("todo\n")
    make_repo("beta")

    _main(workspace, "push")

    out = capsys.readouterr().out
    assert "SKIPPED:" in out
    assert "auto-add not enabled" in out


def test_pull_after_push_from_another_checkout(
    make_repo: Callable[..., Path],
    clone_origin: Callable[[Path, str], Path],
    workspace: Path,
    tmp_path: Path,
) -> None:
    """Verifies that work pushed from one checkout is picked up by another."""
    work = make_repo("alpha")
    (work / "feature.py").write_text("x = 1\n")
    _main(workspace, "push", "--auto-add", "--report-dir", str(tmp_path / "r1"))

    other = clone_origin(work, "alpha")
    other_ws = other.parent

    _main(other_ws, "pull", "--report-dir", str(tmp_path / "r2"))

    assert git(other, "rev-parse", "--abbrev-ref", "HEAD").startswith("wip/box/")
    assert (other / "feature.py").read_text() == "x = 1\n"
    assert list((tmp_path / "r2").glob("wip-pull-*.md"))


def test_checkpoint_cross_repo_requires_feature(workspace: Path) -> None:
    with pytest.raises(SystemExit) as exc:
        _main(workspace, "checkpoint", "--cross-repo")
    assert exc.value.code == 1


def test_checkpoint_clean_workspace(
    make_repo: Callable[..., Path],
    workspace: Path,
    capsys: pytest.CaptureFixture,
) -> None:
    make_repo("alpha")

    _main(workspace, "checkpoint")

    assert "No checkpoint needed" in capsys.readouterr().out
    assert not (workspace / ".wipctl").exists()


def test_checkpoint_feature_run(
    make_repo: Callable[..., Path],
    workspace: Path,
    capsys: pytest.CaptureFixture,
) -> None:
    """Verifies that only repositories with work are checkpointed, under one feature."""
    api = make_repo("api")
    (api / "auth.py").write_text("pass\n")
    web = make_repo("web")

    _main(workspace, "checkpoint", "--feature", "auth", "--cross-repo", "-m", "sprint")

    out = capsys.readouterr().out
    assert "Checkpointing 1 of 2 repositories" in out
    assert "refs/heads/wip/box/auth/" in git(api, "ls-remote", "--heads", "origin")
    assert git(web, "ls-remote", "--heads", "origin", "wip/*") == ""

    report = next((workspace / ".wipctl").glob("wip-checkpoint-*.md"))
    text = report.read_text(encoding="utf-8")
    assert "**Cross-repository group:** api" in text
    assert "[sprint] checkpoint(" in text


def test_review_falls_back_to_raw_activity(
    make_repo: Callable[..., Path],
    workspace: Path,
    capsys: pytest.CaptureFixture,
) -> None:
    work = make_repo("alpha")
    (work / "README.md").write_text("changed\n")

    _main(workspace, "review", str(work))

    out = capsys.readouterr().out
    assert "AI briefing unavailable" in out
    assert "initial commit" in out


def test_review_nothing_in_progress(
    make_repo: Callable[..., Path],
    workspace: Path,
    capsys: pytest.CaptureFixture,
) -> None:
    make_repo("alpha")

    _main(workspace, "review")

    assert "Nothing in progress" in capsys.readouterr().out


def test_report_lists_and_shows(
    workspace: Path, capsys: pytest.CaptureFixture
) -> None:
    report_dir = workspace / ".wipctl"
    report_dir.mkdir()
    (report_dir / "wip-push-20240101-120000.md").write_text("# WIP Push Report\n")

    _main(workspace, "report")
    listing = capsys.readouterr().out
    assert "wip-push-20240101-120000.md" in listing
    assert "push" in listing

    _main(workspace, "report", "--show", "wip-push-20240101-120000.md")
    assert "WIP Push Report" in capsys.readouterr().out


def test_report_show_missing_exits(workspace: Path) -> None:
    with pytest.raises(SystemExit) as exc:
        _main(workspace, "report", "--show", "nope.md")
    assert exc.value.code == 1


def test_config_list_shows_schema(
    workspace: Path, capsys: pytest.CaptureFixture
) -> None:
    _main(workspace, "config", "--list")

    out = capsys.readouterr().out
    assert "remote_name" in out
    assert "git_timeout" in out


def test_invalid_timeout_exits(workspace: Path) -> None:
    with pytest.raises(SystemExit) as exc:
        _main(workspace, "--timeout", "soon", "status")
    assert exc.value.code == 1


def test_invalid_concurrency_exits(make_repo: Callable[..., Path], workspace: Path) -> None:
    make_repo("alpha")
    with pytest.raises(SystemExit) as exc:
        _main(workspace, "status", "--concurrency", "0")
    assert exc.value.code == 1


def test_ai_flags_override_config(workspace: Path, mocker: MagicMock) -> None:
    """Verifies that --ai-* flags replace the loaded [ai] settings."""
    run_push = mocker.patch("wipctl.cli.run_push")

    _main(workspace, "push", "--ai-provider", "ollama", "--ai-model", "mistral")

    args, config, settings, ctx, generator = run_push.call_args[0]
    assert config.ai.provider == "ollama"
    assert config.ai.model == "mistral"
    assert settings.host == "box"
    assert ctx.dry_run is False
    assert generator.model == "mistral"
