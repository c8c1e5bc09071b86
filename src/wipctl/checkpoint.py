"""Workspace checkpoint: push semantics with mandatory staging and telemetry.

Every candidate repository has its changes staged without prompting, committed
onto a fresh WIP branch and pushed. What was captured (files, line deltas,
recent subjects) is recorded before staging so the report describes the
checkpoint itself. An optional feature name tags the branches and the report;
it carries no cross-repository transactional guarantee.
"""

import logging
from datetime import datetime
from pathlib import Path

from .config import Settings
from .constants import APP_NAME, RECENT_SUBJECTS
from .context import OperationContext
from .generation import COMMIT, CommitMessageInput, Generator, safe_generate
from .git_wrapper import GitError, GitRepo
from .models import CheckpointEntry, Outcome, Repository, RepositoryStatus
from .ops import open_repo, return_to_branch, unique_wip_branch

logger = logging.getLogger(APP_NAME)

TELEMETRY_SUBJECTS = 3


def porcelain_path(line: str) -> str:
    """Extracts the (new) path from a ``git status --porcelain`` line."""
    path = line[3:]
    if " -> " in path:
        path = path.split(" -> ", 1)[1]
    return path


def select_candidates(
    repos: list[Repository], statuses: dict[Path, RepositoryStatus]
) -> list[Repository]:
    """Keeps repositories with uncommitted changes or unpushed commits.

    Repositories whose snapshot failed, or that have no snapshot (interrupted),
    are left out.
    """
    selected = []
    for repo in repos:
        status = statuses.get(repo.path)
        if status is None or status.error:
            continue
        if status.dirty or status.untracked or status.ahead:
            selected.append(repo)
    return selected


def fallback_checkpoint_message(
    modified: int, added: int, prefix: str | None = None, when: datetime | None = None
) -> str:
    """Deterministic checkpoint commit message.

    Example: ``[sprint] checkpoint(14:05): rapid development sync - 2 files modified``
    """
    stamp = (when or datetime.now()).strftime("%H:%M")
    message = f"checkpoint({stamp}): rapid development sync"
    if prefix:
        message = f"[{prefix}] {message}"
    details = []
    if modified:
        details.append(f"{modified} files modified")
    if added:
        details.append(f"{added} files added")
    if details:
        message += " - " + ", ".join(details)
    return message


class CheckpointOperation:
    """Per-repository checkpoint handler.

    Attributes:
        settings (Settings): Run settings.
        ctx (OperationContext): Dry-run and deadline.
        generator (Generator): Commit message collaborator.
        wip_branch (str): The WIP branch name generated for this run.
        message_prefix (str | None): Text prepended as ``[prefix]``.
        feature (str | None): Feature tag (branch segment and report metadata).
        cross_repo (bool): Mark entries as part of a cross-repository group.
        ai_commit (bool): Ask the generator for commit messages.
    """

    def __init__(
        self,
        settings: Settings,
        ctx: OperationContext,
        generator: Generator,
        *,
        wip_branch: str,
        message_prefix: str | None = None,
        feature: str | None = None,
        cross_repo: bool = False,
        ai_commit: bool = False,
    ):
        if cross_repo and not feature:
            raise ValueError("cross-repo mode requires a feature name")
        self.settings = settings
        self.ctx = ctx
        self.generator = generator
        self.wip_branch = wip_branch
        self.message_prefix = message_prefix
        self.feature = feature
        self.cross_repo = cross_repo
        self.ai_commit = ai_commit

    def __call__(self, repo: Repository) -> CheckpointEntry:
        entry = CheckpointEntry(repo=repo.name, feature=self.feature)
        if self.cross_repo:
            entry.cross_repo_group = self.feature
        git = open_repo(self.settings, self.ctx, repo)

        ok, reason = git.preconditions()
        if not ok:
            entry.add_warning(f"{reason} - skipping checkpoint")
            return entry.finish(Outcome.SKIPPED, reason)

        try:
            git.fetch()
        except GitError as e:
            entry.add_error(f"fetch failed: {e}")
            return entry.finish(Outcome.ERROR, "fetch failed")

        try:
            self._capture(git, entry)
        except GitError as e:
            entry.add_error(f"status failed: {e}")
            return entry.finish(Outcome.ERROR, "status failed")

        if entry.files_modified or entry.files_added:
            try:
                junk = git.junk_files()
            except GitError as e:
                entry.add_error(f"junk check failed: {e}")
                return entry.finish(Outcome.ERROR, "junk check failed")
            if junk:
                entry.add_warning(f"untracked junk files found: {', '.join(junk)}")
                return entry.finish(Outcome.SKIPPED, "junk files found, fix .gitignore")
            try:
                git.add_all()
            except GitError as e:
                entry.add_error(f"git add failed: {e}")
                return entry.finish(Outcome.ERROR, "failed to stage changes")

        entry.commit_message = self._message(git, entry)

        try:
            entry.wip_branch = unique_wip_branch(git, self.wip_branch)
            git.switch_create(entry.wip_branch)
        except GitError as e:
            entry.add_error(f"git switch failed: {e}")
            return entry.finish(Outcome.ERROR, "failed to create WIP branch")

        try:
            git.commit_allow_empty(entry.commit_message)
        except GitError as e:
            entry.add_error(f"git commit failed: {e}")
            return entry.finish(Outcome.ERROR, "failed to create commit")
        # Under dry-run HEAD is still the pre-checkpoint commit.
        if not self.ctx.dry_run:
            entry.commit_hash = git.head_hash()

        try:
            git.push_upstream(entry.wip_branch)
        except GitError as e:
            entry.add_error(f"git push failed: {e}")
            return entry.finish(Outcome.ERROR, "failed to push WIP branch")

        logger.info(f"CHECKPOINT {repo.name}: pushed {entry.wip_branch}")
        return_to_branch(git, entry.branch, entry)
        return entry.finish(Outcome.SUCCESS, f"checkpointed to {entry.wip_branch}")

    def _capture(self, git: GitRepo, entry: CheckpointEntry) -> None:
        """Records branch, file and line telemetry before anything is staged."""
        entry.branch = git.current_branch()
        for line in git.status_porcelain():
            if not line.strip():
                continue
            if line.startswith("??"):
                entry.files_added += 1
            else:
                entry.files_modified += 1
            entry.changed_files.append(porcelain_path(line))
        _, entry.lines_added, entry.lines_removed = git.diff_stats()
        entry.recent_commits = git.log_subjects(TELEMETRY_SUBJECTS)

    def _message(self, git: GitRepo, entry: CheckpointEntry) -> str:
        fallback = fallback_checkpoint_message(
            entry.files_modified, entry.files_added, self.message_prefix
        )
        if not self.ai_commit:
            return fallback

        try:
            payload = CommitMessageInput(
                repo=entry.repo,
                branch=entry.branch,
                host=self.settings.host,
                name_status=git.diff_name_status_cached(),
                diff_stat=git.diff_stat_cached(),
                prior_subjects=git.log_subjects(RECENT_SUBJECTS),
            )
        except GitError as e:
            entry.add_warning(f"could not gather diff for AI message: {e}")
            return fallback

        text = safe_generate(self.generator, COMMIT, payload)
        if text is None:
            entry.add_warning("AI commit message unavailable, used fallback")
            return fallback
        if self.feature:
            text = f"feat({self.feature}): {text}"
        if self.message_prefix:
            text = f"[{self.message_prefix}] {text}"
        return text
