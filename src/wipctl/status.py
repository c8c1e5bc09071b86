import logging
from pathlib import Path

from .config import Settings
from .constants import APP_NAME
from .context import OperationCancelled, OperationContext
from .coordinator import bounded_map
from .git_wrapper import GitError, GitRepo
from .models import Repository, RepositoryStatus

logger = logging.getLogger(APP_NAME)


def collect_status(repo: GitRepo, name: str = "") -> RepositoryStatus:
    """Gathers a status snapshot for one repository.

    Counts are skipped when the repository has no remote or is mid-rebase/merge,
    since it is not eligible for any operation in that state. A failing required
    query yields a snapshot carrying only ``error``.

    Args:
        repo (GitRepo): The repository to inspect.
        name (str): Display name.

    Returns:
        RepositoryStatus: The snapshot.
    """
    status = RepositoryStatus(path=repo.path, name=name or repo.path.name)
    try:
        status.branch = repo.current_branch()
        status.has_origin = repo.has_remote()
        status.in_progress = repo.in_progress()
        if not status.has_origin or status.in_progress:
            return status

        status.dirty, status.untracked = repo.change_counts()
        status.ahead, status.behind = repo.ahead_behind()
        (
            status.files_changed,
            status.lines_added,
            status.lines_removed,
        ) = repo.diff_stats()
        status.commits = repo.commit_count()
        status.last_commit = repo.last_commit_subject()
        status.repo_size = repo.repo_size()
    except GitError as e:
        logger.warning(f"STATUS {status.name}: {e}")
        return RepositoryStatus(path=repo.path, name=status.name, error=str(e))
    return status


class StatusCollector:
    """Collects status snapshots for many repositories concurrently."""

    def __init__(self, settings: Settings, concurrency: int):
        self.settings = settings
        self.concurrency = concurrency

    def collect(
        self, ctx: OperationContext, repos: list[Repository]
    ) -> dict[Path, RepositoryStatus]:
        """Returns a fresh snapshot per repository, keyed by path.

        Repositories interrupted by cancellation are absent from the result.
        """

        def _one(repo: Repository) -> RepositoryStatus:
            try:
                git = GitRepo(
                    repo.path,
                    ctx,
                    remote=self.settings.remote_name,
                    timeout=self.settings.git_timeout,
                )
            except ValueError as e:
                return RepositoryStatus(path=repo.path, name=repo.name, error=str(e))
            return collect_status(git, repo.name)

        statuses: dict[Path, RepositoryStatus] = {}
        for repo, status, error in bounded_map(ctx, repos, _one, self.concurrency):
            if isinstance(error, OperationCancelled):
                continue
            if error is not None:
                status = RepositoryStatus(path=repo.path, name=repo.name, error=str(error))
            statuses[repo.path] = status
        return statuses


def workspace_totals(statuses: dict[Path, RepositoryStatus]) -> dict[str, int]:
    """Aggregates counts across snapshots, ignoring errored ones."""
    totals = {
        "repositories": len(statuses),
        "dirty": 0,
        "files": 0,
        "lines_added": 0,
        "lines_removed": 0,
        "ahead": 0,
        "errors": 0,
    }
    for status in statuses.values():
        if status.error:
            totals["errors"] += 1
            continue
        if status.has_changes:
            totals["dirty"] += 1
        totals["files"] += status.dirty + status.untracked
        totals["lines_added"] += status.lines_added
        totals["lines_removed"] += status.lines_removed
        totals["ahead"] += status.ahead
    return totals
