"""Core value types shared by discovery, status collection and the operations."""

import copy
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path

from .constants import BRANCH_TIME_FORMAT, WIP_NAMESPACE


@dataclass(frozen=True)
class Repository:
    """One git working copy found under the workspace.

    Attributes:
        path (Path): Filesystem location; unique within a run.
        name (str): Display name derived from the final path segment.
    """

    path: Path
    name: str

    @classmethod
    def from_path(cls, path: Path) -> "Repository":
        """Builds a Repository, deriving a display name for degenerate paths."""
        name = path.name
        if name in ("", "."):
            resolved = path.resolve()
            name = resolved.name
            if not name:
                name = "root" if resolved == Path(resolved.anchor) else "unknown"
        if not name.strip():
            name = "unknown"
        return cls(path=path, name=name)


@dataclass
class RepositoryStatus:
    """A point-in-time snapshot of one repository.

    When ``error`` is set only ``path`` is meaningful.
    """

    path: Path
    name: str = ""
    branch: str = ""
    dirty: int = 0
    untracked: int = 0
    ahead: int = 0
    behind: int = 0
    has_origin: bool = False
    in_progress: bool = False
    lines_added: int = 0
    lines_removed: int = 0
    files_changed: int = 0
    commits: int = 0
    last_commit: str = ""
    repo_size: str = ""
    error: str | None = None

    @property
    def state(self) -> str:
        if self.error:
            return "error"
        if not self.has_origin:
            return "no-origin"
        if self.in_progress:
            return "in-progress"
        if self.dirty or self.untracked:
            return "dirty"
        return "clean"

    @property
    def has_changes(self) -> bool:
        return self.error is None and (self.dirty + self.untracked) > 0


class Outcome(str, Enum):
    """The closed set of per-repository results."""

    SUCCESS = "success"
    ERROR = "error"
    SKIPPED = "skipped"
    CONFLICTS = "conflicts"
    NO_WIP = "no-wip"

    def __str__(self) -> str:
        return self.value


@dataclass
class ReportEntry:
    """One repository's outcome for one run.

    Built up by a single worker, then appended to a Report as a snapshot.

    Attributes:
        repo (str): Repository display name.
        outcome (Outcome): The single result tag.
        details (str): Free-text description.
        warnings (list[str]): Non-fatal issues, in order.
        errors (list[str]): Failures, in order.
    """

    repo: str
    outcome: Outcome = Outcome.SUCCESS
    details: str = ""
    warnings: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)

    def add_warning(self, message: str) -> None:
        self.warnings.append(message)

    def add_error(self, message: str) -> None:
        self.errors.append(message)

    def finish(self, outcome: Outcome, details: str = "") -> "ReportEntry":
        """Sets the outcome (and details, if given) and returns self."""
        self.outcome = outcome
        if details:
            self.details = details
        return self

    def snapshot(self) -> "ReportEntry":
        return copy.deepcopy(self)


@dataclass
class CheckpointEntry(ReportEntry):
    """A ReportEntry enriched with the telemetry a checkpoint captures."""

    branch: str = ""
    files_modified: int = 0
    files_added: int = 0
    lines_added: int = 0
    lines_removed: int = 0
    commit_hash: str = ""
    wip_branch: str = ""
    commit_message: str = ""
    changed_files: list[str] = field(default_factory=list)
    recent_commits: list[str] = field(default_factory=list)
    feature: str | None = None
    cross_repo_group: str | None = None


def wip_branch_name(
    host: str,
    when: datetime,
    feature: str | None = None,
    namespace: str = WIP_NAMESPACE,
) -> str:
    """Builds ``<namespace>/<host>[/<feature>]/<YYYYMMDD-HHMMSS>``.

    Args:
        host (str): Host component (already sanitised).
        when (datetime): Instant embedded in the name.
        feature (str | None): Optional feature segment.
        namespace (str): Branch namespace. Defaults to 'wip'.

    Returns:
        str: The WIP branch identifier.
    """
    stamp = when.strftime(BRANCH_TIME_FORMAT)
    parts = [namespace, host]
    if feature:
        parts.append(feature)
    parts.append(stamp)
    return "/".join(parts)
