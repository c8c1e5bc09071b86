"""Run reports: thread-safe accumulation and write-once Markdown persistence.

A Report is created when an operation starts, receives one entry per repository
from the worker threads, and is saved exactly once when every worker has
finished. ``list_reports`` reads back what earlier runs wrote.
"""

import logging
import threading
import time
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

from .constants import APP_NAME, BRANCH_TIME_FORMAT, REPORT_GLOB
from .models import CheckpointEntry, Outcome, ReportEntry

logger = logging.getLogger(APP_NAME)


class Report:
    """An append-only collection of per-repository outcomes for one run.

    Attributes:
        title (str): Heading of the rendered report.
        workspace (Path): The workspace root the run covered.
        operation (str): Short operation name used in the file name.
        timestamp (datetime): When the run started (local, timezone-aware).
    """

    def __init__(
        self,
        title: str,
        workspace: Path,
        operation: str,
        timestamp: datetime | None = None,
    ):
        self.title = title
        self.workspace = workspace
        self.operation = operation
        self.timestamp = timestamp or datetime.now().astimezone()
        self._entries: list[ReportEntry] = []
        self._lock = threading.Lock()
        self._saved_to: Path | None = None

    def add_entry(self, entry: ReportEntry) -> None:
        """Appends a snapshot of ``entry``; later changes to it are not reflected."""
        snapshot = entry.snapshot()
        with self._lock:
            self._entries.append(snapshot)

    @property
    def entries(self) -> tuple[ReportEntry, ...]:
        with self._lock:
            return tuple(self._entries)

    def count(self, outcome: Outcome) -> int:
        return sum(1 for e in self.entries if e.outcome == outcome)

    def counts(self) -> dict[Outcome, int]:
        """Returns the number of entries for every outcome (zero included)."""
        result = {outcome: 0 for outcome in Outcome}
        for entry in self.entries:
            result[entry.outcome] += 1
        return result

    @property
    def filename(self) -> str:
        stamp = self.timestamp.strftime(BRANCH_TIME_FORMAT)
        return f"wip-{self.operation}-{stamp}.md"

    def _render_header(self) -> list[str]:
        return [
            f"# {self.title}",
            "",
            f"**Workspace:** {self.workspace}  ",
            f"**Timestamp:** {self.timestamp.isoformat(timespec='seconds')}  ",
            "",
        ]

    def render(self) -> str:
        """Renders the report as Markdown.

        Returns:
            str: The full document.
        """
        lines = self._render_header()
        lines.append("## Results")
        lines.append("")

        entries = self.entries
        if not entries:
            lines.append("No repositories processed.")
        for entry in entries:
            line = f"- **{entry.repo}**: {entry.outcome}"
            if entry.details:
                line += f" - {entry.details}"
            lines.append(line)
            for warning in entry.warnings:
                lines.append(f"  - ⚠ {warning}")
            for error in entry.errors:
                lines.append(f"  - ❌ {error}")

        return "\n".join(lines) + "\n"

    def save(self, report_dir: Path) -> Path:
        """Writes the rendered report to ``report_dir``. A report is saved once.

        Args:
            report_dir (Path): Destination directory (created if missing).

        Returns:
            Path: The written file.

        Raises:
            RuntimeError: If the report was already saved.
            OSError: If the directory or file cannot be written.
        """
        if self._saved_to is not None:
            raise RuntimeError(f"Report already saved to {self._saved_to}")

        report_dir.mkdir(parents=True, exist_ok=True)
        path = report_dir / self.filename
        content = self.render()
        # "x" keeps an earlier report from being overwritten.
        with open(path, "x", encoding="utf-8") as f:
            f.write(content)
        self._saved_to = path
        logger.info(f"Report written to {path}")
        return path


class CheckpointReport(Report):
    """A Report whose entries carry checkpoint telemetry and a workspace summary."""

    def __init__(
        self,
        title: str,
        workspace: Path,
        timestamp: datetime | None = None,
        feature: str | None = None,
        cross_repo: bool = False,
    ):
        super().__init__(title, workspace, "checkpoint", timestamp)
        self.feature = feature
        self.cross_repo = cross_repo

    def checkpoint_entries(self) -> list[CheckpointEntry]:
        return [e for e in self.entries if isinstance(e, CheckpointEntry)]

    def summary(self) -> dict:
        """Aggregates the finished run.

        Returns:
            dict: processed/successful/failed/skipped counts, total files and
            lines, the feature group members and a one-line description.
        """
        entries = self.entries
        successful = [e for e in entries if e.outcome == Outcome.SUCCESS]
        failed = [e for e in entries if e.outcome == Outcome.ERROR]
        skipped = [e for e in entries if e.outcome == Outcome.SKIPPED]

        total_files = total_lines = 0
        for entry in successful:
            if isinstance(entry, CheckpointEntry):
                total_files += entry.files_modified + entry.files_added
                total_lines += entry.lines_added + entry.lines_removed

        group = sorted(
            e.repo
            for e in successful
            if isinstance(e, CheckpointEntry) and e.cross_repo_group
        )

        if successful:
            description = (
                f"{len(successful)} repositories checkpointed, "
                f"{total_files} files, {total_lines} lines changed"
            )
        else:
            description = "No repositories checkpointed"

        return {
            "processed": len(entries),
            "successful": len(successful),
            "failed": len(failed),
            "skipped": len(skipped),
            "total_files": total_files,
            "total_lines": total_lines,
            "feature_group": group,
            "description": description,
        }

    def render(self) -> str:
        summary = self.summary()
        lines = self._render_header()

        lines += [
            "## Summary",
            "",
            f"- **Processed:** {summary['processed']}",
            f"- **Successful:** {summary['successful']}",
            f"- **Failed:** {summary['failed']}",
            f"- **Skipped:** {summary['skipped']}",
            f"- **Files changed:** {summary['total_files']}",
            f"- **Lines changed:** {summary['total_lines']}",
            "",
            summary["description"],
            "",
        ]

        if self.feature:
            lines += ["## Feature", "", f"**Name:** {self.feature}  "]
            if self.cross_repo:
                members = ", ".join(summary["feature_group"]) or "none"
                lines.append(f"**Cross-repository group:** {members}  ")
            lines.append("")

        lines += ["## Results", ""]
        entries = self.entries
        if not entries:
            lines.append("No repositories processed.")

        for entry in entries:
            line = f"- **{entry.repo}**: {entry.outcome}"
            if entry.details:
                line += f" - {entry.details}"
            lines.append(line)
            if isinstance(entry, CheckpointEntry) and entry.outcome == Outcome.SUCCESS:
                lines.append(f"  - Branch: `{entry.branch}` → `{entry.wip_branch}`")
                lines.append(f"  - Commit: `{entry.commit_hash}` {entry.commit_message}")
                lines.append(
                    f"  - Files: {entry.files_modified} modified, "
                    f"{entry.files_added} added "
                    f"(+{entry.lines_added}/-{entry.lines_removed})"
                )
                for path in entry.changed_files:
                    lines.append(f"    - {path}")
                if entry.recent_commits:
                    lines.append("  - Recent commits:")
                    for subject in entry.recent_commits:
                        lines.append(f"    - {subject}")
            for warning in entry.warnings:
                lines.append(f"  - ⚠ {warning}")
            for error in entry.errors:
                lines.append(f"  - ❌ {error}")

        return "\n".join(lines) + "\n"


@dataclass(frozen=True)
class ReportInfo:
    """A persisted report file, as shown by ``wipctl report``."""

    path: Path
    modified: float
    size: int

    @property
    def operation(self) -> str:
        # wip-<operation>-<YYYYMMDD>-<HHMMSS>.md
        parts = self.path.stem.split("-")
        if len(parts) >= 4:
            return "-".join(parts[1:-2])
        return "unknown"

    def age(self, now: float | None = None) -> str:
        seconds = max(0, int((now or time.time()) - self.modified))
        if seconds < 60:
            return f"{seconds}s ago"
        if seconds < 3600:
            return f"{seconds // 60}m ago"
        if seconds < 86400:
            return f"{seconds // 3600}h ago"
        return f"{seconds // 86400}d ago"

    @property
    def size_label(self) -> str:
        if self.size < 1024:
            return f"{self.size}B"
        return f"{self.size / 1024:.1f}K"


def list_reports(report_dir: Path) -> list[ReportInfo]:
    """Lists persisted reports, newest first.

    Args:
        report_dir (Path): The report directory.

    Returns:
        list[ReportInfo]: Matching files; empty if the directory does not exist.
    """
    if not report_dir.is_dir():
        return []
    infos = []
    for path in report_dir.glob(REPORT_GLOB):
        if not path.is_file():
            continue
        stat = path.stat()
        infos.append(ReportInfo(path=path, modified=stat.st_mtime, size=stat.st_size))
    return sorted(infos, key=lambda i: i.modified, reverse=True)


def resolve_report_path(report_dir: Path, name: str) -> Path:
    """Resolves ``--show`` input: absolute paths as-is, others under report_dir."""
    candidate = Path(name).expanduser()
    if candidate.is_absolute():
        return candidate
    return report_dir / candidate
