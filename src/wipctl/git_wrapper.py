import logging
import os
import subprocess
from datetime import datetime
from pathlib import Path

from rich.console import Console

from .constants import APP_NAME, DEFAULT_REMOTE, GIT_LOCK_FILES, JUNK_PATTERN
from .context import OperationCancelled, OperationContext

logger = logging.getLogger(APP_NAME)
console = Console()


class GitError(RuntimeError):
    """A git command exited with a non-zero status.

    Attributes:
        args_list (list[str]): The git arguments that failed.
        returncode (int | None): Exit status, or None for a timeout.
        stderr (str): Captured standard error.
    """

    def __init__(
        self, message: str, args_list: list[str], returncode: int | None, stderr: str
    ):
        super().__init__(message)
        self.args_list = args_list
        self.returncode = returncode
        self.stderr = stderr


def human_size(num_bytes: int) -> str:
    """Formats a byte count the way ``du -h`` does (e.g. '4.2M')."""
    size = float(num_bytes)
    for unit in ("B", "K", "M", "G", "T"):
        if size < 1024 or unit == "T":
            if unit == "B":
                return f"{int(size)}B"
            return f"{size:.1f}{unit}"
        size /= 1024
    return f"{size:.1f}T"


class GitRepo:
    """A wrapper around the Git command-line interface for a single repository.

    Mutating verbs honour the dry-run flag of the operation context: the argument
    list is always built, then either described or executed. Read-only verbs
    always execute. Every subprocess call checks the context for cancellation
    first and is bounded by the remaining deadline.

    Attributes:
        path (Path): The file system path to the repository root.
        ctx (OperationContext): Run-scoped dry-run/deadline settings.
        remote (str): Name of the remote used for WIP branches.
        timeout (float | None): Per-command timeout in seconds.
    """

    def __init__(
        self,
        path: Path,
        ctx: OperationContext,
        remote: str = DEFAULT_REMOTE,
        timeout: float | None = None,
    ):
        """Initializes the GitRepo instance.

        Args:
            path (Path): The path to the repository root directory.
            ctx (OperationContext): The run context.
            remote (str): The remote name. Defaults to 'origin'.
            timeout (float | None): Per-command timeout in seconds.

        Raises:
            ValueError: If the specified path does not contain a .git entry.
        """
        self.path = path
        self.ctx = ctx
        self.remote = remote
        self.timeout = timeout
        if not (self.path / ".git").exists():
            raise ValueError(f"Not a git repository: {self.path}")

    def _run(self, args: list[str]) -> str:
        """Executes a Git command within the repository context.

        Args:
            args (list[str]): A list of arguments to pass to the git command.

        Returns:
            str: The stdout of the command with trailing whitespace removed.

        Raises:
            OperationCancelled: If the run was cancelled or its deadline expired.
            GitError: If the git command returns a non-zero exit code or times out.
        """
        self.ctx.check()
        timeout = self.timeout
        remaining = self.ctx.remaining()
        if remaining is not None:
            timeout = remaining if timeout is None else min(timeout, remaining)

        try:
            res = subprocess.run(
                ["git", *args],
                cwd=self.path,
                capture_output=True,
                text=True,
                check=True,
                timeout=timeout,
                env={**os.environ, "GIT_TERMINAL_PROMPT": "0"},
            )
            return res.stdout.rstrip()
        except subprocess.TimeoutExpired as e:
            if self.ctx.cancelled:
                raise OperationCancelled(
                    f"deadline exceeded during git {' '.join(args)}"
                ) from e
            raise GitError(
                f"Git timeout after {timeout}s: git {' '.join(args)}", args, None, ""
            ) from e
        except subprocess.CalledProcessError as e:
            if self.ctx.cancelled:
                raise OperationCancelled(
                    f"cancelled during git {' '.join(args)}"
                ) from e
            stderr = (e.stderr or "").strip()
            raise GitError(f"Git error: {stderr or e}", args, e.returncode, stderr) from e

    def describe(self, args: list[str]) -> str:
        """Returns the deterministic dry-run description of a git invocation."""
        return f"[DRY RUN] Would run: git {' '.join(args)} (in {self.path})"

    def _mutate(self, args: list[str]) -> str:
        """Runs a mutating command, or only describes it under dry-run.

        Args:
            args (list[str]): The git arguments.

        Returns:
            str: The dry-run description, or the command's stdout.
        """
        if self.ctx.dry_run:
            self.ctx.check()
            description = self.describe(args)
            logger.info(description)
            console.print(f"[dim]{description}[/dim]", highlight=False)
            return description
        return self._run(args)

    # --- Mutating verbs ---

    def fetch(self) -> str:
        """Fetches from the remote, pruning deleted branches."""
        return self._mutate(["fetch", "--prune", "--quiet", self.remote])

    def add_all(self) -> str:
        """
        Stages all changes (modified, deleted, and untracked files)
        in the working directory.
        """
        return self._mutate(["add", "-A"])

    def commit_allow_empty(self, message: str) -> str:
        """Creates a commit, even when nothing is staged.

        Args:
            message (str): The commit message.
        """
        return self._mutate(["commit", "--allow-empty", "-m", message])

    def switch(self, branch: str) -> str:
        return self._mutate(["switch", branch])

    def switch_create(self, branch: str) -> str:
        """Creates or resets ``branch`` at HEAD and switches to it (``switch -C``)."""
        return self._mutate(["switch", "-C", branch])

    def switch_track(self, branch: str) -> str:
        """Creates a local branch tracking ``<remote>/<branch>`` and switches to it."""
        return self._mutate(
            ["switch", "-c", branch, "--track", f"{self.remote}/{branch}"]
        )

    def push(self, branch: str) -> str:
        return self._mutate(["push", self.remote, branch])

    def push_upstream(self, branch: str) -> str:
        """Pushes ``branch`` and records it as the upstream (``push -u``)."""
        return self._mutate(["push", "-u", self.remote, branch])

    def stash(self, message: str) -> str:
        """Stashes tracked and untracked changes under ``message``."""
        return self._mutate(["stash", "push", "-u", "-m", message])

    def stash_pop(self) -> str:
        return self._mutate(["stash", "pop"])

    # --- Read-only queries ---

    def current_branch(self) -> str:
        """Retrieves the name of the currently checked-out branch.

        Returns:
            str: The branch name, or 'HEAD' when detached.
        """
        return self._run(["rev-parse", "--abbrev-ref", "HEAD"])

    def has_remote(self) -> bool:
        """Checks whether the configured remote exists."""
        try:
            return bool(self._run(["remote", "get-url", self.remote]))
        except GitError:
            return False

    def git_dir(self) -> Path:
        """Resolves the real git directory, following ``gitdir:`` files."""
        dot_git = self.path / ".git"
        if dot_git.is_file():
            content = dot_git.read_text(errors="replace").strip()
            if content.startswith("gitdir:"):
                target = Path(content[len("gitdir:") :].strip())
                return target if target.is_absolute() else (self.path / target)
        return dot_git

    def in_progress(self) -> bool:
        """Returns True while a rebase or merge is mid-flight."""
        git_dir = self.git_dir()
        return any((git_dir / name).exists() for name in GIT_LOCK_FILES)

    def preconditions(self) -> tuple[bool, str]:
        """Checks push/pull eligibility.

        Returns:
            tuple[bool, str]: Whether the repository is eligible, and why not.
        """
        if not self.has_remote():
            return False, f"no {self.remote} remote"
        if self.in_progress():
            return False, "rebase or merge in progress"
        return True, ""

    def status_porcelain(self) -> list[str]:
        """Returns the porcelain (machine-readable) status lines of the repository."""
        output = self._run(["status", "--porcelain"])
        return output.splitlines() if output else []

    def untracked_files(self) -> list[str]:
        """Lists files that are not tracked by git and are not ignored."""
        output = self._run(["ls-files", "--others", "--exclude-standard"])
        return output.splitlines() if output else []

    def change_counts(self) -> tuple[int, int]:
        """Counts changed files from porcelain status.

        Returns:
            tuple[int, int]: (dirty tracked entries, untracked entries).
        """
        dirty = untracked = 0
        for line in self.status_porcelain():
            if line.startswith("??"):
                untracked += 1
            elif line.strip():
                dirty += 1
        return dirty, untracked

    def junk_files(self) -> list[str]:
        """Returns untracked paths that look like build output or caches."""
        return [f for f in self.untracked_files() if JUNK_PATTERN.search(f)]

    def ahead_behind(self) -> tuple[int, int]:
        """Counts commits relative to the upstream.

        Returns:
            tuple[int, int]: (ahead, behind). (0, 0) when there is no upstream.
        """
        try:
            output = self._run(["rev-list", "--left-right", "--count", "@{u}...HEAD"])
        except GitError as e:
            logger.debug(f"No upstream for {self.path}: {e}")
            return 0, 0
        try:
            behind, ahead = (int(x) for x in output.split())
            return ahead, behind
        except ValueError:
            return 0, 0

    def diff_stats(self) -> tuple[int, int, int]:
        """Summarises uncommitted changes against HEAD via ``git diff --numstat``.

        Binary files ('-') and unparseable lines count as zero lines.

        Returns:
            tuple[int, int, int]: (files_changed, lines_added, lines_removed).
        """
        try:
            output = self._run(["diff", "--numstat", "HEAD"])
        except GitError as e:
            logger.debug(f"numstat failed for {self.path}: {e}")
            return 0, 0, 0

        files = added = removed = 0
        for line in output.splitlines():
            parts = line.split("\t")
            if len(parts) < 3:
                continue
            files += 1
            try:
                added += int(parts[0])
            except ValueError:
                pass
            try:
                removed += int(parts[1])
            except ValueError:
                pass
        return files, added, removed

    def commit_count(self) -> int:
        try:
            return int(self._run(["rev-list", "--count", "HEAD"]) or 0)
        except (GitError, ValueError):
            return 0

    def last_commit_subject(self, width: int = 50) -> str:
        """Returns the HEAD subject, truncated to ``width`` characters."""
        try:
            subject = self._run(["log", "-1", "--pretty=format:%s"])
        except GitError:
            return ""
        if len(subject) > width:
            return subject[: width - 3] + "..."
        return subject

    def repo_size(self) -> str:
        """Approximate on-disk size of the git directory, or '?' on failure."""
        total = 0
        try:
            for root, _, files in os.walk(self.git_dir()):
                for name in files:
                    try:
                        total += os.lstat(os.path.join(root, name)).st_size
                    except OSError:
                        continue
        except OSError:
            return "?"
        return human_size(total)

    def conflicted_files(self) -> list[str]:
        """Lists unmerged paths (``git diff --name-only --diff-filter=U``)."""
        output = self._run(["diff", "--name-only", "--diff-filter=U"])
        return output.splitlines() if output else []

    def remote_wip_refs(self, namespace: str) -> list[tuple[datetime, str]]:
        """Lists remote-tracking WIP branches with their committer dates.

        Args:
            namespace (str): Branch namespace, e.g. 'wip'.

        Returns:
            list[tuple[datetime, str]]: (committer date, branch name without remote).
        """
        prefix = f"refs/remotes/{self.remote}/"
        output = self._run(
            [
                "for-each-ref",
                "--format=%(committerdate:iso-strict) %(refname)",
                f"{prefix}{namespace}/",
            ]
        )
        refs = []
        for line in output.splitlines():
            stamp, _, ref = line.strip().partition(" ")
            if not ref.startswith(prefix):
                continue
            try:
                when = datetime.fromisoformat(stamp)
            except ValueError:
                logger.warning(f"Unparseable committer date '{stamp}' for {ref}")
                continue
            refs.append((when, ref[len(prefix) :]))
        return refs

    def latest_remote_wip(self, namespace: str) -> str | None:
        """Picks the remote WIP branch whose tip has the latest committer time."""
        refs = self.remote_wip_refs(namespace)
        if not refs:
            return None
        return max(refs, key=lambda item: item[0])[1]

    def diff_name_status_cached(self) -> str:
        return self._run(["diff", "--cached", "--name-status"])

    def diff_stat_cached(self) -> str:
        return self._run(["diff", "--cached", "--stat"])

    def log_subjects(self, count: int) -> list[str]:
        """Returns up to ``count`` most recent commit subjects (empty if no commits)."""
        try:
            output = self._run(["log", f"-n{count}", "--pretty=format:%s"])
        except GitError:
            return []
        return output.splitlines() if output else []

    def remote_has_branch(self, branch: str) -> bool:
        """Asks the remote whether ``branch`` exists (``git ls-remote --heads``)."""
        try:
            return bool(self._run(["ls-remote", "--heads", self.remote, branch]))
        except GitError as e:
            logger.debug(f"ls-remote failed for {branch} in {self.path}: {e}")
            return False

    def ref_exists(self, ref: str) -> bool:
        try:
            self._run(["rev-parse", "--verify", "--quiet", ref])
            return True
        except GitError:
            return False

    def local_branch_exists(self, branch: str) -> bool:
        return self.ref_exists(f"refs/heads/{branch}")

    def head_hash(self, length: int = 8) -> str:
        """Returns the abbreviated HEAD commit hash, or '' if unavailable."""
        try:
            return self._run(["rev-parse", "HEAD"])[:length]
        except GitError:
            return ""
