import logging
from collections.abc import Callable
from datetime import datetime

from rich.console import Console
from rich.panel import Panel
from rich.prompt import Confirm

from .config import Settings
from .constants import APP_NAME, MESSAGE_TIME_FORMAT, RECENT_SUBJECTS
from .context import OperationContext
from .generation import COMMIT, CommitMessageInput, Generator, safe_generate
from .git_wrapper import GitError, GitRepo
from .models import Outcome, ReportEntry, Repository

console = Console()
logger = logging.getLogger(APP_NAME)


def ask_confirmation(prompt: str) -> bool:
    """Asks a yes/no question on the terminal."""
    return Confirm.ask(prompt, console=console, default=False)


def open_repo(settings: Settings, ctx: OperationContext, repo: Repository) -> GitRepo:
    """Creates the executor for ``repo`` with the run's remote and timeouts."""
    return GitRepo(
        repo.path, ctx, remote=settings.remote_name, timeout=settings.git_timeout
    )


def unique_wip_branch(git: GitRepo, base: str) -> str:
    """Returns ``base``, or ``base-2``, ``base-3``... if that name is already taken.

    A name is taken when it exists locally or as a remote-tracking branch, which
    happens when two runs on the same host start within the same second.

    Args:
        git (GitRepo): The repository.
        base (str): The generated WIP branch name.

    Returns:
        str: A branch name not yet used in this repository.
    """
    candidate = base
    suffix = 1
    while git.local_branch_exists(candidate) or git.ref_exists(
        f"refs/remotes/{git.remote}/{candidate}"
    ):
        suffix += 1
        candidate = f"{base}-{suffix}"
    return candidate


def return_to_branch(git: GitRepo, original: str, entry: ReportEntry) -> None:
    """Best-effort return to the developer's branch after the WIP push.

    Only a branch that already exists on the remote is switched back to and
    pushed; otherwise the repository stays on the WIP branch. Every failure
    becomes a warning on ``entry``.

    Args:
        git (GitRepo): The repository.
        original (str): Branch checked out before the operation.
        entry (ReportEntry): The entry collecting warnings.
    """
    if not original or original == "HEAD":
        entry.add_warning("started from a detached HEAD; left on the WIP branch")
        return

    if not git.remote_has_branch(original):
        logger.debug(f"{git.path.name}: {original} not on {git.remote}; staying on WIP")
        return

    try:
        git.switch(original)
    except GitError as e:
        logger.warning(f"{git.path.name}: failed to switch back to {original}: {e}")
        entry.add_warning(f"failed to switch back to {original}")
        return

    try:
        git.push(original)
    except GitError as e:
        logger.warning(f"{git.path.name}: failed to push {original}: {e}")
        entry.add_warning(f"failed to push current branch {original}")


def fallback_push_message(
    host: str, branch: str, files: int, when: datetime | None = None
) -> str:
    """Deterministic commit message used when no generated one is available."""
    stamp = (when or datetime.now()).strftime(MESSAGE_TIME_FORMAT)
    return f"chore(wip): checkpoint {host} ({branch}) — {files} files @ {stamp}"


class PushOperation:
    """Checkpoints one repository's working state onto a new WIP branch.

    Steps, strictly in order: precondition check, fetch, stage decision, message
    generation, branch create, commit, push WIP, then a best-effort switch back
    to (and push of) the original branch.

    Attributes:
        settings (Settings): Run settings (host, remote, namespace).
        ctx (OperationContext): Dry-run and deadline.
        generator (Generator): Commit message collaborator.
        wip_branch (str): The WIP branch name generated for this run.
        auto_add (bool): Stage changes without asking.
        concurrency (int): Prompts are only possible when this is 1.
        ai_commit (bool): Ask the generator for a commit message.
        review (bool): Show the generated message and require acceptance.
    """

    def __init__(
        self,
        settings: Settings,
        ctx: OperationContext,
        generator: Generator,
        *,
        wip_branch: str,
        auto_add: bool = False,
        concurrency: int = 1,
        ai_commit: bool = False,
        review: bool = False,
        confirm: Callable[[str], bool] | None = None,
    ):
        self.settings = settings
        self.ctx = ctx
        self.generator = generator
        self.wip_branch = wip_branch
        self.auto_add = auto_add
        self.concurrency = concurrency
        self.ai_commit = ai_commit
        self.review = review
        self.confirm = confirm or ask_confirmation

    def __call__(self, repo: Repository) -> ReportEntry:
        entry = ReportEntry(repo=repo.name)
        git = open_repo(self.settings, self.ctx, repo)

        ok, reason = git.preconditions()
        if not ok:
            logger.info(f"PUSH {repo.name}: skipped ({reason})")
            entry.add_warning(reason)
            return entry.finish(Outcome.SKIPPED, reason)

        try:
            git.fetch()
        except GitError as e:
            entry.add_error(f"fetch failed: {e}")
            return entry.finish(Outcome.ERROR, "fetch failed")

        try:
            original = git.current_branch()
            dirty, untracked = git.change_counts()
            untracked_files = git.untracked_files() if untracked else []
        except GitError as e:
            entry.add_error(f"status failed: {e}")
            return entry.finish(Outcome.ERROR, "status failed")

        changes = dirty + untracked
        if changes:
            try:
                junk = git.junk_files()
            except GitError as e:
                entry.add_error(f"junk check failed: {e}")
                return entry.finish(Outcome.ERROR, "junk check failed")
            if junk:
                logger.warning(f"PUSH {repo.name}: junk files present: {junk}")
                entry.add_warning(f"untracked junk files found: {', '.join(junk)}")
                return entry.finish(Outcome.SKIPPED, "junk files found, fix .gitignore")

            if not self.auto_add:
                if self.concurrency != 1:
                    entry.add_warning("changes present but auto-add not enabled")
                    return entry.finish(Outcome.SKIPPED, "changes not staged")
                if not self.confirm(f"{repo.name}: stage {changes} changed files?"):
                    entry.add_warning("user declined to add changes")
                    return entry.finish(Outcome.SKIPPED, "changes not staged")

            try:
                git.add_all()
            except GitError as e:
                entry.add_error(f"add failed: {e}")
                return entry.finish(Outcome.ERROR, "add failed")

        message = self._message(git, repo, original, changes, untracked_files, entry)

        try:
            branch = unique_wip_branch(git, self.wip_branch)
            git.switch_create(branch)
        except GitError as e:
            entry.add_error(f"create WIP branch failed: {e}")
            return entry.finish(Outcome.ERROR, "branch create failed")

        try:
            git.commit_allow_empty(message)
        except GitError as e:
            entry.add_error(f"commit failed: {e}")
            return entry.finish(Outcome.ERROR, "commit failed")

        try:
            git.push_upstream(branch)
        except GitError as e:
            entry.add_error(f"push failed: {e}")
            return entry.finish(Outcome.ERROR, "push failed")

        logger.info(f"PUSH {repo.name}: pushed {branch}")
        return_to_branch(git, original, entry)
        return entry.finish(Outcome.SUCCESS, f"{original} (wip={branch})")

    def _message(
        self,
        git: GitRepo,
        repo: Repository,
        branch: str,
        changes: int,
        untracked: list[str],
        entry: ReportEntry,
    ) -> str:
        fallback = fallback_push_message(self.settings.host, branch, changes)
        if not self.ai_commit:
            return fallback

        try:
            payload = CommitMessageInput(
                repo=repo.name,
                branch=branch,
                host=self.settings.host,
                name_status=git.diff_name_status_cached(),
                diff_stat=git.diff_stat_cached(),
                untracked=untracked,
                prior_subjects=git.log_subjects(RECENT_SUBJECTS),
            )
        except GitError as e:
            entry.add_warning(f"could not gather diff for AI message: {e}")
            return fallback

        text = safe_generate(self.generator, COMMIT, payload)
        if text is None:
            entry.add_warning("AI commit message unavailable, used fallback")
            return fallback

        if self.review:
            console.print(Panel(text, title=f"Proposed message: {repo.name}"))
            if not self.confirm("Use this message?"):
                entry.add_warning("AI commit message rejected, used fallback")
                return fallback
        return text


class PullOperation:
    """Restores the most recent remote WIP branch into one repository.

    Steps, strictly in order: precondition check, fetch, find latest remote WIP,
    stash, switch (or create tracking branch), stash pop, conflict check.
    Conflicts are reported, never resolved.
    """

    def __init__(self, settings: Settings, ctx: OperationContext):
        self.settings = settings
        self.ctx = ctx

    def __call__(self, repo: Repository) -> ReportEntry:
        entry = ReportEntry(repo=repo.name)
        git = open_repo(self.settings, self.ctx, repo)

        ok, reason = git.preconditions()
        if not ok:
            logger.info(f"PULL {repo.name}: skipped ({reason})")
            entry.add_warning(reason)
            return entry.finish(Outcome.SKIPPED, reason)

        try:
            original = git.current_branch()
            git.fetch()
        except GitError as e:
            entry.add_error(f"fetch failed: {e}")
            return entry.finish(Outcome.ERROR, "fetch failed")

        try:
            latest = git.latest_remote_wip(self.settings.namespace)
        except GitError as e:
            entry.add_error(f"listing WIP branches failed: {e}")
            return entry.finish(Outcome.ERROR, "listing WIP branches failed")

        if not latest:
            entry.add_warning(f"no WIP branches found on {git.remote}")
            return entry.finish(Outcome.NO_WIP, "nothing to pull")

        stashed = self._stash(git, repo, entry)

        try:
            if git.local_branch_exists(latest):
                git.switch(latest)
            else:
                git.switch_track(latest)
        except GitError as e:
            entry.add_error(f"switch to WIP branch failed: {e}")
            if stashed:
                self._pop(git, entry)
            return entry.finish(Outcome.ERROR, f"could not switch to {latest}")

        if stashed:
            self._pop(git, entry)

        try:
            conflicts = git.conflicted_files()
        except GitError as e:
            entry.add_error(f"conflict detection failed: {e}")
            return entry.finish(Outcome.ERROR, f"{original} → {latest}")

        if conflicts:
            logger.warning(f"PULL {repo.name}: conflicts in {conflicts}")
            entry.add_warning(f"conflicts in files: {', '.join(conflicts)}")
            return entry.finish(Outcome.CONFLICTS, f"{original} → {latest}")

        logger.info(f"PULL {repo.name}: switched to {latest}")
        return entry.finish(Outcome.SUCCESS, f"{original} → {latest}")

    def _stash(self, git: GitRepo, repo: Repository, entry: ReportEntry) -> bool:
        """Stashes local changes if there are any. Returns whether a stash was made."""
        try:
            if not git.status_porcelain():
                return False
            stamp = datetime.now().strftime(MESSAGE_TIME_FORMAT)
            git.stash(f"wipctl pull {stamp}")
            return True
        except GitError as e:
            logger.warning(f"PULL {repo.name}: stash failed: {e}")
            entry.add_warning(f"stash failed: {e}")
            return False

    def _pop(self, git: GitRepo, entry: ReportEntry) -> None:
        try:
            git.stash_pop()
        except GitError as e:
            logger.warning(f"{git.path.name}: stash pop failed: {e}")
            entry.add_warning("stash pop failed; local changes kept in the stash")
