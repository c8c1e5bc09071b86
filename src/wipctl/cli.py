import argparse
import logging
import sys
from dataclasses import replace
from datetime import datetime
from logging.handlers import RotatingFileHandler
from pathlib import Path

from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel
from rich.table import Table

from .checkpoint import CheckpointOperation, select_candidates
from .config import CONFIG_FILE, Config, Settings, parse_time
from .constants import APP_NAME, LOG_FILE
from .context import OperationContext
from .coordinator import Coordinator
from .discovery import DiscoveryError, discover
from .generation import (
    BRIEFING,
    SYNOPSIS,
    BriefingInput,
    Generator,
    RepoSummary,
    SynopsisInput,
    build_generator,
    safe_generate,
)
from .git_wrapper import GitError, GitRepo
from .models import Outcome, ReportEntry, Repository, RepositoryStatus, wip_branch_name
from .ops import PullOperation, PushOperation
from .report import CheckpointReport, Report, list_reports, resolve_report_path
from .status import StatusCollector, collect_status, workspace_totals
from .system import sanitize_ref_component

logger = logging.getLogger(APP_NAME)
console = Console()

OUTCOME_STYLES = {
    Outcome.SUCCESS: "bold green",
    Outcome.ERROR: "bold red",
    Outcome.SKIPPED: "bold yellow",
    Outcome.CONFLICTS: "bold magenta",
    Outcome.NO_WIP: "dim",
}

STATE_STYLES = {
    "clean": "green",
    "dirty": "yellow",
    "no-origin": "dim",
    "in-progress": "magenta",
    "error": "bold red",
}


def setup_logging(verbose: bool, config: Config) -> None:
    """Configures the logging subsystem.

    Warnings (or everything, with ``--verbose``) go to stderr; the full INFO
    stream goes to a rotating file in the state directory.

    Args:
        verbose (bool): Lower the console threshold to DEBUG.
        config (Config): Supplies the log rotation size.
    """
    if logger.handlers:
        return

    logger.setLevel(logging.DEBUG if verbose else logging.INFO)
    formatter = logging.Formatter(
        "[%(asctime)s] %(levelname)s: %(message)s", "%Y-%m-%d %H:%M:%S"
    )

    stream_handler = logging.StreamHandler(sys.stderr)
    stream_handler.setLevel(logging.DEBUG if verbose else logging.WARNING)
    stream_handler.setFormatter(formatter)
    logger.addHandler(stream_handler)

    try:
        LOG_FILE.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            LOG_FILE,
            maxBytes=config.limits.max_log_size,
            backupCount=5,
        )
    except OSError as e:
        logger.warning(f"File logging disabled: {e}")
        return
    file_handler.setFormatter(formatter)
    logger.addHandler(file_handler)


def print_entry(entry: ReportEntry) -> None:
    """Prints one repository's outcome as soon as it completes."""
    style = OUTCOME_STYLES.get(entry.outcome, "white")
    line = f"[{style}]{str(entry.outcome).upper()}:[/{style}] [cyan]{entry.repo}[/cyan]"
    if entry.details:
        line += f" - {entry.details}"
    console.print(line, highlight=False)
    for warning in entry.warnings:
        console.print(f"   [yellow]⚠ {warning}[/yellow]", highlight=False)
    for error in entry.errors:
        console.print(f"   [red]❌ {error}[/red]", highlight=False)


def finish_report(report: Report, settings: Settings, ctx: OperationContext) -> None:
    """Prints the outcome summary and saves the report (failure is a warning)."""
    counts = report.counts()
    summary = ", ".join(
        f"{count} {outcome}" for outcome, count in counts.items() if count
    )
    console.print(f"\n[bold]Done:[/bold] {summary or 'no repositories processed'}")
    if ctx.cancelled:
        console.print(
            "[bold yellow]WARNING:[/bold yellow] Run was interrupted; repositories "
            "without an entry did not complete."
        )

    try:
        path = report.save(settings.report_dir)
        console.print(f"[dim]Report saved to {path}[/dim]")
    except (OSError, RuntimeError) as e:
        logger.warning(f"Failed to save report: {e}")
        console.print(f"[bold yellow]WARNING:[/bold yellow] Failed to save report: {e}")


def discover_or_exit(settings: Settings) -> list[Repository]:
    """Discovers repositories, exiting the process if the walk fails."""
    try:
        with console.status("Discovering repositories...", spinner="dots"):
            repos = discover(settings.workspace)
    except DiscoveryError as e:
        logger.error(f"Discovery failed: {e}")
        console.print(f"[bold red]ERROR:[/bold red] Failed to discover repositories: {e}")
        sys.exit(1)

    if not repos:
        console.print(
            "[bold yellow]WARNING:[/bold yellow] No Git repositories found in workspace."
        )
    return sorted(repos, key=lambda r: str(r.path))


def resolve_concurrency(value: int | None, default: int) -> int:
    concurrency = value if value is not None else default
    if concurrency < 1:
        console.print("[bold red]ERROR:[/bold red] --concurrency must be at least 1.")
        sys.exit(1)
    return concurrency


def repo_summary(status: RepositoryStatus, git: GitRepo | None = None) -> RepoSummary:
    """Converts a snapshot into generator input, optionally with recent work."""
    summary = RepoSummary(
        name=status.name or status.path.name,
        branch=status.branch,
        status=status.state,
        files_changed=status.dirty + status.untracked,
        lines_added=status.lines_added,
        lines_removed=status.lines_removed,
        commits=status.commits,
    )
    if git is not None:
        summary.recent_work = git.log_subjects(5)
        try:
            summary.changes = ", ".join(
                line[3:] for line in git.status_porcelain() if line.strip()
            )
        except GitError as e:
            logger.debug(f"Could not list changes for {git.path}: {e}")
    return summary


# --- Commands ---


def run_status(
    args: argparse.Namespace,
    config: Config,
    settings: Settings,
    ctx: OperationContext,
    generator: Generator,
) -> None:
    """Renders the workspace status table and an optional AI synopsis."""
    repos = discover_or_exit(settings)
    if not repos:
        return

    concurrency = resolve_concurrency(args.concurrency, config.concurrency.status)
    with console.status(f"Collecting status for {len(repos)} repositories..."):
        statuses = StatusCollector(settings, concurrency).collect(ctx, repos)

    table = Table(title=f"Workspace: {settings.workspace}", header_style="bold magenta")
    table.add_column("Repository", style="cyan")
    table.add_column("Branch")
    table.add_column("Status")
    table.add_column("Files", justify="right")
    table.add_column("Lines", justify="right")
    table.add_column("Commits", justify="right")
    table.add_column("Ahead", justify="right")
    table.add_column("Behind", justify="right")
    table.add_column("Size", justify="right", style="dim")

    errored = []
    for repo in repos:
        status = statuses.get(repo.path)
        if status is None:
            continue
        state = status.state
        style = STATE_STYLES.get(state, "white")
        if status.error:
            errored.append(status)
            table.add_row(repo.name, "-", f"[{style}]{state}[/{style}]", *["-"] * 6)
            continue
        table.add_row(
            repo.name,
            status.branch,
            f"[{style}]{state}[/{style}]",
            str(status.dirty + status.untracked),
            f"+{status.lines_added}/-{status.lines_removed}",
            str(status.commits),
            str(status.ahead),
            str(status.behind),
            status.repo_size,
        )
    console.print(table)

    for status in errored:
        console.print(
            f"[bold red]ERROR:[/bold red] {status.path}: {status.error}", highlight=False
        )

    totals = workspace_totals(statuses)
    console.print(
        f"[dim]{totals['repositories']} repositories, {totals['dirty']} with changes, "
        f"{totals['files']} files, +{totals['lines_added']}/-{totals['lines_removed']} "
        f"lines[/dim]"
    )

    if args.ai:
        valid = [s for s in statuses.values() if not s.error]
        payload = SynopsisInput(
            repositories=[repo_summary(s) for s in valid],
            total_files=totals["files"],
            total_lines=totals["lines_added"] + totals["lines_removed"],
            total_commits=sum(s.commits for s in valid),
        )
        with console.status("Generating synopsis...", spinner="dots"):
            text = safe_generate(generator, SYNOPSIS, payload)
        if text:
            console.print(Panel(text, title="Workspace Synopsis", border_style="blue"))
        else:
            console.print(
                "[bold yellow]WARNING:[/bold yellow] AI synopsis unavailable "
                "(check the [ai] configuration)."
            )


def run_push(
    args: argparse.Namespace,
    config: Config,
    settings: Settings,
    ctx: OperationContext,
    generator: Generator,
) -> None:
    """Checkpoints every repository onto a WIP branch and pushes it."""
    repos = discover_or_exit(settings)
    if not repos:
        return

    concurrency = resolve_concurrency(args.concurrency, config.concurrency.push)
    if args.ai_review and concurrency != 1:
        console.print("[dim]Review mode: processing one repository at a time.[/dim]")
        concurrency = 1

    if args.prefix:
        wip_branch = f"{settings.namespace}/{sanitize_ref_component(args.prefix)}"
    else:
        wip_branch = wip_branch_name(
            settings.host, datetime.now(), namespace=settings.namespace
        )

    operation = PushOperation(
        settings,
        ctx,
        generator,
        wip_branch=wip_branch,
        auto_add=args.auto_add,
        concurrency=concurrency,
        ai_commit=args.ai_commit or args.ai_review,
        review=args.ai_review,
    )
    report = Report("WIP Push Report", settings.workspace, "push")
    console.print(
        f"[bold blue]INFO:[/bold blue] Pushing {len(repos)} repositories "
        f"to [cyan]{wip_branch}[/cyan]"
    )
    Coordinator(concurrency, on_entry=print_entry).run(ctx, repos, operation, report)
    finish_report(report, settings, ctx)


def run_pull(
    args: argparse.Namespace,
    config: Config,
    settings: Settings,
    ctx: OperationContext,
    generator: Generator,
) -> None:
    """Switches every repository to its most recent remote WIP branch."""
    repos = discover_or_exit(settings)
    if not repos:
        return

    concurrency = resolve_concurrency(args.concurrency, config.concurrency.pull)
    report = Report("WIP Pull Report", settings.workspace, "pull")
    console.print(f"[bold blue]INFO:[/bold blue] Pulling {len(repos)} repositories")
    Coordinator(concurrency, on_entry=print_entry).run(
        ctx, repos, PullOperation(settings, ctx), report
    )
    finish_report(report, settings, ctx)


def run_checkpoint(
    args: argparse.Namespace,
    config: Config,
    settings: Settings,
    ctx: OperationContext,
    generator: Generator,
) -> None:
    """Stages, commits and pushes every repository with pending work."""
    if args.cross_repo and not args.feature:
        console.print("[bold red]ERROR:[/bold red] --cross-repo requires --feature.")
        sys.exit(1)

    feature = sanitize_ref_component(args.feature) if args.feature else None
    repos = discover_or_exit(settings)
    if not repos:
        return

    concurrency = resolve_concurrency(args.concurrency, config.concurrency.checkpoint)
    with console.status(f"Analyzing {len(repos)} repositories..."):
        statuses = StatusCollector(settings, concurrency).collect(ctx, repos)

    candidates = select_candidates(repos, statuses)
    if not candidates:
        console.print(
            "[bold green]SUCCESS:[/bold green] All repositories are clean. "
            "No checkpoint needed."
        )
        return

    operation = CheckpointOperation(
        settings,
        ctx,
        generator,
        wip_branch=wip_branch_name(
            settings.host, datetime.now(), feature=feature, namespace=settings.namespace
        ),
        message_prefix=args.message,
        feature=feature,
        cross_repo=args.cross_repo,
        ai_commit=config.ai.provider.lower() != "none",
    )
    if args.cross_repo:
        console.print(f"[bold blue]INFO:[/bold blue] Cross-repo feature: {feature}")
    console.print(
        f"[bold blue]INFO:[/bold blue] Checkpointing {len(candidates)} "
        f"of {len(repos)} repositories"
    )

    report = CheckpointReport(
        "Workspace Checkpoint",
        settings.workspace,
        feature=feature,
        cross_repo=args.cross_repo,
    )
    Coordinator(concurrency, on_entry=print_entry).run(
        ctx, candidates, operation, report
    )
    console.print(f"[bold]{report.summary()['description']}[/bold]")
    finish_report(report, settings, ctx)


def run_review(
    args: argparse.Namespace,
    config: Config,
    settings: Settings,
    ctx: OperationContext,
    generator: Generator,
) -> None:
    """Prints a "where did I leave off" briefing for one repository or the workspace."""
    summaries: list[RepoSummary] = []

    if args.repo:
        path = Path(args.repo).expanduser().resolve()
        try:
            git = GitRepo(
                path, ctx, remote=settings.remote_name, timeout=settings.git_timeout
            )
        except ValueError as e:
            console.print(f"[bold red]ERROR:[/bold red] {e}")
            sys.exit(1)
        status = collect_status(git, Repository.from_path(path).name)
        if status.error:
            console.print(f"[bold red]ERROR:[/bold red] {status.error}")
            sys.exit(1)
        summaries.append(repo_summary(status, git))
        title = f"Briefing: {summaries[0].name}"
    else:
        repos = discover_or_exit(settings)
        if not repos:
            return
        with console.status(f"Collecting status for {len(repos)} repositories..."):
            statuses = StatusCollector(settings, config.concurrency.status).collect(
                ctx, repos
            )
        for status in statuses.values():
            if status.error or not (status.has_changes or status.ahead):
                continue
            git = GitRepo(
                status.path, ctx, remote=settings.remote_name, timeout=settings.git_timeout
            )
            summaries.append(repo_summary(status, git))
        title = "Workspace Briefing"

    if not summaries:
        console.print("[bold green]SUCCESS:[/bold green] Nothing in progress.")
        return

    payload = BriefingInput(
        repositories=summaries,
        total_files=sum(s.files_changed for s in summaries),
        total_lines=sum(s.lines_added + s.lines_removed for s in summaries),
        active_repos=len(summaries),
        dirty_repos=sum(1 for s in summaries if s.status == "dirty"),
    )
    with console.status("Preparing briefing...", spinner="dots"):
        text = safe_generate(generator, BRIEFING, payload)

    if text:
        console.print(Panel(text, title=title, border_style="blue"))
        return

    console.print(
        "[bold yellow]WARNING:[/bold yellow] AI briefing unavailable; "
        "showing raw activity."
    )
    for summary in summaries:
        body = [
            f"[bold]Branch:[/bold] {summary.branch}  [bold]Status:[/bold] {summary.status}",
            f"[bold]Files:[/bold] {summary.files_changed} "
            f"(+{summary.lines_added}/-{summary.lines_removed})",
        ]
        if summary.changes:
            body.append(f"[bold]Changes:[/bold] {summary.changes}")
        for subject in summary.recent_work:
            body.append(f"  • {subject}")
        console.print(Panel("\n".join(body), title=summary.name, border_style="dim"))


def run_report(args: argparse.Namespace, settings: Settings) -> None:
    """Lists persisted reports, or shows one with ``--show``."""
    if args.show:
        path = resolve_report_path(settings.report_dir, args.show)
        if not path.is_file():
            console.print(f"[bold red]ERROR:[/bold red] Report not found: {path}")
            sys.exit(1)
        console.print(Markdown(path.read_text(encoding="utf-8")))
        return

    reports = list_reports(settings.report_dir)
    if not reports:
        console.print(f"[yellow]No reports found in {settings.report_dir}.[/yellow]")
        return

    table = Table(title=f"Reports in {settings.report_dir}", header_style="bold magenta")
    table.add_column("File", style="cyan")
    table.add_column("Operation")
    table.add_column("Age", justify="right", style="dim")
    table.add_column("Size", justify="right", style="dim")
    for info in reports:
        table.add_row(info.path.name, info.operation, info.age(), info.size_label)
    console.print(table)


def show_config_reference() -> None:
    """Displays a formatted table of all available configuration options."""
    table = Table(title="wipctl Configuration Schema", show_lines=True)
    table.add_column("Section", style="cyan", justify="right")
    table.add_column("Key", style="green")
    table.add_column("Type", style="dim")
    table.add_column("Default", style="yellow")
    table.add_column("Description")

    table.add_row("core", "remote_name", "str", '"origin"', "Remote for WIP branches.")
    table.add_row("", "namespace", "str", '"wip"', "Branch namespace for WIP branches.")
    table.add_row("", "host", "str", "hostname", "Host segment of WIP branch names.")
    table.add_row(
        "", "report_dir", "str", '"<workspace>/.wipctl"', "Where run reports go."
    )

    table.add_row("concurrency", "status", "int", "8", "Parallel status queries.")
    table.add_row("", "push", "int", "6", "Parallel pushes.")
    table.add_row("", "pull", "int", "6", "Parallel pulls.")
    table.add_row("", "checkpoint", "int", "8", "Parallel checkpoints.")

    table.add_row(
        "ai",
        "provider",
        "str",
        '"none"',
        "'none', 'exec', 'openai', 'anthropic' (or 'claude'), 'ollama'. "
        "Env: WIPCTL_AI_PROVIDER.",
    )
    table.add_row("", "endpoint", "str", "provider default", "Base URL for HTTP providers.")
    table.add_row("", "model", "str", "provider default", "Model identifier.")
    table.add_row("", "token", "str", "None", "API token. Env: WIPCTL_AI_TOKEN.")
    table.add_row("", "exec_path", "str", "None", "Executable for the 'exec' provider.")
    table.add_row("", "max_tokens", "int", "256", "Response length cap.")
    table.add_row("", "temperature", "float", "0.1", "Sampling temperature.")
    table.add_row("", "timeout", "int | str", '"30s"', "Provider request timeout.")

    table.add_row(
        "limits",
        "max_log_size",
        "int | str",
        '"5mb"',
        "Max size for log files before rotation (e.g., '5mb', '1gb').",
    )
    table.add_row("", "git_timeout", "int | str", '"2m"', "Limit for one git command.")
    table.add_row("", "deadline", "int | str", "None", "Limit for a whole run.")

    console.print(table)


def show_config(config: Config, settings: Settings) -> None:
    """Shows where configuration is read from and the effective run settings."""
    state = "exists" if CONFIG_FILE.exists() else "not created"
    console.print(f"Global config: [cyan]{CONFIG_FILE}[/cyan] ({state})")
    console.print(f"Workspace:     [cyan]{settings.workspace}[/cyan]")
    console.print(f"Host:          [cyan]{settings.host}[/cyan]")
    console.print(f"Reports:       [cyan]{settings.report_dir}[/cyan]")
    console.print(f"Remote:        [cyan]{settings.remote_name}[/cyan]")
    console.print(f"AI provider:   [cyan]{config.ai.provider}[/cyan]")
    console.print("[dim]Run 'wipctl config --list' for every option.[/dim]")


class WipctlHelpFormatter(argparse.HelpFormatter):
    """Groups the subcommands into categories in the help output."""

    def _format_action(self, action: argparse.Action) -> str:
        if isinstance(action, argparse._SubParsersAction):
            parts = []

            groups = {
                "Synchronization": ["push", "pull", "checkpoint"],
                "Inspection": ["status", "review"],
                "Reports & Settings": ["report", "config"],
            }

            subactions = list(self._iter_indented_subactions(action))

            for group_name, commands in groups.items():
                group_actions = [a for a in subactions if a.dest in commands]
                if not group_actions:
                    continue

                parts.append(f"\n  {group_name}:\n")

                self._indent()
                for subaction in group_actions:
                    parts.append(self._format_action(subaction))
                self._dedent()

            return self._join_parts(parts)

        return super()._format_action(action)


def _add_global_flags(parser: argparse.ArgumentParser, suppress: bool) -> None:
    """Adds workspace-wide flags. Subparsers use SUPPRESS so they only override."""

    def default(value: object) -> object:
        return argparse.SUPPRESS if suppress else value

    parser.add_argument(
        "--workspace",
        "-w",
        default=default("."),
        help="Workspace root to discover repositories in (default: .)",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        default=default(False),
        help="Describe mutating git commands without running them",
    )
    parser.add_argument(
        "--host", default=default(None), help="Host name used in WIP branch names"
    )
    parser.add_argument(
        "--report-dir",
        default=default(None),
        help="Report directory (default: <workspace>/.wipctl)",
    )
    parser.add_argument(
        "--timeout",
        default=default(None),
        help="Deadline for the whole run (e.g. '90s', '10m')",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        default=default(False),
        help="Show debug logging",
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog=APP_NAME,
        description="Sync work-in-progress across every git repository in a workspace.",
        formatter_class=WipctlHelpFormatter,
    )
    _add_global_flags(parser, suppress=False)
    subparsers = parser.add_subparsers(dest="command")

    common = argparse.ArgumentParser(add_help=False)
    _add_global_flags(common, suppress=True)

    def concurrency_flag(p: argparse.ArgumentParser) -> None:
        p.add_argument(
            "--concurrency",
            "-c",
            type=int,
            default=None,
            help="Repositories processed at once",
        )

    status_parser = subparsers.add_parser(
        "status", parents=[common], help="Show status of every repository"
    )
    concurrency_flag(status_parser)
    status_parser.add_argument(
        "--ai", action="store_true", help="Add an AI synopsis of workspace activity"
    )

    push_parser = subparsers.add_parser(
        "push", parents=[common], help="Commit and push work to WIP branches"
    )
    concurrency_flag(push_parser)
    push_parser.add_argument(
        "--auto-add", action="store_true", help="Stage changes without prompting"
    )
    push_parser.add_argument(
        "--prefix", help="Use wip/<NAME> instead of a host/timestamp branch name"
    )
    push_parser.add_argument(
        "--ai-commit", action="store_true", help="Generate commit messages with AI"
    )
    push_parser.add_argument(
        "--ai-review",
        action="store_true",
        help="Review each AI message before use (forces concurrency 1)",
    )
    push_parser.add_argument("--ai-provider", help="Override [ai].provider")
    push_parser.add_argument("--ai-endpoint", help="Override [ai].endpoint")
    push_parser.add_argument("--ai-model", help="Override [ai].model")
    push_parser.add_argument("--ai-token", help="Override [ai].token")
    push_parser.add_argument("--ai-exec", help="Override [ai].exec_path")

    pull_parser = subparsers.add_parser(
        "pull", parents=[common], help="Switch to the latest remote WIP branches"
    )
    concurrency_flag(pull_parser)

    checkpoint_parser = subparsers.add_parser(
        "checkpoint", parents=[common], help="Stage, commit and push all pending work"
    )
    concurrency_flag(checkpoint_parser)
    checkpoint_parser.add_argument(
        "--message", "-m", help="Prefix added to every commit message as [PREFIX]"
    )
    checkpoint_parser.add_argument(
        "--feature", help="Feature name added to branch names and commit messages"
    )
    checkpoint_parser.add_argument(
        "--cross-repo",
        action="store_true",
        help="Tag the checkpoint as one feature across repositories",
    )

    review_parser = subparsers.add_parser(
        "review", parents=[common], help="Briefing on where you left off"
    )
    review_parser.add_argument(
        "repo", nargs="?", help="Repository to brief on (default: whole workspace)"
    )

    report_parser = subparsers.add_parser(
        "report", parents=[common], help="List or show saved run reports"
    )
    report_parser.add_argument("--show", metavar="FILE", help="Report to display")

    config_parser = subparsers.add_parser(
        "config", parents=[common], help="Show configuration or view options"
    )
    config_parser.add_argument(
        "--list",
        "-l",
        action="store_true",
        help="List all available configuration options and their descriptions",
    )

    return parser


def _apply_ai_overrides(config: Config, args: argparse.Namespace) -> Config:
    overrides = {
        "provider": getattr(args, "ai_provider", None),
        "endpoint": getattr(args, "ai_endpoint", None),
        "model": getattr(args, "ai_model", None),
        "token": getattr(args, "ai_token", None),
        "exec_path": getattr(args, "ai_exec", None),
    }
    overrides = {k: v for k, v in overrides.items() if v}
    if overrides:
        config.ai = replace(config.ai, **overrides)
    return config


def main(argv: list[str] | None = None) -> None:
    """Main entry point for the wipctl CLI."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return

    workspace = Path(args.workspace).expanduser()
    config = _apply_ai_overrides(Config.load(workspace), args)
    setup_logging(args.verbose, config)

    if args.command == "config" and args.list:
        show_config_reference()
        return

    report_dir = Path(args.report_dir).expanduser() if args.report_dir else None
    settings = Settings.resolve(config, workspace, host=args.host, report_dir=report_dir)

    if args.command == "config":
        show_config(config, settings)
        return
    if args.command == "report":
        run_report(args, settings)
        return

    timeout = config.limits.deadline
    if args.timeout:
        try:
            timeout = parse_time(args.timeout)
        except ValueError as e:
            console.print(f"[bold red]ERROR:[/bold red] {e}")
            sys.exit(1)
    ctx = OperationContext.create(dry_run=args.dry_run, timeout=timeout)

    if ctx.dry_run:
        console.print(
            Panel(
                "[bold yellow]DRY RUN[/bold yellow]: git commands that change "
                "repositories will only be described.",
                border_style="yellow",
            )
        )

    generator = build_generator(config.ai)
    commands = {
        "status": run_status,
        "push": run_push,
        "pull": run_pull,
        "checkpoint": run_checkpoint,
        "review": run_review,
    }
    logger.info(f"Running '{args.command}' in {settings.workspace}")
    commands[args.command](args, config, settings, ctx, generator)


if __name__ == "__main__":
    main()
