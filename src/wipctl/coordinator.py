import logging
import threading
from collections.abc import Callable, Iterable
from concurrent.futures import ThreadPoolExecutor, wait
from typing import TypeVar

from .constants import APP_NAME
from .context import OperationCancelled, OperationContext
from .models import Outcome, ReportEntry, Repository
from .report import Report

logger = logging.getLogger(APP_NAME)

T = TypeVar("T")
R = TypeVar("R")


def bounded_map(
    ctx: OperationContext,
    items: Iterable[T],
    fn: Callable[[T], R],
    concurrency: int,
) -> list[tuple[T, R | None, BaseException | None]]:
    """Calls ``fn`` once per item, at most ``concurrency`` at a time.

    Every item gets its own thread; a BoundedSemaphore limits how many run
    ``fn`` simultaneously. Items whose slot is acquired after cancellation are
    not run. This is a join point: it returns only once every thread is done.

    Args:
        ctx (OperationContext): Run context, checked before each call.
        items (Iterable[T]): Work items.
        fn (Callable[[T], R]): The per-item function.
        concurrency (int): Maximum simultaneous calls.

    Returns:
        list[tuple[T, R | None, BaseException | None]]: (item, result, exception)
        for each item that was attempted, in input order.

    Raises:
        ValueError: If concurrency is less than 1.
    """
    if concurrency < 1:
        raise ValueError(f"concurrency must be at least 1, got {concurrency}")

    items = list(items)
    if not items:
        return []

    slots = threading.BoundedSemaphore(concurrency)

    def _unit(item: T) -> tuple[T, R | None, BaseException | None] | None:
        with slots:
            if ctx.cancelled:
                return None
            try:
                return item, fn(item), None
            except Exception as e:
                return item, None, e

    with ThreadPoolExecutor(max_workers=len(items)) as pool:
        futures = [pool.submit(_unit, item) for item in items]
        try:
            wait(futures)
        except KeyboardInterrupt:
            logger.warning("Interrupted: waiting for in-flight repositories to stop")
            ctx.cancel()
            wait(futures)

    results = [f.result() for f in futures]
    return [r for r in results if r is not None]


class Coordinator:
    """Fans a per-repository handler out over a workspace and collects a Report.

    Attributes:
        concurrency (int): Maximum handlers running at once.
        on_entry (Callable | None): Called with each entry as it is appended.
    """

    def __init__(
        self,
        concurrency: int,
        on_entry: Callable[[ReportEntry], None] | None = None,
    ):
        if concurrency < 1:
            raise ValueError(f"concurrency must be at least 1, got {concurrency}")
        self.concurrency = concurrency
        self.on_entry = on_entry
        self._print_lock = threading.Lock()

    def _record(self, report: Report, entry: ReportEntry) -> None:
        report.add_entry(entry)
        if self.on_entry:
            with self._print_lock:
                try:
                    self.on_entry(entry)
                except Exception as e:
                    logger.warning(f"Failed to display result for {entry.repo}: {e}")

    def run(
        self,
        ctx: OperationContext,
        repos: list[Repository],
        handler: Callable[[Repository], ReportEntry],
        report: Report,
    ) -> Report:
        """Runs ``handler`` for every repository and appends the results.

        A handler exception becomes an ``error`` entry for that repository only.
        Repositories interrupted by cancellation get no entry.

        Args:
            ctx (OperationContext): Run context.
            repos (list[Repository]): Repositories to process.
            handler (Callable[[Repository], ReportEntry]): Per-repository operation.
            report (Report): Accumulator for the run.

        Returns:
            Report: The same report, once every handler has finished.
        """

        def _unit(repo: Repository) -> None:
            try:
                entry = handler(repo)
            except OperationCancelled:
                logger.warning(f"{repo.name}: cancelled before completion")
                return
            except Exception as e:
                logger.exception(f"{repo.name}: unexpected failure")
                entry = ReportEntry(repo=repo.name, outcome=Outcome.ERROR)
                entry.add_error(f"unexpected failure: {e}")
            self._record(report, entry)

        bounded_map(ctx, repos, _unit, self.concurrency)
        return report
