import threading
import time
from dataclasses import dataclass, field


class OperationCancelled(Exception):
    """Raised at a subprocess boundary once the run deadline or cancel signal fires.

    Not a ``RuntimeError`` subclass: step handlers that catch ``GitError`` must
    let it through.
    """


@dataclass(frozen=True)
class OperationContext:
    """Run-scoped execution settings shared by every repository worker.

    Attributes:
        dry_run (bool): When set, mutating git verbs only describe what they would do.
        deadline (float | None): ``time.monotonic()`` value after which work stops.
        cancel_event (threading.Event): Signal for cooperative cancellation.
    """

    dry_run: bool = False
    deadline: float | None = None
    cancel_event: threading.Event = field(default_factory=threading.Event)

    @classmethod
    def create(
        cls, dry_run: bool = False, timeout: float | None = None
    ) -> "OperationContext":
        """Builds a context with an optional operation-wide timeout in seconds."""
        deadline = time.monotonic() + timeout if timeout else None
        return cls(dry_run=dry_run, deadline=deadline)

    def remaining(self) -> float | None:
        """Seconds left before the deadline, or None when unbounded."""
        if self.deadline is None:
            return None
        return max(0.0, self.deadline - time.monotonic())

    @property
    def cancelled(self) -> bool:
        if self.cancel_event.is_set():
            return True
        return self.deadline is not None and time.monotonic() >= self.deadline

    def cancel(self) -> None:
        self.cancel_event.set()

    def check(self) -> None:
        """Raises OperationCancelled if the run should stop.

        Raises:
            OperationCancelled: If cancelled or past the deadline.
        """
        if self.cancelled:
            raise OperationCancelled("operation cancelled or deadline exceeded")
