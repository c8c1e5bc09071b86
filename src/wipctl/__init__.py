"""wipctl: work-in-progress synchronization across a workspace of git repositories.

This package discovers every repository under a workspace, collects their
status concurrently, and checkpoints (push), restores (pull) or snapshots
(checkpoint) work-in-progress on disposable ``wip/<host>/<timestamp>`` branches,
writing a Markdown report for every run.
"""

from . import (
    checkpoint,
    cli,
    config,
    constants,
    context,
    coordinator,
    discovery,
    generation,
    git_wrapper,
    models,
    ops,
    report,
    status,
    system,
)

__all__ = [
    "checkpoint",
    "cli",
    "config",
    "constants",
    "context",
    "coordinator",
    "discovery",
    "generation",
    "git_wrapper",
    "models",
    "ops",
    "report",
    "status",
    "system",
]
