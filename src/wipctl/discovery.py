import logging
import os
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

from .constants import APP_NAME
from .models import Repository

logger = logging.getLogger(APP_NAME)


class DiscoveryError(RuntimeError):
    """The workspace could not be walked completely."""


def is_repository(path: Path) -> bool:
    """Checks whether ``path`` is the top of a git working copy.

    A ``.git`` directory qualifies, as does a ``.git`` file whose content starts
    with ``gitdir: `` (worktrees and submodules).

    Args:
        path (Path): Directory to test.

    Returns:
        bool: True if ``path`` holds a valid ``.git`` entry.
    """
    dot_git = path / ".git"
    if dot_git.is_dir():
        return True
    if dot_git.is_file():
        try:
            with open(dot_git, encoding="utf-8", errors="replace") as f:
                return f.read(8) == "gitdir: "
        except OSError as e:
            logger.debug(f"Unreadable .git file at {dot_git}: {e}")
    return False


def discover(root: Path, workers: int = 8) -> list[Repository]:
    """Walks ``root`` and returns every git working copy beneath it.

    The walk never enters a ``.git`` directory but does continue into working
    trees, so nested repositories and submodules are found. Candidates are
    validated in parallel; the returned order is not stable.

    Args:
        root (Path): The workspace root.
        workers (int): Threads used to validate candidates.

    Returns:
        list[Repository]: The discovered repositories.

    Raises:
        DiscoveryError: If any part of the tree cannot be read.
    """
    if not root.is_dir():
        raise DiscoveryError(f"Workspace is not a directory: {root}")

    def _onerror(err: OSError) -> None:
        raise DiscoveryError(f"Failed to walk {err.filename}: {err.strerror}") from err

    candidates: list[Path] = []
    for dirpath, dirnames, filenames in os.walk(root, onerror=_onerror):
        if ".git" in dirnames:
            dirnames.remove(".git")
            candidates.append(Path(dirpath))
        elif ".git" in filenames:
            candidates.append(Path(dirpath))

    with ThreadPoolExecutor(max_workers=max(1, workers)) as pool:
        valid = list(pool.map(is_repository, candidates))

    repos = [Repository.from_path(p) for p, ok in zip(candidates, valid) if ok]
    logger.debug(f"Discovered {len(repos)} repositories under {root}")
    return repos
