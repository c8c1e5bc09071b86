import os
import re
from pathlib import Path

"""Global constants and path definitions for wipctl.

This module defines the filesystem layout (adhering to XDG standards where applicable),
application identifiers, the WIP branch namespace and the fixed patterns used by the
repository safety checks.
"""

# --- Identity ---
APP_NAME = "wipctl"
"""str: The human-readable application name (also the logger name)."""

WIP_NAMESPACE = "wip"
"""str: The branch namespace used for work-in-progress checkpoints."""

DEFAULT_REMOTE = "origin"
"""str: The remote that WIP branches are pushed to and pulled from."""

# --- Paths ---
_XDG_STATE = os.environ.get("XDG_STATE_HOME")
_BASE_STATE = Path(_XDG_STATE) if _XDG_STATE else Path.home() / ".local/state"

STATE_DIR = _BASE_STATE / "wipctl"
"""Path: The directory for runtime state data (logs). Created on first log setup."""

LOG_FILE = STATE_DIR / "wipctl.log"
"""Path: The rotating log file shared by every command."""

REPORT_DIRNAME = ".wipctl"
"""str: Directory (relative to the workspace) where run reports are written."""

REPORT_GLOB = "wip-*.md"
"""str: Glob matching persisted report files."""

# --- Configuration Paths ---
CONFIG_DIR: Path = Path.home() / ".config/wipctl"
"""Path: The directory for user configuration files."""

CONFIG_FILE: Path = CONFIG_DIR / "config.toml"
"""Path: The main configuration file path."""

MACHINE_NAME_FILE: Path = CONFIG_DIR / "machine_name"
"""Path: Optional file holding a human-chosen host name for WIP branches."""

LOCAL_CONFIG_NAME = "wipctl.toml"
"""str: Per-workspace configuration file name."""

# --- Timestamps ---
BRANCH_TIME_FORMAT = "%Y%m%d-%H%M%S"
"""str: strftime format embedded in WIP branch names and report file names."""

MESSAGE_TIME_FORMAT = "%Y-%m-%d %H:%M:%S"
"""str: strftime format used in fallback commit messages."""

# --- Git / Logic Constants ---
GIT_LOCK_FILES = [
    "rebase-apply",
    "rebase-merge",
    "MERGE_HEAD",
]
"""
list[str]: Git internal entries indicating an
active rebase/merge that blocks push and pull.
"""

JUNK_PATTERN = re.compile(
    r"(?i)(^|/)(node_modules|\.venv|venv|dist|build|\.tox|\.ruff_cache|\.mypy_cache"
    r"|\.pytest_cache|__pycache__|\.DS_Store|coverage|\.coverage|\.cache)(/|$)"
)
"""re.Pattern: Untracked paths with a segment matching this are never auto-staged."""

DEFAULT_CONCURRENCY = {
    "status": 8,
    "push": 6,
    "pull": 6,
    "checkpoint": 8,
}
"""dict[str, int]: Default number of repositories processed at once per command."""

RECENT_SUBJECTS = 5
"""int: Number of prior commit subjects handed to the message generator."""
