import logging
import re
import socket
from pathlib import Path

from .constants import APP_NAME, MACHINE_NAME_FILE

logger = logging.getLogger(APP_NAME)


def get_machine_name_file() -> Path:
    """Returns the path to the configured human-readable name file."""
    return Path(MACHINE_NAME_FILE)


def get_hostname() -> str:
    """Returns the short hostname (domain suffix stripped)."""
    return socket.gethostname().split(".")[0]


def sanitize_ref_component(text: str) -> str:
    """Reduces ``text`` to characters that are safe inside a single ref segment.

    Args:
        text (str): Arbitrary user or system provided text.

    Returns:
        str: A non-empty segment of ``[A-Za-z0-9._-]``.
    """
    cleaned = re.sub(r"[^A-Za-z0-9._-]+", "-", text.strip())
    cleaned = re.sub(r"\.{2,}", ".", cleaned).strip(".-")
    if cleaned.endswith(".lock"):
        cleaned = cleaned[: -len(".lock")]
    return cleaned or "unknown"


def get_machine_name(override: str | None = None) -> str:
    """Resolves the host segment used in WIP branch names.

    The resolution order is:
    1. Explicit override (``--host`` or ``[core].host``).
    2. User-configured name file (~/.config/wipctl/machine_name).
    3. Hostname (fallback).

    Args:
        override (str | None): An explicitly requested name.

    Returns:
        str: A ref-safe host name.
    """
    if override:
        return sanitize_ref_component(override)

    name_file = get_machine_name_file()
    if name_file.exists():
        try:
            name = name_file.read_text().strip()
            if name:
                return sanitize_ref_component(name)
        except OSError as e:
            logger.warning(f"Could not read {name_file}: {e}")

    return sanitize_ref_component(get_hostname())
