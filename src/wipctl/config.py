import logging
import os
import re
import tomllib
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any

from .constants import (
    APP_NAME,
    CONFIG_FILE,
    DEFAULT_CONCURRENCY,
    DEFAULT_REMOTE,
    LOCAL_CONFIG_NAME,
    REPORT_DIRNAME,
    WIP_NAMESPACE,
)
from .system import get_machine_name

logger = logging.getLogger(APP_NAME)

ENV_PREFIX = "WIPCTL_AI_"


def parse_size(value: int | str) -> int:
    """Converts human-readable size strings (e.g., '100MB') to bytes."""
    if isinstance(value, int):
        return value
    match = re.match(r"^(\d+(?:\.\d+)?)\s*([kmg]b?)$", str(value).strip().lower())
    if not match:
        raise ValueError(f"Invalid size format '{value}'")
    num, unit = float(match.group(1)), match.group(2)
    multiplier = {
        "k": 1024,
        "kb": 1024,
        "m": 1024**2,
        "mb": 1024**2,
        "g": 1024**3,
        "gb": 1024**3,
    }
    return int(num * multiplier[unit])


def parse_time(value: int | str) -> int:
    """Converts human-readable time strings (e.g., '1hr', '30s') to seconds."""
    if isinstance(value, int):
        return value
    match = re.match(
        r"^(\d+(?:\.\d+)?)\s*(s|sec|m|min|h|hr)s?$", str(value).strip().lower()
    )
    if not match:
        raise ValueError(f"Invalid time format '{value}'")
    num, unit = float(match.group(1)), match.group(2)
    multiplier = {"s": 1, "sec": 1, "m": 60, "min": 60, "h": 3600, "hr": 3600}
    return int(num * multiplier[unit])


@dataclass
class CoreConfig:
    """Core application settings.

    Attributes:
        remote_name (str): The git remote WIP branches are exchanged with.
        namespace (str): The branch namespace for WIP branches.
        host (str | None): Host segment override for WIP branch names.
        report_dir (str | None): Report directory override.
    """

    remote_name: str = DEFAULT_REMOTE
    namespace: str = WIP_NAMESPACE
    host: str | None = None
    report_dir: str | None = None


@dataclass
class ConcurrencyConfig:
    """Number of repositories processed at once, per command."""

    status: int = DEFAULT_CONCURRENCY["status"]
    push: int = DEFAULT_CONCURRENCY["push"]
    pull: int = DEFAULT_CONCURRENCY["pull"]
    checkpoint: int = DEFAULT_CONCURRENCY["checkpoint"]


@dataclass
class AIConfig:
    """Text generation provider settings.

    Attributes:
        provider (str): One of 'none', 'exec', 'openai', 'anthropic'/'claude', 'ollama'.
        endpoint (str | None): Base URL for HTTP providers.
        model (str | None): Model identifier.
        token (str | None): API token for HTTP providers.
        exec_path (str | None): Executable for the 'exec' provider.
        max_tokens (int): Response length cap.
        temperature (float): Sampling temperature.
        timeout (int): Seconds to wait for a response.
    """

    provider: str = "none"
    endpoint: str | None = None
    model: str | None = None
    token: str | None = None
    exec_path: str | None = None
    max_tokens: int = 256
    temperature: float = 0.1
    timeout: int = 30


@dataclass
class LimitsConfig:
    """Resource limitation settings.

    Attributes:
        max_log_size (int): Max bytes for log files before rotation.
        git_timeout (int): Max seconds a single git command may run.
        deadline (int | None): Max seconds for a whole run (None = unbounded).
    """

    max_log_size: int = 5 * 1024 * 1024
    git_timeout: int = 120
    deadline: int | None = None


_SIZE_KEYS = {"max_log_size"}
_TIME_KEYS = {"git_timeout", "deadline", "timeout"}


@dataclass
class Config:
    """Configuration aggregator.

    Attributes:
        core (CoreConfig): Core settings.
        concurrency (ConcurrencyConfig): Per-command concurrency limits.
        ai (AIConfig): Generation provider settings.
        limits (LimitsConfig): Resource limits.
    """

    core: CoreConfig = field(default_factory=CoreConfig)
    concurrency: ConcurrencyConfig = field(default_factory=ConcurrencyConfig)
    ai: AIConfig = field(default_factory=AIConfig)
    limits: LimitsConfig = field(default_factory=LimitsConfig)

    @classmethod
    def load(
        cls, workspace: Path | None = None, environ: dict | None = None
    ) -> "Config":
        """Loads and merges configuration from defaults, files and the environment.

        Args:
            workspace (Path | None): The workspace root to search for local config.
            environ (dict | None): Environment mapping. Defaults to os.environ.

        Returns:
            Config: A freshly merged configuration object.
        """
        instance = cls()
        if CONFIG_FILE.exists():
            instance._merge_from_file(CONFIG_FILE)

        if workspace:
            local_toml = workspace / LOCAL_CONFIG_NAME
            pyproject = workspace / "pyproject.toml"

            if local_toml.exists():
                instance._merge_from_file(local_toml)
            elif pyproject.exists():
                instance._merge_from_file(pyproject, section="tool.wipctl")

        instance._merge_from_env(os.environ if environ is None else environ)
        return instance

    def _merge_from_file(self, path: Path, section: str | None = None) -> None:
        """Parses a TOML file and merges it into the current instance.

        Args:
            path (Path): Path to the TOML file.
            section (str | None): Dot-separated section path (e.g., 'tool.wipctl').
        """
        try:
            with open(path, "rb") as f:
                data = tomllib.load(f)
        except tomllib.TOMLDecodeError as e:
            logger.error(f"Config syntax error in {path}: {e}")
            return
        except OSError as e:
            logger.warning(f"Failed to load config from {path}: {e}")
            return

        if section:
            for key in section.split("."):
                data = data.get(key, {})

        if data:
            self._merge(data)

    def _merge(self, data: dict) -> None:
        for name in ("core", "concurrency", "ai", "limits"):
            if name in data:
                updated = self._update_dataclass(name, getattr(self, name), data[name])
                setattr(self, name, updated)

    def _merge_from_env(self, environ: Any) -> None:
        """Applies WIPCTL_AI_* variables over the [ai] section."""
        keys = {
            "PROVIDER": "provider",
            "ENDPOINT": "endpoint",
            "MODEL": "model",
            "TOKEN": "token",
            "EXEC": "exec_path",
            "MAX_TOKENS": "max_tokens",
            "TEMPERATURE": "temperature",
        }
        updates: dict[str, Any] = {}
        for suffix, key in keys.items():
            value = environ.get(ENV_PREFIX + suffix)
            if not value:
                continue
            try:
                if key == "max_tokens":
                    updates[key] = int(value)
                elif key == "temperature":
                    updates[key] = float(value)
                else:
                    updates[key] = value
            except ValueError:
                logger.warning(
                    f"Invalid value for {ENV_PREFIX + suffix}: '{value}'. Ignoring."
                )
        if updates:
            self.ai = replace(self.ai, **updates)

    @staticmethod
    def _update_dataclass(section_name: str, instance: Any, updates: dict) -> Any:
        """Updates a dataclass, warning on invalid keys and parsing human-readable formats."""
        if not isinstance(updates, dict):
            logger.warning(f"Config section [{section_name}] is not a table. Ignoring.")
            return instance

        valid_keys = instance.__dataclass_fields__.keys()
        filtered_updates = {}

        invalid_keys = set(updates.keys()) - set(valid_keys)
        if invalid_keys:
            logger.warning(
                f"Unknown config keys in [{section_name}]: {', '.join(sorted(invalid_keys))}. Ignoring."
            )

        for k, v in updates.items():
            if k not in valid_keys:
                continue

            try:
                if k in _SIZE_KEYS:
                    filtered_updates[k] = parse_size(v)
                elif k in _TIME_KEYS:
                    filtered_updates[k] = parse_time(v)
                elif section_name == "concurrency":
                    value = int(v)
                    if value < 1:
                        raise ValueError(f"must be at least 1, got {v}")
                    filtered_updates[k] = value
                else:
                    filtered_updates[k] = v
            except (TypeError, ValueError) as e:
                logger.warning(
                    f"Config error in [{section_name}].{k}: {e}. Falling back to default."
                )

        return replace(instance, **filtered_updates)


@dataclass(frozen=True)
class Settings:
    """The resolved, immutable settings for a single run.

    Attributes:
        workspace (Path): Discovery root.
        host (str): Host segment for WIP branch names.
        report_dir (Path): Where run reports are written.
        remote_name (str): Remote for WIP branches.
        namespace (str): WIP branch namespace.
        git_timeout (float | None): Per-command timeout in seconds.
    """

    workspace: Path
    host: str
    report_dir: Path
    remote_name: str = DEFAULT_REMOTE
    namespace: str = WIP_NAMESPACE
    git_timeout: float | None = None

    @classmethod
    def resolve(
        cls,
        config: Config,
        workspace: Path,
        host: str | None = None,
        report_dir: Path | None = None,
    ) -> "Settings":
        """Combines command-line overrides with the loaded configuration.

        Args:
            config (Config): Loaded configuration.
            workspace (Path): Workspace root.
            host (str | None): ``--host`` override.
            report_dir (Path | None): ``--report-dir`` override.

        Returns:
            Settings: The frozen run settings.
        """
        workspace = workspace.resolve()
        if report_dir is None:
            if config.core.report_dir:
                report_dir = Path(config.core.report_dir).expanduser()
                if not report_dir.is_absolute():
                    report_dir = workspace / report_dir
            else:
                report_dir = workspace / REPORT_DIRNAME
        return cls(
            workspace=workspace,
            host=get_machine_name(host or config.core.host),
            report_dir=report_dir,
            remote_name=config.core.remote_name,
            namespace=config.core.namespace,
            git_timeout=config.limits.git_timeout or None,
        )
