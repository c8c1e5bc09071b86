"""Text generation collaborators: commit messages, synopses and briefings.

Every provider implements the single ``Generator`` capability. The provider is
chosen once, from configuration, by ``build_generator``. Callers never let a
generation failure affect an operation: they go through ``safe_generate`` and
treat ``None`` as "no suggestion available".
"""

import json
import logging
import subprocess
import urllib.error
import urllib.request
from dataclasses import asdict, dataclass, field
from typing import Any, Protocol

from .config import AIConfig
from .constants import APP_NAME

logger = logging.getLogger(APP_NAME)

COMMIT = "commit"
SYNOPSIS = "synopsis"
BRIEFING = "briefing"
KINDS = (COMMIT, SYNOPSIS, BRIEFING)

ANTHROPIC_VERSION = "2023-06-01"
DEFAULT_ENDPOINTS = {
    "openai": "https://api.openai.com",
    "anthropic": "https://api.anthropic.com",
    "ollama": "http://localhost:11434",
}
DEFAULT_MODELS = {
    "openai": "gpt-4o-mini",
    "anthropic": "claude-3-5-haiku-latest",
    "ollama": "llama3.1",
}

SYSTEM_PROMPTS = {
    COMMIT: (
        "You are an expert helping developers write precise Git commit messages. "
        "Use conventional commits when possible "
        "(feat|fix|chore|refactor|docs|test|build|ci|perf). Keep a one-line subject "
        "(<= 72 chars). Add a short body with bullets if needed. No code fences."
    ),
    SYNOPSIS: (
        "You are an expert developer creating workspace intelligence reports. "
        "Generate a concise, professional synopsis of development activity across "
        "repositories. Focus on key insights and patterns."
    ),
    BRIEFING: (
        "You are a development session assistant helping a developer understand "
        "where they left off in their work. Focus on work session continuity, not "
        "code quality."
    ),
}


class GenerationError(RuntimeError):
    """A provider could not produce text."""


@dataclass
class CommitMessageInput:
    """Context handed to the generator when writing a commit message."""

    repo: str
    branch: str
    host: str
    name_status: str = ""
    diff_stat: str = ""
    untracked: list[str] = field(default_factory=list)
    prior_subjects: list[str] = field(default_factory=list)


@dataclass
class RepoSummary:
    name: str
    branch: str
    status: str
    files_changed: int = 0
    lines_added: int = 0
    lines_removed: int = 0
    commits: int = 0
    recent_work: list[str] = field(default_factory=list)
    changes: str = ""


@dataclass
class SynopsisInput:
    repositories: list[RepoSummary]
    total_files: int = 0
    total_lines: int = 0
    total_commits: int = 0


@dataclass
class BriefingInput:
    """Per-repository summaries for a "where did I leave off" briefing."""

    repositories: list[RepoSummary]
    total_files: int = 0
    total_lines: int = 0
    active_repos: int = 0
    dirty_repos: int = 0


def _commit_prompt(data: CommitMessageInput) -> str:
    parts = [
        f"Repository: {data.repo}",
        f"Branch: {data.branch}",
        f"Host: {data.host}",
    ]
    if data.name_status:
        parts += ["", "File Changes:", data.name_status]
    if data.diff_stat:
        parts += ["", "Diff Summary:", data.diff_stat]
    if data.untracked:
        parts += ["", f"Untracked files: {', '.join(data.untracked)}"]
    if data.prior_subjects:
        parts += ["", "Recent commit messages:"]
        parts += [f"- {s}" for s in data.prior_subjects]
    parts += ["", "Generate a concise commit message for these changes:"]
    return "\n".join(parts)


def _repo_lines(repos: list[RepoSummary]) -> list[str]:
    lines = []
    for repo in repos:
        lines.append(f"• {repo.name} ({repo.branch}):")
        lines.append(f"  Status: {repo.status}")
        if repo.files_changed:
            lines.append(
                f"  Files: {repo.files_changed}, Lines: +{repo.lines_added}"
                f"/-{repo.lines_removed}, Commits: {repo.commits}"
            )
        if repo.changes:
            lines.append(f"  Changes: {repo.changes}")
        for subject in repo.recent_work:
            lines.append(f"  - {subject}")
        lines.append("")
    return lines


def _synopsis_prompt(data: SynopsisInput) -> str:
    parts = [
        "WORKSPACE INTELLIGENCE SYNOPSIS",
        f"Total Repositories: {len(data.repositories)}",
        f"Total Files Changed: {data.total_files}",
        f"Total Lines Changed: {data.total_lines}",
        f"Total Commits: {data.total_commits}",
        "",
        "REPOSITORY DETAILS:",
        *_repo_lines(data.repositories),
        "Please generate a concise executive summary of this workspace activity,",
        "covering development patterns, key areas of activity and workspace health.",
    ]
    return "\n".join(parts)


def _briefing_prompt(data: BriefingInput) -> str:
    parts = [
        "WORK SESSION BRIEFING",
        f"Active repositories: {data.active_repos}",
        f"Repositories with uncommitted work: {data.dirty_repos}",
        f"Files changed: {data.total_files}, lines changed: {data.total_lines}",
        "",
        *_repo_lines(data.repositories),
        "Summarise what I was working on, what is unfinished and what to do next.",
    ]
    return "\n".join(parts)


def build_prompt(kind: str, payload: Any) -> tuple[str, str]:
    """Returns (system prompt, user prompt) for a generation request.

    Raises:
        GenerationError: If ``kind`` is unknown or the payload does not match it.
    """
    builders = {
        COMMIT: (CommitMessageInput, _commit_prompt),
        SYNOPSIS: (SynopsisInput, _synopsis_prompt),
        BRIEFING: (BriefingInput, _briefing_prompt),
    }
    if kind not in builders:
        raise GenerationError(f"Unknown generation kind '{kind}'")
    expected, builder = builders[kind]
    if not isinstance(payload, expected):
        raise GenerationError(
            f"'{kind}' expects {expected.__name__}, got {type(payload).__name__}"
        )
    return SYSTEM_PROMPTS[kind], builder(payload)


class Generator(Protocol):
    """Capability shared by every text generation provider."""

    def generate(self, kind: str, payload: Any) -> str:
        """Produces text for ``kind`` from a structured payload.

        Args:
            kind: One of 'commit', 'synopsis', 'briefing'.
            payload: The matching input dataclass.

        Returns:
            The generated text.

        Raises:
            GenerationError: If no text could be produced.
        """
        ...


class NoneGenerator:
    """Used when no provider is configured; always declines."""

    def generate(self, kind: str, payload: Any) -> str:
        raise GenerationError("no AI provider configured")


class ExecGenerator:
    """Runs an external executable, passing a JSON request on stdin.

    The request is ``{"command": <kind>, "input": <payload>}``; stdout is the text.
    """

    def __init__(self, exec_path: str | None, timeout: float = 30):
        self.exec_path = exec_path
        self.timeout = timeout

    def generate(self, kind: str, payload: Any) -> str:
        if not self.exec_path:
            raise GenerationError("exec provider requires an executable path")
        build_prompt(kind, payload)
        request = json.dumps({"command": kind, "input": asdict(payload)})
        try:
            res = subprocess.run(
                [self.exec_path],
                input=request,
                capture_output=True,
                text=True,
                check=True,
                timeout=self.timeout,
            )
        except subprocess.CalledProcessError as e:
            raise GenerationError(
                f"{self.exec_path} exited with {e.returncode}: {(e.stderr or '').strip()}"
            ) from e
        except (OSError, subprocess.TimeoutExpired) as e:
            raise GenerationError(f"Failed to run {self.exec_path}: {e}") from e
        return res.stdout.strip()


class HTTPGenerator:
    """Shared plumbing for JSON-over-HTTP providers."""

    provider = ""
    path = ""

    def __init__(self, config: AIConfig):
        self.endpoint = (config.endpoint or DEFAULT_ENDPOINTS[self.provider]).rstrip("/")
        self.model = config.model or DEFAULT_MODELS[self.provider]
        self.token = config.token
        self.max_tokens = config.max_tokens
        self.temperature = config.temperature
        self.timeout = config.timeout

    def headers(self) -> dict[str, str]:
        return {"Content-Type": "application/json"}

    def body(self, system: str, prompt: str) -> dict:
        raise NotImplementedError

    def extract(self, data: dict) -> str:
        raise NotImplementedError

    def generate(self, kind: str, payload: Any) -> str:
        system, prompt = build_prompt(kind, payload)
        req = urllib.request.Request(
            self.endpoint + self.path,
            method="POST",
            data=json.dumps(self.body(system, prompt)).encode("utf-8"),
            headers=self.headers(),
        )

        try:
            with urllib.request.urlopen(req, timeout=self.timeout) as resp:
                response_text = resp.read().decode("utf-8", errors="replace")
        except urllib.error.HTTPError as e:
            try:
                detail = e.read().decode("utf-8", errors="replace")
            except OSError:
                detail = ""
            raise GenerationError(
                f"{self.provider} request failed (HTTP {e.code}): {detail or e.reason}"
            ) from e
        except urllib.error.URLError as e:
            raise GenerationError(f"{self.provider} request failed: {e.reason}") from e
        except OSError as e:
            raise GenerationError(f"{self.provider} request failed: {e}") from e

        try:
            data = json.loads(response_text)
            return str(self.extract(data)).strip()
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise GenerationError(
                f"Unexpected {self.provider} response: {response_text[:200]}"
            ) from e


class OpenAIGenerator(HTTPGenerator):
    provider = "openai"
    path = "/v1/chat/completions"

    def headers(self) -> dict[str, str]:
        headers = super().headers()
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    def body(self, system: str, prompt: str) -> dict:
        return {
            "model": self.model,
            "messages": [
                {"role": "system", "content": system},
                {"role": "user", "content": prompt},
            ],
            "max_tokens": self.max_tokens,
            "temperature": self.temperature,
        }

    def extract(self, data: dict) -> str:
        return data["choices"][0]["message"]["content"]


class AnthropicGenerator(HTTPGenerator):
    provider = "anthropic"
    path = "/v1/messages"

    def headers(self) -> dict[str, str]:
        headers = super().headers()
        headers["anthropic-version"] = ANTHROPIC_VERSION
        if self.token:
            headers["x-api-key"] = self.token
        return headers

    def body(self, system: str, prompt: str) -> dict:
        return {
            "model": self.model,
            "system": system,
            "messages": [{"role": "user", "content": prompt}],
            "max_tokens": self.max_tokens,
            "temperature": self.temperature,
        }

    def extract(self, data: dict) -> str:
        return "".join(
            block.get("text", "")
            for block in data["content"]
            if block.get("type") == "text"
        )


class OllamaGenerator(HTTPGenerator):
    provider = "ollama"
    path = "/api/generate"

    def body(self, system: str, prompt: str) -> dict:
        return {
            "model": self.model,
            "prompt": f"{system}\n\n{prompt}",
            "stream": False,
            "options": {
                "temperature": self.temperature,
                "num_predict": self.max_tokens,
            },
        }

    def extract(self, data: dict) -> str:
        return data["response"]


def build_generator(config: AIConfig) -> Generator:
    """Selects the provider named by ``config.provider``.

    Unknown providers fall back to NoneGenerator with a warning.
    """
    provider = (config.provider or "none").lower()
    if provider == "exec":
        return ExecGenerator(config.exec_path, timeout=config.timeout)
    if provider == "openai":
        return OpenAIGenerator(config)
    if provider in ("anthropic", "claude"):
        return AnthropicGenerator(config)
    if provider == "ollama":
        return OllamaGenerator(config)
    if provider != "none":
        logger.warning(f"Unknown AI provider '{config.provider}'. AI features disabled.")
    return NoneGenerator()


def safe_generate(generator: Generator, kind: str, payload: Any) -> str | None:
    """Calls the generator, absorbing any failure.

    Returns:
        str | None: The generated text, or None when unavailable or empty.
    """
    try:
        text = generator.generate(kind, payload)
    except GenerationError as e:
        logger.warning(f"AI {kind} generation unavailable: {e}")
        return None
    except Exception as e:
        logger.warning(f"AI {kind} generation failed unexpectedly: {e}")
        return None
    text = (text or "").strip()
    if not text:
        logger.warning(f"AI {kind} generation returned no text")
        return None
    return text
