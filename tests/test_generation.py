import json
import subprocess
import urllib.error
from typing import Any
from unittest.mock import MagicMock

import pytest

from wipctl.config import AIConfig
from wipctl.generation import (
    BRIEFING,
    COMMIT,
    SYNOPSIS,
    AnthropicGenerator,
    BriefingInput,
    CommitMessageInput,
    ExecGenerator,
    GenerationError,
    NoneGenerator,
    OllamaGenerator,
    OpenAIGenerator,
    RepoSummary,
    SynopsisInput,
    build_generator,
    build_prompt,
    safe_generate,
)

COMMIT_INPUT = CommitMessageInput(
    repo="api",
    branch="main",
    host="laptop",
    name_status="M\tsrc/app.py",
    diff_stat=" src/app.py | 3 ++-",
    prior_subjects=["fix: login"],
)


def _response(mocker: MagicMock, payload: Any) -> MagicMock:
    """Patches urlopen to return ``payload`` as a JSON body.

    Args:
        mocker (MagicMock): Pytest fixture for mocking.
        payload (Any): The decoded response body.

    Returns:
        MagicMock: The patched urlopen.
    """
    resp = MagicMock()
    resp.read.return_value = json.dumps(payload).encode("utf-8")
    urlopen = mocker.patch("urllib.request.urlopen")
    urlopen.return_value.__enter__.return_value = resp
    return urlopen


def test_build_prompt_commit_includes_context() -> None:
    system, prompt = build_prompt(COMMIT, COMMIT_INPUT)

    assert "conventional commits" in system
    assert "Repository: api" in prompt
    assert "M\tsrc/app.py" in prompt
    assert "- fix: login" in prompt


def test_build_prompt_rejects_mismatched_payload() -> None:
    with pytest.raises(GenerationError, match="expects SynopsisInput"):
        build_prompt(SYNOPSIS, COMMIT_INPUT)
    with pytest.raises(GenerationError, match="Unknown generation kind"):
        build_prompt("poem", COMMIT_INPUT)


def test_briefing_prompt_lists_recent_work() -> None:
    payload = BriefingInput(
        repositories=[
            RepoSummary(
                name="web",
                branch="feature",
                status="dirty",
                files_changed=2,
                recent_work=["wip: navbar"],
                changes="nav.js, app.js",
            )
        ],
        active_repos=1,
        dirty_repos=1,
    )

    _, prompt = build_prompt(BRIEFING, payload)

    assert "• web (feature):" in prompt
    assert "  - wip: navbar" in prompt
    assert "Changes: nav.js, app.js" in prompt


def test_build_generator_selects_provider(caplog: pytest.LogCaptureFixture) -> None:
    assert isinstance(build_generator(AIConfig()), NoneGenerator)
    assert isinstance(build_generator(AIConfig(provider="exec")), ExecGenerator)
    assert isinstance(build_generator(AIConfig(provider="OpenAI")), OpenAIGenerator)
    assert isinstance(build_generator(AIConfig(provider="claude")), AnthropicGenerator)
    assert isinstance(build_generator(AIConfig(provider="ollama")), OllamaGenerator)

    assert isinstance(build_generator(AIConfig(provider="magic")), NoneGenerator)
    assert "Unknown AI provider 'magic'" in caplog.text


def test_exec_generator_sends_json_request(mocker: MagicMock) -> None:
    """Verifies the stdin protocol of the exec provider.

    Args:
        mocker (MagicMock): Pytest fixture for mocking.
    """
    mock_run = mocker.patch("subprocess.run")
    mock_run.return_value = MagicMock(stdout="feat: add login\n")

    text = ExecGenerator("/usr/local/bin/ai").generate(COMMIT, COMMIT_INPUT)

    assert text == "feat: add login"
    args, kwargs = mock_run.call_args
    assert args[0] == ["/usr/local/bin/ai"]
    request = json.loads(kwargs["input"])
    assert request["command"] == "commit"
    assert request["input"]["repo"] == "api"
    assert request["input"]["prior_subjects"] == ["fix: login"]


def test_exec_generator_failure(mocker: MagicMock) -> None:
    mocker.patch(
        "subprocess.run",
        side_effect=subprocess.CalledProcessError(2, ["ai"], stderr="bad input"),
    )

    with pytest.raises(GenerationError, match="exited with 2: bad input"):
        ExecGenerator("ai").generate(COMMIT, COMMIT_INPUT)

    with pytest.raises(GenerationError, match="executable path"):
        ExecGenerator(None).generate(COMMIT, COMMIT_INPUT)


def test_openai_generator_request(mocker: MagicMock) -> None:
    """Verifies the chat completions request and response handling.

    Args:
        mocker (MagicMock): Pytest fixture for mocking.
    """
    urlopen = _response(
        mocker, {"choices": [{"message": {"content": " fix: tidy up \n"}}]}
    )
    generator = OpenAIGenerator(
        AIConfig(provider="openai", endpoint="http://llm.local/", token="t0k")
    )

    assert generator.generate(COMMIT, COMMIT_INPUT) == "fix: tidy up"

    req = urlopen.call_args[0][0]
    assert req.full_url == "http://llm.local/v1/chat/completions"
    assert req.get_header("Authorization") == "Bearer t0k"
    body = json.loads(req.data)
    assert body["model"] == "gpt-4o-mini"
    assert body["messages"][0]["role"] == "system"


def test_anthropic_generator_joins_text_blocks(mocker: MagicMock) -> None:
    urlopen = _response(
        mocker,
        {"content": [{"type": "text", "text": "Part one. "}, {"type": "text", "text": "Two."}]},
    )
    generator = AnthropicGenerator(AIConfig(provider="anthropic", token="key"))

    payload = SynopsisInput(repositories=[])
    assert generator.generate(SYNOPSIS, payload) == "Part one. Two."

    req = urlopen.call_args[0][0]
    assert req.full_url == "https://api.anthropic.com/v1/messages"
    assert req.get_header("X-api-key") == "key"
    assert req.get_header("Anthropic-version") == "2023-06-01"


def test_ollama_generator(mocker: MagicMock) -> None:
    urlopen = _response(mocker, {"response": "chore: sync"})

    text = OllamaGenerator(AIConfig(provider="ollama", model="mistral")).generate(
        COMMIT, COMMIT_INPUT
    )

    assert text == "chore: sync"
    body = json.loads(urlopen.call_args[0][0].data)
    assert body["model"] == "mistral"
    assert body["stream"] is False


def test_http_errors_become_generation_errors(mocker: MagicMock) -> None:
    mocker.patch(
        "urllib.request.urlopen", side_effect=urllib.error.URLError("refused")
    )

    with pytest.raises(GenerationError, match="refused"):
        OllamaGenerator(AIConfig(provider="ollama")).generate(COMMIT, COMMIT_INPUT)


def test_unexpected_response_shape(mocker: MagicMock) -> None:
    _response(mocker, {"unexpected": True})

    with pytest.raises(GenerationError, match="Unexpected openai response"):
        OpenAIGenerator(AIConfig(provider="openai")).generate(COMMIT, COMMIT_INPUT)


def test_safe_generate_absorbs_failures(caplog: pytest.LogCaptureFixture) -> None:
    """Verifies that generation problems never escape to callers."""
    assert safe_generate(NoneGenerator(), COMMIT, COMMIT_INPUT) is None
    assert "no AI provider configured" in caplog.text

    blank = MagicMock()
    blank.generate.return_value = "   "
    assert safe_generate(blank, COMMIT, COMMIT_INPUT) is None

    broken = MagicMock()
    broken.generate.side_effect = KeyError("x")
    assert safe_generate(broken, COMMIT, COMMIT_INPUT) is None

    good = MagicMock()
    good.generate.return_value = "  feat: ok  "
    assert safe_generate(good, COMMIT, COMMIT_INPUT) == "feat: ok"
