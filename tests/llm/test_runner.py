"""Tests for devpilot.llm.runner."""

from __future__ import annotations

import pytest

from devpilot.config import LLMConfig
from devpilot.errors import ExternalServiceDegradedError
from devpilot.llm import LLMRequest, LLMRunner


def test_from_config_disabled_without_endpoint() -> None:
    assert LLMRunner.from_config(LLMConfig()) is None


def test_from_config_builds_runner() -> None:
    runner = LLMRunner.from_config(
        LLMConfig(base_url="http://localhost:11434/v1/", model="llama3", api_key="key", temperature=0.5)
    )

    assert runner is not None
    assert runner.base_url == "http://localhost:11434/v1"
    assert runner.model == "llama3"
    assert runner.temperature == 0.5


def test_default_model() -> None:
    assert LLMRunner("http://x").model == LLMRunner.DEFAULT_MODEL


def test_run_passes_request_to_runner() -> None:
    captured: list[LLMRequest] = []

    def fake_runner(request: LLMRequest) -> str:
        captured.append(request)
        return "plan"

    runner = LLMRunner("http://llm/v1", model="m", api_key="k", max_tokens=100, runner=fake_runner)

    assert runner.run("hello", system="be brief") == "plan"
    request = captured[0]
    assert (request.prompt, request.system, request.model) == ("hello", "be brief", "m")
    assert request.max_tokens == 100
    assert request.base_url == "http://llm/v1"


def test_runner_errors_propagate() -> None:
    def failing(request: LLMRequest) -> str:
        raise ExternalServiceDegradedError("unreachable")

    with pytest.raises(ExternalServiceDegradedError):
        LLMRunner("http://llm/v1", runner=failing).run("hello")


def test_build_messages() -> None:
    assert LLMRunner._build_messages(None, "hi") == [{"role": "user", "content": "hi"}]
    assert LLMRunner._build_messages("sys", "hi")[0] == {"role": "system", "content": "sys"}


@pytest.mark.parametrize(
    ("payload", "expected"),
    [
        ({"choices": [{"message": {"content": "answer"}}]}, "answer"),
        ({"choices": [{"text": "legacy"}]}, "legacy"),
        ({"choices": []}, ""),
        ({"error": "nope"}, ""),
        (["not", "a", "dict"], ""),
    ],
)
def test_extract_content(payload: object, expected: str) -> None:
    assert LLMRunner._extract_content(payload) == expected
