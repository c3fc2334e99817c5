from __future__ import annotations

import json
import logging
from typing import Any

import pytest

from weighted_approvals.llm.anthropic_client import ANTHROPIC_VERSION, AnthropicClient
from weighted_approvals.llm.base import LLMClientError, LLMConfigurationError
from weighted_approvals.llm.openai_client import OpenAIClient
from weighted_approvals.llm.registry import create_llm_client
from weighted_approvals.policy import AdvisoryConfig
from weighted_approvals.util.observability import EventLogger, MetricsCollector, ObservabilityManager


class _MockResponse:
    def __init__(self, status_code: int, payload: dict[str, Any]) -> None:
        self.status_code = status_code
        self._payload = payload
        self.text = "mock response"

    def json(self) -> dict[str, Any]:
        return self._payload


def test_openai_client_sends_json_mode_request() -> None:
    client = OpenAIClient(api_key="test-key", base_url="https://example.test/v1/")
    captured: dict[str, Any] = {}

    def mock_post(url: str, **kwargs: Any) -> _MockResponse:
        captured["url"] = url
        captured.update(kwargs)
        return _MockResponse(200, {"choices": [{"message": {"content": '{"criticality": 3}'}}]})

    client._session.post = mock_post

    result = client.complete_chat([{"role": "user", "content": "hi"}])

    assert result == '{"criticality": 3}'
    assert captured["url"] == "https://example.test/v1/chat/completions"
    assert captured["headers"] == {"Authorization": "Bearer test-key"}
    assert captured["json"]["model"] == "gpt-4o"
    assert captured["json"]["response_format"] == {"type": "json_object"}
    assert captured["json"]["temperature"] == 0.3
    assert captured["json"]["max_tokens"] == 1024


def test_openai_client_requires_api_key() -> None:
    with pytest.raises(LLMConfigurationError):
        OpenAIClient(api_key=None)


def test_openai_client_retries_on_transient_error(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr("weighted_approvals.llm.openai_client.time.sleep", lambda _s: None)
    client = OpenAIClient(api_key="test-key", max_retries=1)
    responses = [
        _MockResponse(500, {}),
        _MockResponse(200, {"choices": [{"message": {"content": "retry"}}]}),
    ]

    def mock_post(*_args: Any, **_kwargs: Any) -> _MockResponse:
        return responses.pop(0)

    client._session.post = mock_post

    assert client.complete_chat([{"role": "user", "content": "hi"}]) == "retry"


def test_openai_client_raises_on_client_error() -> None:
    client = OpenAIClient(api_key="test-key")
    client._session.post = lambda *_a, **_k: _MockResponse(401, {})

    with pytest.raises(LLMClientError, match="401"):
        client.complete_chat([{"role": "user", "content": "hi"}])


def test_openai_client_rejects_empty_content() -> None:
    client = OpenAIClient(api_key="test-key")
    client._session.post = lambda *_a, **_k: _MockResponse(
        200, {"choices": [{"message": {"content": ""}}]}
    )

    with pytest.raises(LLMClientError, match="Empty response"):
        client.complete_chat([{"role": "user", "content": "hi"}])


def test_openai_client_records_usage_and_logs(caplog: pytest.LogCaptureFixture) -> None:
    metrics = MetricsCollector()
    observability = ObservabilityManager(events=EventLogger("test.llm.events"), metrics=metrics)
    client = OpenAIClient(api_key="test-key", observability=observability)
    client._session.post = lambda *_a, **_k: _MockResponse(
        200,
        {
            "choices": [{"message": {"content": "hello"}}],
            "usage": {"prompt_tokens": 1, "completion_tokens": 2, "total_tokens": 3},
        },
    )
    caplog.set_level(logging.INFO, logger="test.llm.events")

    assert client.complete_chat([{"role": "user", "content": "hi"}]) == "hello"

    assert metrics.snapshot()["tokens"]["total"] == 3
    logged = [record.message for record in caplog.records if "llm.chat_completed" in record.message]
    assert logged, "Expected llm.chat_completed event"
    assert json.loads(logged[-1])["payload"]["provider"] == "openai"


def test_anthropic_client_moves_system_prompt() -> None:
    client = AnthropicClient(api_key="test-key")
    captured: dict[str, Any] = {}

    def mock_post(url: str, **kwargs: Any) -> _MockResponse:
        captured["url"] = url
        captured.update(kwargs)
        return _MockResponse(200, {"content": [{"type": "text", "text": "{}"}]})

    client._session.post = mock_post

    result = client.complete_chat(
        [
            {"role": "system", "content": "be terse"},
            {"role": "user", "content": "hi"},
        ]
    )

    assert result == "{}"
    assert captured["url"] == "https://api.anthropic.com/v1/messages"
    assert captured["headers"] == {"x-api-key": "test-key", "anthropic-version": ANTHROPIC_VERSION}
    assert captured["json"]["system"] == "be terse"
    assert captured["json"]["messages"] == [{"role": "user", "content": "hi"}]
    assert captured["json"]["model"] == "claude-sonnet-4-20250514"
    assert captured["json"]["max_tokens"] == 1024


def test_anthropic_client_rejects_missing_text() -> None:
    client = AnthropicClient(api_key="test-key")
    client._session.post = lambda *_a, **_k: _MockResponse(200, {"content": []})

    with pytest.raises(LLMClientError, match="Empty response"):
        client.complete_chat([{"role": "user", "content": "hi"}])


def test_anthropic_client_records_usage() -> None:
    metrics = MetricsCollector()
    observability = ObservabilityManager(events=EventLogger("test.llm.events"), metrics=metrics)
    client = AnthropicClient(api_key="test-key", observability=observability)
    client._session.post = lambda *_a, **_k: _MockResponse(
        200,
        {
            "content": [{"type": "text", "text": "ok"}],
            "usage": {"input_tokens": 4, "output_tokens": 6},
        },
    )

    client.complete_chat([{"role": "user", "content": "hi"}])

    assert metrics.snapshot()["tokens"] == {"prompt": 4, "completion": 6, "total": 10}


def test_create_llm_client_selects_provider() -> None:
    environ = {"KEY": "secret"}

    openai = create_llm_client(AdvisoryConfig(provider="openai", api_key_env="KEY"), environ=environ)
    anthropic = create_llm_client(
        AdvisoryConfig(provider="anthropic", api_key_env="KEY", model="claude-test"),
        environ=environ,
    )

    assert isinstance(openai, OpenAIClient)
    assert isinstance(anthropic, AnthropicClient)
    assert anthropic.model == "claude-test"


def test_create_llm_client_rejects_unknown_provider() -> None:
    config = AdvisoryConfig(provider="mystery", api_key_env="KEY")  # type: ignore[arg-type]

    with pytest.raises(LLMConfigurationError):
        create_llm_client(config, environ={"KEY": "secret"})
