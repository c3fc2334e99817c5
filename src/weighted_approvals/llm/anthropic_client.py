"""Anthropic messages-API client."""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, cast

import requests  # type: ignore[import-untyped]

from weighted_approvals.llm.base import LLMClient, LLMClientError, LLMConfigurationError
from weighted_approvals.llm.openai_client import _should_retry
from weighted_approvals.util.observability import ObservabilityManager

DEFAULT_ANTHROPIC_MODEL = "claude-sonnet-4-20250514"
DEFAULT_ANTHROPIC_BASE_URL = "https://api.anthropic.com/v1"
ANTHROPIC_VERSION = "2023-06-01"


@dataclass(frozen=True)
class AnthropicClientConfig:
    """Configuration for the Anthropic client."""

    api_key: str
    base_url: str
    model: str
    timeout_s: float
    max_retries: int


class AnthropicClient(LLMClient):
    """LLM client for the Anthropic messages API."""

    def __init__(
        self,
        *,
        api_key: str | None,
        base_url: str | None = None,
        model: str | None = None,
        timeout_s: float = 60.0,
        max_retries: int = 2,
        session: requests.Session | None = None,
        observability: ObservabilityManager | None = None,
    ) -> None:
        if not api_key:
            raise LLMConfigurationError("An Anthropic API key is required for AnthropicClient.")
        self._config = AnthropicClientConfig(
            api_key=api_key,
            base_url=(base_url or DEFAULT_ANTHROPIC_BASE_URL).rstrip("/"),
            model=model or DEFAULT_ANTHROPIC_MODEL,
            timeout_s=timeout_s,
            max_retries=max_retries,
        )
        self._session = session or requests.Session()
        self._observability = observability

    @property
    def model(self) -> str:
        return self._config.model

    def complete_chat(
        self,
        messages: list[dict[str, str]],
        temperature: float = 0.3,
        max_tokens: int | None = 1024,
    ) -> str:
        """Generate a completion; ``system`` messages become the system prompt."""

        system = "\n\n".join(m["content"] for m in messages if m.get("role") == "system")
        conversation = [
            {"role": m["role"], "content": m["content"]}
            for m in messages
            if m.get("role") != "system"
        ]
        payload: dict[str, Any] = {
            "model": self.model,
            "max_tokens": max_tokens or 1024,
            "messages": conversation,
        }
        if system:
            payload["system"] = system

        response_data = self._post("/messages", payload)
        blocks = response_data.get("content")
        if not isinstance(blocks, list):
            raise LLMClientError("Unexpected response format from Anthropic API.")
        text = next(
            (
                block.get("text")
                for block in blocks
                if isinstance(block, dict) and block.get("type") == "text"
            ),
            None,
        )
        if not isinstance(text, str) or not text:
            raise LLMClientError("Empty response from Anthropic.")
        self._record_usage(response_data.get("usage"))
        return text

    def _record_usage(self, usage: Any) -> None:
        if self._observability is None or not isinstance(usage, dict):
            return
        self._observability.metrics.record_tokens(
            prompt_tokens=int(usage.get("input_tokens") or 0),
            completion_tokens=int(usage.get("output_tokens") or 0),
        )
        self._observability.log_event(
            "llm.chat_completed",
            {"provider": "anthropic", "model": self.model, "usage": usage},
        )

    def _post(self, path: str, payload: dict[str, Any]) -> dict[str, Any]:
        url = f"{self._config.base_url}{path}"
        headers = {
            "x-api-key": self._config.api_key,
            "anthropic-version": ANTHROPIC_VERSION,
        }
        last_error: Exception | None = None

        for attempt in range(self._config.max_retries + 1):
            try:
                response = self._session.post(
                    url,
                    json=payload,
                    headers=headers,
                    timeout=self._config.timeout_s,
                )
                if response.status_code >= 400:
                    if _should_retry(response.status_code) and attempt < self._config.max_retries:
                        time.sleep(0.5 * (attempt + 1))
                        continue
                    raise LLMClientError(
                        f"Anthropic API error: {response.status_code} {response.text}"
                    )
                data = response.json()
                if not isinstance(data, dict):
                    raise LLMClientError("Unexpected response format from Anthropic API.")
                return cast(dict[str, Any], data)
            except requests.RequestException as exc:
                last_error = exc
                if attempt < self._config.max_retries:
                    time.sleep(0.5 * (attempt + 1))
                    continue
                raise LLMClientError("Anthropic API request failed.") from exc

        raise LLMClientError("Anthropic API request failed.") from last_error
