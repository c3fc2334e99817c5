"""OpenAI chat-completions client."""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, cast

import requests  # type: ignore[import-untyped]

from weighted_approvals.llm.base import LLMClient, LLMClientError, LLMConfigurationError
from weighted_approvals.util.observability import ObservabilityManager

DEFAULT_OPENAI_MODEL = "gpt-4o"
DEFAULT_OPENAI_BASE_URL = "https://api.openai.com/v1"


@dataclass(frozen=True)
class OpenAIClientConfig:
    """Configuration for the OpenAI client."""

    api_key: str
    base_url: str
    model: str
    timeout_s: float
    max_retries: int


class OpenAIClient(LLMClient):
    """LLM client for the OpenAI chat-completions API in JSON mode."""

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
        """Initialize the OpenAI client.

        Args:
            api_key: API key for authentication.
            base_url: Base URL of the API.
            model: Model name; defaults to ``gpt-4o``.
            timeout_s: Request timeout in seconds.
            max_retries: Number of retries for transient failures.
            session: Optional requests session for testing or reuse.
            observability: Optional observability manager for token usage.
        """

        if not api_key:
            raise LLMConfigurationError("An OpenAI API key is required for OpenAIClient.")
        self._config = OpenAIClientConfig(
            api_key=api_key,
            base_url=(base_url or DEFAULT_OPENAI_BASE_URL).rstrip("/"),
            model=model or DEFAULT_OPENAI_MODEL,
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
        """Generate a JSON-mode chat completion."""

        payload: dict[str, Any] = {
            "model": self.model,
            "messages": messages,
            "temperature": temperature,
            "response_format": {"type": "json_object"},
        }
        if max_tokens is not None:
            payload["max_tokens"] = max_tokens

        response_data = self._post("/chat/completions", payload)
        try:
            content = response_data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as exc:
            raise LLMClientError("Unexpected response format from OpenAI API.") from exc
        if not isinstance(content, str) or not content:
            raise LLMClientError("Empty response from OpenAI.")
        self._record_usage(response_data.get("usage"))
        return content

    def _record_usage(self, usage: Any) -> None:
        if self._observability is None or not isinstance(usage, dict):
            return
        self._observability.metrics.record_tokens(
            prompt_tokens=int(usage.get("prompt_tokens") or 0),
            completion_tokens=int(usage.get("completion_tokens") or 0),
        )
        self._observability.log_event(
            "llm.chat_completed",
            {"provider": "openai", "model": self.model, "usage": usage},
        )

    def _post(self, path: str, payload: dict[str, Any]) -> dict[str, Any]:
        url = f"{self._config.base_url}{path}"
        headers = {"Authorization": f"Bearer {self._config.api_key}"}
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
                        f"OpenAI API error: {response.status_code} {response.text}"
                    )
                data = response.json()
                if not isinstance(data, dict):
                    raise LLMClientError("Unexpected response format from OpenAI API.")
                return cast(dict[str, Any], data)
            except requests.RequestException as exc:
                last_error = exc
                if attempt < self._config.max_retries:
                    time.sleep(0.5 * (attempt + 1))
                    continue
                raise LLMClientError("OpenAI API request failed.") from exc

        raise LLMClientError("OpenAI API request failed.") from last_error


def _should_retry(status_code: int) -> bool:
    return status_code in {429, 500, 502, 503, 504}
