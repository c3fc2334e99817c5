"""LLM client factory for the advisory service."""

from __future__ import annotations

import os
from collections.abc import Mapping

import requests  # type: ignore[import-untyped]

from weighted_approvals.llm.anthropic_client import AnthropicClient
from weighted_approvals.llm.base import LLMClient, LLMConfigurationError
from weighted_approvals.llm.openai_client import OpenAIClient
from weighted_approvals.policy import AdvisoryConfig
from weighted_approvals.util.observability import ObservabilityManager


def create_llm_client(
    config: AdvisoryConfig,
    *,
    environ: Mapping[str, str] | None = None,
    session: requests.Session | None = None,
    observability: ObservabilityManager | None = None,
) -> LLMClient:
    """Create an LLM client for the configured advisory provider.

    Args:
        config: Advisory configuration from the policy file.
        environ: Environment to read ``config.api_key_env`` from; defaults to
            ``os.environ``.
        session: Optional requests session shared with the client.
        observability: Optional observability manager for token usage.

    Returns:
        An initialized LLM client.

    Raises:
        LLMConfigurationError: If the API key is missing or the provider is unknown.
    """

    env = os.environ if environ is None else environ
    api_key = env.get(config.api_key_env, "")
    if not api_key:
        raise LLMConfigurationError(
            f"Environment variable {config.api_key_env} is not set; cannot call {config.provider}."
        )

    provider = config.provider.lower()
    if provider == "openai":
        return OpenAIClient(
            api_key=api_key,
            model=config.model,
            session=session,
            observability=observability,
        )
    if provider == "anthropic":
        return AnthropicClient(
            api_key=api_key,
            model=config.model,
            session=session,
            observability=observability,
        )
    raise LLMConfigurationError(f"Unknown LLM provider: {config.provider}")
