"""LLM client package."""

from weighted_approvals.llm.anthropic_client import AnthropicClient
from weighted_approvals.llm.base import LLMClient, LLMClientError, LLMConfigurationError
from weighted_approvals.llm.openai_client import OpenAIClient
from weighted_approvals.llm.registry import create_llm_client

__all__ = [
    "AnthropicClient",
    "LLMClient",
    "LLMClientError",
    "LLMConfigurationError",
    "OpenAIClient",
    "create_llm_client",
]
