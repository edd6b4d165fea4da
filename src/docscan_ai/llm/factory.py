"""
LLM provider factory.

Creates the appropriate LLM provider based on configuration.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from docscan_ai.llm.base import LLMProvider


class LLMProviderType(str, Enum):
    """Available LLM provider types."""

    OPENROUTER = "openrouter"
    DEEPINFRA = "deepinfra"
    OPENAI = "openai"
    GEMINI = "gemini"


DEFAULT_BASE_URLS = {
    LLMProviderType.OPENROUTER: "https://openrouter.ai/api/v1",
    LLMProviderType.DEEPINFRA: "https://api.deepinfra.com/v1/openai",
    LLMProviderType.OPENAI: "https://api.openai.com/v1",
    LLMProviderType.GEMINI: "https://generativelanguage.googleapis.com/v1beta/openai/",
}


def parse_provider_type(provider_type: LLMProviderType | str) -> LLMProviderType:
    """
    Normalize a provider name.

    Raises:
        ValueError: If the name is not a known provider.
    """
    if isinstance(provider_type, LLMProviderType):
        return provider_type
    try:
        return LLMProviderType(provider_type.lower().replace("_", "-"))
    except ValueError:
        valid = [p.value for p in LLMProviderType]
        raise ValueError(f"Invalid provider type: {provider_type}. Valid options: {valid}") from None


def create_llm_provider(
    provider_type: LLMProviderType | str,
    *,
    base_url: str | None = None,
    **kwargs: Any,
) -> LLMProvider:
    """
    Create an LLM provider instance.

    Args:
        provider_type: Type of provider to create.
        base_url: Override for the provider's default endpoint.
        **kwargs: Additional provider options (e.g. timeout).

    Returns:
        LLMProvider instance.

    Raises:
        ValueError: If provider_type is invalid.

    Examples:
        provider = create_llm_provider("openrouter", timeout=60)
        provider = create_llm_provider("openai", base_url="http://localhost:8000/v1")
    """
    provider_type = parse_provider_type(provider_type)

    from docscan_ai.llm.openai_compatible import OpenAICompatibleProvider

    return OpenAICompatibleProvider(
        base_url=base_url or DEFAULT_BASE_URLS[provider_type],
        name=provider_type.value,
        **kwargs,
    )
