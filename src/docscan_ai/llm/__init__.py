"""
LLM provider abstraction layer.

One OpenAI-compatible implementation covers OpenRouter, DeepInfra, OpenAI and
Gemini; the credential is supplied per call by the credential pool.
"""

from docscan_ai.llm.base import LLMProvider, LLMResponse
from docscan_ai.llm.errors import classify_error
from docscan_ai.llm.factory import LLMProviderType, create_llm_provider
from docscan_ai.llm.openai_compatible import OpenAICompatibleProvider

__all__ = [
    "LLMProvider",
    "LLMResponse",
    "LLMProviderType",
    "OpenAICompatibleProvider",
    "classify_error",
    "create_llm_provider",
]
