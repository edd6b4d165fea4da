"""
Base classes for LLM providers.

Defines the abstract interface that all LLM providers must implement. The
credential and model are chosen per call by the caller, so one provider
instance serves every key in the credential pool.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

from docscan_ai.credentials.base import CredentialEntry


@dataclass
class LLMResponse:
    """Response from an LLM provider."""

    content: str
    input_tokens: int = 0
    output_tokens: int = 0
    model: str = ""
    latency_ms: float = 0.0
    metadata: dict[str, Any] = field(default_factory=dict)


class LLMProvider(ABC):
    """
    Abstract base class for LLM providers.

    Implementations raise ApiError with a classified kind on failure.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Provider name for logging and identification."""
        ...

    @abstractmethod
    async def complete(
        self,
        messages: list[dict[str, Any]],
        *,
        credential: CredentialEntry,
        model: str,
        temperature: float = 0.3,
        max_tokens: int = 4096,
        allow_empty: bool = False,
        **kwargs: Any,
    ) -> LLMResponse:
        """
        Generate a completion from the LLM.

        Args:
            messages: List of message dicts with 'role' and 'content' keys.
            credential: Credential to authenticate this call with.
            model: Model identifier.
            temperature: Sampling temperature (0.0 to 2.0).
            max_tokens: Maximum tokens to generate.
            allow_empty: Accept an answer with no text instead of failing.
            **kwargs: Additional provider-specific options.

        Returns:
            LLMResponse with the generated content and metadata.

        Raises:
            ApiError: If the call fails.
        """
        ...

    async def chat(
        self,
        system_prompt: str,
        user_prompt: str,
        *,
        credential: CredentialEntry,
        model: str,
        temperature: float = 0.3,
        max_tokens: int = 4096,
        **kwargs: Any,
    ) -> LLMResponse:
        """
        Convenience method for simple system + user prompt interactions.

        Args:
            system_prompt: System message content.
            user_prompt: User message content.
            credential: Credential to authenticate this call with.
            model: Model identifier.
            temperature: Sampling temperature.
            max_tokens: Maximum tokens to generate.
            **kwargs: Additional options.

        Returns:
            LLMResponse with the generated content.
        """
        messages = [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": user_prompt},
        ]
        return await self.complete(
            messages,
            credential=credential,
            model=model,
            temperature=temperature,
            max_tokens=max_tokens,
            **kwargs,
        )

    async def close(self) -> None:
        """Release connections held by the provider."""
        return None
