"""
OpenAI-compatible LLM provider.

Talks to any endpoint that speaks the OpenAI chat completions API
(OpenRouter, DeepInfra, OpenAI, Gemini's compatibility layer). Retries are
disabled in the SDK: the processing orchestrator decides when to retry and
with which credential.
"""

from __future__ import annotations

import time
from typing import Any

from openai import AsyncOpenAI

from docscan_ai.credentials.base import CredentialEntry
from docscan_ai.exceptions import ApiError, ApiErrorKind
from docscan_ai.llm.base import LLMProvider, LLMResponse
from docscan_ai.llm.errors import classify_error


class OpenAICompatibleProvider(LLMProvider):
    """
    LLM provider for OpenAI-compatible chat completion endpoints.

    One AsyncOpenAI client is kept per credential, created on first use.
    """

    def __init__(
        self,
        base_url: str,
        *,
        name: str = "openai-compatible",
        timeout: float = 120.0,
    ):
        """
        Initialize the provider.

        Args:
            base_url: API base URL.
            name: Provider name used in logs.
            timeout: Request timeout in seconds.
        """
        self._base_url = base_url
        self._name = name
        self._timeout = timeout
        self._clients: dict[str, AsyncOpenAI] = {}

    @property
    def name(self) -> str:
        """Provider name."""
        return self._name

    @property
    def base_url(self) -> str:
        return self._base_url

    def _client_for(self, credential: CredentialEntry) -> AsyncOpenAI:
        client = self._clients.get(credential.id)
        if client is None:
            client = AsyncOpenAI(
                api_key=credential.secret,
                base_url=self._base_url,
                timeout=self._timeout,
                max_retries=0,
            )
            self._clients[credential.id] = client
        return client

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
        Generate a completion.

        Args:
            messages: List of message dicts.
            credential: Credential to authenticate with.
            model: Model identifier.
            temperature: Sampling temperature.
            max_tokens: Maximum output tokens.
            allow_empty: Return an empty answer instead of raising. Blank
                pages legitimately produce no OCR text.
            **kwargs: Additional options passed to the API.

        Returns:
            LLMResponse with content and usage stats.

        Raises:
            ApiError: Classified failure. A content-filtered answer is
                permanent. An empty one is transient unless
                allow_empty is set.
        """
        start_time = time.perf_counter()

        try:
            response = await self._client_for(credential).chat.completions.create(
                model=model,
                messages=messages,  # type: ignore[arg-type]
                temperature=temperature,
                max_tokens=max_tokens,
                **kwargs,
            )
        except Exception as e:
            raise classify_error(e) from e

        if not response.choices:
            raise ApiError(ApiErrorKind.TRANSIENT, "Provider returned no choices")

        choice = response.choices[0]
        if choice.finish_reason == "content_filter":
            raise ApiError(ApiErrorKind.PERMANENT, "Response blocked by content filter")

        content = (choice.message.content or "").strip()
        if not content and not allow_empty:
            raise ApiError(ApiErrorKind.TRANSIENT, "Provider returned an empty response")

        latency_ms = (time.perf_counter() - start_time) * 1000
        usage = response.usage

        return LLMResponse(
            content=content,
            input_tokens=usage.prompt_tokens if usage else 0,
            output_tokens=usage.completion_tokens if usage else 0,
            model=model,
            latency_ms=latency_ms,
            metadata={
                "provider": self._name,
                "finish_reason": choice.finish_reason,
            },
        )

    async def close(self) -> None:
        """Close all cached clients."""
        for client in self._clients.values():
            await client.close()
        self._clients.clear()
