"""
Single-attempt execution of the OCR and translation stages.

The executor picks a credential, makes one provider call and reports the
outcome to the credential pool. It never raises provider or transport
exceptions; every failure comes back as a classified StageOutcome so the
orchestrator can decide whether to retry.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Collection
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from docscan_ai.credentials.base import CredentialEntry
from docscan_ai.credentials.pool import CredentialPool
from docscan_ai.exceptions import (
    EXHAUSTED_REASON,
    ApiErrorKind,
    CredentialsExhaustedError,
)
from docscan_ai.llm.errors import classify_error
from docscan_ai.ocr.base import ImageHandle, OCRProvider
from docscan_ai.translation.translator import Translator

T = TypeVar("T")


@dataclass(frozen=True)
class StageOutcome(Generic[T]):
    """Result of one stage attempt: a value or a classified failure."""

    value: T | None = None
    failure: ApiErrorKind | None = None
    exhausted: bool = False
    credential_id: str | None = None

    @property
    def ok(self) -> bool:
        return self.failure is None and not self.exhausted

    @property
    def retryable(self) -> bool:
        """Whether another attempt with a different credential may succeed."""
        return self.failure is not None and self.failure.is_retryable

    @property
    def reason(self) -> str | None:
        """User-facing failure reason."""
        if self.exhausted:
            return EXHAUSTED_REASON
        if self.failure is not None:
            return self.failure.reason
        return None


class StageExecutor:
    """
    Performs one OCR or translation attempt with a pooled credential.

    An invalid credential is deactivated and the call is repeated with the
    next one straight away; that does not count as a document retry.
    """

    def __init__(
        self,
        pool: CredentialPool,
        ocr_provider: OCRProvider,
        translator: Translator,
        *,
        call_timeout: float | None = None,
        log_callback: Any = None,
    ):
        """
        Initialize the executor.

        Args:
            pool: Shared credential pool.
            ocr_provider: Provider used by run_ocr.
            translator: Translator used by run_translation.
            call_timeout: Per-call timeout in seconds; timeouts are transient.
            log_callback: Optional callback accepting (level, message, context).
        """
        self._pool = pool
        self._ocr = ocr_provider
        self._translator = translator
        self._call_timeout = call_timeout
        self._log_callback = log_callback

    def _log(self, level: str, message: str, context: dict[str, Any] | None = None) -> None:
        """Log a message via callback if available."""
        if self._log_callback:
            self._log_callback(level, message, context or {})

    async def run_ocr(
        self,
        image: ImageHandle,
        *,
        model: str,
        exclude: Collection[str] = (),
    ) -> StageOutcome[str]:
        """
        Recognize text in an image.

        Args:
            image: Image file path or bytes.
            model: OCR model identifier.
            exclude: Credential ids already tried for this document stage.

        Returns:
            StageOutcome carrying the recognized text on success.
        """

        async def call(credential: CredentialEntry) -> str:
            result = await self._ocr.extract(image, credential=credential, model=model)
            return result.content

        return await self._execute("ocr", call, exclude)

    async def run_translation(
        self,
        text: str,
        source_lang: str,
        target_lang: str,
        model: str,
        *,
        exclude: Collection[str] = (),
    ) -> StageOutcome[str]:
        """
        Translate text.

        Args:
            text: Recognized text to translate.
            source_lang: Source language code.
            target_lang: Target language code.
            model: Translation model identifier.
            exclude: Credential ids already tried for this document stage.

        Returns:
            StageOutcome carrying the translated text on success.
        """

        async def call(credential: CredentialEntry) -> str:
            return await self._translator.translate(
                text, source_lang, target_lang, model, credential
            )

        return await self._execute("translation", call, exclude)

    async def _execute(
        self,
        stage: str,
        call: Callable[[CredentialEntry], Awaitable[str]],
        exclude: Collection[str],
    ) -> StageOutcome[str]:
        tried = set(exclude)

        while True:
            try:
                credential = await self._pool.select_credential(exclude=tried)
            except CredentialsExhaustedError:
                self._log("WARNING", f"{stage}: no eligible credentials")
                return StageOutcome(exhausted=True)

            tried.add(credential.id)
            context = {"stage": stage, "credential": credential.label or credential.id}

            try:
                if self._call_timeout:
                    value = await asyncio.wait_for(call(credential), timeout=self._call_timeout)
                else:
                    value = await call(credential)
            except Exception as e:
                error = classify_error(e)
                self._log(
                    "WARNING",
                    f"{stage} call failed: {error}",
                    {**context, "kind": error.kind.value, "status_code": error.status_code},
                )
                await self._pool.report_failure(credential, error.kind)

                if error.kind == ApiErrorKind.INVALID_CREDENTIAL:
                    continue
                return StageOutcome(failure=error.kind, credential_id=credential.id)

            await self._pool.report_success(credential)
            return StageOutcome(value=value, credential_id=credential.id)
