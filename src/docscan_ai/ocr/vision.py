"""
Vision-model OCR over an OpenAI-compatible chat completions endpoint.

The image is sent inline as a base64 data URL together with a short
extraction prompt.
"""

from __future__ import annotations

import base64
from pathlib import Path

from docscan_ai.credentials.base import CredentialEntry
from docscan_ai.exceptions import ApiError, ApiErrorKind
from docscan_ai.llm.base import LLMProvider
from docscan_ai.ocr.base import SUPPORTED_IMAGE_EXTENSIONS, ImageHandle, OCRProvider, OCRResult

DEFAULT_OCR_PROMPT = (
    "Extract all text from this document image. Preserve reading order, tables and "
    "formatting as markdown. Return ONLY the text."
)


class VisionOCR(OCRProvider):
    """
    OCR using a vision-capable chat model.

    Works with olmOCR, DeepSeek-OCR, Gemini Flash and any other model the
    configured endpoint serves with image input.
    """

    def __init__(
        self,
        provider: LLMProvider,
        *,
        prompt: str = DEFAULT_OCR_PROMPT,
        max_tokens: int = 4096,
    ):
        """
        Initialize vision OCR.

        Args:
            provider: Chat completion provider used for the call.
            prompt: Extraction instruction sent with the image.
            max_tokens: Maximum tokens for the extracted text.
        """
        self._provider = provider
        self._prompt = prompt
        self._max_tokens = max_tokens

    @property
    def name(self) -> str:
        return f"vision:{self._provider.name}"

    async def extract(
        self,
        image: ImageHandle,
        *,
        credential: CredentialEntry,
        model: str,
    ) -> OCRResult:
        """
        Extract text from an image.

        Args:
            image: Image file path or encoded image bytes.
            credential: Credential to authenticate the call with.
            model: Vision model identifier.

        Returns:
            OCRResult with extracted text.

        Raises:
            ApiError: Classified provider failure, or PERMANENT if the image
                cannot be read.
        """
        image_bytes, mime_type = _load_image(image)
        image_base64 = base64.b64encode(image_bytes).decode("utf-8")

        response = await self._provider.complete(
            [
                {
                    "role": "user",
                    "content": [
                        {
                            "type": "image_url",
                            "image_url": {"url": f"data:{mime_type};base64,{image_base64}"},
                        },
                        {"type": "text", "text": self._prompt},
                    ],
                }
            ],
            credential=credential,
            model=model,
            temperature=0.0,
            max_tokens=self._max_tokens,
            allow_empty=True,
        )

        return OCRResult(
            content=response.content,
            model_used=response.model,
            metadata={"latency_ms": response.latency_ms, "mime_type": mime_type},
        )


def _load_image(image: ImageHandle) -> tuple[bytes, str]:
    """Read image bytes and guess the MIME type."""
    if isinstance(image, bytes):
        return image, "image/png"

    path = Path(image)
    mime_type = SUPPORTED_IMAGE_EXTENSIONS.get(path.suffix.lower(), "image/png")
    try:
        return path.read_bytes(), mime_type
    except OSError as e:
        raise ApiError(ApiErrorKind.PERMANENT, f"Image could not be read: {path.name}") from e
