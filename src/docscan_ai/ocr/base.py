"""
Base classes and interfaces for OCR providers.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Union

from docscan_ai.credentials.base import CredentialEntry

# A path to an image file or the raw encoded image bytes.
ImageHandle = Union[str, Path, bytes]

SUPPORTED_IMAGE_EXTENSIONS = {
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".webp": "image/webp",
    ".gif": "image/gif",
    ".bmp": "image/bmp",
    ".tif": "image/tiff",
    ".tiff": "image/tiff",
}


@dataclass
class OCRResult:
    """Result from OCR processing."""

    content: str
    model_used: str = ""
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def is_empty(self) -> bool:
        """Check if content is empty or whitespace only."""
        return not self.content or not self.content.strip()

    @property
    def word_count(self) -> int:
        """Count words in content."""
        return len(self.content.split()) if self.content else 0


class OCRProvider(ABC):
    """Abstract base class for OCR providers."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Provider name."""
        ...

    @abstractmethod
    async def extract(
        self,
        image: ImageHandle,
        *,
        credential: CredentialEntry,
        model: str,
    ) -> OCRResult:
        """
        Extract text from a single image.

        Args:
            image: Image file path or encoded image bytes.
            credential: Credential to authenticate the call with.
            model: OCR model identifier.

        Returns:
            OCRResult with extracted text.

        Raises:
            ApiError: If the call fails.
        """
        ...

    def can_handle(self, file_path: Path) -> bool:
        """Check if this provider can handle the given file type."""
        return file_path.suffix.lower() in SUPPORTED_IMAGE_EXTENSIONS
