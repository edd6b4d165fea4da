"""
OCR providers for extracting text from scanned document images.
"""

from docscan_ai.ocr.base import SUPPORTED_IMAGE_EXTENSIONS, ImageHandle, OCRProvider, OCRResult
from docscan_ai.ocr.vision import VisionOCR

__all__ = [
    "ImageHandle",
    "OCRProvider",
    "OCRResult",
    "SUPPORTED_IMAGE_EXTENSIONS",
    "VisionOCR",
]
