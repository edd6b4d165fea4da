"""
Translation module for docscan-ai.
"""

from docscan_ai.translation.translator import (
    LANGUAGE_NAMES,
    Translator,
    build_translation_prompt,
    language_name,
)

__all__ = [
    "LANGUAGE_NAMES",
    "Translator",
    "build_translation_prompt",
    "language_name",
]
