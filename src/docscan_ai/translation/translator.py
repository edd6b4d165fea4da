"""
Text translator using LLM providers.

Builds the translation prompts and performs a single translation call with
the credential and model chosen by the caller.
"""

from __future__ import annotations

from docscan_ai.credentials.base import CredentialEntry
from docscan_ai.llm.base import LLMProvider

LANGUAGE_NAMES = {
    "en": "English",
    "ar": "Arabic",
    "fr": "French",
    "de": "German",
    "es": "Spanish",
    "it": "Italian",
    "pt": "Portuguese",
    "ru": "Russian",
    "uk": "Ukrainian",
    "zh": "Chinese",
    "ja": "Japanese",
    "ko": "Korean",
    "he": "Hebrew",
    "fa": "Persian",
    "ur": "Urdu",
}

RTL_LANGUAGES = {"ar", "he", "fa", "ur"}

# Source language code meaning "let the model detect it".
AUTO_DETECT = "auto"


def language_name(code: str) -> str:
    return LANGUAGE_NAMES.get(code, code)


class Translator:
    """Translates recognized text with an LLM provider."""

    def __init__(
        self,
        provider: LLMProvider,
        *,
        temperature: float = 0.3,
        max_tokens: int = 8192,
    ):
        """
        Initialize translator.

        Args:
            provider: Chat completion provider.
            temperature: Sampling temperature.
            max_tokens: Maximum output tokens.
        """
        self._provider = provider
        self._temperature = temperature
        self._max_tokens = max_tokens

    @property
    def provider_name(self) -> str:
        return self._provider.name

    async def translate(
        self,
        text: str,
        source_lang: str,
        target_lang: str,
        model: str,
        credential: CredentialEntry,
    ) -> str:
        """
        Translate text in one provider call.

        Args:
            text: Text to translate.
            source_lang: Source language code, or "auto".
            target_lang: Target language code.
            model: Model identifier.
            credential: Credential to authenticate with.

        Returns:
            Translated text.

        Raises:
            ApiError: If the call fails.
        """
        response = await self._provider.chat(
            system_prompt=self._get_system_prompt(source_lang, target_lang),
            user_prompt=build_translation_prompt(text, source_lang, target_lang),
            credential=credential,
            model=model,
            temperature=self._temperature,
            max_tokens=self._max_tokens,
        )
        return response.content

    def _get_system_prompt(self, source_lang: str, target_lang: str) -> str:
        """Get system prompt for translation with RTL/LTR table handling."""
        target_name = language_name(target_lang)
        if source_lang == AUTO_DETECT:
            direction = f"into {target_name}"
        else:
            direction = f"from {language_name(source_lang)} to {target_name}"

        table_instructions = ""
        if source_lang != AUTO_DETECT and (source_lang in RTL_LANGUAGES) != (
            target_lang in RTL_LANGUAGES
        ):
            table_instructions = """
5. **TABLE COLUMN ORDER**: The reading direction changes between the two languages.
   Reverse the column order of every table so it reads naturally in the target language."""

        return f"""You are an expert translator of scanned documents.
The input was produced by OCR and may contain minor recognition errors.
Translate it {direction} while:

1. Preserving paragraphs, lists, tables and markdown formatting
2. Keeping numbers, dates, codes, URLs and proper names unchanged
3. Silently correcting obvious OCR artifacts instead of translating them
4. Ensuring the translation reads naturally in {target_name}
{table_instructions}

Return ONLY the translated text. Do not add quotes, notes or explanations."""


def build_translation_prompt(text: str, source_lang: str, target_lang: str) -> str:
    """Build the user message for a translation request."""
    lines = ["Translate the following text."]
    if source_lang != AUTO_DETECT:
        lines.append(f"Source language: {language_name(source_lang)} ({source_lang})")
    lines.append(f"Target language: {language_name(target_lang)} ({target_lang})")
    lines.append("")
    lines.append(text)
    return "\n".join(lines)
