from __future__ import annotations

import base64
import binascii
import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Optional

from pydantic import BaseModel, Field, ValidationError

from lingolens.config import settings
from lingolens.services.gemini import (
    GeminiClientError,
    inline_part,
    parse_data_uri,
    text_part,
)

logger = logging.getLogger(__name__)


# Display name -> BCP-47 tag used by the front end for voices and spell-check.
SUPPORTED_LANGUAGES: dict[str, str] = {
    "English": "en-US",
    "Spanish": "es-ES",
    "French": "fr-FR",
    "German": "de-DE",
    "Japanese": "ja-JP",
    "Chinese": "zh-CN",
    "Russian": "ru-RU",
    "Arabic": "ar-SA",
    "Portuguese": "pt-PT",
    "Italian": "it-IT",
    "Hindi": "hi-IN",
    "Bengali": "bn-IN",
    "Tamil": "ta-IN",
    "Telugu": "te-IN",
}

_WORD_PUNCTUATION_RE = re.compile(r"[.,/#!$%^&*;:{}=\-_`~()]")


class LanguageServiceError(RuntimeError):
    """Raised when a translation, definition or text extraction fails."""


class LanguageInputError(LanguageServiceError):
    """Raised when caller input is rejected before reaching the model."""


class TranslationResult(BaseModel):
    translated_text: str


class WordDefinition(BaseModel):
    definition: str
    synonyms: list[str] = Field(default_factory=list)
    examples: list[str] = Field(default_factory=list)


class ExtractedText(BaseModel):
    extracted_text: str


@dataclass(frozen=True, slots=True)
class _StructuredPrompt:
    instruction: str
    schema: dict[str, Any]


_TRANSLATE = _StructuredPrompt(
    instruction="Translate the following text into {language}. Return only the translation.\n\n{text}",
    schema={
        "type": "OBJECT",
        "properties": {"translated_text": {"type": "STRING"}},
        "required": ["translated_text"],
    },
)

_DEFINE = _StructuredPrompt(
    instruction=(
        'You are a dictionary. Provide the definition, synonyms, and example usages '
        'for the word "{word}" in {language}.'
    ),
    schema={
        "type": "OBJECT",
        "properties": {
            "definition": {"type": "STRING"},
            "synonyms": {"type": "ARRAY", "items": {"type": "STRING"}},
            "examples": {"type": "ARRAY", "items": {"type": "STRING"}},
        },
        "required": ["definition", "synonyms", "examples"],
    },
)

_EXTRACT = _StructuredPrompt(
    instruction=(
        "Extract all readable text from this image exactly as written. "
        "Return an empty string if the image contains no text."
    ),
    schema={
        "type": "OBJECT",
        "properties": {"extracted_text": {"type": "STRING"}},
        "required": ["extracted_text"],
    },
)


def clean_word(word: str) -> str:
    """Strip punctuation a tapped word may carry from its surrounding sentence."""
    return _WORD_PUNCTUATION_RE.sub("", word or "").strip()


def language_code(language: str) -> Optional[str]:
    return SUPPORTED_LANGUAGES.get((language or "").strip())


class LanguageService:
    """Translation, dictionary and image-text flows backed by one Gemini text model."""

    def __init__(
        self,
        *,
        client: Any,
        model: Optional[str] = None,
        max_text_chars: Optional[int] = None,
        max_image_bytes: Optional[int] = None,
    ) -> None:
        self._client = client
        self._model = model or settings.gemini_text_model
        self._max_text_chars = max_text_chars if max_text_chars is not None else settings.max_text_chars
        self._max_image_bytes = max_image_bytes if max_image_bytes is not None else settings.max_image_bytes

    @property
    def model(self) -> str:
        return self._model

    def _check_text(self, text: str) -> None:
        if not (text or "").strip():
            raise LanguageInputError("Input text is empty or contains only whitespace.")
        if self._max_text_chars > 0 and len(text) > self._max_text_chars:
            raise LanguageInputError(
                f"Input text exceeds max length ({len(text)} > {self._max_text_chars} chars)"
            )

    async def _generate(self, flow: str, prompt: _StructuredPrompt, parts: list[dict[str, Any]]) -> dict[str, Any]:
        """Run a JSON-mode request and return the decoded object."""
        try:
            reply = await self._client.generate_content(
                model=self._model,
                contents=[{"role": "user", "parts": parts}],
                generation_config={
                    "responseMimeType": "application/json",
                    "responseSchema": prompt.schema,
                },
            )
        except GeminiClientError as exc:
            logger.exception("%s request failed", flow)
            raise LanguageServiceError(f"{flow} request failed: {exc}") from exc

        try:
            data = json.loads(reply.text)
        except ValueError as exc:
            logger.error("%s returned non-JSON output: %r", flow, reply.text[:200])
            raise LanguageServiceError(f"{flow} returned malformed output") from exc
        if not isinstance(data, dict):
            raise LanguageServiceError(f"{flow} returned malformed output")
        return data

    async def translate(self, text: str, target_language: str) -> TranslationResult:
        self._check_text(text)
        language = (target_language or "").strip()
        if not language:
            raise LanguageInputError("Target language is required.")

        instruction = _TRANSLATE.instruction.format(language=language, text=text)
        data = await self._generate("Translation", _TRANSLATE, [text_part(instruction)])
        try:
            return TranslationResult.model_validate(data)
        except ValidationError as exc:
            raise LanguageServiceError("Translation returned malformed output") from exc

    async def define(self, word: str, language: str) -> WordDefinition:
        cleaned = clean_word(word)
        if not cleaned:
            raise LanguageInputError("Word is empty after removing punctuation.")
        language = (language or "").strip()
        if not language:
            raise LanguageInputError("Language is required.")

        instruction = _DEFINE.instruction.format(word=cleaned, language=language)
        data = await self._generate("Definition lookup", _DEFINE, [text_part(instruction)])
        try:
            return WordDefinition.model_validate(data)
        except ValidationError as exc:
            raise LanguageServiceError("Definition lookup returned malformed output") from exc

    async def extract_text(self, image_data_uri: str) -> ExtractedText:
        try:
            mime_type, payload = parse_data_uri(image_data_uri)
        except ValueError as exc:
            raise LanguageInputError(f"Invalid image data URI: {exc}") from exc
        if not mime_type.startswith("image/"):
            raise LanguageInputError(f"Expected an image data URI, got {mime_type}")
        try:
            image_bytes = base64.b64decode(payload, validate=True)
        except (binascii.Error, ValueError) as exc:
            raise LanguageInputError("Image data URI is not valid base64") from exc
        if self._max_image_bytes > 0 and len(image_bytes) > self._max_image_bytes:
            raise LanguageInputError(
                f"Image exceeds max size ({len(image_bytes)} > {self._max_image_bytes} bytes)"
            )

        parts = [inline_part(mime_type, payload), text_part(_EXTRACT.instruction)]
        data = await self._generate("Text extraction", _EXTRACT, parts)
        try:
            return ExtractedText.model_validate(data)
        except ValidationError as exc:
            raise LanguageServiceError("Text extraction returned malformed output") from exc
