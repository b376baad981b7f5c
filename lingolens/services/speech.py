from __future__ import annotations

import base64
import binascii
import logging
from dataclasses import dataclass
from typing import Any, Optional

from lingolens.config import settings
from lingolens.services.audio_utils import (
    InvalidFormatError,
    WavFormat,
    format_from_mime_type,
    pcm_duration_seconds,
    pcm_to_wav,
    wav_data_uri,
)
from lingolens.services.gemini import GeminiClientError, text_part

logger = logging.getLogger(__name__)


class SpeechServiceError(RuntimeError):
    """Raised when speech synthesis fails."""


class SpeechInputError(SpeechServiceError):
    """Raised when the text to synthesize is unusable."""


@dataclass(slots=True)
class SpeechResult:
    audio_data_uri: str
    sample_rate: int
    channels: int
    duration_seconds: float


def default_speech_format() -> WavFormat:
    return WavFormat(
        channels=settings.tts_channels,
        sample_rate=settings.tts_sample_rate,
        bits_per_sample=settings.tts_bits_per_sample,
    )


class SpeechService:
    """Text-to-speech flow: Gemini audio generation -> PCM -> WAV data URI.

    Gemini returns raw linear PCM with the rate in its MIME type. The format
    falls back to `default_format` for anything the MIME type does not state.
    """

    def __init__(
        self,
        *,
        client: Any,
        model: Optional[str] = None,
        voice_name: Optional[str] = None,
        default_format: Optional[WavFormat] = None,
        max_text_chars: Optional[int] = None,
    ) -> None:
        self._client = client
        self._model = model or settings.gemini_tts_model
        self._voice_name = voice_name or settings.gemini_tts_voice
        self._default_format = default_format or default_speech_format()
        self._max_text_chars = max_text_chars if max_text_chars is not None else settings.max_text_chars

    @property
    def model(self) -> str:
        return self._model

    def _generation_config(self) -> dict[str, Any]:
        return {
            "responseModalities": ["AUDIO"],
            "speechConfig": {
                "voiceConfig": {"prebuiltVoiceConfig": {"voiceName": self._voice_name}},
            },
        }

    async def synthesize(self, text: str) -> SpeechResult:
        if not (text or "").strip():
            raise SpeechInputError("Input text is empty or contains only whitespace.")
        if self._max_text_chars > 0 and len(text) > self._max_text_chars:
            raise SpeechInputError(
                f"Input text exceeds max length ({len(text)} > {self._max_text_chars} chars)"
            )

        try:
            reply = await self._client.generate_content(
                model=self._model,
                contents=[{"role": "user", "parts": [text_part(text)]}],
                generation_config=self._generation_config(),
            )
        except GeminiClientError as exc:
            logger.exception("Text-to-speech request failed")
            raise SpeechServiceError(f"Speech synthesis request failed: {exc}") from exc

        audio = next((m for m in reply.inline_data if m.mime_type.lower().startswith("audio/")), None)
        if audio is None:
            raise SpeechServiceError("No audio media was returned from the AI service.")

        try:
            pcm = base64.b64decode(audio.data, validate=True)
        except (binascii.Error, ValueError) as exc:
            raise SpeechServiceError("AI service returned audio that is not valid base64") from exc

        try:
            fmt = format_from_mime_type(audio.mime_type, self._default_format)
            wav_bytes = pcm_to_wav(pcm, fmt)
        except InvalidFormatError as exc:
            logger.error("Cannot encode %d bytes of %s audio: %s", len(pcm), audio.mime_type, exc)
            raise SpeechServiceError(f"AI service returned unusable audio: {exc}") from exc

        duration = pcm_duration_seconds(pcm, fmt)
        logger.info(
            "Synthesized %.2fs of audio (%d Hz, %d ch, %d bytes PCM)",
            duration,
            fmt.sample_rate,
            fmt.channels,
            len(pcm),
        )
        return SpeechResult(
            audio_data_uri=wav_data_uri(wav_bytes),
            sample_rate=fmt.sample_rate,
            channels=fmt.channels,
            duration_seconds=duration,
        )
