"""Configuration helpers for the LingoLens backend."""
from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() not in {"0", "false", "no", "off", ""}


@dataclass
class Settings:
    """Centralized environment-driven configuration.

    Values are read once at import time; tests patch attributes on the shared
    `settings` instance rather than the environment.
    """

    # Google Gemini access. GOOGLE_API_KEY is accepted for parity with the Google SDKs.
    gemini_api_key: Optional[str] = os.getenv("GEMINI_API_KEY") or os.getenv("GOOGLE_API_KEY")
    gemini_api_base: str = os.getenv(
        "GEMINI_API_BASE", "https://generativelanguage.googleapis.com/v1beta"
    )
    gemini_text_model: str = os.getenv("GEMINI_TEXT_MODEL", "gemini-2.0-flash")
    gemini_tts_model: str = os.getenv("GEMINI_TTS_MODEL", "gemini-2.5-flash-preview-tts")
    gemini_tts_voice: str = os.getenv("GEMINI_TTS_VOICE", "Aoede")
    gemini_request_timeout_seconds: float = float(os.getenv("GEMINI_REQUEST_TIMEOUT_SECONDS", "60"))

    # Fallback format for synthesized speech when the MIME type omits parameters.
    tts_sample_rate: int = int(os.getenv("TTS_SAMPLE_RATE", "24000"))
    tts_channels: int = int(os.getenv("TTS_CHANNELS", "1"))
    tts_bits_per_sample: int = int(os.getenv("TTS_BITS_PER_SAMPLE", "16"))

    # Request guardrails
    max_text_chars: int = int(os.getenv("MAX_TEXT_CHARS", "5000"))
    max_image_bytes: int = int(os.getenv("MAX_IMAGE_BYTES", str(8 * 1024 * 1024)))

    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    server_host: str = os.getenv("SERVER_HOST", "127.0.0.1")
    server_port: int = int(os.getenv("SERVER_PORT", "8000"))
    server_reload: bool = _env_bool("SERVER_RELOAD", False)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached settings instance to avoid repeated environment reads."""

    return Settings()


settings = get_settings()
