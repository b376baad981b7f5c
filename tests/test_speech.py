from __future__ import annotations

import asyncio
import base64
import io
import wave
from typing import Any, Optional

import pytest

from lingolens.services.audio_utils import WavFormat
from lingolens.services.gemini import GeminiClientError, GeminiReply, InlineData
from lingolens.services.speech import SpeechInputError, SpeechService, SpeechServiceError

_PREFIX = "data:audio/wav;base64,"


class FakeGeminiClient:
    def __init__(self, reply: Optional[GeminiReply] = None, error: Optional[Exception] = None) -> None:
        self._reply = reply
        self._error = error
        self.calls: list[dict[str, Any]] = []

    async def generate_content(self, **kwargs: Any) -> GeminiReply:
        self.calls.append(kwargs)
        if self._error is not None:
            raise self._error
        assert self._reply is not None
        return self._reply


def _run(coro):  # noqa: ANN001
    return asyncio.run(coro)


def _audio_reply(pcm: bytes, mime_type: str = "audio/L16;codec=pcm;rate=24000") -> GeminiReply:
    return GeminiReply(inline_data=[InlineData(mime_type=mime_type, data=base64.b64encode(pcm).decode("ascii"))])


def _decode_uri(uri: str) -> bytes:
    assert uri.startswith(_PREFIX)
    return base64.b64decode(uri[len(_PREFIX) :])


def test_synthesize_wraps_pcm_in_wav_data_uri() -> None:
    pcm = b"\x10\x00\x20\x00" * 1200
    client = FakeGeminiClient(_audio_reply(pcm))
    service = SpeechService(client=client, model="tts-model", voice_name="Aoede")

    result = _run(service.synthesize("Hola mundo"))

    wav = _decode_uri(result.audio_data_uri)
    assert len(wav) == 44 + len(pcm)
    with wave.open(io.BytesIO(wav), "rb") as wf:
        assert wf.getframerate() == 24_000
        assert wf.getnchannels() == 1
        assert wf.readframes(wf.getnframes()) == pcm
    assert result.sample_rate == 24_000
    assert result.channels == 1
    assert result.duration_seconds == pytest.approx(0.1)

    call = client.calls[0]
    assert call["model"] == "tts-model"
    assert call["contents"][0]["parts"] == [{"text": "Hola mundo"}]
    config = call["generation_config"]
    assert config["responseModalities"] == ["AUDIO"]
    assert config["speechConfig"]["voiceConfig"]["prebuiltVoiceConfig"]["voiceName"] == "Aoede"


def test_synthesize_uses_default_format_when_mime_has_no_rate() -> None:
    pcm = b"\x00\x00" * 1600
    service = SpeechService(
        client=FakeGeminiClient(_audio_reply(pcm, mime_type="audio/L16")),
        default_format=WavFormat(channels=1, sample_rate=16_000, bits_per_sample=16),
    )

    result = _run(service.synthesize("hello"))

    assert result.sample_rate == 16_000
    assert result.duration_seconds == pytest.approx(0.1)


@pytest.mark.parametrize("text", ["", "   ", "\n\t"])
def test_synthesize_rejects_blank_text(text: str) -> None:
    client = FakeGeminiClient(_audio_reply(b""))
    service = SpeechService(client=client)

    with pytest.raises(SpeechInputError, match="empty or contains only whitespace"):
        _run(service.synthesize(text))
    assert client.calls == []


def test_synthesize_rejects_text_over_limit() -> None:
    service = SpeechService(client=FakeGeminiClient(_audio_reply(b"")), max_text_chars=5)

    with pytest.raises(SpeechInputError):
        _run(service.synthesize("too long"))


def test_synthesize_reports_missing_audio() -> None:
    service = SpeechService(client=FakeGeminiClient(GeminiReply(text="no audio here")))

    with pytest.raises(SpeechServiceError, match="No audio media"):
        _run(service.synthesize("hello"))


def test_synthesize_wraps_client_errors() -> None:
    service = SpeechService(client=FakeGeminiClient(error=GeminiClientError("boom")))

    with pytest.raises(SpeechServiceError, match="boom"):
        _run(service.synthesize("hello"))


def test_synthesize_rejects_misaligned_pcm() -> None:
    service = SpeechService(client=FakeGeminiClient(_audio_reply(b"\x00\x00\x00")))

    with pytest.raises(SpeechServiceError, match="unusable audio"):
        _run(service.synthesize("hello"))


def test_synthesize_rejects_rate_too_large_for_header() -> None:
    service = SpeechService(client=FakeGeminiClient(_audio_reply(b"\x00\x00" * 4, "audio/L16;rate=99999999999")))

    with pytest.raises(SpeechServiceError, match="unusable audio"):
        _run(service.synthesize("hi"))


def test_synthesize_rejects_signed_8_bit_audio() -> None:
    service = SpeechService(client=FakeGeminiClient(_audio_reply(b"\x00" * 4, "audio/L8;rate=8000")))

    with pytest.raises(SpeechServiceError, match="unusable audio"):
        _run(service.synthesize("hi"))
