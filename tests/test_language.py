from __future__ import annotations

import asyncio
import base64
import json
from typing import Any, Optional

import pytest

from lingolens.services.gemini import GeminiClientError, GeminiReply
from lingolens.services.language import (
    SUPPORTED_LANGUAGES,
    LanguageInputError,
    LanguageService,
    LanguageServiceError,
    clean_word,
    language_code,
)


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


def _json_reply(payload: Any) -> GeminiReply:
    return GeminiReply(text=json.dumps(payload))


def _png_data_uri(size: int = 32) -> str:
    data = b"\x89PNG\r\n\x1a\n" + b"\x00" * size
    return "data:image/png;base64," + base64.b64encode(data).decode("ascii")


def test_translate_returns_structured_result() -> None:
    client = FakeGeminiClient(_json_reply({"translated_text": "Hola, mundo"}))
    service = LanguageService(client=client, model="text-model")

    result = _run(service.translate("Hello, world", "Spanish"))

    assert result.translated_text == "Hola, mundo"
    call = client.calls[0]
    assert call["model"] == "text-model"
    assert call["generation_config"]["responseMimeType"] == "application/json"
    prompt = call["contents"][0]["parts"][0]["text"]
    assert "Spanish" in prompt
    assert "Hello, world" in prompt


def test_translate_rejects_blank_text_without_calling_model() -> None:
    client = FakeGeminiClient(_json_reply({"translated_text": "x"}))
    service = LanguageService(client=client)

    with pytest.raises(LanguageInputError):
        _run(service.translate("   ", "Spanish"))
    assert client.calls == []


def test_translate_wraps_client_errors() -> None:
    service = LanguageService(client=FakeGeminiClient(error=GeminiClientError("quota exceeded")))

    with pytest.raises(LanguageServiceError, match="quota exceeded"):
        _run(service.translate("Hello", "French"))


def test_translate_rejects_malformed_model_output() -> None:
    service = LanguageService(client=FakeGeminiClient(GeminiReply(text="Bonjour")))

    with pytest.raises(LanguageServiceError, match="malformed"):
        _run(service.translate("Hello", "French"))


def test_define_cleans_word_and_parses_lists() -> None:
    client = FakeGeminiClient(
        _json_reply(
            {
                "definition": "A greeting.",
                "synonyms": ["saludo"],
                "examples": ["¡Hola! ¿Qué tal?"],
            }
        )
    )
    service = LanguageService(client=client)

    result = _run(service.define("(hola!),", "Spanish"))

    assert result.definition == "A greeting."
    assert result.synonyms == ["saludo"]
    assert result.examples == ["¡Hola! ¿Qué tal?"]
    prompt = client.calls[0]["contents"][0]["parts"][0]["text"]
    assert '"hola"' in prompt
    schema = client.calls[0]["generation_config"]["responseSchema"]
    assert set(schema["required"]) == {"definition", "synonyms", "examples"}


def test_define_rejects_punctuation_only_word() -> None:
    service = LanguageService(client=FakeGeminiClient(_json_reply({})))

    with pytest.raises(LanguageInputError):
        _run(service.define("...", "Spanish"))


def test_define_rejects_missing_definition() -> None:
    service = LanguageService(client=FakeGeminiClient(_json_reply({"synonyms": []})))

    with pytest.raises(LanguageServiceError):
        _run(service.define("hola", "Spanish"))


def test_extract_text_sends_image_inline() -> None:
    client = FakeGeminiClient(_json_reply({"extracted_text": "EXIT"}))
    service = LanguageService(client=client)
    uri = _png_data_uri()

    result = _run(service.extract_text(uri))

    assert result.extracted_text == "EXIT"
    parts = client.calls[0]["contents"][0]["parts"]
    assert parts[0]["inlineData"]["mimeType"] == "image/png"
    assert parts[0]["inlineData"]["data"] == uri.split(",", 1)[1]
    assert "text" in parts[1]


@pytest.mark.parametrize(
    "uri",
    [
        "not a data uri",
        "data:text/plain;base64,aGVsbG8=",
        "data:image/png;base64,@@@not-base64@@@",
    ],
)
def test_extract_text_rejects_bad_uris(uri: str) -> None:
    client = FakeGeminiClient(_json_reply({"extracted_text": ""}))
    service = LanguageService(client=client)

    with pytest.raises(LanguageInputError):
        _run(service.extract_text(uri))
    assert client.calls == []


def test_extract_text_enforces_image_size_limit() -> None:
    service = LanguageService(client=FakeGeminiClient(_json_reply({"extracted_text": ""})), max_image_bytes=16)

    with pytest.raises(LanguageInputError, match="max size"):
        _run(service.extract_text(_png_data_uri(size=64)))


def test_clean_word_strips_punctuation() -> None:
    assert clean_word("  hello,  ") == "hello"
    assert clean_word("well-known") == "wellknown"
    assert clean_word("(café)!") == "café"
    assert clean_word("") == ""


def test_language_codes() -> None:
    assert len(SUPPORTED_LANGUAGES) == 14
    assert language_code("Japanese") == "ja-JP"
    assert language_code(" Telugu ") == "te-IN"
    assert language_code("Klingon") is None
