from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional, Sequence

import httpx

logger = logging.getLogger(__name__)


class GeminiClientError(RuntimeError):
    """Raised when Gemini request/response handling fails."""


class GeminiClientConfigError(GeminiClientError):
    """Raised when required Gemini client configuration is missing."""


@dataclass(slots=True)
class InlineData:
    mime_type: str
    data: str  # base64


@dataclass(slots=True)
class GeminiReply:
    """Normalized view of the first candidate in a generateContent response."""

    text: str = ""
    inline_data: list[InlineData] = field(default_factory=list)
    finish_reason: Optional[str] = None
    raw: Optional[dict[str, Any]] = None


def is_gemini_configured(*, api_key: Optional[str] = None) -> bool:
    """Return True if enough env is set to create a GeminiClient."""
    return bool((api_key or "").strip())


def text_part(text: str) -> dict[str, Any]:
    return {"text": text}


def inline_part(mime_type: str, data: str) -> dict[str, Any]:
    return {"inlineData": {"mimeType": mime_type, "data": data}}


def parse_data_uri(uri: str) -> tuple[str, str]:
    """Split `data:<mime>;base64,<payload>` into (mime, payload)."""
    raw = (uri or "").strip()
    if not raw.startswith("data:"):
        raise ValueError("Expected a data URI starting with 'data:'")
    header, sep, payload = raw[5:].partition(",")
    if not sep or not payload:
        raise ValueError("Data URI has no payload")
    parts = [p.strip() for p in header.split(";")]
    if "base64" not in (p.lower() for p in parts[1:]):
        raise ValueError("Only base64 data URIs are supported")
    mime_type = parts[0].lower() or "application/octet-stream"
    return mime_type, payload.strip()


def _parse_reply(data: Any) -> GeminiReply:
    if not isinstance(data, dict):
        raise GeminiClientError(f"Expected dict payload from Gemini, got {type(data)!r}")

    candidates = data.get("candidates") or []
    if not candidates:
        feedback = data.get("promptFeedback") or {}
        reason = feedback.get("blockReason") if isinstance(feedback, dict) else None
        if reason:
            raise GeminiClientError(f"Gemini blocked the prompt ({reason})")
        raise GeminiClientError("Gemini response contained no candidates")

    first = candidates[0] if isinstance(candidates[0], dict) else {}
    content = first.get("content")
    parts = (content.get("parts") or []) if isinstance(content, dict) else []

    texts: list[str] = []
    media: list[InlineData] = []
    for part in parts:
        if not isinstance(part, dict):
            continue
        if isinstance(part.get("text"), str):
            texts.append(part["text"])
        inline = part.get("inlineData") or part.get("inline_data")
        if isinstance(inline, dict) and isinstance(inline.get("data"), str):
            mime = inline.get("mimeType") or inline.get("mime_type") or "application/octet-stream"
            media.append(InlineData(mime_type=str(mime), data=inline["data"]))

    return GeminiReply(
        text="".join(texts),
        inline_data=media,
        finish_reason=first.get("finishReason"),
        raw=data,
    )


class GeminiClient:
    """HTTP client for the Gemini `generateContent` REST endpoint."""

    def __init__(
        self,
        *,
        api_key: str,
        api_base: str = "https://generativelanguage.googleapis.com/v1beta",
        request_timeout_seconds: float = 60.0,
    ) -> None:
        normalized_key = (api_key or "").strip()
        if not normalized_key:
            raise GeminiClientConfigError("GEMINI_API_KEY is required")

        self._api_key = normalized_key
        self._api_base = api_base.rstrip("/")
        self._request_timeout_seconds = request_timeout_seconds
        # Keep-alive connections reduce TLS/session setup overhead on hot paths.
        self._http = httpx.AsyncClient(
            timeout=self._request_timeout_seconds,
            headers=self.headers,
            limits=httpx.Limits(max_connections=20, max_keepalive_connections=10),
            http2=True,
        )

    @property
    def headers(self) -> dict[str, str]:
        return {
            "x-goog-api-key": self._api_key,
            "Content-Type": "application/json",
            "Accept": "application/json",
        }

    def _model_url(self, model: str) -> str:
        name = model.strip()
        if not name.startswith("models/"):
            name = f"models/{name}"
        return f"{self._api_base}/{name}:generateContent"

    async def generate_content(
        self,
        *,
        model: str,
        contents: Sequence[Mapping[str, Any]],
        generation_config: Optional[Mapping[str, Any]] = None,
    ) -> GeminiReply:
        """Run a single generateContent call and normalize the first candidate."""
        body: dict[str, Any] = {"contents": [dict(c) for c in contents]}
        if generation_config:
            body["generationConfig"] = dict(generation_config)

        url = self._model_url(model)
        try:
            response = await self._http.post(url, json=body)
        except httpx.HTTPError as exc:
            raise GeminiClientError(f"Gemini request failed: {exc}") from exc
        try:
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise GeminiClientError(
                f"Gemini request failed with status {response.status_code}: {_error_detail(response)}"
            ) from exc

        try:
            data = response.json()
        except ValueError as exc:
            raise GeminiClientError("Gemini returned invalid JSON") from exc

        reply = _parse_reply(data)
        logger.debug(
            "Gemini %s finished (%s) with %d text chars, %d media parts",
            model,
            reply.finish_reason,
            len(reply.text),
            len(reply.inline_data),
        )
        return reply

    async def aclose(self) -> None:
        """Close persistent HTTP resources used by this client."""
        await self._http.aclose()


def _error_detail(response: httpx.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        return response.reason_phrase or "HTTP error"
    if isinstance(payload, dict):
        error = payload.get("error")
        if isinstance(error, dict) and isinstance(error.get("message"), str):
            return error["message"]
    return response.reason_phrase or "HTTP error"
