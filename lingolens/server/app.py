from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

import uvicorn
from fastapi import FastAPI, HTTPException

from lingolens.config import settings
from lingolens.logging_setup import configure_logging
from lingolens.server.models import (
  DefineRequest,
  DefineResponse,
  ExtractTextRequest,
  ExtractTextResponse,
  HealthResponse,
  Language,
  SpeakRequest,
  SpeakResponse,
  TranslateRequest,
  TranslateResponse,
)
from lingolens.services.gemini import GeminiClient, GeminiClientConfigError, is_gemini_configured
from lingolens.services.language import (
  SUPPORTED_LANGUAGES,
  LanguageInputError,
  LanguageService,
  LanguageServiceError,
)
from lingolens.services.speech import SpeechInputError, SpeechService, SpeechServiceError

logger = logging.getLogger(__name__)


def _build_client() -> GeminiClient:
  if not is_gemini_configured(api_key=settings.gemini_api_key):
    raise GeminiClientConfigError("AI service not configured. Set GEMINI_API_KEY (or GOOGLE_API_KEY).")
  return GeminiClient(
    api_key=settings.gemini_api_key or "",
    api_base=settings.gemini_api_base,
    request_timeout_seconds=settings.gemini_request_timeout_seconds,
  )


def create_app(
  *,
  language: Optional[LanguageService] = None,
  speech: Optional[SpeechService] = None,
) -> FastAPI:
  client: Optional[GeminiClient] = None
  init_error: Optional[str] = None
  if language is None or speech is None:
    try:
      client = _build_client()
    except GeminiClientConfigError as exc:
      # Server should still start so the user can hit /health and see what's wrong.
      init_error = str(exc)
      logger.warning("Starting without AI service: %s", exc)
    else:
      language = language or LanguageService(client=client)
      speech = speech or SpeechService(client=client)

  @asynccontextmanager
  async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
    yield
    if client is not None:
      await client.aclose()

  app = FastAPI(title="LingoLens API", version="0.1.0", lifespan=lifespan)
  app.state.init_error = init_error
  app.state.language = language
  app.state.speech = speech

  def _language() -> LanguageService:
    if app.state.language is None:
      raise HTTPException(status_code=503, detail=app.state.init_error or "Language service unavailable")
    return app.state.language

  def _speech() -> SpeechService:
    if app.state.speech is None:
      raise HTTPException(status_code=503, detail=app.state.init_error or "Speech service unavailable")
    return app.state.speech

  @app.get("/health", response_model=HealthResponse)
  async def health() -> HealthResponse:
    return HealthResponse(
      status="degraded" if app.state.init_error else "ok",
      text_model=app.state.language.model if app.state.language else None,
      tts_model=app.state.speech.model if app.state.speech else None,
      init_error=app.state.init_error,
    )

  @app.get("/languages", response_model=list[Language])
  async def languages() -> list[Language]:
    return [Language(name=name, code=code) for name, code in SUPPORTED_LANGUAGES.items()]

  @app.post("/translate", response_model=TranslateResponse)
  async def translate(req: TranslateRequest) -> TranslateResponse:
    service = _language()
    try:
      result = await service.translate(req.text, req.target_language)
    except LanguageInputError as exc:
      raise HTTPException(status_code=400, detail=str(exc))
    except LanguageServiceError as exc:
      raise HTTPException(status_code=502, detail="Failed to translate text. Please try again.") from exc
    return TranslateResponse(translated_text=result.translated_text)

  @app.post("/define", response_model=DefineResponse)
  async def define(req: DefineRequest) -> DefineResponse:
    service = _language()
    try:
      result = await service.define(req.word, req.language)
    except LanguageInputError as exc:
      raise HTTPException(status_code=400, detail=str(exc))
    except LanguageServiceError as exc:
      raise HTTPException(status_code=502, detail="Could not find definition.") from exc
    return DefineResponse(**result.model_dump())

  @app.post("/speak", response_model=SpeakResponse)
  async def speak(req: SpeakRequest) -> SpeakResponse:
    service = _speech()
    try:
      result = await service.synthesize(req.text)
    except SpeechInputError as exc:
      raise HTTPException(status_code=400, detail=str(exc))
    except SpeechServiceError as exc:
      raise HTTPException(status_code=502, detail="Failed to generate audio. Please try again.") from exc
    return SpeakResponse(
      audio_data_uri=result.audio_data_uri,
      sample_rate=result.sample_rate,
      channels=result.channels,
      duration_seconds=result.duration_seconds,
    )

  @app.post("/extract-text", response_model=ExtractTextResponse)
  async def extract_text(req: ExtractTextRequest) -> ExtractTextResponse:
    service = _language()
    try:
      result = await service.extract_text(req.image_data_uri)
    except LanguageInputError as exc:
      raise HTTPException(status_code=400, detail=str(exc))
    except LanguageServiceError as exc:
      raise HTTPException(status_code=502, detail="Failed to extract text from image.") from exc
    return ExtractTextResponse(extracted_text=result.extracted_text)

  return app


def main() -> None:
  configure_logging(settings.log_level)
  uvicorn.run(
    "lingolens.server.app:create_app",
    factory=True,
    host=settings.server_host,
    port=settings.server_port,
    reload=settings.server_reload,
    log_level=settings.log_level.lower(),
  )


if __name__ == "__main__":
  main()
