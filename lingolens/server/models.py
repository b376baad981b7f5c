from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field


class TranslateRequest(BaseModel):
  text: str = Field(..., min_length=1)
  target_language: str = Field("Spanish", min_length=1)


class TranslateResponse(BaseModel):
  translated_text: str


class DefineRequest(BaseModel):
  word: str = Field(..., min_length=1)
  language: str = Field("Spanish", min_length=1)


class DefineResponse(BaseModel):
  definition: str
  synonyms: list[str] = Field(default_factory=list)
  examples: list[str] = Field(default_factory=list)


class SpeakRequest(BaseModel):
  text: str = Field(..., min_length=1)


class SpeakResponse(BaseModel):
  # Playable directly by an <audio> element: data:audio/wav;base64,...
  audio_data_uri: str
  sample_rate: int
  channels: int
  duration_seconds: float


class ExtractTextRequest(BaseModel):
  image_data_uri: str = Field(..., min_length=1)


class ExtractTextResponse(BaseModel):
  extracted_text: str


class Language(BaseModel):
  name: str
  code: str


class HealthResponse(BaseModel):
  service: str = "lingolens"
  status: str
  text_model: Optional[str] = None
  tts_model: Optional[str] = None
  init_error: Optional[str] = None
