"""
API request/response schemas.

Models:
    CleaningOptionsModel: per-request text-cleaning overrides
    OpenAISpeechRequest: body of POST /v1/audio/speech
    ModelInfo / ModelList: GET /v1/models response

Example Request:
    {
        "model": "tts-1",
        "input": "Hello. World!",
        "voice": "alloy",
        "speed": 1.25,
        "stream": true,
        "cleaning_options": {"remove_emoji": false}
    }
"""
from __future__ import annotations

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from tts_proxy.core.config import Defaults
from tts_proxy.services.speech_service import SpeechRequest


class ResponseFormat(str, Enum):
    """Audio formats the backend can produce directly."""
    MP3 = "mp3"
    OPUS = "opus"
    PCM = "pcm"


class CleaningOptionsModel(BaseModel):
    """Unset fields fall back to the server's cleaning defaults."""
    remove_markdown: Optional[bool] = None
    remove_emoji: Optional[bool] = None
    remove_urls: Optional[bool] = None
    remove_line_breaks: Optional[bool] = None
    remove_citation_numbers: Optional[bool] = None
    custom_keywords: Optional[str] = Field(
        default=None,
        description="Comma separated literals removed from the input",
    )


class OpenAISpeechRequest(BaseModel):
    """
    OpenAI-compatible speech request, plus the proxy's extensions
    (pitch, style, stream, concurrency, chunk_size, cleaning_options).
    """
    model_config = ConfigDict(protected_namespaces=())

    model: str = Field(default=Defaults.DEFAULT_MODEL, description="tts-1, tts-1-hd or tts-1-<voice>")
    input: str = Field(..., min_length=1, max_length=Defaults.MAX_INPUT_CHARS)
    voice: Optional[str] = Field(
        default=Defaults.DEFAULT_VOICE,
        description="OpenAI voice name or a backend voice name",
    )
    response_format: ResponseFormat = Field(default=ResponseFormat.MP3)
    speed: float = Field(default=1.0, ge=0.25, le=4.0)
    pitch: float = Field(default=1.0, ge=0.5, le=1.5)
    style: str = Field(default=Defaults.DEFAULT_STYLE, max_length=64)
    stream: bool = False
    concurrency: Optional[int] = Field(default=None, ge=1, le=64)
    chunk_size: Optional[int] = Field(default=None, ge=1, le=5000)
    cleaning_options: Optional[CleaningOptionsModel] = None

    def to_service_request(self) -> SpeechRequest:
        cleaning = None
        if self.cleaning_options is not None:
            cleaning = self.cleaning_options.model_dump(exclude_none=True)
        return SpeechRequest(
            input=self.input,
            model=self.model,
            voice=self.voice,
            speed=self.speed,
            pitch=self.pitch,
            style=self.style,
            stream=self.stream,
            concurrency=self.concurrency,
            chunk_size=self.chunk_size,
            response_format=self.response_format.value,
            cleaning_options=cleaning,
        )


class ModelInfo(BaseModel):
    id: str
    object: str = "model"
    created: int
    owned_by: str = "openai"


class ModelList(BaseModel):
    object: str = "list"
    data: List[ModelInfo]
