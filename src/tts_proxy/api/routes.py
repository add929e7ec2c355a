"""
Service Routes.

Endpoints:
    GET /v1/models  - OpenAI model list: tts-1, tts-1-hd and one
                      tts-1-<voice> alias per mapped voice
    GET /reader     - reading-app import config pointing at the GET speech route
    GET /health     - liveness plus credential state, for probes
    GET /metrics    - Prometheus text format
"""
from __future__ import annotations

import time
from typing import Any, Dict, Optional
from urllib.parse import quote

from fastapi import APIRouter, Depends, Request, Response

from tts_proxy import __version__
from tts_proxy.api.dependencies import get_settings, get_speech_service, require_api_key
from tts_proxy.api.schemas import ModelInfo, ModelList
from tts_proxy.core.config import Defaults, ProxyConfig, Settings
from tts_proxy.core.metrics import metrics
from tts_proxy.services.speech_service import SpeechService
from tts_proxy.services.validators import BASE_MODELS, MODEL_VOICE_PREFIX

router = APIRouter()


def list_models(config: ProxyConfig, created: int) -> ModelList:
    ids = list(BASE_MODELS) + [f"{MODEL_VOICE_PREFIX}{voice}" for voice in config.voices]
    return ModelList(data=[ModelInfo(id=model_id, created=created) for model_id in ids])


@router.get("/v1/models", response_model=ModelList, dependencies=[Depends(require_api_key)])
def models(settings: Settings = Depends(get_settings)) -> ModelList:
    return list_models(ProxyConfig.from_settings(settings), int(time.time()))


# Placeholders the reading app substitutes per utterance; speakSpeed 10 is normal speed.
_READER_TEXT = "{{java.encodeURI(speakText)}}"
_READER_RATE = "{{(speakSpeed - 10) / 10 + 1}}"


def reader_config(
    base_url: str,
    config: ProxyConfig,
    api_key: str,
    voice: Optional[str] = None,
    name: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Build the import record for a reading app's HTTP TTS source.

    ``voice`` may be an OpenAI name or a backend voice; it defaults to the
    voice ``shimmer`` maps to.
    """
    voice = voice or config.voices[Defaults.DEFAULT_VOICE]
    url = (
        f"{base_url.rstrip('/')}/v1/audio/speech"
        f"?t={_READER_TEXT}&v={quote(voice)}&r={_READER_RATE}&p=1.0&key={quote(api_key)}"
    )
    return {
        "name": name or "tts-proxy",
        "url": url,
        "header": {"Authorization": f"Bearer {api_key}"},
        "id": int(time.time() * 1000),
    }


@router.get("/reader", dependencies=[Depends(require_api_key)])
def reader(request: Request, settings: Settings = Depends(get_settings)):
    """
    Query: ``voice`` (default voice override), ``n`` (source name).

    Example Response:
        {
            "name": "tts-proxy",
            "url": "http://host/v1/audio/speech?t={{java.encodeURI(speakText)}}&v=...&key=...",
            "header": {"Authorization": "Bearer ..."},
            "id": 1760600000000
        }
    """
    return reader_config(
        str(request.base_url),
        ProxyConfig.from_settings(settings),
        settings.api_key,
        voice=request.query_params.get("voice"),
        name=request.query_params.get("n"),
    )


@router.get("/health")
def health(service: SpeechService = Depends(get_speech_service)):
    """
    Example Response:
        {
            "ok": true,
            "version": "0.1.0",
            "credential": {"cached": true, "refreshing": false, "region": "eastasia", ...},
            "config": {"concurrency": 10, "chunk_size": 300, ...},
            "voices": ["alloy", "echo", ...]
        }
    """
    payload = {"version": __version__}
    payload.update(service.get_health_info())
    return payload


@router.get("/metrics")
def prometheus_metrics():
    content, content_type = metrics.get_metrics_response()
    return Response(content=content, media_type=content_type)
