"""
FastAPI dependency providers.

    get_settings()        - settings loaded once per process
    get_speech_service()  - the process SpeechService
    require_api_key()     - shared-secret check for the speech routes

Usage in route handlers:
    @router.post("/v1/audio/speech", dependencies=[Depends(require_api_key)])
    async def speech(req: OpenAISpeechRequest, service: SpeechService = Depends(get_speech_service)):
        ...

Tests swap these out with ``app.dependency_overrides``.
"""
from __future__ import annotations

import hmac
from functools import lru_cache
from typing import Optional

from fastapi import Depends, Request

from tts_proxy.core.config import Settings, apply_env_overrides, load_settings
from tts_proxy.core.errors import AuthenticationError
from tts_proxy.core.logging import get_logger, warn
from tts_proxy.services.speech_service import SpeechService, get_service

_LOG = get_logger("tts-proxy.api")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Load settings once. A missing settings file means built-in defaults
    (plus environment overrides).
    """
    try:
        return load_settings()
    except FileNotFoundError as e:
        warn(_LOG, "settings_missing", error=str(e), using="defaults")
        return Settings(raw=apply_env_overrides({}))


def get_speech_service() -> SpeechService:
    return get_service(get_settings())


def _provided_key(request: Request) -> Optional[str]:
    header = request.headers.get("authorization", "")
    if header.startswith("Bearer "):
        return header[len("Bearer "):]
    return request.query_params.get("key") or request.query_params.get("api_key")


def require_api_key(request: Request, settings: Settings = Depends(get_settings)) -> None:
    """
    Accept ``Authorization: Bearer <key>`` or ``?key=`` / ``?api_key=``.

    No-op when no key is configured.

    Raises:
        AuthenticationError: Key missing or wrong.
    """
    expected = settings.api_key
    if not expected:
        return

    provided = _provided_key(request)
    if not provided or not hmac.compare_digest(provided.encode("utf-8"), expected.encode("utf-8")):
        warn(_LOG, "auth_rejected", path=request.url.path)
        raise AuthenticationError()
