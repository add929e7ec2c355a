"""
OpenAI-Compatible Speech Endpoint.

    POST /v1/audio/speech   JSON body (see api/schemas.py)
    GET  /v1/audio/speech   query string, for players that can only GET:
                            input|t, voice|v, model, speed|r, pitch|p,
                            style|s, stream=true

Responses:
    200 audio/mpeg (or audio/ogg, audio/pcm) with headers
        X-Request-Id  request correlation id
        X-Units       number of text units synthesized
        X-Voice       backend voice used

    With ``stream`` the body is sent batch by batch. The status line is only
    committed once the first batch has produced audio, so a failure in the
    first batch is still answered with a JSON error. A later failure cuts
    the body off.

Error Responses (OpenAI format):
    {
        "error": {
            "message": "Speech backend error 429: ...",
            "type": "api_error",
            "code": "tts_generation_error",
            "param": null
        }
    }

Example:
    from openai import OpenAI
    client = OpenAI(base_url="http://localhost:8000/v1", api_key="<API_KEY>")
    client.audio.speech.create(model="tts-1", voice="alloy", input="Hello!").stream_to_file("hello.mp3")
"""
from __future__ import annotations

import uuid
from typing import AsyncGenerator, Dict, Optional

from fastapi import APIRouter, Depends, Request, Response
from fastapi.responses import JSONResponse, StreamingResponse

from tts_proxy.api.dependencies import get_speech_service, require_api_key
from tts_proxy.api.schemas import OpenAISpeechRequest
from tts_proxy.core.config import Defaults
from tts_proxy.core.errors import ErrorCode, TTSError
from tts_proxy.core.logging import debug, error, fail, get_logger, info, set_request_id
from tts_proxy.services.speech_service import SpeechRequest, SpeechService
from tts_proxy.services.validators import ValidationError

router = APIRouter(dependencies=[Depends(require_api_key)])

_LOG = get_logger("tts-proxy.openai")


def openai_error_response(
    message: str,
    error_type: str,
    code: str,
    status_code: int = 500,
    headers: Optional[Dict[str, str]] = None,
) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={
            "error": {
                "message": message,
                "type": error_type,
                "code": code,
                "param": None,
            }
        },
        headers=headers,
    )


def error_response(e: TTSError, rid: Optional[str] = None) -> JSONResponse:
    """JSON envelope for a TTSError, with its HTTP status."""
    headers = {"X-Request-Id": rid} if rid else None
    return openai_error_response(e.message, e.error_type, e.code, e.status_code, headers)


def _query(request: Request, *names: str) -> Optional[str]:
    for name in names:
        value = request.query_params.get(name)
        if value:
            return value
    return None


def _query_float(request: Request, field: str, *names: str, default: float = 1.0) -> float:
    raw = _query(request, *names)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValidationError(f"'{field}' must be a number, got {raw!r}", field) from None


async def _chain(first: bytes, rest: AsyncGenerator[bytes, None]) -> AsyncGenerator[bytes, None]:
    try:
        if first:
            yield first
        async for chunk in rest:
            yield chunk
    except TTSError as e:
        fail(_LOG, "stream_aborted", error=e.message, code=e.code)
        raise
    finally:
        await rest.aclose()


async def _speak(req: SpeechRequest, service: SpeechService, rid: str) -> Response:
    info(
        _LOG,
        "speech_request",
        chars=len(req.input or ""),
        model=req.model,
        voice=req.voice,
        stream=req.stream,
    )
    debug(_LOG, "speech_request_full", text=req.input, speed=req.speed, pitch=req.pitch, style=req.style)

    try:
        if req.stream:
            speech = await service.stream(req)
            chunks = speech.__aiter__()
            try:
                first = await chunks.__anext__()
            except StopAsyncIteration:
                first = b""

            headers = {"X-Request-Id": rid, "X-Units": str(speech.units), "X-Voice": speech.voice}
            return StreamingResponse(_chain(first, chunks), media_type=speech.media_type, headers=headers)

        result = await service.synthesize(req)
        headers = {"X-Request-Id": rid, "X-Units": str(result.units), "X-Voice": result.voice}
        return Response(content=result.audio, media_type=result.media_type, headers=headers)

    except TTSError as e:
        return error_response(e, rid)

    except Exception as e:
        # Never expose internals to the client.
        error(_LOG, "speech_internal_error", error=str(e), error_type=type(e).__name__)
        return openai_error_response(
            message="Internal server error",
            error_type="api_error",
            code=ErrorCode.INTERNAL_ERROR,
            status_code=500,
            headers={"X-Request-Id": rid},
        )


@router.post("/v1/audio/speech", response_class=Response)
async def openai_speech(
    req: OpenAISpeechRequest,
    service: SpeechService = Depends(get_speech_service),
):
    """
    Synthesize ``input`` and return the audio.

    Example:
        curl -X POST http://localhost:8000/v1/audio/speech \\
            -H "Authorization: Bearer $API_KEY" -H "Content-Type: application/json" \\
            -d '{"model": "tts-1", "input": "Hello!", "voice": "alloy"}' --output speech.mp3
    """
    rid = str(uuid.uuid4())[:12]
    set_request_id(rid)
    return await _speak(req.to_service_request(), service, rid)


@router.get("/v1/audio/speech", response_class=Response)
async def openai_speech_get(
    request: Request,
    service: SpeechService = Depends(get_speech_service),
):
    """
    Query-string variant, e.g. ``/v1/audio/speech?t=Hello&v=nova&r=1.2&stream=true``.
    """
    rid = str(uuid.uuid4())[:12]
    set_request_id(rid)

    try:
        req = SpeechRequest(
            input=_query(request, "input", "t") or "",
            model=_query(request, "model") or Defaults.DEFAULT_MODEL,
            voice=_query(request, "voice", "v"),
            speed=_query_float(request, "speed", "speed", "r"),
            pitch=_query_float(request, "pitch", "pitch", "p"),
            style=_query(request, "style", "s") or Defaults.DEFAULT_STYLE,
            stream=request.query_params.get("stream") == "true",
            response_format=_query(request, "response_format"),
        )
    except TTSError as e:
        return error_response(e, rid)

    return await _speak(req, service, rid)
