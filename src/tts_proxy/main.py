"""
FastAPI application entry point for tts-proxy.

Routers:
    - OpenAI-compatible speech: /v1/audio/speech (POST, GET)
    - Service: /v1/models, /health, /metrics

Usage:
    uvicorn tts_proxy.main:app --host 0.0.0.0 --port 8000
"""

from __future__ import annotations

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from tts_proxy import __version__
from tts_proxy.api.openai_compat import error_response, openai_error_response
from tts_proxy.api.openai_compat import router as openai_router
from tts_proxy.api.routes import router
from tts_proxy.core.errors import ErrorCode, TTSError
from tts_proxy.core.logging import configure_logging, get_logger, warn

_LOG = get_logger("tts-proxy.app")


async def _tts_error_handler(request: Request, exc: TTSError):
    # Errors raised from dependencies (auth) rather than inside a handler.
    return error_response(exc)


async def _validation_error_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    first = errors[0] if errors else {}
    location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    message = first.get("msg", "Invalid request")
    warn(_LOG, "request_invalid", path=request.url.path, field=location, error=message)
    return openai_error_response(
        message=f"{location}: {message}" if location else message,
        error_type="invalid_request_error",
        code=ErrorCode.INVALID_INPUT,
        status_code=400,
    )


def create_app() -> FastAPI:
    """
    Build the application: logging, CORS, error envelopes and routers.
    """
    configure_logging()

    app = FastAPI(title="tts-proxy", version=__version__)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
        expose_headers=["X-Request-Id", "X-Units", "X-Voice"],
        max_age=86400,
    )

    app.add_exception_handler(TTSError, _tts_error_handler)
    app.add_exception_handler(RequestValidationError, _validation_error_handler)

    app.include_router(openai_router)   # /v1/audio/speech
    app.include_router(router)          # /v1/models, /health, /metrics

    return app


# Global application instance for ASGI servers
app = create_app()
