"""
Error codes and exceptions shared by the pipeline and the API layer.

Every error the pipeline raises on purpose is a TTSError. The API layer maps
it to an OpenAI-style envelope:

    {"error": {"message": "...", "type": "...", "code": "...", "param": null}}

Anything that is not a TTSError becomes a generic 500 ``internal_error``.
"""
from __future__ import annotations

from typing import Any, Dict, Optional


class ErrorCode:
    """Machine readable codes returned in ``error.code``."""
    INVALID_INPUT = "invalid_input"
    INVALID_API_KEY = "invalid_api_key"
    CREDENTIAL_FAILED = "credential_error"
    SYNTHESIS_FAILED = "tts_generation_error"
    BACKEND_TIMEOUT = "backend_timeout"
    STREAM_ABORTED = "stream_aborted"
    INTERNAL_ERROR = "internal_error"


class TTSError(Exception):
    """
    Base exception for proxy errors.

    Attributes:
        message: Human readable message.
        code: Value from ErrorCode.
        details: Extra context for logs (never sent to clients).
        status_code: HTTP status the API layer answers with.
        error_type: OpenAI ``error.type``.
    """
    status_code = 500
    error_type = "api_error"

    def __init__(self, message: str, code: str = ErrorCode.INTERNAL_ERROR, details: Optional[Dict] = None):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """OpenAI error envelope."""
        return {
            "error": {
                "message": self.message,
                "type": self.error_type,
                "code": self.code,
                "param": None,
            }
        }


class InvalidInputError(TTSError):
    """Request data the pipeline cannot work with (empty text, bad range)."""
    status_code = 400
    error_type = "invalid_request_error"

    def __init__(self, message: str, details: Optional[Dict] = None):
        super().__init__(message, ErrorCode.INVALID_INPUT, details)


class AuthenticationError(TTSError):
    status_code = 401
    error_type = "invalid_request_error"

    def __init__(self, message: str = "Invalid API key", details: Optional[Dict] = None):
        super().__init__(message, ErrorCode.INVALID_API_KEY, details)


class CredentialError(TTSError):
    """The backend access token could not be obtained."""
    status_code = 502

    def __init__(self, message: str, details: Optional[Dict] = None):
        super().__init__(message, ErrorCode.CREDENTIAL_FAILED, details)


class SynthesisError(TTSError):
    """
    A unit synthesis call failed.

    ``status`` is the backend HTTP status, or None for transport failures.
    """
    status_code = 502

    def __init__(self, message: str, status: Optional[int] = None, details: Optional[Dict] = None):
        self.status = status
        merged = dict(details or {})
        if status is not None:
            merged.setdefault("status", status)
        super().__init__(message, ErrorCode.SYNTHESIS_FAILED, merged)


class BackendTimeoutError(TTSError):
    status_code = 504

    def __init__(self, message: str, details: Optional[Dict] = None):
        super().__init__(message, ErrorCode.BACKEND_TIMEOUT, details)


class StreamAbortedError(TTSError):
    """
    A streaming response was cut off after bytes had been sent.

    Raised from the consumer side of the audio channel; ``cause`` is the
    error that stopped the producer.
    """
    status_code = 502

    def __init__(self, message: str, cause: Optional[BaseException] = None, details: Optional[Dict] = None):
        self.cause = cause
        super().__init__(message, ErrorCode.STREAM_ABORTED, details)
