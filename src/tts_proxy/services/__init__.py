"""
tts-proxy services layer.

Sits between the HTTP layer and the synthesis pipeline:
    - speech_service.py: SpeechService (validate, clean, chunk, synthesize)
    - validators.py: request validation and parameter translation
"""
from tts_proxy.core.errors import (
    AuthenticationError,
    BackendTimeoutError,
    CredentialError,
    ErrorCode,
    InvalidInputError,
    StreamAbortedError,
    SynthesisError,
    TTSError,
)

from .speech_service import (
    PreparedSpeech,
    SpeechRequest,
    SpeechResult,
    SpeechService,
    SpeechStream,
    get_service,
    reset_service,
)

__all__ = [
    "SpeechService",
    "SpeechRequest",
    "SpeechResult",
    "SpeechStream",
    "PreparedSpeech",
    "get_service",
    "reset_service",
    "TTSError",
    "InvalidInputError",
    "AuthenticationError",
    "CredentialError",
    "SynthesisError",
    "BackendTimeoutError",
    "StreamAbortedError",
    "ErrorCode",
]
