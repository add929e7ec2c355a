"""
SpeechService - request-level orchestration.

Both /v1/audio/speech handlers (POST and GET) and the CLI go through this
service.

Architecture:
    Request → Validate → Clean → Chunk → Resolve voice
            → BatchScheduler (CredentialCache + SynthesisClient)
            → Buffered join | Live stream

Error Handling:
    Everything raised on purpose is a TTSError (see core/errors.py):
        - InvalidInputError / ValidationError: bad request data, or nothing
          left to say after cleaning
        - CredentialError: token endpoint failed
        - SynthesisError / BackendTimeoutError: a unit failed
        - StreamAbortedError: a stream broke after audio was sent
    The service logs and counts failures, then re-raises them unchanged.

Example:
    >>> import asyncio
    >>> from tts_proxy.core.config import Settings
    >>> from tts_proxy.services import SpeechRequest, SpeechService
    >>>
    >>> service = SpeechService(Settings(raw={}))
    >>> result = asyncio.run(service.synthesize(SpeechRequest(input="Hello. World!")))
    >>> result.units, result.media_type
    (1, 'audio/mpeg')
"""
from __future__ import annotations

import threading
import time
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Dict, List, Optional

import httpx

from tts_proxy.core.config import Defaults, ProxyConfig, Settings
from tts_proxy.core.errors import InvalidInputError, TTSError
from tts_proxy.core.logging import fail, get_logger, info, success, verbose
from tts_proxy.core.metrics import metrics
from tts_proxy.services.validators import (
    resolve_output_format,
    resolve_voice,
    to_percent,
    validate_input,
    validate_pitch,
    validate_positive,
    validate_speed,
)
from tts_proxy.tts.assembler import AudioStream, assemble_buffered, start_stream
from tts_proxy.tts.chunker import TextUnit, chunk_text
from tts_proxy.tts.client import SynthesisClient, VoiceParams
from tts_proxy.tts.credentials import CredentialCache, get_credential_cache
from tts_proxy.tts.scheduler import Synthesizer, effective_concurrency
from tts_proxy.utils.text import CleaningOptions, clean_text
from tts_proxy.utils.timeit import timeit

_LOG = get_logger("tts-proxy.service")


# =============================================================================
# Request / Result Types
# =============================================================================

@dataclass
class SpeechRequest:
    """
    Service-level speech request. None means "use the configured default".

    Attributes:
        input: Text to speak.
        model: OpenAI model name; ``tts-1-<voice>`` selects a voice.
        voice: OpenAI voice name or backend voice name.
        speed: 0.25-4.0 multiplier.
        pitch: 0.5-1.5 multiplier.
        style: Backend speaking style (``general``, ``cheerful``, ...).
        stream: Stream audio batch by batch.
        concurrency: Requested fan-out per batch.
        chunk_size: Max characters per unit.
        response_format: mp3, opus or pcm.
        cleaning_options: Overrides for the cleaning switches.
    """
    input: str
    model: str = Defaults.DEFAULT_MODEL
    voice: Optional[str] = Defaults.DEFAULT_VOICE
    speed: float = 1.0
    pitch: float = 1.0
    style: str = Defaults.DEFAULT_STYLE
    stream: bool = False
    concurrency: Optional[int] = None
    chunk_size: Optional[int] = None
    response_format: Optional[str] = None
    cleaning_options: Optional[Dict[str, Any]] = None


@dataclass
class PreparedSpeech:
    """A validated request, cleaned and chunked, ready to synthesize."""
    units: List[TextUnit]
    params: VoiceParams
    concurrency: int
    media_type: str
    cleaned_text: str
    timings_s: Dict[str, float] = field(default_factory=dict)

    @property
    def effective_concurrency(self) -> int:
        return effective_concurrency(self.concurrency, len(self.units))


@dataclass
class SpeechResult:
    audio: bytes
    media_type: str
    units: int
    voice: str
    timings_s: Dict[str, float]


class SpeechStream:
    """
    A started streaming synthesis.

    Iterate it for audio bytes. Metrics and the final log line are recorded
    when the iteration ends, whichever way it ends.
    """

    def __init__(self, prepared: PreparedSpeech, stream: AudioStream, started: float):
        self.prepared = prepared
        self.media_type = prepared.media_type
        self.units = len(prepared.units)
        self.voice = prepared.params.voice
        self._stream = stream
        self._started = started

    def __aiter__(self) -> AsyncIterator[bytes]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[bytes]:
        status = "success"
        try:
            async for chunk in self._stream:
                yield chunk
        except TTSError as e:
            status = e.code
            fail(_LOG, "stream_failed", error=e.message, code=e.code, bytes=self._stream.bytes_sent)
            raise
        finally:
            duration = time.perf_counter() - self._started
            metrics.record_request("stream", status, duration, self._stream.bytes_sent)
            metrics.dec_inflight()
            if status == "success":
                success(
                    _LOG,
                    "stream_done",
                    units=self.units,
                    bytes=self._stream.bytes_sent,
                    seconds=round(duration, 3),
                )

    async def aclose(self) -> None:
        """Stop the producer without consuming the rest of the stream."""
        await self._stream.aclose()


# =============================================================================
# SpeechService
# =============================================================================

class SpeechService:
    """
    Orchestrates one speech request end to end.

    Args:
        settings: Raw settings; validated into a ProxyConfig.
        credentials: Credential cache. Defaults to the process cache, or a
            private cache when ``transport`` is given.
        synthesizer: Anything with ``async synthesize(text, params) -> bytes``.
            Defaults to a SynthesisClient.
        transport: httpx transport for outbound calls (tests).
    """

    def __init__(
        self,
        settings: Settings,
        credentials: Optional[CredentialCache] = None,
        synthesizer: Optional[Synthesizer] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.settings = settings
        self.config: ProxyConfig = ProxyConfig.from_settings(settings)
        backend = self.config.backend

        if credentials is None:
            if transport is not None:
                credentials = CredentialCache.from_config(backend, transport=transport)
            else:
                credentials = get_credential_cache(backend)
        self.credentials = credentials

        self.synthesizer: Synthesizer = synthesizer or SynthesisClient.from_config(
            backend, credentials, transport=transport
        )
        self._default_cleaning = CleaningOptions.from_mapping(vars(self.config.cleaning))

        info(
            _LOG,
            "service_ready",
            concurrency=self.config.batching.concurrency,
            chunk_size=self.config.chunking.chunk_size,
            output_format=backend.output_format,
        )

    # -------------------------------------------------------------------------
    # Preparation
    # -------------------------------------------------------------------------

    def prepare(self, request: SpeechRequest) -> PreparedSpeech:
        """
        Validate, clean and chunk a request.

        Raises:
            InvalidInputError: On invalid fields or when cleaning leaves no text.
        """
        text = validate_input(request.input)
        speed = validate_speed(request.speed)
        pitch = validate_pitch(request.pitch)
        concurrency = validate_positive("concurrency", request.concurrency, self.config.batching.concurrency)
        chunk_size = validate_positive("chunk_size", request.chunk_size, self.config.chunking.chunk_size)
        output = resolve_output_format(request.response_format, self.config.backend.output_format)
        voice = resolve_voice(request.voice, request.model, self.config.voices)

        options = CleaningOptions.from_mapping(request.cleaning_options, base=self._default_cleaning)
        timings: Dict[str, float] = {}
        with timeit("clean") as t:
            cleaned = clean_text(text, options)
        timings["clean"] = t.elapsed

        chunked = chunk_text(cleaned, chunk_size)
        timings.update(chunked.timings_s)
        if not chunked.units:
            raise InvalidInputError(
                "Input is empty after text cleaning",
                details={"chars_in": len(text)},
            )

        params = VoiceParams(
            voice=voice,
            rate=to_percent(speed),
            pitch=to_percent(pitch),
            style=request.style or Defaults.DEFAULT_STYLE,
            output_format=output.backend_format,
        )
        verbose(
            _LOG,
            "prepared",
            chars_in=len(text),
            chars_clean=len(cleaned),
            units=len(chunked.units),
            voice=voice,
            rate=params.rate,
            pitch=params.pitch,
        )
        return PreparedSpeech(
            units=chunked.units,
            params=params,
            concurrency=concurrency,
            media_type=output.media_type,
            cleaned_text=cleaned,
            timings_s=timings,
        )

    def _preview(self, text: str) -> str:
        limit = self.config.logging.text_preview_chars
        return text if len(text) <= limit else text[:limit] + "..."

    # -------------------------------------------------------------------------
    # Buffered
    # -------------------------------------------------------------------------

    async def synthesize(self, request: SpeechRequest) -> SpeechResult:
        """
        Synthesize the whole request into one audio buffer.

        Raises:
            TTSError: Any validation, credential or synthesis failure.
        """
        started = time.perf_counter()
        metrics.inc_inflight()
        try:
            prepared = self.prepare(request)
            info(
                _LOG,
                "synthesis_start",
                mode="buffered",
                units=len(prepared.units),
                concurrency=prepared.effective_concurrency,
                text=self._preview(prepared.cleaned_text),
            )

            async with timeit("synth") as t:
                audio = await assemble_buffered(
                    prepared.units, prepared.concurrency, self.synthesizer, prepared.params
                )
            prepared.timings_s["synth"] = t.elapsed
        except TTSError as e:
            metrics.record_request("buffered", e.code, time.perf_counter() - started)
            fail(_LOG, "synthesis_failed", error=e.message, code=e.code)
            raise
        finally:
            metrics.dec_inflight()

        duration = time.perf_counter() - started
        metrics.record_request("buffered", "success", duration, len(audio))
        success(
            _LOG,
            "synthesis_done",
            units=len(prepared.units),
            bytes=len(audio),
            seconds=round(duration, 3),
        )
        return SpeechResult(
            audio=audio,
            media_type=prepared.media_type,
            units=len(prepared.units),
            voice=prepared.params.voice,
            timings_s=prepared.timings_s,
        )

    # -------------------------------------------------------------------------
    # Streaming
    # -------------------------------------------------------------------------

    async def stream(self, request: SpeechRequest) -> SpeechStream:
        """
        Start a streaming synthesis. Must be awaited inside the event loop
        that will consume the stream.

        Raises:
            InvalidInputError: Before anything starts, on bad input.
        """
        started = time.perf_counter()
        try:
            prepared = self.prepare(request)
        except TTSError as e:
            metrics.record_request("stream", e.code, time.perf_counter() - started)
            fail(_LOG, "stream_rejected", error=e.message, code=e.code)
            raise

        info(
            _LOG,
            "synthesis_start",
            mode="stream",
            units=len(prepared.units),
            concurrency=prepared.effective_concurrency,
            text=self._preview(prepared.cleaned_text),
        )
        metrics.inc_inflight()
        audio_stream = start_stream(
            prepared.units,
            prepared.concurrency,
            self.synthesizer,
            prepared.params,
            max_pending=self.config.batching.stream_buffer,
        )
        return SpeechStream(prepared, audio_stream, started)

    # -------------------------------------------------------------------------
    # Introspection
    # -------------------------------------------------------------------------

    def get_health_info(self) -> Dict[str, Any]:
        credential = self.credentials.current
        cred_info: Dict[str, Any] = {
            "cached": credential is not None,
            "refreshing": self.credentials.refreshing,
            "refresh_count": self.credentials.refresh_count,
        }
        if credential is not None:
            cred_info["region"] = credential.region
            cred_info["expires_in_s"] = round(credential.expires_at - time.time())

        return {
            "ok": True,
            "credential": cred_info,
            "config": {
                "concurrency": self.config.batching.concurrency,
                "chunk_size": self.config.chunking.chunk_size,
                "output_format": self.config.backend.output_format,
                "auth_enabled": self.config.auth.enabled,
            },
            "voices": sorted(self.config.voices),
        }


# =============================================================================
# Global Service Singleton
# =============================================================================

_service: Optional[SpeechService] = None
_service_lock = threading.Lock()


def get_service(settings: Settings) -> SpeechService:
    """Get or create the process SpeechService (thread-safe lazy singleton)."""
    global _service
    if _service is None:
        with _service_lock:
            if _service is None:
                _service = SpeechService(settings)
    return _service


def reset_service() -> None:
    """Reset the process service (for testing)."""
    global _service
    with _service_lock:
        _service = None
