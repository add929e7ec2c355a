"""
Response Assembly: one buffer, or a live stream.

Buffered:
    Run every batch, then join the audio in unit order. Any failure
    surfaces as the single error of the call.

Streaming:
    A background producer task runs the batches and writes each batch's
    audio into an AudioChannel as soon as the batch completes. The HTTP
    layer iterates the channel.

        producer:  batch 0 ──write──▶ ┌─────────┐
                   batch 1 ──write──▶ │ channel │ ──▶ response body
                   error   ──abort──▶ └─────────┘

    The channel is finished exactly once, by close() on success or abort()
    on failure or cancellation. After an abort the consumer's iteration
    raises instead of ending cleanly, so a truncated body is never mistaken
    for a complete one. If the consumer stops early the producer is
    cancelled.
"""
from __future__ import annotations

import asyncio
from typing import AsyncIterator, List, Optional, Sequence

from tts_proxy.core.config import Defaults
from tts_proxy.core.errors import StreamAbortedError
from tts_proxy.core.logging import get_logger, verbose, warn
from tts_proxy.tts.chunker import TextUnit
from tts_proxy.tts.client import VoiceParams
from tts_proxy.tts.scheduler import AudioUnit, Synthesizer, iter_batches, run

_LOG = get_logger("tts-proxy.assembler")

_EOF = object()


# =============================================================================
# Buffered
# =============================================================================

async def assemble_buffered(
    units: Sequence[TextUnit],
    requested_concurrency: int,
    synth: Synthesizer,
    params: VoiceParams,
) -> bytes:
    """Synthesize all units and return their audio concatenated in order."""
    results: List[AudioUnit] = await run(units, requested_concurrency, synth, params)
    return b"".join(unit.audio for unit in results)


# =============================================================================
# Streaming
# =============================================================================

class AudioChannel:
    """
    Single-producer, single-consumer byte channel.

    ``max_pending`` bounds how many written pieces may wait for the consumer
    before write() blocks. The end-of-stream marker does not count against
    it, so close() and abort() never block.
    """

    def __init__(self, max_pending: int = Defaults.BATCHING_STREAM_BUFFER):
        self._queue: asyncio.Queue = asyncio.Queue()
        self._slots = asyncio.Semaphore(max_pending)
        self._finished = False
        self._error: Optional[BaseException] = None

    @property
    def finished(self) -> bool:
        return self._finished

    @property
    def error(self) -> Optional[BaseException]:
        return self._error

    async def write(self, data: bytes) -> None:
        if self._finished:
            raise RuntimeError("write to a finished audio channel")
        await self._slots.acquire()
        self._queue.put_nowait(data)

    def close(self) -> bool:
        """End the stream normally. Returns False if already finished."""
        if self._finished:
            return False
        self._finished = True
        self._queue.put_nowait(_EOF)
        return True

    def abort(self, error: BaseException) -> bool:
        """End the stream with ``error``. Returns False if already finished."""
        if self._finished:
            return False
        self._finished = True
        self._error = error
        self._queue.put_nowait(_EOF)
        return True

    def __aiter__(self) -> AsyncIterator[bytes]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[bytes]:
        delivered = 0
        while True:
            item = await self._queue.get()
            if item is _EOF:
                if self._error is None:
                    return
                if delivered == 0:
                    raise self._error
                raise StreamAbortedError(
                    f"Stream aborted after {delivered} bytes: {self._error}",
                    cause=self._error,
                ) from self._error
            self._slots.release()
            delivered += len(item)
            yield item


class AudioStream:
    """
    Consumer handle for a streaming synthesis.

    Iterate it for audio bytes. aclose() (or breaking out of the iteration)
    cancels the producer if it is still running.
    """

    def __init__(self, channel: AudioChannel, producer: "asyncio.Task[None]"):
        self.channel = channel
        self.producer = producer
        self.bytes_sent = 0

    def __aiter__(self) -> AsyncIterator[bytes]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[bytes]:
        try:
            async for chunk in self.channel:
                self.bytes_sent += len(chunk)
                yield chunk
        finally:
            await self.aclose()

    async def aclose(self) -> None:
        if self.producer.done():
            return
        self.producer.cancel()
        try:
            await self.producer
        except asyncio.CancelledError:
            pass


async def _produce(
    channel: AudioChannel,
    units: Sequence[TextUnit],
    requested_concurrency: int,
    synth: Synthesizer,
    params: VoiceParams,
) -> None:
    batches = iter_batches(units, requested_concurrency, synth, params)
    try:
        async for batch in batches:
            for unit in batch:
                await channel.write(unit.audio)
    except asyncio.CancelledError:
        channel.abort(StreamAbortedError("Stream cancelled"))
        raise
    except Exception as e:
        # Handed to the consumer through the channel.
        warn(_LOG, "stream_producer_failed", error=str(e), error_type=type(e).__name__)
        channel.abort(e)
    finally:
        await batches.aclose()
        if channel.close():
            verbose(_LOG, "stream_producer_done", units=len(units))


def start_stream(
    units: Sequence[TextUnit],
    requested_concurrency: int,
    synth: Synthesizer,
    params: VoiceParams,
    max_pending: int = Defaults.BATCHING_STREAM_BUFFER,
) -> AudioStream:
    """Start the producer task and return the consumer handle. Needs a running loop."""
    channel = AudioChannel(max_pending=max_pending)
    producer = asyncio.get_running_loop().create_task(
        _produce(channel, units, requested_concurrency, synth, params)
    )
    return AudioStream(channel, producer)
