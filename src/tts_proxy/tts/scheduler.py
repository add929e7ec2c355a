"""
Batched, Order-Preserving Synthesis Fan-Out.

Units are synthesized in consecutive batches of ``effective`` units:

    units:    0 1 2 3 4 5 6        effective = 3
    batches:  [0 1 2] [3 4 5] [6]

Rules:
    - Inside a batch every unit runs concurrently; the batch is done when
      every call has resolved.
    - Batches run strictly one after another, so at most ``effective``
      backend calls are ever in flight for one request.
    - Results keep input order no matter which call finishes first.
    - Fail-fast: the first failure cancels the rest of the batch, waits for
      the cancelled calls to settle and re-raises. No later batch starts and
      nothing partial is returned.

Effective concurrency:
    min(requested, n, max(5, ceil(n / 3)))

    which aims at roughly three batches for long inputs without dropping
    below five parallel calls when there is enough work.
"""
from __future__ import annotations

import asyncio
import math
from dataclasses import dataclass
from typing import AsyncIterator, List, Protocol, Sequence

from tts_proxy.core.logging import get_logger, verbose
from tts_proxy.core.metrics import metrics
from tts_proxy.tts.chunker import TextUnit
from tts_proxy.tts.client import VoiceParams
from tts_proxy.utils.timeit import timeit

_LOG = get_logger("tts-proxy.scheduler")


class Synthesizer(Protocol):
    async def synthesize(self, text: str, params: VoiceParams) -> bytes: ...


@dataclass(frozen=True)
class AudioUnit:
    """Audio for the TextUnit with the same ``index``."""
    index: int
    audio: bytes


@dataclass(frozen=True)
class BatchConfig:
    """Concurrency settings of one request."""
    requested_concurrency: int
    unit_count: int

    @property
    def effective(self) -> int:
        return effective_concurrency(self.requested_concurrency, self.unit_count)


def effective_concurrency(requested: int, unit_count: int) -> int:
    """
    Batch width for ``unit_count`` units.

    Raises:
        ValueError: If requested < 1 or unit_count < 0.
    """
    if requested < 1:
        raise ValueError(f"requested concurrency must be >= 1, got {requested}")
    if unit_count < 0:
        raise ValueError(f"unit_count must be >= 0, got {unit_count}")
    if unit_count == 0:
        return 0
    return min(requested, unit_count, max(5, math.ceil(unit_count / 3)))


async def _synthesize_unit(synth: Synthesizer, unit: TextUnit, params: VoiceParams) -> AudioUnit:
    audio = await synth.synthesize(unit.content, params)
    return AudioUnit(index=unit.index, audio=audio)


async def _run_batch(
    synth: Synthesizer,
    batch: Sequence[TextUnit],
    params: VoiceParams,
) -> List[AudioUnit]:
    tasks = [asyncio.ensure_future(_synthesize_unit(synth, unit, params)) for unit in batch]
    try:
        done, pending = await asyncio.wait(tasks, return_when=asyncio.FIRST_EXCEPTION)
    except asyncio.CancelledError:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise

    failed = [task for task in tasks if task in done and not task.cancelled() and task.exception() is not None]
    if failed:
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)
        # Lowest index wins when several failed together.
        raise failed[0].exception()

    return [task.result() for task in tasks]


async def iter_batches(
    units: Sequence[TextUnit],
    requested_concurrency: int,
    synth: Synthesizer,
    params: VoiceParams,
) -> AsyncIterator[List[AudioUnit]]:
    """
    Yield each batch's audio, in order, as soon as the batch completes.

    Raises:
        Whatever the failing unit raised (TTSError subclasses in practice).
    """
    width = effective_concurrency(requested_concurrency, len(units))
    if width == 0:
        return

    total = math.ceil(len(units) / width)
    for number, start in enumerate(range(0, len(units), width)):
        batch = units[start:start + width]
        verbose(_LOG, "batch_start", batch=number, batches=total, units=len(batch), concurrency=width)

        async with timeit("batch") as t:
            audio = await _run_batch(synth, batch, params)

        metrics.inc_batches()
        verbose(
            _LOG,
            "batch_done",
            batch=number,
            bytes=sum(len(a.audio) for a in audio),
            seconds=round(t.elapsed, 3),
        )
        yield audio


async def run(
    units: Sequence[TextUnit],
    requested_concurrency: int,
    synth: Synthesizer,
    params: VoiceParams,
) -> List[AudioUnit]:
    """Synthesize every unit and return the audio in input order."""
    results: List[AudioUnit] = []
    async for batch in iter_batches(units, requested_concurrency, synth, params):
        results.extend(batch)
    return results
