"""
Wall-clock timing for pipeline stages.

    with timeit("chunk") as t:
        units = chunk_text(text, 300).units
    info(_LOG, "chunked", seconds=t.timing.seconds)

The same object works as an async context manager, so a stage that awaits
can be timed without a second helper:

    async with timeit("batch", meta={"batch": 0}) as t:
        audio = await run_batch(...)
"""
from __future__ import annotations

from dataclasses import dataclass
from time import perf_counter
from typing import Any, Dict, Optional


@dataclass
class Timing:
    name: str
    seconds: float
    meta: Optional[Dict[str, Any]] = None


class timeit:
    """Measure the block it wraps; the result lands in ``.timing`` on exit."""

    def __init__(self, name: str, meta: Optional[Dict[str, Any]] = None):
        self.name = name
        self.meta = meta
        self._t0: float | None = None
        self.timing: Timing | None = None

    def __enter__(self) -> "timeit":
        self._t0 = perf_counter()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        assert self._t0 is not None
        self.timing = Timing(name=self.name, seconds=perf_counter() - self._t0, meta=self.meta)

    async def __aenter__(self) -> "timeit":
        return self.__enter__()

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.__exit__(exc_type, exc, tb)

    @property
    def elapsed(self) -> float:
        """Seconds so far, or the final duration once the block exited."""
        if self.timing is not None:
            return self.timing.seconds
        if self._t0 is None:
            return 0.0
        return perf_counter() - self._t0
