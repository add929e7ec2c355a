"""
Text Chunking for Synthesis.

The backend rejects or slows down on long SSML bodies, so cleaned request
text is cut into bounded units that are synthesized independently and
concatenated afterwards.

Strategy:
    1. Split on runs of boundary punctuation, Latin and CJK alike
       (. ? ! , ; : 。 ？ ！ ， ； ： and line breaks), keeping each
       delimiter run as its own piece.
    2. Greedily pack consecutive pieces into a buffer of at most
       ``max_length`` characters; flush when the next piece would overflow.
    3. A single piece longer than ``max_length`` (a long clause with no
       boundary) becomes a unit of its own and is not cut mid-word.
    4. Units are trimmed. If nothing came out of the pass, the raw text is
       cut into fixed ``max_length`` windows instead.
    5. Empty units are dropped and indices assigned 0..n-1.

Example:
    >>> from tts_proxy.tts.chunker import chunk_text
    >>> chunk_text("Hello. World!", 300).chunks
    ['Hello. World!']
    >>> chunk_text("One, two. Three!", 9).chunks
    ['One, two.', 'Three!']
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Dict, Iterator, List

from tts_proxy.core.logging import get_logger, verbose
from tts_proxy.utils.timeit import timeit

_LOG = get_logger("tts-proxy.chunker")


# =============================================================================
# Boundary Pattern
# =============================================================================

# Capturing group: re.split keeps the delimiter runs in the output.
_BOUNDARY_SPLIT = re.compile(r"([.?!,;:\n。？！，；：\r]+)")


# =============================================================================
# Data Classes
# =============================================================================

@dataclass(frozen=True)
class TextUnit:
    """One piece of text to synthesize; ``index`` is its position in the request."""
    index: int
    content: str


@dataclass
class ChunkResult:
    """
    Result of chunk_text().

    Attributes:
        units: Ordered units, indices contiguous from 0.
        timings_s: Stage timings in seconds.
    """
    units: List[TextUnit]
    timings_s: Dict[str, float]

    @property
    def chunks(self) -> List[str]:
        return [u.content for u in self.units]

    def __len__(self) -> int:
        return len(self.units)


# =============================================================================
# Chunking
# =============================================================================

def _fixed_windows(text: str, width: int) -> Iterator[str]:
    for start in range(0, len(text), width):
        yield text[start:start + width]


def _pack(text: str, max_length: int) -> Iterator[str]:
    """Yield raw (untrimmed) unit strings in order."""
    buffer: List[str] = []
    length = 0

    for piece in _BOUNDARY_SPLIT.split(text):
        if not piece:
            continue

        if length + len(piece) <= max_length:
            buffer.append(piece)
            length += len(piece)
            continue

        if buffer:
            yield "".join(buffer)
        buffer, length = [piece], len(piece)

    if buffer:
        yield "".join(buffer)


def chunk_text(text: str, max_length: int = 300) -> ChunkResult:
    """
    Split text into ordered units of at most ``max_length`` characters.

    A boundary-free piece longer than ``max_length`` is kept whole.

    Args:
        text: Cleaned input text. Empty text gives no units.
        max_length: Maximum characters per unit (must be positive).

    Returns:
        ChunkResult with the units and a "chunk" timing.

    Raises:
        ValueError: If max_length is not positive.
    """
    if max_length <= 0:
        raise ValueError(f"max_length must be positive, got {max_length}")

    timings: Dict[str, float] = {}
    if not text:
        return ChunkResult(units=[], timings_s={"chunk": 0.0})

    with timeit("chunk") as t:
        contents = [raw.strip() for raw in _pack(text, max_length)]
        if not contents:
            contents = [w.strip() for w in _fixed_windows(text, max_length)]
        units = [
            TextUnit(index=i, content=c)
            for i, c in enumerate(c for c in contents if c)
        ]

    timings["chunk"] = t.timing.seconds if t.timing else -1.0
    verbose(
        _LOG,
        "chunked",
        chars=len(text),
        units=len(units),
        max_length=max_length,
        seconds=round(timings["chunk"], 4),
    )
    return ChunkResult(units=units, timings_s=timings)
