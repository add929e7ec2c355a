"""Tests for boundary-aware text chunking."""
from __future__ import annotations

import random
import re

import pytest

from tts_proxy.tts.chunker import TextUnit, chunk_text

# One run of boundary punctuation, or one run with none.
_SINGLE_PIECE = re.compile(r"[.?!,;:\n。？！，；：\r]+|[^.?!,;:\n。？！，；：\r]+")


class TestChunkBasics:
    """Small inputs and edge cases."""

    def test_short_text_single_unit(self):
        cr = chunk_text("Hello. World!", 300)
        assert cr.chunks == ["Hello. World!"]
        assert cr.units == [TextUnit(index=0, content="Hello. World!")]

    def test_empty_text_no_units(self):
        cr = chunk_text("", 300)
        assert cr.units == []
        assert len(cr) == 0

    def test_whitespace_only_no_units(self):
        assert chunk_text("   \n  ", 300).units == []

    def test_non_positive_max_length(self):
        with pytest.raises(ValueError):
            chunk_text("abc", 0)

    def test_packs_up_to_limit(self):
        assert chunk_text("One, two. Three!", 9).chunks == ["One, two.", "Three!"]

    def test_cjk_boundaries(self):
        cr = chunk_text("你好。世界！再见。", 3)
        assert cr.chunks == ["你好。", "世界！", "再见。"]

    def test_long_run_without_boundary_stays_whole(self):
        cr = chunk_text("a" * 25, 10)
        assert cr.chunks == ["a" * 25]

    def test_long_clause_is_not_cut_mid_word(self):
        text = "hello world " * 30
        cr = chunk_text(text, 300)
        assert cr.chunks == [text.strip()]

    def test_oversized_piece_flushes_neighbours(self):
        cr = chunk_text("Hi. " + "b" * 12 + ". Yo.", 8)
        assert cr.chunks == ["Hi.", "b" * 12, ". Yo."]

    def test_timing_recorded(self):
        cr = chunk_text("Hello. World!", 300)
        assert "chunk" in cr.timings_s


class TestChunkProperties:
    """Invariants over random inputs."""

    @staticmethod
    def _random_text(rng: random.Random) -> str:
        words = ["alpha", "beta", "gamma", "delta", "x" * 40, "你好", "世界"]
        marks = [".", ",", "!", "?", ";", ":", "。", "，", ""]
        parts = []
        for _ in range(rng.randint(1, 60)):
            parts.append(rng.choice(words) + rng.choice(marks))
        return " ".join(parts)

    @pytest.mark.parametrize("seed", range(20))
    def test_units_bounded_ordered_and_lossless(self, seed):
        rng = random.Random(seed)
        text = self._random_text(rng)
        max_length = rng.randint(5, 80)

        cr = chunk_text(text, max_length)

        assert [u.index for u in cr.units] == list(range(len(cr.units)))
        for unit in cr.units:
            assert unit.content
            if len(unit.content) > max_length:
                assert _SINGLE_PIECE.fullmatch(unit.content)
            assert unit.content == unit.content.strip()
        assert "".join(cr.chunks).replace(" ", "") == text.replace(" ", "")
