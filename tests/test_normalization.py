"""Tests for input text cleaning."""
from __future__ import annotations

from tts_proxy.utils.text import CleaningOptions, clean_text


class TestCleaningStages:
    """Each stage on its own."""

    def test_urls_removed(self):
        assert clean_text("see https://example.com/a?b=1 now") == "see now"

    def test_markdown_removed(self):
        text = "# Title\n**bold** and *it* with `code` and [a link](#top) ![img](p.png)"
        assert clean_text(text) == "Title bold and it with code and a link"

    def test_emoji_removed(self):
        assert clean_text("Hi 😀 there 🚀✨") == "Hi there"

    def test_citation_numbers_removed(self):
        assert clean_text("as shown 12. Next 3, then") == "as shown. Next, then"

    def test_line_breaks_collapsed(self):
        assert clean_text("one\n\ntwo\r\n  three") == "one two three"

    def test_custom_keywords(self):
        opts = CleaningOptions(custom_keywords="foo, bar ,")
        assert clean_text("foo says bar!", opts) == "says !"

    def test_result_is_trimmed(self):
        assert clean_text("   hi   ") == "hi"


class TestCleaningOptions:
    """Switching stages off."""

    def test_disabled_stages_keep_text(self):
        opts = CleaningOptions(
            remove_markdown=False,
            remove_emoji=False,
            remove_urls=False,
            remove_line_breaks=False,
            remove_citation_numbers=False,
        )
        text = "**a** 😀 http://x.y\nb 1."
        assert clean_text(text, opts) == text

    def test_from_mapping_overlays_base(self):
        base = CleaningOptions(remove_urls=False)
        opts = CleaningOptions.from_mapping({"remove_emoji": False, "remove_markdown": None, "bogus": 1}, base=base)
        assert opts.remove_urls is False
        assert opts.remove_emoji is False
        assert opts.remove_markdown is True

    def test_everything_removed_gives_empty(self):
        assert clean_text("😀 https://x.y 🚀") == ""
