"""
Input Text Cleaning.

Requests often carry text copied from chat output or web pages: markdown,
links, emoji and footnote numbers that a speech voice would read out
literally. clean_text() scrubs them before the text is chunked.

Cleaning Stages (each switchable through CleaningOptions):
    1. remove_urls              - drop http(s):// runs up to whitespace
    2. remove_markdown          - images, links (keep text), bold/italic,
                                  inline code, heading markers
    3. custom_keywords          - comma separated literals removed verbatim
    4. remove_emoji             - characters with emoji presentation
    5. remove_citation_numbers  - " 12" right before punctuation or end
    6. remove_line_breaks       - any whitespace run becomes one space
    7. trim

The function is pure and accepts any string.

Example:
    >>> from tts_proxy.utils.text import CleaningOptions, clean_text
    >>> clean_text("**Hello** [world](#top) 😀 https://x.io", CleaningOptions())
    'Hello world'
"""
from __future__ import annotations

import re
from dataclasses import dataclass, fields
from typing import Any, Dict, Optional

_URL_RE = re.compile(r"https?://\S+")

_MD_IMAGE_RE = re.compile(r"!\[.*?\]\(.*?\)")
_MD_LINK_RE = re.compile(r"\[(.*?)\]\(.*?\)")
_MD_STRONG_RE = re.compile(r"(\*\*|__)(.*?)\1")
_MD_EMPHASIS_RE = re.compile(r"(\*|_)(.*?)\1")
_MD_CODE_RE = re.compile(r"`{1,3}(.*?)`{1,3}")
_MD_HEADING_RE = re.compile(r"#{1,6}\s")

# Code points whose default presentation is emoji.
_EMOJI_RE = re.compile(
    "["
    "⌚-⌛⏩-⏬⏰⏳◽-◾"
    "☔-☕♈-♓♿⚓⚡⚪-⚫"
    "⚽-⚾⛄-⛅⛎⛔⛪⛲-⛳"
    "⛵⛺⛽✅✊-✋✨❌❎"
    "❓-❕❗➕-➗➰➿⬛-⬜"
    "⭐⭕"
    "\U0001F004\U0001F0CF\U0001F18E\U0001F191-\U0001F19A"
    "\U0001F1E6-\U0001F1FF\U0001F201\U0001F21A\U0001F22F"
    "\U0001F232-\U0001F236\U0001F238-\U0001F23A\U0001F250-\U0001F251"
    "\U0001F300-\U0001F64F\U0001F680-\U0001F6FF"
    "\U0001F7E0-\U0001F7EB\U0001F90C-\U0001F9FF\U0001FA70-\U0001FAFF"
    "]"
)

_CITATION_RE = re.compile(r"\s\d{1,2}(?=[.。，,;；:：]|$)")
_WS_RE = re.compile(r"\s+")


@dataclass(frozen=True)
class CleaningOptions:
    """Switches for clean_text(). Everything is on by default."""
    remove_markdown: bool = True
    remove_emoji: bool = True
    remove_urls: bool = True
    remove_line_breaks: bool = True
    remove_citation_numbers: bool = True
    custom_keywords: str = ""

    @classmethod
    def from_mapping(cls, data: Optional[Dict[str, Any]], base: Optional["CleaningOptions"] = None) -> "CleaningOptions":
        """Overlay the known keys of ``data`` (None values ignored) onto ``base``."""
        base = base or cls()
        values = {f.name: getattr(base, f.name) for f in fields(cls)}
        for key, value in (data or {}).items():
            if key in values and value is not None:
                values[key] = value
        return cls(**values)


def _keywords_pattern(custom_keywords: str) -> Optional[re.Pattern]:
    keywords = [k.strip() for k in custom_keywords.split(",")]
    keywords = [k for k in keywords if k]
    if not keywords:
        return None
    return re.compile("|".join(re.escape(k) for k in keywords))


def clean_text(text: str, options: Optional[CleaningOptions] = None) -> str:
    """
    Run the enabled cleaning stages over ``text``.

    Args:
        text: Raw request input.
        options: Stage switches; all stages enabled when None.

    Returns:
        Cleaned, trimmed text (possibly empty).
    """
    opts = options or CleaningOptions()
    s = text

    if opts.remove_urls:
        s = _URL_RE.sub("", s)

    if opts.remove_markdown:
        s = _MD_IMAGE_RE.sub("", s)
        s = _MD_LINK_RE.sub(r"\1", s)
        s = _MD_STRONG_RE.sub(r"\2", s)
        s = _MD_EMPHASIS_RE.sub(r"\2", s)
        s = _MD_CODE_RE.sub(r"\1", s)
        s = _MD_HEADING_RE.sub("", s)

    if opts.custom_keywords:
        pattern = _keywords_pattern(opts.custom_keywords)
        if pattern is not None:
            s = pattern.sub("", s)

    if opts.remove_emoji:
        s = _EMOJI_RE.sub("", s)

    if opts.remove_citation_numbers:
        s = _CITATION_RE.sub("", s)

    if opts.remove_line_breaks:
        s = _WS_RE.sub(" ", s)

    return s.strip()
