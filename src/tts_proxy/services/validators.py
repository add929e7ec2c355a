"""
Request validation and OpenAI-to-backend parameter translation.

Validation Rules:
    - input: required, at most MAX_INPUT_CHARS characters before cleaning
    - speed: 0.25 to 4.0 (OpenAI range), 1.0 is normal
    - pitch: 0.5 to 1.5, 1.0 is normal
    - concurrency, chunk_size: positive integers
    - response_format: mp3, opus or pcm

Translation:
    speed 1.5 -> rate "50"     (percent offset, rounded half away from zero)
    pitch 0.8 -> pitch "-20"
    voice "alloy" -> "zh-CN-YunyangNeural"      (OpenAI name, via voice map)
    voice "" + model "tts-1-nova" -> "zh-CN-YunxiNeural"
    voice "en-US-AvaNeural" -> "en-US-AvaNeural" (backend name, passed through)

All failures raise ValidationError, an InvalidInputError (HTTP 400).
"""
from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Dict, Optional

from tts_proxy.core.config import Defaults
from tts_proxy.core.errors import InvalidInputError

MIN_SPEED, MAX_SPEED = 0.25, 4.0
MIN_PITCH, MAX_PITCH = 0.5, 1.5

MODEL_VOICE_PREFIX = "tts-1-"
BASE_MODELS = ("tts-1", "tts-1-hd")


@dataclass(frozen=True)
class OutputFormat:
    """Client-facing format name, backend format id and response media type."""
    name: str
    backend_format: str
    media_type: str


_OUTPUT_FORMATS = {
    "mp3": ("", "audio/mpeg"),
    "opus": ("ogg-24khz-16bit-mono-opus", "audio/ogg"),
    "pcm": ("raw-24khz-16bit-mono-pcm", "audio/pcm"),
}


class ValidationError(InvalidInputError):
    """
    Input validation failed.

    Attributes:
        field: Name of the offending request field.
    """

    def __init__(self, message: str, field: str):
        self.field = field
        super().__init__(message, details={"field": field})


def validate_input(text: Optional[str], max_length: int = Defaults.MAX_INPUT_CHARS) -> str:
    if text is None or not str(text).strip():
        raise ValidationError("'input' is required", "input")
    if len(text) > max_length:
        raise ValidationError(
            f"'input' exceeds maximum length ({len(text)} > {max_length})",
            "input",
        )
    return text


def _validate_range(name: str, value: float, low: float, high: float) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ValidationError(f"'{name}' must be a number, got {value!r}", name) from None
    if not (low <= number <= high):
        raise ValidationError(f"'{name}' must be between {low} and {high}, got {number}", name)
    return number


def validate_speed(speed: float) -> float:
    return _validate_range("speed", speed, MIN_SPEED, MAX_SPEED)


def validate_pitch(pitch: float) -> float:
    return _validate_range("pitch", pitch, MIN_PITCH, MAX_PITCH)


def validate_positive(name: str, value: Optional[int], default: int) -> int:
    """Return ``value`` (or ``default`` when None) if it is a positive integer."""
    if value is None:
        return default
    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        raise ValidationError(f"'{name}' must be a positive integer, got {value!r}", name)
    return value


def to_percent(factor: float) -> str:
    """
    Convert a 1.0-centred multiplier to a whole-percent offset string.

    >>> to_percent(1.5)
    '50'
    >>> to_percent(0.75)
    '-25'
    """
    value = Decimal(factor - 1) * 100
    rounded = value.quantize(Decimal(1), rounding=ROUND_HALF_UP)
    text = str(rounded)
    return "0" if text == "-0" else text


def resolve_voice(voice: Optional[str], model: str, voice_map: Dict[str, str]) -> str:
    """
    Map the request's voice/model to a backend voice name.

    An empty voice is taken from a ``tts-1-<voice>`` model name; the plain
    ``tts-1``/``tts-1-hd`` models fall back to the default voice.
    """
    if voice and voice.strip():
        name = voice.strip()
        return voice_map.get(name.lower(), name)

    model = (model or "").strip()
    if model in BASE_MODELS or not model:
        return voice_map.get(Defaults.DEFAULT_VOICE, Defaults.DEFAULT_VOICE)

    if model.startswith(MODEL_VOICE_PREFIX):
        mapped = voice_map.get(model[len(MODEL_VOICE_PREFIX):].lower())
        if mapped:
            return mapped

    raise ValidationError(f"Invalid voice model - model: {model}, voice: {voice!r}", "voice")


def resolve_output_format(name: Optional[str], default_backend_format: str) -> OutputFormat:
    key = (name or "mp3").lower()
    if key not in _OUTPUT_FORMATS:
        raise ValidationError(
            f"'response_format' must be one of {', '.join(_OUTPUT_FORMATS)}, got {name!r}",
            "response_format",
        )
    backend_format, media_type = _OUTPUT_FORMATS[key]
    return OutputFormat(name=key, backend_format=backend_format or default_backend_format, media_type=media_type)
