"""
Configuration for tts-proxy.

    - Defaults: every default value in one place
    - Section dataclasses assembled and validated by ProxyConfig.from_settings()
    - Settings: the raw YAML mapping, immutable
    - load_settings(): YAML loading with environment overrides

Configuration Hierarchy (highest priority first):
    1. Environment variables (API_KEY, TTS_PROXY_CONCURRENCY, ...)
    2. YAML config file (config/settings.yaml, or $TTS_PROXY_SETTINGS)
    3. Defaults class values

Example settings.yaml:
    backend:
      timeout_s: 30
      output_format: audio-24khz-48kbitrate-mono-mp3

    batching:
      concurrency: 10

    chunking:
      chunk_size: 300

    auth:
      api_key: ""

    voices:
      shimmer: zh-CN-XiaoxiaoNeural
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

import yaml


class ConfigValidationError(Exception):
    """A configuration value is out of bounds or of the wrong type."""
    pass


class Defaults:
    """Default configuration values."""

    # ─────────────────────────────────────────────────────────────────────────
    # Backend (token issuance + synthesis endpoint)
    # ─────────────────────────────────────────────────────────────────────────
    BACKEND_ENDPOINT_URL = "https://dev.microsofttranslator.com/apps/endpoint?api-version=1.0"
    BACKEND_TIMEOUT_S = 30.0            # Per outbound call
    BACKEND_REFRESH_SKEW_S = 300        # Refresh this long before expiry
    BACKEND_OUTPUT_FORMAT = "audio-24khz-48kbitrate-mono-mp3"
    BACKEND_USER_AGENT = "okhttp/4.5.0"

    # ─────────────────────────────────────────────────────────────────────────
    # Batching
    # ─────────────────────────────────────────────────────────────────────────
    BATCHING_CONCURRENCY = 10           # Requested fan-out per batch
    BATCHING_STREAM_BUFFER = 32         # Queued audio pieces before producer waits

    # ─────────────────────────────────────────────────────────────────────────
    # Chunking
    # ─────────────────────────────────────────────────────────────────────────
    CHUNKING_CHUNK_SIZE = 300           # Max characters per unit

    # ─────────────────────────────────────────────────────────────────────────
    # Cleaning
    # ─────────────────────────────────────────────────────────────────────────
    CLEANING_REMOVE_MARKDOWN = True
    CLEANING_REMOVE_EMOJI = True
    CLEANING_REMOVE_URLS = True
    CLEANING_REMOVE_LINE_BREAKS = True
    CLEANING_REMOVE_CITATION_NUMBERS = True
    CLEANING_CUSTOM_KEYWORDS = ""

    # ─────────────────────────────────────────────────────────────────────────
    # Request defaults
    # ─────────────────────────────────────────────────────────────────────────
    DEFAULT_MODEL = "tts-1"
    DEFAULT_VOICE = "shimmer"
    DEFAULT_STYLE = "general"
    MAX_INPUT_CHARS = 100_000

    # ─────────────────────────────────────────────────────────────────────────
    # Logging
    # ─────────────────────────────────────────────────────────────────────────
    LOGGING_LEVEL = 2                   # 1=MINIMAL, 2=NORMAL, 3=VERBOSE, 4=DEBUG
    LOGGING_TEXT_PREVIEW_CHARS = 80

    OPENAI_VOICE_MAP = {
        "shimmer": "zh-CN-XiaoxiaoNeural",
        "alloy": "zh-CN-YunyangNeural",
        "fable": "zh-CN-YunjianNeural",
        "onyx": "zh-CN-XiaoyiNeural",
        "nova": "zh-CN-YunxiNeural",
        "echo": "zh-CN-liaoning-XiaobeiNeural",
    }


@dataclass
class BackendConfig:
    """Speech backend endpoints and per-call limits."""
    endpoint_url: str = Defaults.BACKEND_ENDPOINT_URL
    timeout_s: float = Defaults.BACKEND_TIMEOUT_S
    refresh_skew_s: int = Defaults.BACKEND_REFRESH_SKEW_S
    output_format: str = Defaults.BACKEND_OUTPUT_FORMAT
    user_agent: str = Defaults.BACKEND_USER_AGENT


@dataclass
class BatchingConfig:
    """
    Fan-out of unit synthesis.

    ``concurrency`` is the requested value; the scheduler may lower it per
    request depending on how many units there are.
    """
    concurrency: int = Defaults.BATCHING_CONCURRENCY
    stream_buffer: int = Defaults.BATCHING_STREAM_BUFFER


@dataclass
class ChunkingConfig:
    chunk_size: int = Defaults.CHUNKING_CHUNK_SIZE


@dataclass
class CleaningConfig:
    """Default text-cleaning switches, overridable per request."""
    remove_markdown: bool = Defaults.CLEANING_REMOVE_MARKDOWN
    remove_emoji: bool = Defaults.CLEANING_REMOVE_EMOJI
    remove_urls: bool = Defaults.CLEANING_REMOVE_URLS
    remove_line_breaks: bool = Defaults.CLEANING_REMOVE_LINE_BREAKS
    remove_citation_numbers: bool = Defaults.CLEANING_REMOVE_CITATION_NUMBERS
    custom_keywords: str = Defaults.CLEANING_CUSTOM_KEYWORDS


@dataclass
class AuthConfig:
    """Shared-secret check. An empty key disables it."""
    api_key: str = ""

    @property
    def enabled(self) -> bool:
        return bool(self.api_key)


@dataclass
class LoggingConfig:
    """
    Log levels:
        1 = MINIMAL, 2 = NORMAL (default), 3 = VERBOSE, 4 = DEBUG
    """
    level: int = Defaults.LOGGING_LEVEL
    text_preview_chars: int = Defaults.LOGGING_TEXT_PREVIEW_CHARS


@dataclass
class ProxyConfig:
    """
    Validated configuration for the speech pipeline.

    Usage:
        settings = load_settings("config/settings.yaml")
        config = ProxyConfig.from_settings(settings)
        print(config.batching.concurrency)
    """
    backend: BackendConfig = field(default_factory=BackendConfig)
    batching: BatchingConfig = field(default_factory=BatchingConfig)
    chunking: ChunkingConfig = field(default_factory=ChunkingConfig)
    cleaning: CleaningConfig = field(default_factory=CleaningConfig)
    auth: AuthConfig = field(default_factory=AuthConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    voices: Dict[str, str] = field(default_factory=lambda: dict(Defaults.OPENAI_VOICE_MAP))

    @classmethod
    def from_settings(cls, settings: "Settings") -> "ProxyConfig":
        """
        Build a ProxyConfig from raw settings, applying defaults.

        Raises:
            ConfigValidationError: If any value fails validation.
        """
        raw = settings.raw

        # ─────────────────────────────────────────────────────────────────────
        # Backend
        # ─────────────────────────────────────────────────────────────────────
        backend_raw = raw.get("backend") or {}
        try:
            backend = BackendConfig(
                endpoint_url=str(backend_raw.get("endpoint_url", Defaults.BACKEND_ENDPOINT_URL)),
                timeout_s=float(backend_raw.get("timeout_s", Defaults.BACKEND_TIMEOUT_S)),
                refresh_skew_s=int(backend_raw.get("refresh_skew_s", Defaults.BACKEND_REFRESH_SKEW_S)),
                output_format=str(backend_raw.get("output_format", Defaults.BACKEND_OUTPUT_FORMAT)),
                user_agent=str(backend_raw.get("user_agent", Defaults.BACKEND_USER_AGENT)),
            )
        except (TypeError, ValueError) as e:
            raise ConfigValidationError(f"backend: {e}") from e
        cls._validate_positive("backend.timeout_s", backend.timeout_s)
        cls._validate_non_negative("backend.refresh_skew_s", backend.refresh_skew_s)
        if not backend.endpoint_url.startswith(("http://", "https://")):
            raise ConfigValidationError(
                f"backend.endpoint_url must be an http(s) URL, got {backend.endpoint_url!r}"
            )

        # ─────────────────────────────────────────────────────────────────────
        # Batching / chunking
        # ─────────────────────────────────────────────────────────────────────
        batching_raw = raw.get("batching") or {}
        chunking_raw = raw.get("chunking") or {}
        try:
            batching = BatchingConfig(
                concurrency=int(batching_raw.get("concurrency", Defaults.BATCHING_CONCURRENCY)),
                stream_buffer=int(batching_raw.get("stream_buffer", Defaults.BATCHING_STREAM_BUFFER)),
            )
            chunking = ChunkingConfig(
                chunk_size=int(chunking_raw.get("chunk_size", Defaults.CHUNKING_CHUNK_SIZE)),
            )
        except (TypeError, ValueError) as e:
            raise ConfigValidationError(f"batching/chunking: {e}") from e
        cls._validate_positive("batching.concurrency", batching.concurrency)
        cls._validate_positive("batching.stream_buffer", batching.stream_buffer)
        cls._validate_positive("chunking.chunk_size", chunking.chunk_size)

        # ─────────────────────────────────────────────────────────────────────
        # Cleaning
        # ─────────────────────────────────────────────────────────────────────
        cleaning_raw = raw.get("cleaning") or {}
        cleaning = CleaningConfig(
            remove_markdown=bool(cleaning_raw.get("remove_markdown", Defaults.CLEANING_REMOVE_MARKDOWN)),
            remove_emoji=bool(cleaning_raw.get("remove_emoji", Defaults.CLEANING_REMOVE_EMOJI)),
            remove_urls=bool(cleaning_raw.get("remove_urls", Defaults.CLEANING_REMOVE_URLS)),
            remove_line_breaks=bool(cleaning_raw.get("remove_line_breaks", Defaults.CLEANING_REMOVE_LINE_BREAKS)),
            remove_citation_numbers=bool(
                cleaning_raw.get("remove_citation_numbers", Defaults.CLEANING_REMOVE_CITATION_NUMBERS)
            ),
            custom_keywords=str(cleaning_raw.get("custom_keywords") or Defaults.CLEANING_CUSTOM_KEYWORDS),
        )

        # ─────────────────────────────────────────────────────────────────────
        # Auth
        # ─────────────────────────────────────────────────────────────────────
        auth_raw = raw.get("auth") or {}
        auth = AuthConfig(api_key=str(auth_raw.get("api_key") or ""))

        # ─────────────────────────────────────────────────────────────────────
        # Logging
        # ─────────────────────────────────────────────────────────────────────
        logging_raw = raw.get("logging") or {}
        from tts_proxy.core.logging.levels import coerce_level

        logging_cfg = LoggingConfig(
            level=int(coerce_level(logging_raw.get("level", Defaults.LOGGING_LEVEL))),
            text_preview_chars=int(logging_raw.get("text_preview_chars", Defaults.LOGGING_TEXT_PREVIEW_CHARS)),
        )
        cls._validate_non_negative("logging.text_preview_chars", logging_cfg.text_preview_chars)

        # ─────────────────────────────────────────────────────────────────────
        # Voice map (settings entries extend/override the built-in map)
        # ─────────────────────────────────────────────────────────────────────
        voices = dict(Defaults.OPENAI_VOICE_MAP)
        voices_raw = raw.get("voices") or {}
        if not isinstance(voices_raw, dict):
            raise ConfigValidationError("voices must be a mapping of name -> backend voice")
        for name, target in voices_raw.items():
            if not target:
                raise ConfigValidationError(f"voices.{name} must not be empty")
            voices[str(name).lower()] = str(target)

        return cls(
            backend=backend,
            batching=batching,
            chunking=chunking,
            cleaning=cleaning,
            auth=auth,
            logging=logging_cfg,
            voices=voices,
        )

    @staticmethod
    def _validate_positive(name: str, value: int | float) -> None:
        if value <= 0:
            raise ConfigValidationError(f"{name} must be positive, got {value}")

    @staticmethod
    def _validate_non_negative(name: str, value: int | float) -> None:
        if value < 0:
            raise ConfigValidationError(f"{name} must be non-negative, got {value}")


@dataclass(frozen=True)
class Settings:
    """
    Immutable raw settings mapping, before validation.

    Use get_proxy_config() for the validated, typed view.
    """
    raw: Dict[str, Any]

    @property
    def api_key(self) -> str:
        return str((self.raw.get("auth") or {}).get("api_key") or "")

    @property
    def output_format(self) -> str:
        return str((self.raw.get("backend") or {}).get("output_format", Defaults.BACKEND_OUTPUT_FORMAT))

    def get_proxy_config(self) -> ProxyConfig:
        """
        Raises:
            ConfigValidationError: If validation fails.
        """
        return ProxyConfig.from_settings(self)


def apply_env_overrides(raw: Dict[str, Any]) -> Dict[str, Any]:
    """
    Overlay environment variables onto a raw settings mapping (in place).

        API_KEY / TTS_PROXY_API_KEY -> auth.api_key
        TTS_PROXY_CONCURRENCY       -> batching.concurrency
        TTS_PROXY_CHUNK_SIZE        -> chunking.chunk_size
        TTS_PROXY_TIMEOUT_S         -> backend.timeout_s
    """
    api_key = os.getenv("TTS_PROXY_API_KEY") or os.getenv("API_KEY")
    if api_key:
        raw.setdefault("auth", {})["api_key"] = api_key

    concurrency = os.getenv("TTS_PROXY_CONCURRENCY")
    if concurrency:
        raw.setdefault("batching", {})["concurrency"] = concurrency

    chunk_size = os.getenv("TTS_PROXY_CHUNK_SIZE")
    if chunk_size:
        raw.setdefault("chunking", {})["chunk_size"] = chunk_size

    timeout = os.getenv("TTS_PROXY_TIMEOUT_S")
    if timeout:
        raw.setdefault("backend", {})["timeout_s"] = timeout

    return raw


def load_settings(path: Optional[str] = None) -> Settings:
    """
    Load settings from a YAML file and apply environment overrides.

    Args:
        path: YAML path. Defaults to $TTS_PROXY_SETTINGS or config/settings.yaml.

    Raises:
        FileNotFoundError: If the settings file doesn't exist.
    """
    p = Path(path or os.getenv("TTS_PROXY_SETTINGS", "config/settings.yaml"))
    if not p.exists():
        raise FileNotFoundError(f"settings file not found: {p.resolve()}")

    with p.open("r", encoding="utf-8") as f:
        raw: Dict[str, Any] = yaml.safe_load(f) or {}

    return Settings(raw=apply_env_overrides(raw))
