"""
Request correlation and logging configuration state.

The request id lives in a ``ContextVar`` so concurrent requests on the same
event loop each see their own id, including inside the tasks the batch
scheduler spawns (tasks copy the context they were created in).

Environment variables (take precedence over settings.yaml):
    TTS_PROXY_LOG_LEVEL        level 1-4 or a level name
    TTS_PROXY_LOG_DIR          directory for the JSONL log file
    TTS_PROXY_JSONL_FILE       JSONL filename (default tts-proxy.jsonl)
    TTS_PROXY_LOG_ROTATE_BYTES rotate after this many bytes
    TTS_PROXY_LOG_ROTATE_BACKUP number of rotated files to keep
"""
from __future__ import annotations

import os
from contextvars import ContextVar
from typing import Any, Dict

from .levels import LEVEL_NAMES, LogLevel

_request_id: ContextVar[str] = ContextVar("request_id", default="-")

_configured: bool = False
_log_config: Dict[str, Any] = {}
_current_level: LogLevel = LogLevel.NORMAL


def get_request_id() -> str:
    """Request id of the current context, "-" outside a request."""
    return _request_id.get()


def set_request_id(rid: str) -> None:
    """Bind a request id to the current context."""
    _request_id.set(rid)


def get_level() -> LogLevel:
    return _current_level


def set_level(level: LogLevel) -> None:
    global _current_level
    _current_level = level


def get_level_name() -> str:
    return LEVEL_NAMES.get(int(_current_level), "NORMAL")


def is_configured() -> bool:
    return _configured


def set_configured(value: bool) -> None:
    global _configured
    _configured = value


def get_log_config() -> Dict[str, Any]:
    return _log_config


def set_log_config(config: Dict[str, Any]) -> None:
    global _log_config
    _log_config = config


def _env_int(name: str) -> int | None:
    raw = os.getenv(name)
    if not raw:
        return None
    try:
        return int(raw)
    except ValueError:
        return None


def read_logging_config() -> Dict[str, Any]:
    """
    Resolve the logging section from settings.yaml and the environment.

    The settings file is optional here: logging has to come up even when the
    configuration is broken, so a missing or invalid file just means defaults.
    """
    cfg: Dict[str, Any] = {}

    settings_path = os.getenv("TTS_PROXY_SETTINGS", "config/settings.yaml")
    import yaml
    from tts_proxy.core.config import load_settings

    try:
        settings = load_settings(settings_path)
    except (OSError, yaml.YAMLError):
        settings = None
    if settings is not None:
        cfg.update(settings.raw.get("logging", {}) or {})

    if os.getenv("TTS_PROXY_LOG_LEVEL"):
        cfg["level"] = os.environ["TTS_PROXY_LOG_LEVEL"]
    if os.getenv("TTS_PROXY_LOG_DIR"):
        cfg["log_dir"] = os.environ["TTS_PROXY_LOG_DIR"]
    if os.getenv("TTS_PROXY_JSONL_FILE"):
        cfg["jsonl_file"] = os.environ["TTS_PROXY_JSONL_FILE"]

    rotate_bytes = _env_int("TTS_PROXY_LOG_ROTATE_BYTES")
    if rotate_bytes is not None:
        cfg["rotate_max_bytes"] = rotate_bytes
    rotate_backup = _env_int("TTS_PROXY_LOG_ROTATE_BACKUP")
    if rotate_backup is not None:
        cfg["rotate_backup_count"] = rotate_backup

    return cfg
