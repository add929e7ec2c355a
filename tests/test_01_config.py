"""
Tests for configuration validation and defaults.

Tests cover:
- ProxyConfig.from_settings() - all sections
- Defaults class values
- ConfigValidationError on invalid values
- Environment overrides
- Voice map merging
- load_settings() file handling
"""

import pytest

from tts_proxy.core.config import (
    ConfigValidationError,
    Defaults,
    ProxyConfig,
    Settings,
    apply_env_overrides,
    load_settings,
)


class TestDefaults:
    """Tests for Defaults class values."""

    def test_batching_defaults(self):
        assert Defaults.BATCHING_CONCURRENCY == 10
        assert Defaults.CHUNKING_CHUNK_SIZE == 300

    def test_backend_defaults(self):
        assert Defaults.BACKEND_REFRESH_SKEW_S == 300
        assert Defaults.BACKEND_OUTPUT_FORMAT == "audio-24khz-48kbitrate-mono-mp3"

    def test_voice_map_has_openai_voices(self):
        for name in ("alloy", "echo", "fable", "onyx", "nova", "shimmer"):
            assert name in Defaults.OPENAI_VOICE_MAP


class TestFromSettings:
    """Tests for ProxyConfig.from_settings()."""

    def test_empty_settings_use_defaults(self):
        config = ProxyConfig.from_settings(Settings(raw={}))
        assert config.batching.concurrency == Defaults.BATCHING_CONCURRENCY
        assert config.chunking.chunk_size == Defaults.CHUNKING_CHUNK_SIZE
        assert config.cleaning.remove_emoji is True
        assert config.auth.enabled is False
        assert config.logging.level == 2

    def test_sections_are_read(self):
        raw = {
            "backend": {"timeout_s": 5, "refresh_skew_s": 60},
            "batching": {"concurrency": 4},
            "chunking": {"chunk_size": 120},
            "cleaning": {"remove_urls": False, "custom_keywords": "foo,bar"},
            "auth": {"api_key": "secret"},
            "logging": {"level": "VERBOSE"},
        }
        config = ProxyConfig.from_settings(Settings(raw=raw))
        assert config.backend.timeout_s == 5.0
        assert config.backend.refresh_skew_s == 60
        assert config.batching.concurrency == 4
        assert config.chunking.chunk_size == 120
        assert config.cleaning.remove_urls is False
        assert config.cleaning.custom_keywords == "foo,bar"
        assert config.auth.enabled is True
        assert config.logging.level == 3

    def test_string_numbers_are_coerced(self):
        config = ProxyConfig.from_settings(Settings(raw={"batching": {"concurrency": "7"}}))
        assert config.batching.concurrency == 7

    @pytest.mark.parametrize(
        "raw",
        [
            {"batching": {"concurrency": 0}},
            {"chunking": {"chunk_size": -1}},
            {"backend": {"timeout_s": 0}},
            {"backend": {"refresh_skew_s": -5}},
            {"backend": {"endpoint_url": "ftp://example.com"}},
            {"batching": {"concurrency": "many"}},
        ],
    )
    def test_invalid_values_rejected(self, raw):
        with pytest.raises(ConfigValidationError):
            ProxyConfig.from_settings(Settings(raw=raw))

    def test_voices_extend_builtin_map(self):
        config = ProxyConfig.from_settings(
            Settings(raw={"voices": {"Ava": "en-US-AvaNeural", "alloy": "en-US-AndrewNeural"}})
        )
        assert config.voices["ava"] == "en-US-AvaNeural"
        assert config.voices["alloy"] == "en-US-AndrewNeural"
        assert config.voices["nova"] == Defaults.OPENAI_VOICE_MAP["nova"]

    def test_voices_must_be_mapping(self):
        with pytest.raises(ConfigValidationError):
            ProxyConfig.from_settings(Settings(raw={"voices": ["alloy"]}))


class TestEnvOverrides:
    """Environment variables win over the YAML file."""

    def test_api_key_env(self, monkeypatch):
        monkeypatch.setenv("API_KEY", "from-env")
        raw = apply_env_overrides({"auth": {"api_key": "from-file"}})
        assert Settings(raw=raw).api_key == "from-env"

    def test_batching_env(self, monkeypatch):
        monkeypatch.setenv("TTS_PROXY_CONCURRENCY", "3")
        monkeypatch.setenv("TTS_PROXY_CHUNK_SIZE", "50")
        config = ProxyConfig.from_settings(Settings(raw=apply_env_overrides({})))
        assert config.batching.concurrency == 3
        assert config.chunking.chunk_size == 50


class TestLoadSettings:
    """Tests for load_settings()."""

    def test_missing_file_raises(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_settings(str(tmp_path / "nope.yaml"))

    def test_loads_yaml(self, tmp_path):
        path = tmp_path / "settings.yaml"
        path.write_text("batching:\n  concurrency: 6\nauth:\n  api_key: abc\n", encoding="utf-8")
        settings = load_settings(str(path))
        assert settings.api_key == "abc"
        assert settings.get_proxy_config().batching.concurrency == 6

    def test_empty_yaml_is_empty_mapping(self, tmp_path):
        path = tmp_path / "settings.yaml"
        path.write_text("", encoding="utf-8")
        assert load_settings(str(path)).raw == {}

    def test_env_path(self, tmp_path, monkeypatch):
        path = tmp_path / "custom.yaml"
        path.write_text("chunking:\n  chunk_size: 42\n", encoding="utf-8")
        monkeypatch.setenv("TTS_PROXY_SETTINGS", str(path))
        assert load_settings().get_proxy_config().chunking.chunk_size == 42

    def test_repo_settings_file_is_valid(self):
        from pathlib import Path

        path = Path(__file__).resolve().parents[1] / "config" / "settings.yaml"
        config = load_settings(str(path)).get_proxy_config()
        assert config.chunking.chunk_size == 300
        assert config.auth.enabled is False
