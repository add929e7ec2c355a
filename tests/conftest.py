"""Shared fixtures: a fake speech backend and per-test state resets."""
from __future__ import annotations

import asyncio
import base64
import html
import json
import re
import time
from typing import Callable, List, Optional, Set

import httpx
import pytest

_PROSODY_RE = re.compile(r"<prosody[^>]*>(.*)</prosody>", re.S)


def make_token(exp: float) -> str:
    """Unsigned JWT whose payload carries ``exp``."""
    def seg(data: dict) -> str:
        raw = json.dumps(data).encode("utf-8")
        return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")

    return f"{seg({'alg': 'none'})}.{seg({'exp': exp, 'region': 'eastasia'})}.sig"


class FakeBackend:
    """
    httpx handler standing in for both the token endpoint and the
    synthesis endpoint.

    Synthesized audio is ``b"[<unit text>]"`` so tests can check ordering.
    """

    def __init__(self):
        self.token_exp: Optional[float] = None
        self.token_status = 200
        self.token_delay = 0.0
        self.token_calls = 0
        self.synth_delay: Callable[[str], float] = lambda text: 0.0
        self.synth_fail: Set[str] = set()
        self.synth_status = 500
        self.synth_texts: List[str] = []
        self.requests: List[httpx.Request] = []

    async def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.host == "dev.microsofttranslator.com":
            self.token_calls += 1
            if self.token_delay:
                await asyncio.sleep(self.token_delay)
            if self.token_status != 200:
                return httpx.Response(self.token_status, text="token endpoint says no")
            exp = self.token_exp if self.token_exp is not None else time.time() + 600
            return httpx.Response(200, json={"r": "eastasia", "t": make_token(exp)})

        ssml = request.content.decode("utf-8")
        match = _PROSODY_RE.search(ssml)
        text = html.unescape(match.group(1)) if match else ""
        self.synth_texts.append(text)

        delay = self.synth_delay(text)
        if delay:
            await asyncio.sleep(delay)
        if text in self.synth_fail:
            return httpx.Response(self.synth_status, text="backend failure")
        return httpx.Response(200, content=f"[{text}]".encode("utf-8"))

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def token_factory():
    return make_token


@pytest.fixture(autouse=True)
def _isolated_state(monkeypatch, tmp_path):
    """No ambient API key or settings file, and fresh process singletons."""
    from tts_proxy.api.dependencies import get_settings
    from tts_proxy.services.speech_service import reset_service
    from tts_proxy.tts.credentials import reset_credential_cache

    monkeypatch.delenv("API_KEY", raising=False)
    monkeypatch.delenv("TTS_PROXY_API_KEY", raising=False)
    monkeypatch.delenv("TTS_PROXY_CONCURRENCY", raising=False)
    monkeypatch.delenv("TTS_PROXY_CHUNK_SIZE", raising=False)
    monkeypatch.delenv("TTS_PROXY_TIMEOUT_S", raising=False)
    monkeypatch.setenv("TTS_PROXY_SETTINGS", str(tmp_path / "missing-settings.yaml"))

    get_settings.cache_clear()
    reset_service()
    reset_credential_cache()
    yield
    get_settings.cache_clear()
    reset_service()
    reset_credential_cache()
