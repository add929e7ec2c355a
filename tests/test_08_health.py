"""Tests for /health, /v1/models and /metrics."""
from __future__ import annotations

from fastapi.testclient import TestClient

from tts_proxy.api.dependencies import get_settings, get_speech_service
from tts_proxy.api.routes import list_models
from tts_proxy.core.config import ProxyConfig, Settings
from tts_proxy.main import create_app
from tts_proxy.services.speech_service import SpeechService


def _client(backend, **raw) -> TestClient:
    settings = Settings(raw=raw)
    service = SpeechService(settings, transport=backend.transport())
    app = create_app()
    app.dependency_overrides[get_settings] = lambda: settings
    app.dependency_overrides[get_speech_service] = lambda: service
    return TestClient(app)


class TestHealth:
    def test_health_before_any_request(self, backend):
        with _client(backend) as client:
            r = client.get("/health")
        assert r.status_code == 200
        body = r.json()
        assert body["ok"] is True
        assert body["version"] == "0.1.0"
        assert body["credential"]["cached"] is False
        assert body["config"]["concurrency"] == 10
        assert backend.token_calls == 0

    def test_health_after_request(self, backend):
        with _client(backend) as client:
            client.post("/v1/audio/speech", json={"input": "Hi"})
            body = client.get("/health").json()
        assert body["credential"]["cached"] is True
        assert body["credential"]["region"] == "eastasia"
        assert body["credential"]["expires_in_s"] > 0


class TestModels:
    def test_list_models(self):
        config = ProxyConfig.from_settings(Settings(raw={"voices": {"ava": "en-US-AvaNeural"}}))
        ids = [m.id for m in list_models(config, created=0).data]
        assert ids[:2] == ["tts-1", "tts-1-hd"]
        assert "tts-1-alloy" in ids
        assert "tts-1-ava" in ids

    def test_models_endpoint(self, backend):
        with _client(backend) as client:
            r = client.get("/v1/models")
        assert r.status_code == 200
        body = r.json()
        assert body["object"] == "list"
        assert all(m["object"] == "model" for m in body["data"])


class TestMetricsEndpoint:
    def test_metrics_exposed(self, backend):
        with _client(backend) as client:
            client.post("/v1/audio/speech", json={"input": "Hi"})
            r = client.get("/metrics")
        assert r.status_code == 200
        assert "text/plain" in r.headers["content-type"]
        assert "tts_proxy_requests_total" in r.text
        assert "tts_proxy_credential_refreshes_total" in r.text


class TestReader:
    def test_reader_config_defaults(self, backend):
        with _client(backend) as client:
            r = client.get("/reader")
        assert r.status_code == 200
        body = r.json()
        assert body["name"] == "tts-proxy"
        assert body["url"].startswith("http://testserver/v1/audio/speech?t={{java.encodeURI(speakText)}}")
        assert "&v=zh-CN-XiaoxiaoNeural&" in body["url"]
        assert "&r={{(speakSpeed - 10) / 10 + 1}}&p=1.0&key=" in body["url"]
        assert body["header"] == {"Authorization": "Bearer "}
        assert isinstance(body["id"], int)

    def test_reader_overrides(self, backend):
        with _client(backend, auth={"api_key": "secret"}) as client:
            r = client.get("/reader", params={"key": "secret", "voice": "nova", "n": "My Reader"})
        body = r.json()
        assert body["name"] == "My Reader"
        assert "&v=nova&" in body["url"]
        assert body["url"].endswith("&key=secret")
        assert body["header"]["Authorization"] == "Bearer secret"

    def test_reader_requires_key_when_configured(self, backend):
        with _client(backend, auth={"api_key": "secret"}) as client:
            r = client.get("/reader")
        assert r.status_code == 401
        assert r.json()["error"]["code"] == "invalid_api_key"

    def test_reader_url_drives_speech_route(self, backend):
        with _client(backend, auth={"api_key": "secret"}) as client:
            template = client.get("/reader", params={"key": "secret", "voice": "nova"}).json()["url"]
            url = template.replace("{{java.encodeURI(speakText)}}", "Hello.").replace(
                "{{(speakSpeed - 10) / 10 + 1}}", "1.0"
            )
            r = client.get(url.replace("http://testserver", ""))
        assert r.status_code == 200
        assert r.content == b"[Hello.]"
        assert r.headers["X-Voice"] == "zh-CN-YunxiNeural"
