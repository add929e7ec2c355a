"""
Prometheus metrics for tts-proxy.

Metrics Exposed:
    tts_proxy_requests_total                - requests by mode (buffered/stream) and status
    tts_proxy_request_duration_seconds      - end-to-end request latency by mode
    tts_proxy_audio_bytes_total             - audio bytes returned to clients
    tts_proxy_units_total                   - text units synthesized
    tts_proxy_batches_total                 - scheduler batches completed
    tts_proxy_unit_duration_seconds         - backend latency per unit
    tts_proxy_credential_refreshes_total    - token refreshes by outcome
    tts_proxy_inflight_requests             - requests currently being served

Usage:
    from tts_proxy.core.metrics import metrics

    metrics.record_request(mode="buffered", status="success", duration=0.8, audio_bytes=48000)
    metrics.record_credential_refresh("success")
    content, content_type = metrics.get_metrics_response()

All metrics live on a private CollectorRegistry so several instances (tests)
never clash on the default registry.
"""
from __future__ import annotations

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)


class ProxyMetrics:
    """Collector for the speech pipeline. Prometheus metric ops are thread-safe."""

    def __init__(self):
        self._registry = CollectorRegistry()

        self._requests_total = Counter(
            "tts_proxy_requests_total",
            "Total speech requests",
            ["mode", "status"],
            registry=self._registry,
        )
        self._request_duration = Histogram(
            "tts_proxy_request_duration_seconds",
            "Speech request duration in seconds",
            ["mode"],
            buckets=(0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 120.0),
            registry=self._registry,
        )
        self._audio_bytes_total = Counter(
            "tts_proxy_audio_bytes_total",
            "Total audio bytes returned",
            registry=self._registry,
        )
        self._units_total = Counter(
            "tts_proxy_units_total",
            "Total text units synthesized",
            registry=self._registry,
        )
        self._batches_total = Counter(
            "tts_proxy_batches_total",
            "Total scheduler batches completed",
            registry=self._registry,
        )
        self._unit_duration = Histogram(
            "tts_proxy_unit_duration_seconds",
            "Backend synthesis latency per unit",
            buckets=(0.1, 0.25, 0.5, 1.0, 2.0, 5.0, 10.0, 30.0),
            registry=self._registry,
        )
        self._credential_refreshes = Counter(
            "tts_proxy_credential_refreshes_total",
            "Backend credential refreshes",
            ["outcome"],
            registry=self._registry,
        )
        self._inflight = Gauge(
            "tts_proxy_inflight_requests",
            "Speech requests currently in progress",
            registry=self._registry,
        )

    @property
    def registry(self) -> CollectorRegistry:
        return self._registry

    def record_request(self, mode: str, status: str, duration: float, audio_bytes: int = 0) -> None:
        """
        Args:
            mode: "buffered" or "stream"
            status: "success" or an error code
            duration: seconds from request start to last byte (or failure)
            audio_bytes: bytes delivered to the client
        """
        self._requests_total.labels(mode=mode, status=status).inc()
        self._request_duration.labels(mode=mode).observe(duration)
        if audio_bytes > 0:
            self._audio_bytes_total.inc(audio_bytes)

    def record_unit(self, duration: float) -> None:
        self._units_total.inc()
        self._unit_duration.observe(duration)

    def inc_batches(self) -> None:
        self._batches_total.inc()

    def record_credential_refresh(self, outcome: str) -> None:
        self._credential_refreshes.labels(outcome=outcome).inc()

    def inc_inflight(self) -> None:
        self._inflight.inc()

    def dec_inflight(self) -> None:
        self._inflight.dec()

    def get_metrics_response(self) -> tuple[bytes, str]:
        """Returns (content_bytes, content_type) for the /metrics endpoint."""
        return generate_latest(self._registry), CONTENT_TYPE_LATEST


# Process-wide collector
metrics = ProxyMetrics()
