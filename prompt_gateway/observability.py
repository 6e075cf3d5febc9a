"""Prometheus metrics describing generation traffic."""
from __future__ import annotations

from typing import Optional

from fastapi import FastAPI, Response
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Histogram,
    generate_latest,
)

# Upstream LLM calls routinely take several seconds.
LATENCY_BUCKETS = (0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 20.0, 30.0, 60.0)


class GenerationMetrics:
    """Counters and latency histograms keyed by provider and outcome code.

    ``outcome`` is ``"ok"`` for a successful generation, otherwise the
    error code of the envelope returned to the caller.
    """

    def __init__(self, registry: Optional[CollectorRegistry] = None) -> None:
        self.registry = registry or CollectorRegistry()
        self._generations: Counter
        self._tokens: Counter
        self._latency: Histogram
        self._throttled: Counter
        self._register()

    def _register(self) -> None:
        self._generations = Counter(
            "gateway_generations_total",
            "Generation requests by provider and outcome code",
            labelnames=["provider", "outcome"],
            registry=self.registry,
        )
        self._tokens = Counter(
            "gateway_generation_tokens_total",
            "Tokens reported or estimated for successful generations",
            labelnames=["provider"],
            registry=self.registry,
        )
        self._latency = Histogram(
            "gateway_generation_duration_seconds",
            "Time spent running the generation pipeline",
            labelnames=["provider", "outcome"],
            buckets=LATENCY_BUCKETS,
            registry=self.registry,
        )
        self._throttled = Counter(
            "gateway_throttled_requests_total",
            "Requests refused by the per-IP throttle",
            registry=self.registry,
        )

    def reset(self, registry: Optional[CollectorRegistry] = None) -> None:
        """Start over with an empty registry (used by tests)."""

        self.registry = registry or CollectorRegistry()
        self._register()

    def observe(
        self,
        provider: Optional[str],
        outcome: str,
        *,
        tokens: int = 0,
        duration: Optional[float] = None,
    ) -> None:
        provider = provider or "unknown"
        self._generations.labels(provider=provider, outcome=outcome).inc()
        if tokens:
            self._tokens.labels(provider=provider).inc(tokens)
        if duration is not None:
            self._latency.labels(provider=provider, outcome=outcome).observe(duration)

    def throttled(self) -> None:
        self._throttled.inc()

    def render(self) -> Response:
        return Response(generate_latest(self.registry), media_type=CONTENT_TYPE_LATEST)


def install_metrics(app: FastAPI, metrics: GenerationMetrics, path: str = "/metrics") -> None:
    """Expose ``metrics`` on ``app`` and keep a handle on ``app.state.metrics``."""

    app.state.metrics = metrics
    if any(getattr(route, "path", None) == path for route in app.routes):
        return

    def metrics_endpoint() -> Response:
        return app.state.metrics.render()

    app.add_api_route(path, metrics_endpoint, methods=["GET"], include_in_schema=False)


__all__ = ["GenerationMetrics", "LATENCY_BUCKETS", "install_metrics"]
