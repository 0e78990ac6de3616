from __future__ import annotations

from typing import Final

from prometheus_client import CollectorRegistry, Counter, Histogram, generate_latest

_PROM_CONTENT_TYPE: Final[str] = "text/plain; version=0.0.4; charset=utf-8"


class Metrics:
    def __init__(self, *, registry: CollectorRegistry | None = None) -> None:
        self._registry = registry or CollectorRegistry(auto_describe=True)

        self._claims_total = Counter(
            "keypool_claims_total",
            "Credential claim attempts by model and outcome.",
            labelnames=("model", "outcome"),
            registry=self._registry,
        )
        self._skips_total = Counter(
            "keypool_candidate_skips_total",
            "Candidates skipped during selection by reason.",
            labelnames=("model", "reason"),
            registry=self._registry,
        )
        self._outcomes_total = Counter(
            "keypool_upstream_outcomes_total",
            "Recorded upstream outcomes by model.",
            labelnames=("model", "outcome"),
            registry=self._registry,
        )
        self._store_errors_total = Counter(
            "keypool_store_errors_total",
            "State store operations that degraded to defaults.",
            labelnames=("operation", "reason"),
            registry=self._registry,
        )
        self._upstream_latency_ms = Histogram(
            "keypool_upstream_latency_ms",
            "Upstream call latency in milliseconds.",
            labelnames=("model",),
            # 25ms .. 5m
            buckets=(25, 50, 100, 250, 500, 1_000, 2_000, 5_000, 10_000, 30_000, 60_000, 120_000, 300_000),
            registry=self._registry,
        )

    @property
    def content_type(self) -> str:
        return _PROM_CONTENT_TYPE

    def render(self) -> bytes:
        return generate_latest(self._registry)

    def observe_claim(self, *, model: str, outcome: str) -> None:
        self._claims_total.labels(model=model, outcome=outcome).inc()

    def observe_skip(self, *, model: str, reason: str) -> None:
        self._skips_total.labels(model=model, reason=reason).inc()

    def observe_outcome(self, *, model: str, outcome: str, latency_ms: int | None = None) -> None:
        self._outcomes_total.labels(model=model, outcome=outcome).inc()
        if latency_ms is not None:
            self._upstream_latency_ms.labels(model=model).observe(max(0, latency_ms))

    def observe_store_error(self, *, operation: str, reason: str) -> None:
        self._store_errors_total.labels(operation=operation, reason=reason).inc()
