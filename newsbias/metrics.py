"""Prometheus metrics for bias analysis."""

from __future__ import annotations

from prometheus_client import CONTENT_TYPE_LATEST, Counter, Gauge, Histogram, generate_latest

PROVIDER_REQUESTS = Counter(
    "newsbias_provider_requests_total",
    "Provider analysis attempts by outcome",
    ["provider", "outcome"],
)

PROVIDER_LATENCY = Histogram(
    "newsbias_provider_latency_seconds",
    "Provider analysis latency in seconds",
    ["provider"],
    buckets=(0.1, 0.25, 0.5, 1, 2, 5, 10, 20, 30, 60, 120),
)

CIRCUIT_STATE = Gauge(
    "newsbias_circuit_state",
    "Circuit breaker state per provider (0=closed, 1=half_open, 2=open)",
    ["provider"],
)

FALLBACK_RESULTS = Counter(
    "newsbias_fallback_results_total",
    "Degraded results returned after every provider failed",
    ["kind"],
)

CACHE_LOOKUPS = Counter(
    "newsbias_cache_lookups_total",
    "Analysis cache lookups by result",
    ["result"],
)

_CIRCUIT_VALUES = {"closed": 0, "half_open": 1, "open": 2}


def record_provider_attempt(provider: str, success: bool, response_time_ms: float) -> None:
    PROVIDER_REQUESTS.labels(provider=provider, outcome="success" if success else "failure").inc()
    PROVIDER_LATENCY.labels(provider=provider).observe(max(0.0, response_time_ms) / 1000)


def set_circuit_state(provider: str, state: str) -> None:
    CIRCUIT_STATE.labels(provider=provider).set(_CIRCUIT_VALUES.get(state, 0))


def record_fallback(kind: str) -> None:
    FALLBACK_RESULTS.labels(kind=kind).inc()


def record_cache_lookup(hit: bool) -> None:
    CACHE_LOOKUPS.labels(result="hit" if hit else "miss").inc()


def render_metrics() -> tuple[bytes, str]:
    return generate_latest(), CONTENT_TYPE_LATEST
