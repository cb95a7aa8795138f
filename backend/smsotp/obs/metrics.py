"""Central registry for Prometheus metrics used across the service."""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram

REQUEST_COUNTER = Counter(
	"smsotp_http_requests_total",
	"Total HTTP requests processed",
	["route", "method", "status"],
)

REQUEST_LATENCY = Histogram(
	"smsotp_http_request_duration_seconds",
	"HTTP request latency in seconds",
	["route", "method"],
	buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0),
)

CHALLENGES = Counter(
	"smsotp_challenges_total",
	"One-time-passcode challenge transitions",
	["action", "result"],
)

PROVIDER_CALLS = Counter(
	"smsotp_provider_calls_total",
	"Calls made to the SMS/OTP provider",
	["endpoint", "result"],
)

PROVIDER_LATENCY = Histogram(
	"smsotp_provider_call_duration_seconds",
	"Provider call latency in seconds",
	["endpoint"],
	buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 3.0, 5.0),
)

REDIS_UP = Gauge(
	"smsotp_redis_up",
	"Redis availability as seen by readiness probes",
)

REDIS_LATENCY = Histogram(
	"smsotp_redis_ping_seconds",
	"Redis ping latency in seconds",
	buckets=(0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25),
)


def observe_request(route: str, method: str, status: int, elapsed_seconds: float) -> None:
	REQUEST_COUNTER.labels(route=route, method=method, status=str(status)).inc()
	REQUEST_LATENCY.labels(route=route, method=method).observe(elapsed_seconds)


def inc_challenge(action: str, result: str) -> None:
	CHALLENGES.labels(action=action, result=result).inc()


def observe_provider_call(endpoint: str, result: str, elapsed_seconds: float) -> None:
	PROVIDER_CALLS.labels(endpoint=endpoint, result=result).inc()
	PROVIDER_LATENCY.labels(endpoint=endpoint).observe(elapsed_seconds)


def mark_redis(ok: bool, *, latency_seconds: float | None = None) -> None:
	REDIS_UP.set(1 if ok else 0)
	if latency_seconds is not None:
		REDIS_LATENCY.observe(latency_seconds)
