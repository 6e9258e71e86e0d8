"""Central registry for Prometheus metrics used across the backend."""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram, Summary

REQUEST_COUNTER = Counter(
	"nexus_http_requests_total",
	"Total HTTP requests processed",
	["route", "method", "status"],
)

REQUEST_LATENCY = Histogram(
	"nexus_http_request_duration_seconds",
	"HTTP request latency in seconds",
	["route", "method"],
	buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0),
)

MEMBERSHIP_JOINS = Counter(
	"nexus_membership_joins_total",
	"Join attempts by entity kind and outcome",
	["kind", "result"],
)

MEMBERSHIP_LEAVES = Counter(
	"nexus_membership_leaves_total",
	"Leave attempts by entity kind and outcome",
	["kind", "result"],
)

GATE_DENIALS = Counter(
	"nexus_gate_denials_total",
	"Role gate denials by action",
	["action"],
)

ENTITIES_CREATED = Counter(
	"nexus_entities_created_total",
	"Entities created by kind",
	["kind"],
)

ENTITIES_DELETED = Counter(
	"nexus_entities_deleted_total",
	"Entities deleted by kind",
	["kind"],
)

IDENTITY_EVENTS = Counter(
	"nexus_identity_events_total",
	"Identity provider events",
	["event", "result"],
)

RECONCILE_CORRECTIONS = Counter(
	"nexus_reconcile_corrections_total",
	"Member counters rewritten by the reconciler",
	["kind"],
)

REDIS_UP = Gauge("nexus_redis_up", "Redis availability (1=up,0=down)")
REDIS_LATENCY = Summary("nexus_redis_latency_seconds", "Redis ping latency (seconds)")

STORE_UP = Gauge("nexus_document_store_up", "Document store availability (1=up,0=down)")
STORE_LATENCY = Summary("nexus_document_store_latency_seconds", "Document store ping latency (seconds)")

BACKGROUND_RUNS = Counter(
	"nexus_jobs_runs_total",
	"Background job executions",
	["name", "result"],
)

BACKGROUND_DURATION = Histogram(
	"nexus_jobs_duration_seconds",
	"Background job duration",
	["name"],
	buckets=(0.1, 0.5, 1.0, 2.0, 5.0, 15.0, 30.0, 60.0),
)


def observe_request(route: str, method: str, status: int, elapsed_seconds: float) -> None:
	REQUEST_COUNTER.labels(route=route, method=method, status=str(status)).inc()
	REQUEST_LATENCY.labels(route=route, method=method).observe(elapsed_seconds)


def inc_join(kind: str, result: str) -> None:
	MEMBERSHIP_JOINS.labels(kind=kind, result=result).inc()


def inc_leave(kind: str, result: str) -> None:
	MEMBERSHIP_LEAVES.labels(kind=kind, result=result).inc()


def inc_gate_denial(action: str) -> None:
	GATE_DENIALS.labels(action=action).inc()


def inc_entity_created(kind: str) -> None:
	ENTITIES_CREATED.labels(kind=kind).inc()


def inc_entity_deleted(kind: str) -> None:
	ENTITIES_DELETED.labels(kind=kind).inc()


def inc_identity(event: str, result: str = "ok") -> None:
	IDENTITY_EVENTS.labels(event=event, result=result).inc()


def inc_reconcile_correction(kind: str, count: int = 1) -> None:
	if count > 0:
		RECONCILE_CORRECTIONS.labels(kind=kind).inc(count)


def mark_redis(ok: bool, *, latency_seconds: float | None = None) -> None:
	REDIS_UP.set(1 if ok else 0)
	if latency_seconds is not None:
		REDIS_LATENCY.observe(latency_seconds)


def mark_store(ok: bool, *, latency_seconds: float | None = None) -> None:
	STORE_UP.set(1 if ok else 0)
	if latency_seconds is not None:
		STORE_LATENCY.observe(latency_seconds)


def record_job_run(name: str, *, result: str, duration_seconds: float | None = None) -> None:
	BACKGROUND_RUNS.labels(name=name, result=result).inc()
	if duration_seconds is not None:
		BACKGROUND_DURATION.labels(name=name).observe(duration_seconds)
