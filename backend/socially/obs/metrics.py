"""Central registry for Prometheus metrics used across the backend."""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram

REQUEST_COUNTER = Counter(
	"socially_http_requests_total",
	"Total HTTP requests processed",
	["route", "method", "status"],
)

REQUEST_LATENCY = Histogram(
	"socially_http_request_duration_seconds",
	"HTTP request latency in seconds",
	["route", "method"],
	buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0),
)

SOCKET_CLIENTS = Gauge(
	"socially_socketio_clients",
	"Active Socket.IO clients per namespace",
	["namespace"],
)

SOCKET_EVENTS = Counter(
	"socially_socketio_events_total",
	"Socket.IO events handled or emitted per namespace",
	["namespace", "event"],
)

PRESENCE_CONNECTIONS = Gauge(
	"socially_presence_connections",
	"Realtime connections currently held by the presence registry",
)

KEEPALIVE_TIMEOUTS = Counter(
	"socially_keepalive_timeouts_total",
	"Realtime connections dropped for missing keepalive traffic",
)

CHAT_SEND = Counter(
	"socially_chat_send_total",
	"Chat messages persisted",
	["kind"],
)

CHAT_SEND_REJECTS = Counter(
	"socially_chat_send_rejects_total",
	"Chat sends rejected before persistence",
	["reason"],
)

CHAT_FANOUT = Counter(
	"socially_chat_fanout_total",
	"Per-connection fan-out attempts",
	["result"],
)

CHAT_READ_UPDATES = Counter(
	"socially_chat_read_updates_total",
	"Mark-read operations applied",
)

PROXIMITY_QUERIES = Counter(
	"socially_proximity_queries_total",
	"Proximity queries served",
	["kind", "filtered"],
)

PROXIMITY_RESULTS = Histogram(
	"socially_proximity_results",
	"Items returned by proximity queries",
	["kind"],
	buckets=(0, 1, 5, 10, 25, 50, 100, 250),
)

REDIS_UP = Gauge(
	"socially_redis_up",
	"Redis readiness probe result",
)

POSTGRES_UP = Gauge(
	"socially_postgres_up",
	"Postgres readiness probe result",
)


def observe_request(route: str, method: str, status: int, elapsed_seconds: float) -> None:
	REQUEST_COUNTER.labels(route=route, method=method, status=str(status)).inc()
	REQUEST_LATENCY.labels(route=route, method=method).observe(elapsed_seconds)


def socket_connected(namespace: str) -> None:
	SOCKET_CLIENTS.labels(namespace=namespace).inc()


def socket_disconnected(namespace: str) -> None:
	SOCKET_CLIENTS.labels(namespace=namespace).dec()


def socket_event(namespace: str, event: str) -> None:
	SOCKET_EVENTS.labels(namespace=namespace, event=event).inc()


def set_presence_connections(count: int) -> None:
	PRESENCE_CONNECTIONS.set(float(count))


def inc_keepalive_timeout(count: int = 1) -> None:
	KEEPALIVE_TIMEOUTS.inc(count)


def inc_chat_send(kind: str) -> None:
	CHAT_SEND.labels(kind=kind).inc()


def inc_chat_reject(reason: str) -> None:
	CHAT_SEND_REJECTS.labels(reason=reason).inc()


def inc_chat_fanout(result: str) -> None:
	CHAT_FANOUT.labels(result=result).inc()


def inc_chat_read() -> None:
	CHAT_READ_UPDATES.inc()


def observe_proximity(kind: str, *, filtered: bool, count: int) -> None:
	PROXIMITY_QUERIES.labels(kind=kind, filtered="yes" if filtered else "no").inc()
	PROXIMITY_RESULTS.labels(kind=kind).observe(count)


def mark_redis(ok: bool) -> None:
	REDIS_UP.set(1.0 if ok else 0.0)


def mark_postgres(ok: bool) -> None:
	POSTGRES_UP.set(1.0 if ok else 0.0)
