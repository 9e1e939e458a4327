"""Prometheus metrics helpers for HTTP and booking pipeline observability."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from time import perf_counter

from fastapi import Request, Response
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest

HTTP_REQUESTS_TOTAL = Counter(
    "coachcarter_http_requests_total",
    "Total number of HTTP requests handled by the API.",
    ["method", "path", "status_code"],
)

HTTP_REQUEST_DURATION_SECONDS = Histogram(
    "coachcarter_http_request_duration_seconds",
    "HTTP request latency in seconds.",
    ["method", "path"],
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
)

WEBHOOK_EVENTS_TOTAL = Counter(
    "coachcarter_webhook_events_total",
    "Payment provider events by type and processing outcome.",
    ["event_type", "outcome"],
)

NOTIFICATION_DELIVERIES_TOTAL = Counter(
    "coachcarter_notification_deliveries_total",
    "Notification delivery attempts by channel and result.",
    ["channel", "status"],
)

OUTBOX_EVENTS_TOTAL = Counter(
    "coachcarter_outbox_events_total",
    "Outbox events executed by the sweep, by type and result.",
    ["event_type", "result"],
)


def _request_path_label(request: Request) -> str:
    route = request.scope.get("route")
    route_path = getattr(route, "path", None)
    if route_path:
        return str(route_path)
    return request.url.path


async def instrument_http_request(
    request: Request,
    call_next: Callable[[Request], Awaitable[Response]],
) -> Response:
    """Track request count and latency for each endpoint."""
    started_at = perf_counter()
    status_code = 500
    try:
        response = await call_next(request)
        status_code = response.status_code
        return response
    finally:
        path_label = _request_path_label(request)
        method_label = request.method.upper()
        duration_seconds = perf_counter() - started_at

        HTTP_REQUESTS_TOTAL.labels(
            method=method_label,
            path=path_label,
            status_code=str(status_code),
        ).inc()
        HTTP_REQUEST_DURATION_SECONDS.labels(
            method=method_label,
            path=path_label,
        ).observe(duration_seconds)


def record_webhook_event(event_type: str, outcome: str) -> None:
    WEBHOOK_EVENTS_TOTAL.labels(event_type=event_type, outcome=outcome).inc()


def record_notification_delivery(channel: str, status: str) -> None:
    NOTIFICATION_DELIVERIES_TOTAL.labels(channel=channel, status=status).inc()


def record_outbox_event(event_type: str, result: str) -> None:
    OUTBOX_EVENTS_TOTAL.labels(event_type=event_type, result=result).inc()


def build_metrics_response() -> Response:
    """Return metrics payload in Prometheus text format."""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
