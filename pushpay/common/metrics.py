"""Prometheus metric definitions for the cash-in bridge."""

from prometheus_client import Counter, Histogram, generate_latest
from starlette.responses import Response


http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["service", "route", "method", "status_code"],
)
http_request_duration_seconds = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration seconds",
    ["service", "route", "method"],
)
cashin_requests_total = Counter(
    "paypack_cashin_requests_total",
    "Cash-in calls to Paypack by outcome",
    ["outcome"],
)
cashin_latency_seconds = Histogram("paypack_cashin_latency_seconds", "Paypack cash-in call latency seconds")
token_refresh_total = Counter(
    "paypack_token_refresh_total",
    "Paypack authenticate calls by outcome",
    ["outcome"],
)
webhooks_total = Counter("paypack_webhooks_total", "Inbound Paypack webhooks by outcome", ["outcome"])
notifications_total = Counter(
    "payment_notifications_total",
    "Terminal payment notifications by outcome (pushed/dropped/failed)",
    ["outcome"],
)
payment_e2e_seconds = Histogram(
    "payment_e2e_seconds",
    "Payment duration seconds from PENDING to terminal",
    ["terminal_state"],
)


def metrics_response() -> Response:
    """Expose all registered Prometheus metrics in text format."""

    return Response(content=generate_latest(), media_type="text/plain")
