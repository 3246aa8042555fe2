"""FastAPI app factory and collaborator assembly.

`build_payment_service` creates exactly one Paypack client (and so one token
cache) and one registry; `main.py` calls it once per process.
"""

from contextlib import asynccontextmanager
from time import perf_counter

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from pushpay.common.config import CommonSettings, PaypackCredentials, settings
from pushpay.common.metrics import http_request_duration_seconds, http_requests_total, metrics_response
from pushpay.common.tracing import instrument_app
from pushpay.services.notification.service import Notifier, WebSocketHub
from pushpay.services.paypack.client import PaypackClient
from pushpay.services.paypack.signature import WebhookVerifier
from pushpay.services.payments.correlator import NotificationRegistry, PaymentCorrelator
from pushpay.services.payments.repository import PaymentStore
from pushpay.services.payments.routes import register_error_handlers, router, ws_router
from pushpay.services.payments.service import PaymentService


def build_payment_service(
    session_factory,
    credentials: PaypackCredentials,
    config: CommonSettings,
    notifier: Notifier,
    transport=None,
) -> PaymentService:
    """Assemble the payment flows around one shared client and registry."""

    store = PaymentStore(session_factory)
    client = PaypackClient(credentials, config, transport=transport)
    verifier = WebhookVerifier(
        credentials.webhook_secret.get_secret_value(),
        log_signature_values=config.log_signature_values,
    )
    correlator = PaymentCorrelator(store, NotificationRegistry(), notifier)
    return PaymentService(
        store,
        client,
        verifier,
        correlator,
        external_ref_write_attempts=config.external_ref_write_attempts,
    )


def create_app(service: PaymentService, hub: WebSocketHub, config: CommonSettings = settings) -> FastAPI:
    """Build the FastAPI app around already-constructed collaborators."""

    @asynccontextmanager
    async def lifespan(_: FastAPI):
        """Create the schema when asked to, and close the Paypack HTTP pool on shutdown."""

        if config.create_schema_on_startup:
            service.store.create_schema()
        yield
        await service.client.aclose()

    app = FastAPI(title="PushPay", lifespan=lifespan)
    app.state.payment_service = service
    app.state.hub = hub
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[config.frontend_url],
        allow_methods=["*"],
        allow_headers=["*"],
    )
    register_error_handlers(app)
    app.include_router(router)
    app.include_router(ws_router)

    @app.middleware("http")
    async def metrics_middleware(request: Request, call_next):
        """Record request count and latency for every HTTP call."""

        start = perf_counter()
        route = request.url.path
        method = request.method
        status_code = 500
        try:
            response = await call_next(request)
            status_code = response.status_code
            route_obj = request.scope.get("route")
            if route_obj is not None and getattr(route_obj, "path", None):
                route = route_obj.path
            return response
        finally:
            elapsed = max(0.0, perf_counter() - start)
            http_request_duration_seconds.labels(
                service=config.service_name,
                route=route,
                method=method,
            ).observe(elapsed)
            http_requests_total.labels(
                service=config.service_name,
                route=route,
                method=method,
                status_code=str(status_code),
            ).inc()

    @app.get("/health")
    def health():
        """Container health probe endpoint."""

        return {"ok": True}

    @app.get("/metrics")
    def metrics():
        """Prometheus scrape endpoint."""

        return metrics_response()

    instrument_app(app)
    return app
