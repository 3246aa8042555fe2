"""HTTP and WebSocket surface for cash-in payments.

Handlers read their collaborators from `app.state`, which `main.py` fills once
per process and tests fill with in-memory fakes.
"""

from fastapi import APIRouter, FastAPI, Header, Request, WebSocket, WebSocketDisconnect
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from pushpay.common.errors import InternalError, NotFoundError, PushPayError
from pushpay.common.logging import logger, trace_id_ctx
from pushpay.common.metrics import webhooks_total
from pushpay.services.notification.service import WebSocketHub
from pushpay.services.paypack.signature import SIGNATURE_HEADER
from pushpay.services.payments.schemas import (
    InitiatePaymentRequest,
    InitiatePaymentResponse,
    PaymentStatusResponse,
)
from pushpay.services.payments.service import PaymentService


router = APIRouter(prefix="/api")
ws_router = APIRouter()


def _service(request: Request) -> PaymentService:
    return request.app.state.payment_service


@router.post("/initiate-payment", response_model=InitiatePaymentResponse)
async def initiate_payment(
    req: InitiatePaymentRequest,
    request: Request,
    x_correlation_id: str | None = Header(default=None),
):
    """Create a PENDING payment and trigger the USSD prompt on the payer's phone."""

    if x_correlation_id:
        trace_id_ctx.set(x_correlation_id)
    payment = await _service(request).initiate(req.phone_number, req.amount)
    return InitiatePaymentResponse(payment_id=payment.id)


@router.post("/webhook")
async def paypack_webhook(request: Request):
    """Apply a signed Paypack callback. The body is read as raw bytes for verification."""

    signature = request.headers.get(SIGNATURE_HEADER)
    raw_body = await request.body()
    try:
        await _service(request).handle_webhook(signature, raw_body)
    except NotFoundError:
        webhooks_total.labels(outcome="not_found").inc()
        raise
    return {"ok": True}


@router.get("/payments/{payment_id}", response_model=PaymentStatusResponse)
def get_payment(payment_id: str, request: Request):
    """Fetch current status for one payment."""

    payment = _service(request).get_payment(payment_id)
    if payment is None:
        raise NotFoundError("payment not found", details={"payment_id": payment_id})
    return PaymentStatusResponse(
        payment_id=payment.id,
        status=payment.status,
        external_ref=payment.external_ref,
        amount=payment.amount,
    )


@ws_router.websocket("/ws")
async def payment_updates(websocket: WebSocket):
    """Register interest in payments and receive their terminal status.

    Client messages: `{"event": "registerPayment", "paymentId": "..."}`. A
    payment that already settled is pushed right after the `registered` ack.
    """

    hub: WebSocketHub = websocket.app.state.hub
    correlator = websocket.app.state.payment_service.correlator
    channel_id = await hub.connect(websocket)
    try:
        await websocket.send_json({"event": "connected", "channelId": channel_id})
        while True:
            try:
                message = await websocket.receive_json()
            except (KeyError, TypeError, ValueError):
                message = None
            if not isinstance(message, dict):
                message = {}
            payment_id = message.get("paymentId")
            if message.get("event") != "registerPayment" or not payment_id:
                await websocket.send_json({"event": "error", "error": "unsupported message"})
                continue
            payment_id = str(payment_id)
            await correlator.register(payment_id, channel_id)
            await websocket.send_json({"event": "registered", "paymentId": payment_id})
            await correlator.push_if_terminal(payment_id)
    except WebSocketDisconnect:
        pass
    finally:
        await correlator.unregister_channel(channel_id)
        await hub.disconnect(channel_id)


def register_error_handlers(app: FastAPI) -> None:
    """Translate the error taxonomy into JSON responses."""

    @app.exception_handler(PushPayError)
    async def _pushpay_error(_: Request, exc: PushPayError):
        if exc.status_code >= 500:
            logger.error("request_failed code=%s error=%s", exc.code, exc.message)
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(RequestValidationError)
    async def _request_validation_error(_: Request, exc: RequestValidationError):
        # Rejected input is not echoed back; it may not even be JSON-encodable (NaN, Infinity).
        errors = [{k: v for k, v in error.items() if k not in ("input", "ctx")} for error in exc.errors()]
        return JSONResponse(
            status_code=400,
            content={
                "error": "Invalid request payload.",
                "code": "INVALID_PAYLOAD",
                "details": jsonable_encoder(errors),
            },
        )

    @app.exception_handler(Exception)
    async def _unexpected_error(_: Request, exc: Exception):
        logger.exception("request_unexpected_error error_type=%s", type(exc).__name__)
        return JSONResponse(status_code=500, content=InternalError("Internal server error.").to_dict())
