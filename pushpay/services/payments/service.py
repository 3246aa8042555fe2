"""Initiate and webhook flows.

Initiate: validate -> PENDING row -> Paypack cash-in -> record external_ref.
Webhook: verify raw bytes -> parse -> correlate and notify.
"""

import asyncio
import json

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.exc import OperationalError

from pushpay.common.errors import InternalError, ValidationError
from pushpay.common.logging import logger, payment_id_ctx
from pushpay.common.metrics import webhooks_total
from pushpay.services.paypack.client import PaypackClient
from pushpay.services.paypack.schemas import WebhookEvent
from pushpay.services.paypack.signature import WebhookVerifier
from pushpay.services.payments.correlator import PaymentCorrelator, Resolution
from pushpay.services.payments.models import Payment
from pushpay.services.payments.repository import PaymentStore


class PaymentService:
    """Wires the Paypack client, verifier, store and correlator together."""

    def __init__(
        self,
        store: PaymentStore,
        client: PaypackClient,
        verifier: WebhookVerifier,
        correlator: PaymentCorrelator,
        external_ref_write_attempts: int = 3,
    ) -> None:
        self.store = store
        self.client = client
        self.verifier = verifier
        self.correlator = correlator
        self.external_ref_write_attempts = max(1, external_ref_write_attempts)

    async def initiate(self, phone_number: str, amount: float) -> Payment:
        """Create a PENDING payment and ask Paypack to prompt the payer."""

        # Bad input must not leave an orphan PENDING row behind.
        self.client.validate_cashin(phone_number, amount)

        payment = self.store.create_pending(amount, phone_number)
        payment_id_ctx.set(payment.id)
        logger.info("payment_created payment_id=%s amount=%s", payment.id, amount)

        result = await self.client.cashin(phone_number, amount)
        return await self._record_external_ref(payment.id, result.external_ref)

    async def _record_external_ref(self, payment_id: str, external_ref: str) -> Payment:
        """Persist the gateway reference, retrying only this local write."""

        attempt = 1
        while True:
            try:
                payment = self.store.attach_external_ref(payment_id, external_ref)
            except OperationalError as exc:
                logger.warning(
                    "payment_ref_write_retry payment_id=%s ref=%s attempt=%s/%s error=%s",
                    payment_id,
                    external_ref,
                    attempt,
                    self.external_ref_write_attempts,
                    exc,
                )
                if attempt >= self.external_ref_write_attempts:
                    # Paypack already holds this transaction; reconciliation needs both ids.
                    logger.error("payment_ref_write_exhausted payment_id=%s ref=%s", payment_id, external_ref)
                    raise InternalError(
                        "Payment was accepted by the provider but could not be recorded.",
                        details={"payment_id": payment_id},
                    ) from exc
                await asyncio.sleep(0.1 * attempt)
                attempt += 1
                continue
            logger.info("payment_ref_recorded payment_id=%s ref=%s", payment_id, external_ref)
            return payment

    def get_payment(self, payment_id: str) -> Payment | None:
        return self.store.get(payment_id)

    async def handle_webhook(self, signature: str | None, raw_body: bytes) -> Resolution:
        """Authenticate a callback on its raw bytes, then apply it."""

        self.verifier.verify(signature, raw_body)
        try:
            event = WebhookEvent.model_validate(json.loads(raw_body))
        except (ValueError, PydanticValidationError) as exc:
            webhooks_total.labels(outcome="malformed").inc()
            logger.warning("webhook_payload_invalid error=%s", exc)
            raise ValidationError("Malformed webhook payload.", code="INVALID_PAYLOAD") from exc

        logger.info(
            "webhook_received kind=%s ref=%s status=%s",
            event.kind,
            event.data.ref,
            event.data.status,
        )
        resolution = await self.correlator.resolve_and_notify(event.data.ref, event.data.status)
        webhooks_total.labels(outcome="processed").inc()
        return resolution
