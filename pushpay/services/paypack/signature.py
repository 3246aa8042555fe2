"""Webhook signature verification.

Paypack signs the exact request body with HMAC-SHA256 and sends the base64
digest in `x-paypack-signature`. Verification must run on the bytes as they
came off the wire, before any JSON parsing.
"""

import base64
import hashlib
import hmac

from pushpay.common.errors import SignatureError
from pushpay.common.logging import logger
from pushpay.common.metrics import webhooks_total


SIGNATURE_HEADER = "x-paypack-signature"


def compute_signature(secret: str, raw_body: bytes) -> bytes:
    """Base64 HMAC-SHA256 of `raw_body`, as ASCII bytes."""

    digest = hmac.new(secret.encode("utf-8"), raw_body, hashlib.sha256).digest()
    return base64.b64encode(digest)


class WebhookVerifier:
    def __init__(self, secret: str, log_signature_values: bool = False) -> None:
        self._secret = secret
        self._log_values = log_signature_values

    def verify(self, signature: str | None, raw_body: bytes) -> bool:
        """Return True for an authentic body, raise `SignatureError` otherwise."""

        if not signature:
            webhooks_total.labels(outcome="missing_signature").inc()
            logger.warning("webhook_signature_missing header=%s", SIGNATURE_HEADER)
            raise SignatureError("Missing webhook signature.")

        try:
            expected = compute_signature(self._secret, raw_body)
            received = signature.encode("utf-8")
        except Exception as exc:
            webhooks_total.labels(outcome="verification_error").inc()
            logger.error("webhook_signature_verification_error error_type=%s", type(exc).__name__)
            raise SignatureError("Could not verify webhook signature.") from exc

        if len(received) != len(expected) or not hmac.compare_digest(received, expected):
            webhooks_total.labels(outcome="invalid_signature").inc()
            logger.warning("webhook_signature_invalid received_length=%s", len(received))
            if self._log_values:
                logger.debug(
                    "webhook_signature_values received=%s expected=%s",
                    signature,
                    expected.decode("ascii"),
                )
            raise SignatureError("Invalid webhook signature.")
        return True
