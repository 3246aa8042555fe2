"""Paypack HTTP client: agent authentication and cash-in.

The client never touches local payment records; callers persist what it
returns. Every httpx failure is translated into the shared error taxonomy
before it leaves this module.
"""

import math
import re
import time
from typing import Any

import httpx

from pushpay.common.config import CommonSettings, PaypackCredentials
from pushpay.common.errors import AuthError, InternalError, ProviderError, PushPayError, ValidationError
from pushpay.common.logging import logger
from pushpay.common.metrics import cashin_latency_seconds, cashin_requests_total
from pushpay.services.paypack.schemas import AuthResponse, CashinResult
from pushpay.services.paypack.token_manager import TokenManager


AUTH_PATH = "/auth/agents/authorize"
CASHIN_PATH = "/transactions/cashin"


def _upstream_message(response: httpx.Response) -> tuple[str, Any]:
    """Pull a readable message and the raw body out of an error response."""

    try:
        body: Any = response.json()
    except ValueError:
        body = response.text
    message = None
    if isinstance(body, dict):
        message = body.get("message") or body.get("error")
    if not message:
        message = response.reason_phrase or f"HTTP {response.status_code}"
    return str(message), body


class PaypackClient:
    """Async Paypack API client with a process-wide token cache."""

    def __init__(
        self,
        credentials: PaypackCredentials,
        config: CommonSettings,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._credentials = credentials
        self._min_amount = config.paypack_min_amount
        self._phone_re = re.compile(config.paypack_phone_pattern, re.ASCII)
        self._webhook_mode = config.paypack_webhook_mode
        self._http = httpx.AsyncClient(
            base_url=config.paypack_base_url,
            headers={"Content-Type": "application/json", "Accept": "application/json"},
            timeout=config.paypack_timeout_seconds,
            transport=transport,
        )
        self.tokens = TokenManager(
            self.authenticate,
            skew_seconds=config.paypack_token_skew_seconds,
            refresh_timeout_seconds=config.paypack_refresh_timeout_seconds,
        )

    async def aclose(self) -> None:
        await self._http.aclose()

    def validate_cashin(self, phone_number: str, amount: float) -> None:
        """Reject input Paypack would refuse, before any network call."""

        if not math.isfinite(amount) or amount < self._min_amount:
            raise ValidationError(
                f"amount too small: payment amount must be at least {self._min_amount:g} RWF",
                code="INVALID_AMOUNT",
            )
        if not isinstance(phone_number, str) or not self._phone_re.fullmatch(phone_number):
            raise ValidationError(
                "bad phone format: must be a Rwandan mobile number 07XXXXXXXX",
                code="INVALID_PHONE",
            )

    async def authenticate(self) -> AuthResponse:
        """Exchange client credentials for an access token."""

        try:
            response = await self._http.post(
                AUTH_PATH,
                json={
                    "client_id": self._credentials.client_id.get_secret_value(),
                    "client_secret": self._credentials.client_secret.get_secret_value(),
                },
            )
        except httpx.HTTPError as exc:
            logger.error("paypack_auth_transport_error error=%s", exc)
            raise AuthError(f"Paypack authentication failed: {exc}") from exc

        if response.is_error:
            message, body = _upstream_message(response)
            logger.error("paypack_auth_rejected status=%s message=%s", response.status_code, message)
            raise AuthError(
                f"Paypack authentication failed: {message}",
                upstream_status=response.status_code,
                details=body,
            )
        try:
            return AuthResponse.model_validate(response.json())
        except ValueError as exc:
            raise AuthError("Paypack authentication returned an unreadable body.") from exc

    async def cashin(self, phone_number: str, amount: float) -> CashinResult:
        """Push a payment prompt to `phone_number` and return the accepted transaction."""

        self.validate_cashin(phone_number, amount)
        token = await self.tokens.get_valid_token()

        logger.info("paypack_cashin_started amount=%s number=%s", amount, phone_number)
        started = time.perf_counter()
        try:
            response = await self._http.post(
                CASHIN_PATH,
                json={"amount": amount, "number": phone_number},
                headers={"Authorization": f"Bearer {token}", "X-Webhook-Mode": self._webhook_mode},
            )
            if response.is_error:
                message, body = _upstream_message(response)
                if response.status_code == 401:
                    # Token revoked upstream; make the next call authenticate again.
                    self.tokens.invalidate()
                raise ProviderError(
                    f"Payment Provider Error: {message}",
                    upstream_status=response.status_code,
                    body=body,
                )
            result = CashinResult.model_validate(response.json())
        except PushPayError as exc:
            cashin_requests_total.labels(outcome="rejected").inc()
            logger.error("paypack_cashin_failed code=%s error=%s details=%s", exc.code, exc.message, exc.details)
            raise
        except httpx.HTTPError as exc:
            cashin_requests_total.labels(outcome="transport_error").inc()
            logger.error("paypack_cashin_transport_error error=%s", exc)
            raise ProviderError(f"Payment Provider Error: {exc}") from exc
        except Exception as exc:
            cashin_requests_total.labels(outcome="error").inc()
            logger.exception("paypack_cashin_unexpected_error")
            raise InternalError("An unexpected error occurred during cash-in.") from exc
        finally:
            cashin_latency_seconds.observe(max(0.0, time.perf_counter() - started))

        cashin_requests_total.labels(outcome="accepted").inc()
        logger.info("paypack_cashin_accepted ref=%s status=%s", result.external_ref, result.status)
        return result
