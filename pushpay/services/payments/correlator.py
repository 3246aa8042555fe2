"""Correlates Paypack callbacks with payments and their waiting clients.

The registry is the only shared mutable structure here. Its pop is atomic, so
when two deliveries of the same webhook race, at most one of them finds a
channel to push to.
"""

import asyncio
from dataclasses import dataclass
from datetime import datetime, timezone

from pushpay.common.errors import NotFoundError
from pushpay.common.logging import external_ref_ctx, logger, payment_id_ctx
from pushpay.common.metrics import notifications_total, payment_e2e_seconds
from pushpay.common.state_machine import TERMINAL_STATES, terminal_status_for
from pushpay.services.notification.service import Notifier
from pushpay.services.payments.models import Payment
from pushpay.services.payments.repository import PaymentStore


class NotificationRegistry:
    """payment_id -> channel_id, guarded by one lock."""

    def __init__(self) -> None:
        self._channels: dict[str, str] = {}
        self._lock = asyncio.Lock()

    async def set(self, payment_id: str, channel_id: str) -> None:
        async with self._lock:
            self._channels[payment_id] = channel_id

    async def pop(self, payment_id: str) -> str | None:
        async with self._lock:
            return self._channels.pop(payment_id, None)

    async def get(self, payment_id: str) -> str | None:
        async with self._lock:
            return self._channels.get(payment_id)

    async def discard_channel(self, channel_id: str) -> list[str]:
        """Drop every registration pointing at `channel_id`; returns the payment ids."""

        async with self._lock:
            payment_ids = [pid for pid, cid in self._channels.items() if cid == channel_id]
            for payment_id in payment_ids:
                del self._channels[payment_id]
            return payment_ids

    def __len__(self) -> int:
        return len(self._channels)


def _status_event(payment_id: str, status: str) -> dict[str, str]:
    return {"event": "payment:update", "paymentId": payment_id, "status": status}


@dataclass(frozen=True)
class Resolution:
    payment_id: str
    status: str
    previous_status: str
    notified_channel: str | None


class PaymentCorrelator:
    def __init__(self, store: PaymentStore, registry: NotificationRegistry, notifier: Notifier) -> None:
        self.store = store
        self.registry = registry
        self.notifier = notifier

    async def register(self, payment_id: str, channel_id: str) -> None:
        """Record that `channel_id` waits on `payment_id`; the latest caller wins."""

        await self.registry.set(payment_id, channel_id)
        logger.info("payment_channel_registered payment_id=%s channel_id=%s", payment_id, channel_id)

    async def push_if_terminal(self, payment_id: str) -> str | None:
        """Deliver a status that settled before the client registered.

        Call after `register`. The registration is popped, so a webhook racing
        this call and this call cannot both push.
        """

        payment = self.store.get(payment_id)
        if payment is None or payment.status not in TERMINAL_STATES:
            return None
        channel_id = await self.registry.pop(payment_id)
        if channel_id is not None:
            logger.info("payment_late_registration payment_id=%s status=%s", payment_id, payment.status)
            await self.notifier.notify(channel_id, _status_event(payment_id, payment.status))
        return channel_id

    async def unregister_channel(self, channel_id: str) -> None:
        payment_ids = await self.registry.discard_channel(channel_id)
        if payment_ids:
            logger.info("payment_channel_released channel_id=%s payments=%s", channel_id, payment_ids)

    async def resolve_and_notify(self, external_ref: str, upstream_status: str) -> Resolution:
        """Apply a Paypack outcome to its payment, then push it to the waiting client.

        The store write always lands before the push, so a client that polls
        after receiving the event already reads the terminal status.
        """

        external_ref_ctx.set(external_ref)
        payment = self.store.find_by_external_ref(external_ref)
        if payment is None:
            logger.warning("webhook_payment_not_found ref=%s", external_ref)
            raise NotFoundError(f"Payment with ref {external_ref} not found.", details={"ref": external_ref})

        payment_id_ctx.set(payment.id)
        new_status = terminal_status_for(upstream_status)
        updated, previous_status = self.store.mark_terminal(payment.id, new_status)
        logger.info(
            "payment_status_updated payment_id=%s from=%s to=%s upstream_status=%s",
            payment.id,
            previous_status,
            new_status,
            upstream_status,
        )
        if previous_status != new_status:
            self._observe_terminal_e2e(updated, new_status)

        channel_id = await self.registry.pop(payment.id)
        if channel_id is None:
            notifications_total.labels(outcome="dropped").inc()
            logger.info("notification_skipped payment_id=%s reason=no_registration", payment.id)
        else:
            await self.notifier.notify(channel_id, _status_event(payment.id, new_status))
        return Resolution(
            payment_id=payment.id,
            status=new_status,
            previous_status=previous_status,
            notified_channel=channel_id,
        )

    def _observe_terminal_e2e(self, payment: Payment, terminal_state: str) -> None:
        if payment.created_at is None:
            return
        created_at = payment.created_at
        if created_at.tzinfo is None:
            created_at = created_at.replace(tzinfo=timezone.utc)
        elapsed = max(0.0, (datetime.now(timezone.utc) - created_at).total_seconds())
        payment_e2e_seconds.labels(terminal_state=terminal_state).observe(elapsed)
