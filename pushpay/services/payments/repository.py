"""Payment store operations used by the initiate and webhook flows.

Writes are conditional updates so concurrent requests cannot break the
external_ref-set-once rule or move a payment out of a terminal state.
"""

from datetime import datetime, timezone

from sqlalchemy import or_, select, update
from sqlalchemy.exc import IntegrityError

from pushpay.common.db import Base
from pushpay.common.errors import StateConflictError
from pushpay.common.state_machine import PENDING, validate_transition
from pushpay.services.payments.models import Payment


class PaymentStore:
    def __init__(self, session_factory) -> None:
        self.session_factory = session_factory

    def create_schema(self) -> None:
        """Create missing tables on the database behind this store's sessions."""

        with self.session_factory() as db:
            Base.metadata.create_all(db.get_bind())

    def create_pending(self, amount: float, phone_number: str) -> Payment:
        with self.session_factory() as db:
            payment = Payment(amount=amount, phone_number=phone_number, status=PENDING)
            db.add(payment)
            db.commit()
            return payment

    def get(self, payment_id: str) -> Payment | None:
        with self.session_factory() as db:
            return db.get(Payment, payment_id)

    def find_by_external_ref(self, external_ref: str) -> Payment | None:
        with self.session_factory() as db:
            return db.execute(select(Payment).where(Payment.external_ref == external_ref)).scalar_one_or_none()

    def attach_external_ref(self, payment_id: str, external_ref: str) -> Payment:
        """Record the gateway reference once; re-attaching the same value is a no-op."""

        with self.session_factory() as db:
            try:
                result = db.execute(
                    update(Payment)
                    .where(
                        Payment.id == payment_id,
                        or_(Payment.external_ref.is_(None), Payment.external_ref == external_ref),
                    )
                    .values(external_ref=external_ref, updated_at=datetime.now(timezone.utc))
                )
                db.commit()
            except IntegrityError as exc:
                db.rollback()
                raise StateConflictError(
                    f"external reference {external_ref} already belongs to another payment",
                    details={"payment_id": payment_id, "external_ref": external_ref},
                ) from exc
            payment = db.get(Payment, payment_id)
            if result.rowcount != 1 or payment is None:
                raise StateConflictError(
                    f"payment {payment_id} is missing or already has a different external reference",
                    details={"payment_id": payment_id, "external_ref": external_ref},
                )
            return payment

    def mark_terminal(self, payment_id: str, new_status: str) -> tuple[Payment, str]:
        """Move a payment to a terminal state; returns the row and its previous status.

        The update is guarded on the status read, so a concurrent writer that got
        there first turns this call into a conflict rather than a silent overwrite.
        """

        with self.session_factory() as db:
            payment = db.get(Payment, payment_id)
            if payment is None:
                raise StateConflictError(f"payment {payment_id} disappeared", details={"payment_id": payment_id})
            from_status = payment.status
            try:
                validate_transition(from_status, new_status)
            except ValueError as exc:
                raise StateConflictError(
                    str(exc),
                    details={"payment_id": payment_id, "status": from_status, "requested": new_status},
                ) from exc

            result = db.execute(
                update(Payment)
                .where(Payment.id == payment_id, Payment.status == from_status)
                .values(status=new_status, updated_at=datetime.now(timezone.utc))
            )
            if result.rowcount != 1:
                db.rollback()
                current = db.get(Payment, payment_id)
                if current is not None and current.status == new_status:
                    return current, from_status
                raise StateConflictError(
                    f"concurrent status change for payment {payment_id}",
                    details={"payment_id": payment_id, "requested": new_status},
                )
            db.commit()
            db.refresh(payment)
            return payment, from_status
