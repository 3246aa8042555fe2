"""Payment persistence model.

One row per initiated cash-in. `external_ref` stays NULL until Paypack accepts
the request and is unique once set.
"""

from datetime import datetime, timezone
from uuid import uuid4

from sqlalchemy import DateTime, Float, String, func
from sqlalchemy.orm import Mapped, mapped_column

from pushpay.common.db import Base
from pushpay.common.state_machine import PENDING


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Payment(Base):
    """Current state of one cash-in."""

    __tablename__ = "payments"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: str(uuid4()))
    amount: Mapped[float] = mapped_column(Float)
    phone_number: Mapped[str] = mapped_column(String(16))
    status: Mapped[str] = mapped_column(String, index=True, default=PENDING, server_default=PENDING)
    external_ref: Mapped[str | None] = mapped_column(String, unique=True, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, server_default=func.now(), onupdate=_utcnow
    )
