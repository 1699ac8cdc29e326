from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Integer, Numeric, String, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, utcnow

PAYMENT_STATUSES = ("pending", "success", "failed", "cancelled")
TERMINAL_STATUSES = frozenset({"success", "failed", "cancelled"})


class PaymentAttempt(Base):
    __tablename__ = "payment_attempts"
    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'success', 'failed', 'cancelled')",
            name="ck_payment_attempts_status",
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    checkout_request_id: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)

    application_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, ForeignKey("applications.id", ondelete="SET NULL"), nullable=True)
    interview_booking_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, ForeignKey("interview_bookings.id", ondelete="SET NULL"), nullable=True)
    user_id: Mapped[str | None] = mapped_column(String(100), nullable=True)

    purpose: Mapped[str] = mapped_column(String(30), nullable=False, default="unknown", server_default="unknown")
    phone_number: Mapped[str] = mapped_column(String(20), nullable=False)
    amount: Mapped[float] = mapped_column(Numeric(12, 2, asdecimal=False), nullable=False)

    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending", server_default="pending")

    # Provider-reported outcome details, filled in on reconciliation.
    result_code: Mapped[int | None] = mapped_column(Integer, nullable=True)
    result_description: Mapped[str | None] = mapped_column(String(255), nullable=True)
    mpesa_receipt: Mapped[str | None] = mapped_column(String(50), nullable=True)
    transaction_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow, server_default=func.now())

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES
