from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any

from sqlalchemy import func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from portal.crud.base import BaseCRUD
from portal.models.application import Application
from portal.models.base import utcnow
from portal.models.interview_booking import InterviewBooking
from portal.models.payment_attempt import TERMINAL_STATUSES, PaymentAttempt

payment_attempts: BaseCRUD[PaymentAttempt, dict] = BaseCRUD(PaymentAttempt)


async def get_by_checkout_id(session: AsyncSession, *, checkout_request_id: str) -> PaymentAttempt | None:
    stmt = (
        select(PaymentAttempt)
        .where(PaymentAttempt.checkout_request_id == checkout_request_id)
        .execution_options(populate_existing=True)
    )
    res = await session.execute(stmt)
    return res.scalar_one_or_none()


async def transition_status(
    session: AsyncSession,
    *,
    checkout_request_id: str,
    new_status: str,
    details: dict[str, Any] | None = None,
) -> bool:
    """Move a pending attempt to a terminal status.

    The WHERE clause only matches rows still in ``pending``, so a late webhook
    or poll can never rewrite a terminal status. Returns True if a row moved.
    """

    if new_status not in TERMINAL_STATUSES:
        raise ValueError(f"Invalid terminal status: {new_status}")

    values: dict[str, Any] = {"status": new_status, "updated_at": utcnow()}
    for key, value in (details or {}).items():
        if value is not None and hasattr(PaymentAttempt, key):
            values[key] = value

    stmt = (
        update(PaymentAttempt)
        .where(
            PaymentAttempt.checkout_request_id == checkout_request_id,
            PaymentAttempt.status == "pending",
        )
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    res = await session.execute(stmt)
    return res.rowcount == 1


async def list_stale_pending(
    session: AsyncSession,
    *,
    older_than: timedelta,
    limit: int = 100,
) -> list[PaymentAttempt]:
    cutoff: datetime = utcnow() - older_than
    stmt = (
        select(PaymentAttempt)
        .where(PaymentAttempt.status == "pending", PaymentAttempt.created_at <= cutoff)
        .order_by(PaymentAttempt.created_at.asc())
        .limit(limit)
    )
    res = await session.execute(stmt)
    return list(res.scalars().all())


async def list_transactions(
    session: AsyncSession,
    *,
    q: str | None = None,
    purpose: str | None = None,
    status: str | None = None,
    page: int = 1,
    page_size: int = 25,
) -> tuple[list[dict[str, Any]], int]:
    """Return (rows, total) for the admin transactions explorer.

    Each row joins the attempt with its application and interview booking.
    """

    stmt = (
        select(
            PaymentAttempt.id.label("payment_id"),
            PaymentAttempt.checkout_request_id,
            PaymentAttempt.purpose,
            PaymentAttempt.status.label("payment_status"),
            PaymentAttempt.amount,
            PaymentAttempt.phone_number,
            PaymentAttempt.user_id,
            PaymentAttempt.mpesa_receipt,
            PaymentAttempt.created_at.label("payment_created_at"),
            PaymentAttempt.updated_at.label("payment_updated_at"),
            Application.id.label("application_id"),
            Application.full_name.label("application_full_name"),
            Application.email.label("application_email"),
            Application.job_title.label("application_job_title"),
            Application.payment_status.label("application_payment_status"),
            InterviewBooking.id.label("interview_booking_id"),
            InterviewBooking.company.label("interview_company"),
            InterviewBooking.position.label("interview_position"),
            InterviewBooking.interview_type.label("interview_type"),
            InterviewBooking.interview_at.label("interview_at"),
        )
        .select_from(PaymentAttempt)
        .outerjoin(Application, Application.id == PaymentAttempt.application_id)
        .outerjoin(InterviewBooking, InterviewBooking.id == PaymentAttempt.interview_booking_id)
    )

    if purpose:
        stmt = stmt.where(PaymentAttempt.purpose == purpose)

    if status:
        stmt = stmt.where(PaymentAttempt.status == status)

    if q:
        stmt = stmt.where(
            or_(
                PaymentAttempt.checkout_request_id.icontains(q, autoescape=True),
                PaymentAttempt.phone_number.icontains(q, autoescape=True),
                InterviewBooking.company.icontains(q, autoescape=True),
                InterviewBooking.position.icontains(q, autoescape=True),
                Application.email.icontains(q, autoescape=True),
                Application.job_title.icontains(q, autoescape=True),
            )
        )

    count_stmt = select(func.count()).select_from(stmt.subquery())
    total = int((await session.execute(count_stmt)).scalar_one())

    stmt = (
        stmt.order_by(PaymentAttempt.created_at.desc(), PaymentAttempt.id.desc())
        .offset((page - 1) * page_size)
        .limit(page_size)
    )
    rows = (await session.execute(stmt)).mappings().all()
    return [dict(r) for r in rows], total
