from __future__ import annotations

from uuid import UUID

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from portal.crud.base import BaseCRUD
from portal.models.base import utcnow
from portal.models.interview_booking import InterviewBooking

interview_bookings: BaseCRUD[InterviewBooking, dict] = BaseCRUD(InterviewBooking)


async def confirm_booking(session: AsyncSession, *, booking_id: UUID) -> bool:
    """Mark a booking as paid for. Only bookings awaiting payment move."""

    stmt = (
        update(InterviewBooking)
        .where(InterviewBooking.id == booking_id, InterviewBooking.status == "pending_payment")
        .values(status="confirmed", updated_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    res = await session.execute(stmt)
    return res.rowcount > 0
