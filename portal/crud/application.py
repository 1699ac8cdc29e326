from __future__ import annotations

from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from portal.crud.base import BaseCRUD
from portal.models.application import Application
from portal.models.base import utcnow

applications: BaseCRUD[Application, dict] = BaseCRUD(Application)


async def get_latest_by_email(session: AsyncSession, *, email: str) -> Application | None:
    stmt = (
        select(Application)
        .where(Application.email == email)
        .order_by(Application.created_at.desc())
        .limit(1)
    )
    res = await session.execute(stmt)
    return res.scalar_one_or_none()


async def mark_payment_pending(session: AsyncSession, *, application_id: UUID, reference: str) -> bool:
    """Link an application to a freshly initiated charge.

    A paid application keeps its status and reference.
    """

    stmt = (
        update(Application)
        .where(Application.id == application_id, Application.payment_status != "paid")
        .values(payment_reference=reference, payment_status="pending", updated_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    res = await session.execute(stmt)
    return res.rowcount > 0


async def mark_paid(
    session: AsyncSession,
    *,
    reference: str,
    application_id: UUID | None = None,
) -> int:
    """Flip an application to paid.

    Matches by id when the attempt recorded one, otherwise by payment_reference.
    Returns the number of rows changed.
    """

    stmt = update(Application).where(Application.payment_status != "paid")
    if application_id is not None:
        stmt = stmt.where(Application.id == application_id)
    else:
        stmt = stmt.where(Application.payment_reference == reference)

    stmt = stmt.values(
        payment_status="paid",
        payment_reference=reference,
        updated_at=utcnow(),
    ).execution_options(synchronize_session=False)

    res = await session.execute(stmt)
    return int(res.rowcount or 0)
