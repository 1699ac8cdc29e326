from __future__ import annotations

import hmac
import logging
import re

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from portal.api.deps import get_settings
from portal.config import Settings
from portal.crud.payment_attempt import list_transactions
from portal.database import get_db
from portal.exceptions import PortalError
from portal.schemas.transaction import TransactionListResponse, TransactionRow


logger = logging.getLogger("portal.api")

router = APIRouter(tags=["transactions"])

MAX_PAGE_SIZE = 200
_BEARER_RE = re.compile(r"^Bearer\s+(.+)$", re.IGNORECASE)


def _admin_token(request: Request) -> str:
    header = request.headers.get("x-admin-token", "").strip()
    if header:
        return header

    match = _BEARER_RE.match(request.headers.get("authorization", ""))
    return match.group(1).strip() if match else ""


def require_admin(request: Request, settings: Settings = Depends(get_settings)) -> None:
    """Gate on TRANSACTIONS_ADMIN_TOKEN.

    Production refuses to serve without a configured token. Elsewhere the
    check applies only when a token is configured.
    """

    expected = settings.transactions_admin_token
    if settings.is_production and not expected:
        logger.error("transactions_admin_token_missing")
        raise PortalError(500, "Server misconfigured")

    if expected and not hmac.compare_digest(_admin_token(request).encode(), expected.encode()):
        raise PortalError(401, "Unauthorized")


def _positive_int(raw: str | None, fallback: int) -> int:
    try:
        value = int(str(raw))
    except (TypeError, ValueError):
        return fallback
    return value if value > 0 else fallback


@router.get(
    "/transactions",
    response_model=TransactionListResponse,
    dependencies=[Depends(require_admin)],
)
async def list_transactions_endpoint(
    page: str | None = Query(None),
    page_size: str | None = Query(None, alias="pageSize"),
    q: str | None = Query(None, description="Search: checkout id, phone, company, position, email, job title"),
    purpose: str | None = Query(None),
    status: str | None = Query(None, description="Payment attempt status"),
    session: AsyncSession = Depends(get_db),
) -> TransactionListResponse:
    page_num = _positive_int(page, 1)
    size = min(_positive_int(page_size, 25), MAX_PAGE_SIZE)

    try:
        rows, total = await list_transactions(
            session,
            q=(q or "").strip() or None,
            purpose=(purpose or "").strip() or None,
            status=(status or "").strip() or None,
            page=page_num,
            page_size=size,
        )
    except SQLAlchemyError as exc:
        logger.exception("transactions_query_failed")
        raise PortalError(500, "Failed to load transactions", error=str(exc)) from exc

    return TransactionListResponse(
        data=[TransactionRow.model_validate(r) for r in rows],
        count=total,
        page=page_num,
        page_size=size,
    )
