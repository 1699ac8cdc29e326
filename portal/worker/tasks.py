from __future__ import annotations

import asyncio
import logging
from datetime import timedelta

from portal.config import Settings, settings
from portal.crud import payment_attempt as attempt_crud
from portal.database import build_engine, build_sessionmaker
from portal.services.payment_service import PaymentService
from portal.services.swiftpay import SwiftPayClient
from portal.worker.celery_app import celery_app

logger = logging.getLogger("portal.worker")


async def reconcile_one(session_factory, service: PaymentService, checkout_request_id: str) -> str | None:
    """Run the status poller's reconciliation for one checkout id.

    Returns the stored status afterwards, or None if no attempt exists.
    """

    async with session_factory() as session:
        attempt = await attempt_crud.get_by_checkout_id(session, checkout_request_id=checkout_request_id)
        if attempt is None:
            return None
        attempt = await service.reconcile(session, attempt)
        return attempt.status


async def reconcile_stale(session_factory, service: PaymentService, *, older_than: timedelta) -> int:
    async with session_factory() as session:
        return await service.reconcile_stale(session, older_than=older_than)


async def _run(fn, *args, config: Settings, **kwargs):
    engine = build_engine(config.database_url)
    try:
        service = PaymentService(SwiftPayClient.from_settings(config))
        return await fn(build_sessionmaker(engine), service, *args, **kwargs)
    finally:
        await engine.dispose()


@celery_app.task(name="portal.reconcile_payment")
def reconcile_payment(checkout_request_id: str) -> str | None:
    status = asyncio.run(_run(reconcile_one, checkout_request_id, config=settings))
    logger.info("reconcile_payment checkout_id=%s status=%s", checkout_request_id, status)
    return status


@celery_app.task(name="portal.reconcile_stale_payments")
def reconcile_stale_payments() -> int:
    moved = asyncio.run(
        _run(
            reconcile_stale,
            config=settings,
            older_than=timedelta(minutes=settings.reconcile_stale_after_minutes),
        )
    )
    logger.info("reconcile_stale_payments moved=%s", moved)
    return moved
