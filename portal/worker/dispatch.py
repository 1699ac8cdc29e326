from __future__ import annotations

import logging

from portal.config import settings

logger = logging.getLogger("portal.worker")


def enqueue_reconcile_payment(*, checkout_request_id: str, countdown: int = 60) -> None:
    """Schedule a status check for a freshly initiated payment.

    A no-op unless ``CELERY_ENABLED`` is set. Enqueue failures are logged and
    never reach the caller: the webhook and the client poll still reconcile.
    """

    if not settings.celery_enabled:
        return

    try:
        # Imported lazily so the API starts without a reachable broker.
        from portal.worker.tasks import reconcile_payment

        reconcile_payment.apply_async(args=[checkout_request_id], countdown=countdown)
    except Exception:
        logger.exception(
            "Failed to enqueue reconcile_payment task (checkout_request_id=%s)",
            checkout_request_id,
        )
