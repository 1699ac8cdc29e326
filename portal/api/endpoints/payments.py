from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from portal.api.deps import get_payment_service
from portal.database import get_db
from portal.exceptions import PortalError
from portal.schemas.payment import (
    CallbackAck,
    InitiatePaymentRequest,
    InitiatePaymentResponse,
    PaymentCallback,
    PaymentStatusResponse,
)
from portal.services.payment_service import PaymentService


logger = logging.getLogger("portal.payments")

router = APIRouter(tags=["payments"])


@router.post("/initiate-payment", response_model=InitiatePaymentResponse)
async def initiate_payment_endpoint(
    payload: InitiatePaymentRequest,
    session: AsyncSession = Depends(get_db),
    service: PaymentService = Depends(get_payment_service),
) -> InitiatePaymentResponse:
    data = await service.initiate_payment(session, payload)
    return InitiatePaymentResponse(data=data)


@router.post("/payment-callback", response_model=CallbackAck)
async def payment_callback_endpoint(
    payload: PaymentCallback,
    session: AsyncSession = Depends(get_db),
    service: PaymentService = Depends(get_payment_service),
):
    """Provider webhook.

    Answers 200 for everything it can acknowledge, so the provider does not
    redeliver; 5xx is reserved for internal failures.
    """

    try:
        return await service.handle_callback(session, payload)
    except PortalError as exc:
        return JSONResponse(status_code=exc.status_code, content={"status": "error", "message": exc.message})
    except Exception as exc:
        logger.exception("payment_callback_failed checkout_id=%s", payload.checkout_request_id)
        return JSONResponse(
            status_code=500,
            content={
                "status": "error",
                "message": "Webhook received but processing failed",
                "error": str(exc),
            },
        )


@router.get("/payment-status", response_model=PaymentStatusResponse, response_model_exclude_none=True)
async def payment_status_endpoint(
    reference: str | None = Query(None, description="Checkout request id returned by initiate-payment"),
    session: AsyncSession = Depends(get_db),
    service: PaymentService = Depends(get_payment_service),
) -> PaymentStatusResponse:
    payment = await service.check_status(session, reference.strip() if reference else None)
    return PaymentStatusResponse(payment=payment)
