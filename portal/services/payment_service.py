from __future__ import annotations

import asyncio
import logging
import time
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from portal.crud import application as application_crud
from portal.crud import interview_booking as booking_crud
from portal.crud import payment_attempt as attempt_crud
from portal.exceptions import PortalError, ProviderError
from portal.models.payment_attempt import PaymentAttempt
from portal.schemas.payment import (
    CallbackAck,
    InitiatePaymentData,
    InitiatePaymentRequest,
    PaymentCallback,
    PaymentStatusPayload,
)
from portal.services.phone import normalize_phone
from portal.services.swiftpay import SwiftPayClient
from portal.worker import dispatch

logger = logging.getLogger("portal.payments")

SUCCESS_CODE = 0
CANCELLED_CODES = frozenset({1, 1031, 1032})
# The provider sends 1037 when the STK prompt times out; a final callback follows.
TIMEOUT_CODE = 1037

# M-Pesa reports TransactionDate in East Africa Time.
EAT = timezone(timedelta(hours=3))

INTERVIEW_PURPOSES = frozenset({"interview", "interview_booking"})
APPLICATION_PURPOSE = "application"

# Column widths of payment_attempts / interview_bookings.
USER_ID_MAX = 100
RESULT_DESCRIPTION_MAX = 255
RECEIPT_MAX = 50
BOOKING_TEXT_MAX = 255
INTERVIEW_TYPE_MAX = 50


def parse_response_code(raw: Any) -> int | None:
    if raw is None or isinstance(raw, bool):
        return None
    try:
        return int(str(raw).strip())
    except ValueError:
        return None


def map_response_code(code: int | None) -> str | None:
    """Map a provider ResponseCode to a local attempt status.

    Returns None for the timeout notification, which must not change state.
    """

    if code == SUCCESS_CODE:
        return "success"
    if code in CANCELLED_CODES:
        return "cancelled"
    if code == TIMEOUT_CODE:
        return None
    return "failed"


def parse_transaction_date(raw: str | None) -> datetime | None:
    if not raw or len(raw) != 14 or not raw.isdigit():
        return None
    try:
        return datetime.strptime(raw, "%Y%m%d%H%M%S").replace(tzinfo=EAT)
    except ValueError:
        logger.warning("transaction_date_unparsable raw=%s", raw)
        return None


def client_status(status: str) -> str:
    """Collapse the stored status into the client-facing enum."""

    if status == "success":
        return "SUCCESS"
    if status in ("failed", "cancelled"):
        return "FAILED"
    return "PENDING"


def resolve_purpose(purpose: str | None, *, application_id: Any, interview_booking_id: Any) -> str:
    """Tag an attempt as application, interview_booking or unknown.

    An unrecognised explicit purpose falls back to inference from the ids.
    """

    tag = (purpose or "").strip().lower()
    if tag in INTERVIEW_PURPOSES:
        return "interview_booking"
    if tag == APPLICATION_PURPOSE:
        return APPLICATION_PURPOSE
    if interview_booking_id:
        return "interview_booking"
    if application_id:
        return APPLICATION_PURPOSE
    return "unknown"


def proxy_outcome(payload: dict[str, Any] | None) -> str | None:
    """Terminal status confirmed by the verification proxy, if any."""

    if not payload:
        return None
    payment = payload.get("payment")
    if not isinstance(payment, dict):
        return None

    status = payment.get("status")
    if status == "success" and payload.get("success") is True:
        return "success"
    if status in ("failed", "cancelled"):
        return status
    return None


def _clip(value: str | None, limit: int) -> str | None:
    return value[:limit] if value else value


def _parse_uuid(value: str | None) -> UUID | None:
    if not value:
        return None
    try:
        return UUID(str(value))
    except ValueError:
        return None


@dataclass(frozen=True)
class PaymentDefaults:
    default_amount: float = 250
    project_name: str = "portal"
    reconcile_delay_seconds: int = 60


@dataclass
class ReconcileOutcome:
    transitioned: bool
    attempt: PaymentAttempt | None

    @property
    def status(self) -> str | None:
        return self.attempt.status if self.attempt is not None else None


class PaymentService:
    """Payment initiation and reconciliation.

    Charge initiation with the provider is authoritative. Every database write
    made after the provider accepted a charge is best-effort: failures are
    logged and rolled back, never surfaced to the caller.
    """

    def __init__(self, swiftpay: SwiftPayClient, *, defaults: PaymentDefaults | None = None) -> None:
        self.swiftpay = swiftpay
        self._defaults = defaults or PaymentDefaults()

    # -- initiation -------------------------------------------------------

    async def initiate_payment(self, session: AsyncSession, payload: InitiatePaymentRequest) -> InitiatePaymentData:
        if not payload.phone_number:
            raise PortalError(400, "Phone number is required")

        phone = normalize_phone(payload.phone_number)
        if phone is None:
            raise PortalError(400, "Invalid phone number format. Use 07XXXXXXXX or 254XXXXXXXXX")

        amount = payload.amount if payload.amount is not None else self._defaults.default_amount
        if amount <= 0:
            raise PortalError(400, "Amount must be greater than zero")

        if not self.swiftpay.configured:
            logger.error("swiftpay_not_configured")
            raise PortalError(500, "Server misconfigured")

        logger.info("initiate_payment phone=%s amount=%s purpose=%s", phone, amount, payload.purpose)

        try:
            result = await self.swiftpay.stk_push(phone_number=phone, amount=amount)
        except ProviderError as exc:
            raise PortalError(502, str(exc)) from exc

        if not result.accepted:
            logger.error("stk_push_rejected status=%s payload=%s", result.status_code, result.payload)
            raise PortalError(
                400,
                str(result.payload.get("message") or "Payment initiation failed"),
                error=result.payload,
            )

        checkout_id = result.checkout_id or f"{self._defaults.project_name.upper()}-{int(time.time() * 1000)}"
        purpose = resolve_purpose(
            payload.purpose,
            application_id=payload.application_id,
            interview_booking_id=payload.interview_booking_id,
        )

        application_id = await self._existing_application_id(session, payload.application_id)
        booking_id = await self._resolve_booking(session, payload, purpose)

        await self._record_attempt(
            session,
            checkout_id=checkout_id,
            application_id=application_id,
            booking_id=booking_id,
            user_id=_clip(payload.user_id, USER_ID_MAX),
            purpose=purpose,
            phone=phone,
            amount=amount,
        )

        if application_id is not None:
            await self._link_application(session, application_id=application_id, checkout_id=checkout_id)

        try:
            # Publishing to the broker is blocking socket I/O; keep it off the event loop.
            await asyncio.to_thread(
                dispatch.enqueue_reconcile_payment,
                checkout_request_id=checkout_id,
                countdown=self._defaults.reconcile_delay_seconds,
            )
        except Exception:
            logger.exception("enqueue_reconcile_failed checkout_id=%s", checkout_id)

        return InitiatePaymentData(
            request_id=checkout_id,
            checkout_request_id=checkout_id,
            transaction_request_id=checkout_id,
        )

    async def _existing_application_id(self, session: AsyncSession, application_id: UUID | None) -> UUID | None:
        if application_id is None:
            return None
        try:
            app = await application_crud.applications.get(session, id=application_id)
        except SQLAlchemyError:
            logger.exception("application_lookup_failed application_id=%s", application_id)
            await session.rollback()
            return None
        if app is None:
            logger.warning("application_not_found application_id=%s", application_id)
            return None
        return app.id

    async def _resolve_booking(
        self,
        session: AsyncSession,
        payload: InitiatePaymentRequest,
        purpose: str,
    ) -> UUID | None:
        """Find the booking this payment funds, creating one for interview payments."""

        try:
            booking_uuid = _parse_uuid(payload.interview_booking_id)
            if booking_uuid is not None:
                booking = await booking_crud.interview_bookings.get(session, id=booking_uuid)
                if booking is not None:
                    return booking.id
                logger.warning("interview_booking_not_found booking_id=%s", booking_uuid)

            if purpose != "interview_booking":
                return None

            if payload.interview_at is None:
                logger.error("interview_booking_missing_interview_at user_id=%s", payload.user_id)
                return None

            booking = await booking_crud.interview_bookings.create(
                session,
                obj_in={
                    "user_id": _clip(payload.user_id, USER_ID_MAX) or f"guest-{uuid.uuid4().hex[:12]}",
                    "company": _clip(payload.interview_company, BOOKING_TEXT_MAX),
                    "position": _clip(payload.interview_position, BOOKING_TEXT_MAX),
                    "interview_type": _clip(payload.interview_type, INTERVIEW_TYPE_MAX),
                    "interview_at": payload.interview_at,
                    "status": "pending_payment",
                },
            )
            await session.commit()
            logger.info("interview_booking_created booking_id=%s", booking.id)
            return booking.id
        except SQLAlchemyError:
            logger.exception("interview_booking_failed")
            await session.rollback()
            return None

    async def _record_attempt(
        self,
        session: AsyncSession,
        *,
        checkout_id: str,
        application_id: UUID | None,
        booking_id: UUID | None,
        user_id: str | None,
        purpose: str,
        phone: str,
        amount: float,
    ) -> None:
        try:
            await attempt_crud.payment_attempts.create(
                session,
                obj_in={
                    "checkout_request_id": checkout_id,
                    "application_id": application_id,
                    "interview_booking_id": booking_id,
                    "user_id": user_id,
                    "purpose": purpose,
                    "phone_number": phone,
                    "amount": float(amount),
                    "status": "pending",
                },
            )
            await session.commit()
            logger.info("payment_attempt_created checkout_id=%s purpose=%s", checkout_id, purpose)
        except SQLAlchemyError:
            logger.exception("payment_attempt_insert_failed checkout_id=%s", checkout_id)
            await session.rollback()

    async def _link_application(self, session: AsyncSession, *, application_id: UUID, checkout_id: str) -> None:
        try:
            linked = await application_crud.mark_payment_pending(
                session,
                application_id=application_id,
                reference=checkout_id,
            )
            await session.commit()
            if not linked:
                logger.info("application_already_paid application_id=%s", application_id)
        except SQLAlchemyError:
            logger.exception("application_link_failed application_id=%s checkout_id=%s", application_id, checkout_id)
            await session.rollback()

    # -- reconciliation ---------------------------------------------------

    async def apply_outcome(
        self,
        session: AsyncSession,
        *,
        checkout_request_id: str,
        status: str,
        details: dict[str, Any] | None = None,
    ) -> ReconcileOutcome:
        """Record a terminal outcome reported by the webhook, the proxy or the worker.

        Only a pending attempt moves. The linked application is marked paid
        only by the call that moved the attempt to success.
        """

        attempt = await attempt_crud.get_by_checkout_id(session, checkout_request_id=checkout_request_id)

        transitioned = False
        if attempt is not None:
            transitioned = await attempt_crud.transition_status(
                session,
                checkout_request_id=checkout_request_id,
                new_status=status,
                details=details,
            )
            if transitioned and status == "success":
                await application_crud.mark_paid(
                    session,
                    reference=checkout_request_id,
                    application_id=attempt.application_id,
                )
                if attempt.interview_booking_id is not None:
                    await booking_crud.confirm_booking(session, booking_id=attempt.interview_booking_id)
        elif status == "success":
            # The attempt insert is best-effort; the application still carries the reference.
            await application_crud.mark_paid(session, reference=checkout_request_id)

        await session.commit()

        if attempt is not None:
            attempt = await attempt_crud.get_by_checkout_id(session, checkout_request_id=checkout_request_id)

        logger.info(
            "payment_outcome checkout_id=%s incoming=%s transitioned=%s stored=%s",
            checkout_request_id,
            status,
            transitioned,
            attempt.status if attempt is not None else None,
        )
        return ReconcileOutcome(transitioned=transitioned, attempt=attempt)

    async def handle_callback(self, session: AsyncSession, payload: PaymentCallback) -> CallbackAck:
        if not payload.transaction_id and not payload.checkout_request_id:
            logger.error("payment_callback_missing_ids")
            raise PortalError(400, "Invalid webhook data")

        code = parse_response_code(payload.response_code)
        logger.info(
            "payment_callback checkout_id=%s transaction_id=%s code=%s",
            payload.checkout_request_id,
            payload.transaction_id,
            code,
        )

        status = map_response_code(code)
        if status is None:
            return CallbackAck(status="received", message="Timeout webhook ignored")

        if not payload.checkout_request_id:
            logger.error("payment_callback_missing_checkout_id transaction_id=%s", payload.transaction_id)
            return CallbackAck(status="success", message="Webhook received without CheckoutRequestID")

        await self.apply_outcome(
            session,
            checkout_request_id=payload.checkout_request_id,
            status=status,
            details={
                "result_code": code,
                "result_description": _clip(payload.response_description, RESULT_DESCRIPTION_MAX),
                "mpesa_receipt": _clip(payload.transaction_receipt, RECEIPT_MAX),
                "transaction_date": parse_transaction_date(payload.transaction_date),
            },
        )
        return CallbackAck(status="success", message="Webhook processed successfully")

    async def reconcile(self, session: AsyncSession, attempt: PaymentAttempt) -> PaymentAttempt:
        """Ask the provider about a pending attempt and record a confirmed outcome."""

        if attempt.is_terminal:
            return attempt

        # Release the connection while the provider is queried; apply_outcome re-reads the row.
        await session.commit()

        proxy_payload = await self.swiftpay.verify_payment(attempt.checkout_request_id)
        status = proxy_outcome(proxy_payload)
        if status is None:
            return attempt

        outcome = await self.apply_outcome(session, checkout_request_id=attempt.checkout_request_id, status=status)
        return outcome.attempt or attempt

    async def check_status(self, session: AsyncSession, reference: str | None) -> PaymentStatusPayload:
        if not reference:
            raise PortalError(400, "Payment reference is required")

        try:
            attempt = await attempt_crud.get_by_checkout_id(session, checkout_request_id=reference)
            if attempt is None:
                # Unknown and in-flight references look the same to the caller.
                return PaymentStatusPayload(status="PENDING", message="Payment is still being processed")

            attempt = await self.reconcile(session, attempt)
        except SQLAlchemyError as exc:
            logger.exception("payment_status_failed reference=%s", reference)
            raise PortalError(500, "Failed to check payment status", error=str(exc)) from exc

        return PaymentStatusPayload(
            status=client_status(attempt.status),
            amount=attempt.amount,
            phone_number=attempt.phone_number,
            timestamp=attempt.updated_at,
        )

    async def reconcile_stale(
        self,
        session: AsyncSession,
        *,
        older_than: timedelta,
        limit: int = 100,
    ) -> int:
        """Reconcile pending attempts older than ``older_than``. Returns how many moved."""

        moved = 0
        for attempt in await attempt_crud.list_stale_pending(session, older_than=older_than, limit=limit):
            refreshed = await self.reconcile(session, attempt)
            if refreshed.is_terminal:
                moved += 1
        return moved
