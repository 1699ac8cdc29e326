from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from portal.crud import application as application_crud
from portal.exceptions import PortalError
from portal.models.application import Application
from portal.schemas.application import ApplicationSubmit
from portal.services.phone import normalize_phone

logger = logging.getLogger("portal.applications")


def _millis() -> int:
    return int(time.time() * 1000)


def _is_duplicate_email(exc: IntegrityError) -> bool:
    message = str(exc.orig).lower()
    return "email" in message and ("unique" in message or "duplicate" in message)


def disambiguate_email(email: str, project_name: str) -> str:
    local, _, domain = email.partition("@")
    return f"{local or project_name}+{_millis()}@{domain or 'application.com'}"


@dataclass(frozen=True)
class ApplicationDefaults:
    project_name: str = "portal"
    application_fee: float = 160


@dataclass
class SubmitResult:
    application: Application
    created: bool


class ApplicationService:
    def __init__(self, *, defaults: ApplicationDefaults | None = None) -> None:
        self._defaults = defaults or ApplicationDefaults()

    async def submit_application(
        self,
        session: AsyncSession,
        payload: ApplicationSubmit,
        *,
        ip_address: str = "",
        user_agent: str = "",
    ) -> SubmitResult:
        """Store an application, idempotent by email.

        A caller-supplied email that already exists returns the existing row.
        If that row cannot be found the insert is retried once with a
        disambiguated address.
        """

        if not payload.phone:
            raise PortalError(400, "Missing required field: phone")

        phone = normalize_phone(payload.phone)
        if phone is None:
            raise PortalError(400, "Invalid phone number. Use 07XXXXXXXX or 254XXXXXXXXX")

        normalized_email = (payload.email or "").strip().lower()
        email = normalized_email or f"{self._defaults.project_name}+{_millis()}@application.com"

        full_name = (payload.full_name or "").strip() or payload.user_id or "Applicant"

        project_data: dict[str, Any] = {
            **payload.extra_data,
            "userId": payload.user_id or "guest-user",
            "activationFee": self._defaults.application_fee,
            "submittedAt": datetime.now(timezone.utc).isoformat(),
            "jobTitle": payload.job_title,
        }

        row = {
            "project_name": self._defaults.project_name,
            "full_name": full_name,
            "phone": phone,
            "job_title": payload.job_title,
            "user_id": payload.user_id,
            "project_data": project_data,
            "payment_reference": payload.payment_reference,
            "payment_status": "unpaid",
            "payment_amount": self._defaults.application_fee,
            "ip_address": ip_address,
            "user_agent": user_agent[:512],
        }

        try:
            try:
                return SubmitResult(await self._insert(session, row, email=email), created=True)
            except IntegrityError as exc:
                await session.rollback()
                if not _is_duplicate_email(exc):
                    raise

            if normalized_email:
                existing = await application_crud.get_latest_by_email(session, email=email)
                if existing is not None:
                    logger.info("application_exists application_id=%s", existing.id)
                    return SubmitResult(existing, created=False)

            retry_email = disambiguate_email(email, self._defaults.project_name)
            logger.info("application_retry_disambiguated email=%s", retry_email)
            return SubmitResult(await self._insert(session, row, email=retry_email), created=True)
        except SQLAlchemyError as exc:
            await session.rollback()
            logger.exception("application_insert_failed phone=%s", phone)
            raise PortalError(500, "Failed to save application", error=str(exc)) from exc

    async def _insert(self, session: AsyncSession, row: dict[str, Any], *, email: str) -> Application:
        app = await application_crud.applications.create(session, obj_in={**row, "email": email})
        await session.commit()
        logger.info("application_created application_id=%s", app.id)
        return app
