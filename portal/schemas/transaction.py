from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import Field

from portal.schemas.common import ResponseModel


class TransactionRow(ResponseModel):
    payment_id: UUID
    checkout_request_id: str
    purpose: str
    payment_status: str
    amount: float
    phone_number: str
    user_id: str | None = None
    mpesa_receipt: str | None = None
    payment_created_at: datetime
    payment_updated_at: datetime

    application_id: UUID | None = None
    application_full_name: str | None = None
    application_email: str | None = None
    application_job_title: str | None = None
    application_payment_status: str | None = None

    interview_booking_id: UUID | None = None
    interview_company: str | None = None
    interview_position: str | None = None
    interview_type: str | None = None
    interview_at: datetime | None = None


class TransactionListResponse(ResponseModel):
    success: bool = True
    data: list[TransactionRow]
    count: int
    page: int
    page_size: int = Field(alias="pageSize")
