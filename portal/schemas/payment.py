from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import Field

from portal.schemas.common import RequestModel, ResponseModel


class InitiatePaymentRequest(RequestModel):
    phone_number: str | None = Field(None, alias="phoneNumber")
    amount: float | None = None
    description: str = "Account Verification Fee"

    application_id: UUID | None = Field(None, alias="applicationId")
    interview_booking_id: str | None = Field(None, alias="interviewBookingId")
    user_id: str | None = Field(None, alias="userId")
    purpose: str | None = None

    interview_company: str | None = Field(None, alias="interviewCompany")
    interview_position: str | None = Field(None, alias="interviewPosition")
    interview_type: str | None = Field(None, alias="interviewType")
    interview_at: datetime | None = Field(None, alias="interviewAt")


class InitiatePaymentData(ResponseModel):
    request_id: str = Field(alias="requestId")
    checkout_request_id: str = Field(alias="checkoutRequestId")
    transaction_request_id: str = Field(alias="transactionRequestId")


class InitiatePaymentResponse(ResponseModel):
    success: bool = True
    message: str = "Payment initiated successfully"
    data: InitiatePaymentData


class PaymentCallback(RequestModel):
    """Webhook body as sent by the provider.

    Only the fields the portal acts on are declared. ``ResponseCode`` arrives
    as a number or a numeric string.
    """

    response_code: Any = Field(None, alias="ResponseCode")
    response_description: str | None = Field(None, alias="ResponseDescription")
    transaction_id: str | None = Field(None, alias="TransactionID")
    transaction_amount: Any = Field(None, alias="TransactionAmount")
    transaction_receipt: str | None = Field(None, alias="TransactionReceipt")
    transaction_date: str | None = Field(None, alias="TransactionDate")
    transaction_reference: str | None = Field(None, alias="TransactionReference")
    msisdn: str | None = Field(None, alias="Msisdn")
    merchant_request_id: str | None = Field(None, alias="MerchantRequestID")
    checkout_request_id: str | None = Field(None, alias="CheckoutRequestID")


class CallbackAck(ResponseModel):
    status: str
    message: str


class PaymentStatusPayload(ResponseModel):
    status: str
    amount: float | None = None
    phone_number: str | None = Field(None, alias="phoneNumber")
    timestamp: datetime | None = None
    message: str | None = None


class PaymentStatusResponse(ResponseModel):
    success: bool = True
    payment: PaymentStatusPayload
