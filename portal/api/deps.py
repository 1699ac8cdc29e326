from __future__ import annotations

from fastapi import Request

from portal.config import Settings
from portal.services.application_service import ApplicationDefaults, ApplicationService
from portal.services.payment_service import PaymentDefaults, PaymentService


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_payment_service(request: Request) -> PaymentService:
    settings: Settings = request.app.state.settings
    return PaymentService(
        request.app.state.swiftpay,
        defaults=PaymentDefaults(
            default_amount=settings.default_payment_amount,
            project_name=settings.project_name,
            reconcile_delay_seconds=settings.reconcile_delay_seconds,
        ),
    )


def get_application_service(request: Request) -> ApplicationService:
    settings: Settings = request.app.state.settings
    return ApplicationService(
        defaults=ApplicationDefaults(
            project_name=settings.project_name,
            application_fee=settings.application_fee,
        )
    )
