from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from portal.api.deps import get_application_service
from portal.database import get_db
from portal.schemas.application import ApplicationSubmit, ApplicationSubmitData, ApplicationSubmitResponse
from portal.services.application_service import ApplicationService


router = APIRouter(tags=["applications"])


def _client_ip(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for") or request.headers.get("x-real-ip")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else ""


@router.post("/submit-application", response_model=ApplicationSubmitResponse)
async def submit_application_endpoint(
    payload: ApplicationSubmit,
    request: Request,
    session: AsyncSession = Depends(get_db),
    service: ApplicationService = Depends(get_application_service),
) -> ApplicationSubmitResponse:
    result = await service.submit_application(
        session,
        payload,
        ip_address=_client_ip(request),
        user_agent=request.headers.get("user-agent", ""),
    )

    app = result.application
    return ApplicationSubmitResponse(
        message="Application submitted successfully" if result.created else "Application already submitted",
        data=ApplicationSubmitData(application_id=app.id, reference=app.payment_reference),
    )
