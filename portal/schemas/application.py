from __future__ import annotations

from typing import Any
from uuid import UUID

from pydantic import Field

from portal.schemas.common import RequestModel, ResponseModel


class ApplicationSubmit(RequestModel):
    phone: str | None = None
    email: str | None = None
    full_name: str | None = Field(None, alias="fullName")
    job_title: str | None = Field(None, alias="jobTitle")
    project_data: Any = Field(None, alias="projectData")
    form_data: Any = Field(None, alias="formData")
    user_id: str | None = Field(None, alias="userId")
    payment_reference: str | None = Field(None, alias="paymentReference")

    @property
    def extra_data(self) -> dict[str, Any]:
        for value in (self.project_data, self.form_data):
            if isinstance(value, dict):
                return dict(value)
        return {}


class ApplicationSubmitData(ResponseModel):
    application_id: UUID = Field(alias="applicationId")
    reference: str | None = None


class ApplicationSubmitResponse(ResponseModel):
    success: bool = True
    message: str
    data: ApplicationSubmitData
