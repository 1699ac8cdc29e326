from __future__ import annotations

from pydantic import BaseModel, ConfigDict


class RequestModel(BaseModel):
    """Base for inbound JSON bodies.

    Clients send camelCase keys and sometimes numbers where strings belong
    (phone numbers in particular).
    """

    model_config = ConfigDict(populate_by_name=True, coerce_numbers_to_str=True, extra="ignore")


class ResponseModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

