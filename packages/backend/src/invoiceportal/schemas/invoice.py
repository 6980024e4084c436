"""Pydantic schemas for invoice and auth endpoints.

Learn: Invoice payloads reuse InvoiceSnapshot from the event models, so
the REST list and the live-update frames always have the same shape
(camelCase on the wire via aliases — FastAPI serializes by alias).
"""

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from invoiceportal.events.models import InvoiceSnapshot


class LoginRequest(BaseModel):
    password: str = Field(min_length=1)


class MessageResponse(BaseModel):
    message: str


class AuthStatus(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    is_logged_in: bool


class UploadResponse(BaseModel):
    message: str
    data: InvoiceSnapshot


class LiveStatus(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    path: str
    connections: int
    delivered: int | None = None
