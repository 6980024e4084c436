"""Domain event models — the tagged union sent to dashboards.

Learn: Each event is a frozen pydantic model with a literal `type`
field, so a single TypeAdapter over the union can decode any frame by
looking at the discriminator. Python attributes are snake_case; the
wire uses camelCase aliases because that is what dashboards expect:

    {"type": "NEW_UPLOAD", "invoice": {...}}
    {"type": "UPLOAD_DELETED", "invoiceId": 5}
    {"type": "REFRESH_DATA"}
"""

import json
from datetime import datetime
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from pydantic.alias_generators import to_camel

from invoiceportal.events.types import (
    CONTROL_TYPES,
    NEW_UPLOAD,
    PING,
    PONG,
    REFRESH_DATA,
    UPLOAD_DELETED,
)

_wire_config = ConfigDict(
    frozen=True,
    alias_generator=to_camel,
    populate_by_name=True,
)


class InvoiceSnapshot(BaseModel):
    """Flat invoice record as produced by the CRUD layer."""

    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )

    id: int
    original_filename: str
    saved_filename: str
    file_size: int = Field(ge=0)
    ip_address: str = ""
    created_at: datetime


class NewUpload(BaseModel):
    model_config = _wire_config

    type: Literal["NEW_UPLOAD"] = NEW_UPLOAD
    invoice: InvoiceSnapshot


class UploadDeleted(BaseModel):
    model_config = _wire_config

    type: Literal["UPLOAD_DELETED"] = UPLOAD_DELETED
    invoice_id: int


class RefreshRequested(BaseModel):
    model_config = _wire_config

    type: Literal["REFRESH_DATA"] = REFRESH_DATA


DomainEvent = Annotated[
    Union[NewUpload, UploadDeleted, RefreshRequested],
    Field(discriminator="type"),
]

_event_adapter: TypeAdapter[DomainEvent] = TypeAdapter(DomainEvent)


def encode_frame(event: DomainEvent) -> str:
    """Serialize an event to its self-describing JSON wire frame."""
    return event.model_dump_json(by_alias=True)


def decode_frame(raw: str | bytes) -> DomainEvent:
    """Parse a wire frame into a domain event.

    Raises pydantic.ValidationError (a ValueError) for malformed JSON,
    unknown types, or payloads that don't match the event schema.
    """
    return _event_adapter.validate_json(raw)


# ─── Heartbeat control frames ────────────────────────────

PING_FRAME = json.dumps({"type": PING})
PONG_FRAME = json.dumps({"type": PONG})


def control_type(raw: str | bytes) -> str | None:
    """Return PING/PONG if the frame is a heartbeat control frame, else None."""
    try:
        data = json.loads(raw)
    except (TypeError, ValueError):
        return None
    if isinstance(data, dict) and data.get("type") in CONTROL_TYPES:
        return data["type"]
    return None
