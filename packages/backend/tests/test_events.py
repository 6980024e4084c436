"""Tests for the domain event wire format."""

import json
from datetime import datetime, timezone

import pytest
from pydantic import ValidationError

from invoiceportal.events.models import (
    PING_FRAME,
    PONG_FRAME,
    InvoiceSnapshot,
    NewUpload,
    RefreshRequested,
    UploadDeleted,
    control_type,
    decode_frame,
    encode_frame,
)

UPLOAD_FRAME = {
    "type": "NEW_UPLOAD",
    "invoice": {
        "id": 12,
        "originalFilename": "Rechnung März.pdf",
        "savedFilename": "1714560000000-483920.pdf",
        "fileSize": 20480,
        "ipAddress": "203.0.113.9",
        "createdAt": "2024-05-01T10:40:00Z",
    },
}


def test_decode_new_upload_uses_camel_case_fields():
    event = decode_frame(json.dumps(UPLOAD_FRAME))

    assert isinstance(event, NewUpload)
    assert event.invoice.original_filename == "Rechnung März.pdf"
    assert event.invoice.file_size == 20480
    assert event.invoice.created_at.tzinfo is not None


def test_decode_upload_deleted():
    event = decode_frame('{"type": "UPLOAD_DELETED", "invoiceId": 4}')

    assert isinstance(event, UploadDeleted)
    assert event.invoice_id == 4


def test_decode_accepts_bytes():
    assert isinstance(decode_frame(b'{"type": "REFRESH_DATA"}'), RefreshRequested)


def test_encode_writes_wire_names():
    snapshot = InvoiceSnapshot(
        id=1,
        original_filename="a.pdf",
        saved_filename="1-1.pdf",
        file_size=10,
        created_at=datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc),
    )

    frame = json.loads(encode_frame(NewUpload(invoice=snapshot)))

    assert frame["type"] == "NEW_UPLOAD"
    assert set(frame["invoice"]) == {
        "id", "originalFilename", "savedFilename", "fileSize", "ipAddress", "createdAt",
    }
    assert frame["invoice"]["ipAddress"] == ""
    assert json.loads(encode_frame(UploadDeleted(invoice_id=3))) == {
        "type": "UPLOAD_DELETED",
        "invoiceId": 3,
    }
    assert json.loads(encode_frame(RefreshRequested())) == {"type": "REFRESH_DATA"}


@pytest.mark.parametrize(
    "raw",
    [
        "not json",
        "[]",
        '{"type": "NEW_UPLOAD"}',
        '{"type": "UPLOAD_DELETED", "invoiceId": "seven"}',
        '{"type": "PING"}',
        '{"invoiceId": 3}',
    ],
)
def test_malformed_frames_raise_value_error(raw):
    with pytest.raises(ValueError):
        decode_frame(raw)


def test_negative_file_size_is_rejected():
    frame = json.loads(json.dumps(UPLOAD_FRAME))
    frame["invoice"]["fileSize"] = -1

    with pytest.raises(ValidationError):
        decode_frame(json.dumps(frame))


def test_events_are_immutable():
    event = UploadDeleted(invoice_id=1)

    with pytest.raises(ValidationError):
        event.invoice_id = 2


def test_control_frames_are_recognized():
    assert control_type(PING_FRAME) == "PING"
    assert control_type(PONG_FRAME) == "PONG"
    assert control_type('{"type": "REFRESH_DATA"}') is None
    assert control_type("garbage") is None
    assert control_type("[1, 2]") is None
