"""Invoice API tests — upload, list, download, delete, and their broadcasts.

Learn: Every mutation that commits must reach every connected dashboard.
A FakeWebSocket-backed Connection is registered on the app's hub before
the request, then its outgoing frames are inspected.
"""

import json

import pytest

from invoiceportal.config import settings

PDF_BYTES = b"%PDF-1.4\n1 0 obj\n<<>>\nendobj\ntrailer\n<<>>\n%%EOF\n"


async def _upload(client, name="invoice.pdf", content=PDF_BYTES, content_type="application/pdf"):
    return await client.post("/api/upload", files={"file": (name, content, content_type)})


# ═══════════════════════════════════════════════════════════
# Upload
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_upload_pdf(client, storage):
    r = await _upload(client, name="Rechnung-2024-05.PDF")
    assert r.status_code == 201

    body = r.json()
    assert body["message"] == "File uploaded successfully"
    data = body["data"]
    assert data["originalFilename"] == "Rechnung-2024-05.PDF"
    assert data["fileSize"] == len(PDF_BYTES)
    assert data["ipAddress"] == "127.0.0.1"
    assert data["savedFilename"].endswith(".pdf")
    assert data["savedFilename"] != data["originalFilename"]
    assert (storage.root / data["savedFilename"]).read_bytes() == PDF_BYTES


@pytest.mark.asyncio
async def test_upload_broadcasts_new_upload(client, hub, make_connection):
    conn = make_connection()
    await hub.registry.add(conn)

    r = await _upload(client)
    assert r.status_code == 201

    assert len(conn.websocket.sent) == 1
    frame = json.loads(conn.websocket.sent[0])
    assert frame["type"] == "NEW_UPLOAD"
    assert frame["invoice"] == r.json()["data"]


@pytest.mark.asyncio
async def test_upload_rejects_non_pdf(client, hub, make_connection):
    conn = make_connection()
    await hub.registry.add(conn)

    r = await _upload(client, name="notes.txt", content=b"hello", content_type="text/plain")

    assert r.status_code == 415
    assert r.json()["detail"] == "Invalid file type. Only PDF is allowed."
    assert conn.websocket.sent == []


@pytest.mark.asyncio
async def test_upload_rejects_oversize_file(client, monkeypatch):
    monkeypatch.setattr(settings, "max_upload_bytes", 16)

    r = await _upload(client, content=b"%PDF" + b"0" * 64)

    assert r.status_code == 413


@pytest.mark.asyncio
async def test_upload_rejects_empty_file(client):
    r = await _upload(client, content=b"")
    assert r.status_code == 400


@pytest.mark.asyncio
async def test_upload_without_file(client):
    r = await client.post("/api/upload")
    assert r.status_code == 400
    assert r.json()["detail"] == "No file was uploaded."


# ═══════════════════════════════════════════════════════════
# List + download
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_list_invoices_newest_first(client):
    first = (await _upload(client, name="first.pdf")).json()["data"]
    second = (await _upload(client, name="second.pdf")).json()["data"]

    r = await client.get("/api/invoices")
    assert r.status_code == 200
    assert [inv["id"] for inv in r.json()] == [second["id"], first["id"]]


@pytest.mark.asyncio
async def test_list_empty(client):
    r = await client.get("/api/invoices")
    assert r.status_code == 200
    assert r.json() == []


@pytest.mark.asyncio
async def test_download_stored_file(client):
    saved = (await _upload(client)).json()["data"]["savedFilename"]

    r = await client.get(f"/files/{saved}")

    assert r.status_code == 200
    assert r.headers["content-type"] == "application/pdf"
    assert r.content == PDF_BYTES


@pytest.mark.asyncio
async def test_download_missing_file(client):
    r = await client.get("/files/1700000000000-1.pdf")
    assert r.status_code == 404


# ═══════════════════════════════════════════════════════════
# Delete
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_delete_invoice(client, hub, make_connection, storage):
    data = (await _upload(client)).json()["data"]
    conn = make_connection()
    await hub.registry.add(conn)

    r = await client.delete(f"/api/invoices/{data['id']}")

    assert r.status_code == 200
    assert r.json() == {"message": "File deleted successfully."}
    assert not (storage.root / data["savedFilename"]).exists()
    assert (await client.get("/api/invoices")).json() == []
    assert [json.loads(f) for f in conn.websocket.sent] == [
        {"type": "UPLOAD_DELETED", "invoiceId": data["id"]}
    ]


@pytest.mark.asyncio
async def test_delete_when_file_already_gone(client, storage):
    """The row is still removed if the file vanished from disk."""
    data = (await _upload(client)).json()["data"]
    (storage.root / data["savedFilename"]).unlink()

    r = await client.delete(f"/api/invoices/{data['id']}")

    assert r.status_code == 200
    assert (await client.get("/api/invoices")).json() == []


@pytest.mark.asyncio
async def test_delete_unknown_invoice(client, hub, make_connection):
    conn = make_connection()
    await hub.registry.add(conn)

    r = await client.delete("/api/invoices/9999")

    assert r.status_code == 404
    assert r.json()["detail"] == "File not found."
    assert conn.websocket.sent == []


# ═══════════════════════════════════════════════════════════
# Auth required
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "method,path",
    [
        ("GET", "/api/invoices"),
        ("POST", "/api/upload"),
        ("DELETE", "/api/invoices/1"),
        ("GET", "/files/1700000000000-1.pdf"),
        ("GET", "/api/live/status"),
        ("POST", "/api/live/refresh"),
    ],
)
async def test_protected_routes_require_login(unauthenticated_client, method, path):
    r = await unauthenticated_client.request(method, path)
    assert r.status_code == 401
    assert r.json()["detail"] == "Unauthorized"
