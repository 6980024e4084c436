"""Invoice API routes — upload, list, download, delete.

Learn: Routes handle HTTP concerns (multipart parsing, size limits,
status codes); InvoiceService handles persistence and broadcasting.
Every route here sits behind require_admin (applied in api/__init__.py).
"""

from fastapi import APIRouter, Depends, File, HTTPException, Request, UploadFile
from fastapi.responses import FileResponse
from sqlalchemy.ext.asyncio import AsyncSession

from invoiceportal.config import settings
from invoiceportal.db.engine import get_db
from invoiceportal.events.models import InvoiceSnapshot
from invoiceportal.realtime.hub import LiveUpdateHub, get_live_hub
from invoiceportal.schemas.invoice import MessageResponse, UploadResponse
from invoiceportal.services.invoice_service import (
    InvalidUpload,
    InvoiceNotFound,
    InvoiceService,
    validate_upload,
)
from invoiceportal.services.storage import FileStorage

router = APIRouter()
files_router = APIRouter()


def get_storage() -> FileStorage:
    return FileStorage(settings.upload_dir)


def _svc(
    db: AsyncSession = Depends(get_db),
    hub: LiveUpdateHub = Depends(get_live_hub),
    storage: FileStorage = Depends(get_storage),
) -> InvoiceService:
    return InvoiceService(db, hub.bus, storage)


@router.post("/upload", response_model=UploadResponse, status_code=201)
async def upload_invoice(
    request: Request,
    file: UploadFile | None = File(None),
    svc: InvoiceService = Depends(_svc),
):
    """Store a PDF invoice and broadcast NEW_UPLOAD to all dashboards."""
    if file is None:
        raise HTTPException(status_code=400, detail="No file was uploaded.")

    # Read one byte past the limit so oversize files are detected without reading them fully
    content = await file.read(settings.max_upload_bytes + 1)
    try:
        validate_upload(
            file.filename, file.content_type, len(content), settings.max_upload_bytes
        )
    except InvalidUpload as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))

    invoice = await svc.create_invoice(
        original_filename=file.filename,
        content=content,
        ip_address=request.client.host if request.client else "",
    )
    return UploadResponse(
        message="File uploaded successfully",
        data=InvoiceSnapshot.model_validate(invoice),
    )


@router.get("/invoices", response_model=list[InvoiceSnapshot])
async def list_invoices(svc: InvoiceService = Depends(_svc)):
    return await svc.list_invoices()


@router.delete("/invoices/{invoice_id}", response_model=MessageResponse)
async def delete_invoice(invoice_id: int, svc: InvoiceService = Depends(_svc)):
    """Delete the file and row, then broadcast UPLOAD_DELETED."""
    try:
        await svc.delete_invoice(invoice_id)
    except InvoiceNotFound:
        raise HTTPException(status_code=404, detail="File not found.")
    return {"message": "File deleted successfully."}


@files_router.get("/files/{saved_filename}")
async def download_invoice(
    saved_filename: str,
    storage: FileStorage = Depends(get_storage),
):
    """Serve a stored PDF inline (the dashboard's viewer embeds it)."""
    try:
        path = storage.path_for(saved_filename)
    except FileNotFoundError:
        raise HTTPException(status_code=404, detail="File not found.")
    if not path.is_file():
        raise HTTPException(status_code=404, detail="File not found.")
    return FileResponse(path, media_type="application/pdf")
