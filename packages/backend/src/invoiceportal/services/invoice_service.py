"""Invoice service — upload and deletion lifecycles.

Learn: Service layer separates business logic from HTTP routing.
API routes call services, services call the database, the file store,
and — after every successful commit — the BroadcastBus, so every open
dashboard hears about the change. Nothing is broadcast for a mutation
that didn't commit.
"""

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from invoiceportal.db.models import Invoice
from invoiceportal.events.models import (
    InvoiceSnapshot,
    NewUpload,
    UploadDeleted,
)
from invoiceportal.realtime.broadcast import BroadcastBus
from invoiceportal.services.storage import FileStorage

logger = structlog.get_logger()

PDF_CONTENT_TYPE = "application/pdf"


class InvoiceNotFound(Exception):
    """Raised when an invoice id doesn't exist."""


class InvalidUpload(Exception):
    """Raised when an uploaded file is rejected. Carries the HTTP status to use."""

    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.status_code = status_code


def validate_upload(
    filename: str | None, content_type: str | None, size: int, max_bytes: int
) -> None:
    if not filename:
        raise InvalidUpload("No file was uploaded.")
    if content_type != PDF_CONTENT_TYPE:
        raise InvalidUpload("Invalid file type. Only PDF is allowed.", status_code=415)
    if size == 0:
        raise InvalidUpload("Uploaded file is empty.")
    if size > max_bytes:
        raise InvalidUpload(
            f"File too large. Maximum size is {max_bytes // (1024 * 1024)}MB.",
            status_code=413,
        )


class InvoiceService:
    """Business logic for invoices."""

    def __init__(self, db: AsyncSession, bus: BroadcastBus, storage: FileStorage):
        self.db = db
        self.bus = bus
        self.storage = storage

    async def list_invoices(self) -> list[Invoice]:
        """All invoices, newest first."""
        result = await self.db.execute(
            select(Invoice).order_by(Invoice.created_at.desc(), Invoice.id.desc())
        )
        return list(result.scalars().all())

    async def get_invoice(self, invoice_id: int) -> Invoice | None:
        return await self.db.get(Invoice, invoice_id)

    async def create_invoice(
        self,
        original_filename: str,
        content: bytes,
        ip_address: str,
    ) -> Invoice:
        """Store the file, record its metadata, then announce it."""
        saved_filename = await self.storage.save(original_filename, content)

        invoice = Invoice(
            original_filename=original_filename,
            saved_filename=saved_filename,
            file_size=len(content),
            ip_address=ip_address,
        )
        self.db.add(invoice)
        try:
            await self.db.commit()
        except Exception:
            # Don't leave an orphaned file behind a failed insert
            await self.db.rollback()
            await self._remove_file(saved_filename)
            raise

        log = logger.bind(invoice_id=invoice.id)
        log.info("invoice.uploaded", filename=original_filename, size=invoice.file_size)

        await self.bus.publish(NewUpload(invoice=InvoiceSnapshot.model_validate(invoice)))
        return invoice

    async def delete_invoice(self, invoice_id: int) -> None:
        """Remove the file (best-effort) and the row, then announce it."""
        invoice = await self.get_invoice(invoice_id)
        if not invoice:
            raise InvoiceNotFound(invoice_id)

        # A missing file must not keep a dangling row around
        await self._remove_file(invoice.saved_filename)

        await self.db.delete(invoice)
        await self.db.commit()
        logger.info("invoice.deleted", invoice_id=invoice_id)

        await self.bus.publish(UploadDeleted(invoice_id=invoice_id))

    async def _remove_file(self, saved_filename: str) -> None:
        try:
            await self.storage.delete(saved_filename)
        except OSError as e:
            logger.warning(
                "invoice.file_delete_failed",
                saved_filename=saved_filename,
                error=str(e),
            )
