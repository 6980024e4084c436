"""Client-side event reducer — fold a domain event into the invoice list.

Learn: BroadcastBus gives no delivery guarantees, and the acting client
usually updates its own list before its own event comes back over the
socket. So every rule here is idempotent:

  NEW_UPLOAD     → prepend unless an invoice with that id is already there
  UPLOAD_DELETED → drop the invoice with that id (absent id: no-op)
  REFRESH_DATA   → leave the list alone, tell the caller to re-fetch

Duplicate suppression is a linear scan. Dashboards hold at most a few
thousand rows; index by id if that ever changes.
"""

from typing import NamedTuple, Sequence

from invoiceportal.events.models import (
    DomainEvent,
    InvoiceSnapshot,
    NewUpload,
    RefreshRequested,
    UploadDeleted,
)


class ReduceResult(NamedTuple):
    invoices: list[InvoiceSnapshot]
    refresh_requested: bool = False


def apply_event(
    invoices: Sequence[InvoiceSnapshot], event: DomainEvent
) -> ReduceResult:
    """Return the new invoice list after applying one event. Never mutates the input."""
    if isinstance(event, NewUpload):
        if any(inv.id == event.invoice.id for inv in invoices):
            return ReduceResult(list(invoices))
        return ReduceResult([event.invoice, *invoices])

    if isinstance(event, UploadDeleted):
        return ReduceResult([inv for inv in invoices if inv.id != event.invoice_id])

    if isinstance(event, RefreshRequested):
        return ReduceResult(list(invoices), refresh_requested=True)

    raise TypeError(f"Unknown event: {event!r}")
