"""Dashboard view helpers — search, sort, stats, CSV export.

Learn: These are the pure functions behind the admin dashboard's table.
They work on InvoiceSnapshot lists (what the REST API returns and what
the live-update reducer maintains), never on ORM rows, so the CLI
`watch`/`list`/`export` commands and any other client share one
implementation.
"""

import csv
import io
from datetime import datetime, timezone
from typing import Iterable, Literal, Sequence

from invoiceportal.events.models import InvoiceSnapshot

SortField = Literal["originalFilename", "fileSize", "ipAddress", "createdAt"]
SortOrder = Literal["asc", "desc"]

SORT_FIELDS: tuple[str, ...] = ("originalFilename", "fileSize", "ipAddress", "createdAt")

CSV_HEADER = ["Filename", "IP Address", "File Size", "Upload Date"]

_SORT_KEYS = {
    "originalFilename": lambda inv: inv.original_filename.lower(),
    "fileSize": lambda inv: inv.file_size,
    "ipAddress": lambda inv: inv.ip_address.lower(),
    "createdAt": lambda inv: _as_utc(inv.created_at),
}


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; treat them as UTC so sorting never mixes kinds
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def format_file_size(size: int) -> str:
    """Human-readable size: 0 Bytes, 512 Bytes, 1.5 KB, 2 MB ..."""
    if size <= 0:
        return "0 Bytes"
    units = ["Bytes", "KB", "MB", "GB"]
    value = float(size)
    i = 0
    while value >= 1024 and i < len(units) - 1:
        value /= 1024
        i += 1
    return f"{round(value, 2):g} {units[i]}"


def filter_invoices(
    invoices: Iterable[InvoiceSnapshot], search: str = ""
) -> list[InvoiceSnapshot]:
    """Case-insensitive filename match, or substring match on the IP address."""
    if not search:
        return list(invoices)
    needle = search.lower()
    return [
        inv
        for inv in invoices
        if needle in inv.original_filename.lower() or search in inv.ip_address
    ]


def sort_invoices(
    invoices: Iterable[InvoiceSnapshot],
    field: SortField = "createdAt",
    order: SortOrder = "desc",
) -> list[InvoiceSnapshot]:
    if field not in _SORT_KEYS:
        raise ValueError(f"Unknown sort field: {field}")
    return sorted(invoices, key=_SORT_KEYS[field], reverse=(order == "desc"))


def view(
    invoices: Iterable[InvoiceSnapshot],
    search: str = "",
    field: SortField = "createdAt",
    order: SortOrder = "desc",
) -> list[InvoiceSnapshot]:
    """What the table shows: filtered, then sorted."""
    return sort_invoices(filter_invoices(invoices, search), field, order)


def statistics(
    invoices: Sequence[InvoiceSnapshot], today: datetime | None = None
) -> dict[str, int]:
    """Summary cards: total files, total bytes, uploads today (UTC), unique IPs."""
    today_date = (today or datetime.now(timezone.utc)).date()
    return {
        "total_files": len(invoices),
        "total_size": sum(inv.file_size for inv in invoices),
        "today_uploads": sum(
            1 for inv in invoices if _as_utc(inv.created_at).date() == today_date
        ),
        "unique_ips": len({inv.ip_address for inv in invoices}),
    }


def export_csv(invoices: Iterable[InvoiceSnapshot]) -> str:
    """Render the (already filtered/sorted) rows as CSV text."""
    buf = io.StringIO()
    writer = csv.writer(buf, lineterminator="\n")
    writer.writerow(CSV_HEADER)
    for inv in invoices:
        writer.writerow([
            inv.original_filename,
            inv.ip_address,
            format_file_size(inv.file_size),
            _as_utc(inv.created_at).strftime("%d.%m.%Y, %H:%M:%S"),
        ])
    return buf.getvalue()


def export_filename(now: datetime | None = None) -> str:
    stamp = (now or datetime.now(timezone.utc)).strftime("%Y-%m-%d")
    return f"admin-dashboard-{stamp}.csv"
