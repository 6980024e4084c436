"""Invoice Portal CLI — run the server, manage invoices, watch live updates.

Usage:
    invoiceportal serve                          # Run the API server (uvicorn)
    invoiceportal hash-password                  # bcrypt hash for PORTAL_ADMIN_PASSWORD_HASH
    invoiceportal upload invoice.pdf             # Upload one or more PDFs
    invoiceportal list --search acme --sort fileSize
    invoiceportal delete 12 13                   # Delete invoices by id
    invoiceportal export -o invoices.csv         # CSV export of the (filtered) table
    invoiceportal watch                          # Live dashboard over the WebSocket

Client commands log in with PORTAL_ADMIN_PASSWORD (or prompt for it) and
talk to PORTAL_API_URL (default http://localhost:3000).
"""

from __future__ import annotations

import asyncio
import concurrent.futures
import os
import sys
from pathlib import Path
from typing import Optional

import click
import httpx

from invoiceportal import __version__
from invoiceportal.dashboard import (
    SORT_FIELDS,
    export_csv,
    export_filename,
    format_file_size,
    statistics,
    view,
)
from invoiceportal.events.models import (
    DomainEvent,
    InvoiceSnapshot,
    NewUpload,
    UploadDeleted,
)
from invoiceportal.realtime.client import (
    ConnectionStatus,
    LiveUpdateClient,
    websocket_connector,
)
from invoiceportal.realtime.reducer import apply_event

# ---------------------------------------------------------------------------
# Config
# ---------------------------------------------------------------------------

DEFAULT_API_URL = "http://localhost:3000"
DEFAULT_LIVE_PATH = "/ws/admin"


def _api_url() -> str:
    return os.environ.get("PORTAL_API_URL", DEFAULT_API_URL).rstrip("/")


def _ws_url() -> str:
    base = _api_url()
    if base.startswith("https://"):
        base = "wss://" + base[len("https://"):]
    elif base.startswith("http://"):
        base = "ws://" + base[len("http://"):]
    return base + os.environ.get("PORTAL_LIVE_PATH", DEFAULT_LIVE_PATH)


def _client() -> httpx.AsyncClient:
    """Build an async HTTP client pointed at the portal backend."""
    return httpx.AsyncClient(base_url=_api_url(), timeout=30.0)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _run(coro):
    """Run an async coroutine from synchronous Click handler.

    Handles nested event loops (e.g. when invoked via Click CliRunner
    inside an existing async context like tests) by offloading to a thread.
    """
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        # No running loop — normal CLI invocation
        return asyncio.run(coro)
    else:
        with concurrent.futures.ThreadPoolExecutor(max_workers=1) as pool:
            return pool.submit(asyncio.run, coro).result()


def _password() -> str:
    password = os.environ.get("PORTAL_ADMIN_PASSWORD")
    if password:
        return password
    return click.prompt("Admin password", hide_input=True)


async def _login(c: httpx.AsyncClient) -> None:
    """Start an admin session; the cookie stays in the client's jar."""
    r = await c.post("/api/login", json={"password": _password()})
    if r.status_code != 200:
        detail = r.json().get("detail", r.text) if r.content else r.reason_phrase
        click.secho(f"Login failed: {detail}", fg="red", err=True)
        sys.exit(1)


async def _fetch_invoices(c: httpx.AsyncClient) -> list[InvoiceSnapshot]:
    r = await c.get("/api/invoices")
    r.raise_for_status()
    return [InvoiceSnapshot.model_validate(row) for row in r.json()]


def _print_table(invoices: list[InvoiceSnapshot]) -> None:
    """Print invoices as a simple ASCII table."""
    columns = [("ID", 6), ("Filename", 40), ("Size", 10), ("IP Address", 16), ("Uploaded", 20)]
    header = "  ".join(h.ljust(w) for h, w in columns)
    click.secho(header, bold=True)
    click.echo("-" * len(header))
    for inv in invoices:
        cells = [
            str(inv.id),
            inv.original_filename,
            format_file_size(inv.file_size),
            inv.ip_address or "—",
            inv.created_at.strftime("%Y-%m-%d %H:%M:%S"),
        ]
        click.echo("  ".join(cell[:w].ljust(w) for cell, (_, w) in zip(cells, columns)))


def _print_stats(invoices: list[InvoiceSnapshot]) -> None:
    s = statistics(invoices)
    click.echo(
        f"{s['total_files']} file(s), {format_file_size(s['total_size'])} total, "
        f"{s['today_uploads']} today, {s['unique_ips']} unique IP(s)"
    )


def _status_color(status: ConnectionStatus) -> str:
    """Map connection status to click colors."""
    colors = {
        ConnectionStatus.CONNECTED: "green",
        ConnectionStatus.CONNECTING: "yellow",
        ConnectionStatus.ERROR: "red",
        ConnectionStatus.DISCONNECTED: "white",
    }
    return colors.get(status, "white")


_view_options = [
    click.option("--search", "-s", default="", help="Filter by filename or IP address"),
    click.option(
        "--sort", "sort_field", type=click.Choice(SORT_FIELDS), default="createdAt",
        show_default=True, help="Sort column",
    ),
    click.option(
        "--order", type=click.Choice(["asc", "desc"]), default="desc",
        show_default=True, help="Sort order",
    ),
]


def view_options(func):
    for option in reversed(_view_options):
        func = option(func)
    return func


# ---------------------------------------------------------------------------
# CLI group
# ---------------------------------------------------------------------------


@click.group()
@click.version_option(version=__version__, prog_name="invoiceportal")
def main():
    """Invoice Portal — upload, browse and watch PDF invoices."""


# ---------------------------------------------------------------------------
# invoiceportal serve
# ---------------------------------------------------------------------------


@main.command()
@click.option("--host", default=None, help="Bind address (default: PORTAL_HOST)")
@click.option("--port", type=int, default=None, help="Port (default: PORTAL_PORT)")
@click.option("--reload", is_flag=True, help="Auto-reload on code changes")
def serve(host: Optional[str], port: Optional[int], reload: bool):
    """Run the API + WebSocket server."""
    import uvicorn

    from invoiceportal.config import settings

    uvicorn.run(
        "invoiceportal.main:app",
        host=host or settings.host,
        port=port or settings.port,
        reload=reload,
    )


# ---------------------------------------------------------------------------
# invoiceportal hash-password
# ---------------------------------------------------------------------------


@main.command("hash-password")
@click.password_option("--password", prompt="Admin password")
def hash_password_cmd(password: str):
    """Print a bcrypt hash to use as PORTAL_ADMIN_PASSWORD_HASH."""
    from invoiceportal.auth.password import hash_password

    click.echo(hash_password(password))


# ---------------------------------------------------------------------------
# invoiceportal upload
# ---------------------------------------------------------------------------


@main.command()
@click.argument("files", nargs=-1, required=True, type=click.Path(exists=True, dir_okay=False, path_type=Path))
def upload(files: tuple[Path, ...]):
    """Upload one or more PDF invoices."""
    _run(_upload_impl(files))


async def _upload_impl(files: tuple[Path, ...]):
    failed = 0
    async with _client() as c:
        await _login(c)
        for path in files:
            with path.open("rb") as fh:
                r = await c.post(
                    "/api/upload",
                    files={"file": (path.name, fh, "application/pdf")},
                )
            if r.status_code == 201:
                inv = r.json()["data"]
                click.secho(f"Uploaded {path.name} as #{inv['id']}", fg="green")
            else:
                failed += 1
                click.secho(f"Failed {path.name}: {r.json().get('detail', r.text)}", fg="red", err=True)
    if failed:
        sys.exit(1)


# ---------------------------------------------------------------------------
# invoiceportal list
# ---------------------------------------------------------------------------


@main.command("list")
@view_options
def list_cmd(search: str, sort_field: str, order: str):
    """List invoices (filtered and sorted like the dashboard table)."""
    _run(_list_impl(search, sort_field, order))


async def _list_impl(search: str, sort_field: str, order: str):
    async with _client() as c:
        await _login(c)
        invoices = await _fetch_invoices(c)

    rows = view(invoices, search, sort_field, order)
    if not rows:
        click.echo("No invoices found.")
        return
    _print_table(rows)
    click.echo()
    _print_stats(rows)


# ---------------------------------------------------------------------------
# invoiceportal delete
# ---------------------------------------------------------------------------


@main.command()
@click.argument("invoice_ids", nargs=-1, required=True, type=int)
@click.option("--yes", "-y", is_flag=True, help="Don't ask for confirmation")
def delete(invoice_ids: tuple[int, ...], yes: bool):
    """Permanently delete invoices by id."""
    if not yes:
        click.confirm(
            f"Permanently delete {len(invoice_ids)} file(s)? This cannot be undone.",
            abort=True,
        )
    _run(_delete_impl(invoice_ids))


async def _delete_impl(invoice_ids: tuple[int, ...]):
    failed = 0
    async with _client() as c:
        await _login(c)
        for invoice_id in invoice_ids:
            r = await c.delete(f"/api/invoices/{invoice_id}")
            if r.status_code == 200:
                click.secho(f"Deleted #{invoice_id}", fg="green")
            else:
                failed += 1
                click.secho(f"#{invoice_id}: {r.json().get('detail', r.text)}", fg="red", err=True)
    if failed:
        sys.exit(1)


# ---------------------------------------------------------------------------
# invoiceportal export
# ---------------------------------------------------------------------------


@main.command()
@view_options
@click.option("--output", "-o", type=click.Path(dir_okay=False, path_type=Path), help="Output file")
def export(search: str, sort_field: str, order: str, output: Optional[Path]):
    """Export the invoice table as CSV."""
    _run(_export_impl(search, sort_field, order, output))


async def _export_impl(search: str, sort_field: str, order: str, output: Optional[Path]):
    async with _client() as c:
        await _login(c)
        invoices = await _fetch_invoices(c)

    rows = view(invoices, search, sort_field, order)
    target = output or Path(export_filename())
    target.write_text(export_csv(rows), encoding="utf-8")
    click.secho(f"Exported {len(rows)} row(s) to {target}", fg="green")


# ---------------------------------------------------------------------------
# invoiceportal watch
# ---------------------------------------------------------------------------


@main.command()
@view_options
def watch(search: str, sort_field: str, order: str):
    """Live dashboard: print the table, then every upload/delete as it happens."""
    _run(_watch_impl(search, sort_field, order))


async def _watch_impl(search: str, sort_field: str, order: str):
    async with _client() as c:
        await _login(c)
        state = {"invoices": await _fetch_invoices(c)}
        _print_table(view(state["invoices"], search, sort_field, order))
        click.echo()

        refreshes: set[asyncio.Task] = set()

        async def refresh() -> None:
            state["invoices"] = await _fetch_invoices(c)
            click.secho("Dashboard refreshed", fg="cyan")
            _print_table(view(state["invoices"], search, sort_field, order))

        def on_event(event: DomainEvent) -> None:
            result = apply_event(state["invoices"], event)
            state["invoices"] = result.invoices
            if result.refresh_requested:
                task = asyncio.create_task(refresh())
                refreshes.add(task)
                task.add_done_callback(refreshes.discard)
                return
            if isinstance(event, NewUpload):
                inv = event.invoice
                click.secho(
                    f"New upload: {inv.original_filename} "
                    f"(#{inv.id}, {format_file_size(inv.file_size)})",
                    fg="green",
                )
            elif isinstance(event, UploadDeleted):
                click.secho(f"Deleted: #{event.invoice_id}", fg="yellow")
            _print_stats(state["invoices"])

        def on_status(status: ConnectionStatus) -> None:
            click.secho(f"[live] {status.value}", fg=_status_color(status))

        cookie = "; ".join(f"{name}={value}" for name, value in c.cookies.items())
        client = LiveUpdateClient(
            _ws_url(),
            on_event,
            connector=websocket_connector(headers={"Cookie": cookie}),
            on_status=on_status,
        )
        client.enable()
        try:
            # Runs until Ctrl-C cancels the main task
            await asyncio.Event().wait()
        finally:
            await client.disable()
            for task in refreshes:
                task.cancel()


if __name__ == "__main__":
    main()
