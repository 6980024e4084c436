"""API route aggregation.

All routers registered here get mounted in main.py.

Learn: Auth is applied at the include_router level using FastAPI's
dependencies parameter. This protects all routes in each router
without modifying individual handlers. Health and auth routers are
open (no auth required).
"""

from fastapi import APIRouter, Depends

from invoiceportal.api.auth import router as auth_router
from invoiceportal.api.health import router as health_router
from invoiceportal.api.invoices import files_router as invoice_files_router
from invoiceportal.api.invoices import router as invoices_router
from invoiceportal.api.live import router as live_router
from invoiceportal.auth.dependencies import require_admin

# All protected routers require an admin session
_auth = [Depends(require_admin)]

api_router = APIRouter(prefix="/api")

# Open routes — no auth required
api_router.include_router(health_router, tags=["health"])
api_router.include_router(auth_router, tags=["auth"])

# Protected routes — require a logged-in admin session
api_router.include_router(invoices_router, tags=["invoices"], dependencies=_auth)
api_router.include_router(live_router, tags=["live"], dependencies=_auth)

# Stored PDFs are served outside /api, but still only to admins
files_router = APIRouter(dependencies=_auth)
files_router.include_router(invoice_files_router, tags=["files"])
