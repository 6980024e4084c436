"""Auth API — session login for the single admin account.

Learn: Routes for the admin session lifecycle:
- POST /login → password → sets the session flag (cookie issued by SessionMiddleware)
- POST /logout → clears the session and the cookie
- GET /auth-status → {"isLoggedIn": bool}, used by the dashboard on load

Login is rate limited much more strictly than the rest of the API
(see RateLimitMiddleware) to slow down password guessing.
"""

import structlog
from fastapi import APIRouter, HTTPException, Request, Response

from invoiceportal.auth.dependencies import SESSION_ADMIN_KEY, is_admin
from invoiceportal.auth.password import verify_password
from invoiceportal.config import settings
from invoiceportal.schemas.invoice import AuthStatus, LoginRequest, MessageResponse

logger = structlog.get_logger()
router = APIRouter()


@router.post("/login", response_model=MessageResponse)
async def login(body: LoginRequest, request: Request):
    """Check the admin password and start a session."""
    stored_hash = settings.admin_password_hash
    if not stored_hash:
        logger.error("auth.misconfigured", missing="PORTAL_ADMIN_PASSWORD_HASH")
        raise HTTPException(status_code=500, detail="Server configuration error.")

    if not verify_password(body.password, stored_hash):
        logger.info("auth.login_failed", client=request.client.host if request.client else None)
        raise HTTPException(status_code=401, detail="Invalid credentials")

    request.session.clear()
    request.session[SESSION_ADMIN_KEY] = True
    logger.info("auth.login_succeeded")
    return {"message": "Login successful"}


@router.post("/logout", response_model=MessageResponse)
async def logout(request: Request, response: Response):
    """End the session and tell the browser to drop the cookie."""
    request.session.clear()
    response.delete_cookie(settings.session_cookie)
    return {"message": "Logout successful"}


@router.get("/auth-status", response_model=AuthStatus)
async def auth_status(request: Request):
    return AuthStatus(is_logged_in=is_admin(request))
