"""FastAPI auth dependencies.

Learn: These are used as Depends() in route handlers (or at the
include_router level) to enforce that the session belongs to the admin.
"""

from fastapi import HTTPException
from starlette.requests import HTTPConnection

SESSION_ADMIN_KEY = "is_admin"


def is_admin(conn: HTTPConnection) -> bool:
    """True if the session cookie carries the admin flag."""
    return bool(conn.session.get(SESSION_ADMIN_KEY))


async def require_admin(conn: HTTPConnection) -> None:
    """Reject the request with 401 unless the admin is logged in."""
    if not is_admin(conn):
        raise HTTPException(status_code=401, detail="Unauthorized")
