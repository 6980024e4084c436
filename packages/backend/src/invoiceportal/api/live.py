"""Live-update admin routes.

Learn: The WebSocket itself lives in realtime/websocket.py. These HTTP
routes let an admin inspect the registry and push REFRESH_DATA, which
makes every dashboard re-fetch its list (e.g. after fixing rows by hand).
"""

from fastapi import APIRouter, Depends

from invoiceportal.events.models import RefreshRequested
from invoiceportal.realtime.hub import LiveUpdateHub, get_live_hub
from invoiceportal.schemas.invoice import LiveStatus

router = APIRouter(prefix="/live")


@router.get("/status", response_model=LiveStatus)
async def live_status(hub: LiveUpdateHub = Depends(get_live_hub)):
    return LiveStatus(path=hub.registry.admin_path, connections=len(hub.registry))


@router.post("/refresh", response_model=LiveStatus)
async def request_refresh(hub: LiveUpdateHub = Depends(get_live_hub)):
    """Broadcast REFRESH_DATA to every connected dashboard."""
    delivered = await hub.bus.publish(RefreshRequested())
    return LiveStatus(
        path=hub.registry.admin_path,
        connections=len(hub.registry),
        delivered=delivered,
    )
