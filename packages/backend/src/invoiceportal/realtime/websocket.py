"""WebSocket endpoint — live invoice updates for admin dashboards.

Learn: Dashboards connect to /ws/admin. The handler:
1. Accepts the upgrade and wraps the socket in a Connection
2. Asks the registry to admit it (any other /ws/* path is closed with 1008)
3. Reads client frames until disconnect — only PONG replies matter,
   they keep the connection alive for the HeartbeatMonitor
4. Unregisters the connection on the way out, whatever happened

Outgoing frames are never sent from here; BroadcastBus does that.
"""

import structlog
from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect

from invoiceportal.events.models import control_type
from invoiceportal.events.types import PONG
from invoiceportal.realtime.hub import LiveUpdateHub, get_live_hub
from invoiceportal.realtime.registry import Connection

logger = structlog.get_logger()
router = APIRouter()


@router.websocket("/ws/{channel}")
async def live_updates(
    websocket: WebSocket,
    channel: str,
    hub: LiveUpdateHub = Depends(get_live_hub),
):
    """Long-lived admin connection — one per open dashboard."""
    await websocket.accept()

    conn = Connection(websocket)
    if not await hub.registry.add(conn):
        return

    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                raise WebSocketDisconnect(message.get("code", 1000), message.get("reason"))
            data = message.get("text")
            if data is None:
                data = (message.get("bytes") or b"").decode("utf-8", errors="replace")
            if control_type(data) == PONG:
                conn.mark_alive()
            else:
                # No client → server commands exist; drop and keep the socket open
                logger.debug("live.client_frame_ignored", conn_id=conn.id, size=len(data))
    except WebSocketDisconnect as e:
        logger.debug("live.client_disconnected", conn_id=conn.id, code=e.code)
    finally:
        hub.registry.remove(conn)
