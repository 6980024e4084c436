"""Connection registry — the set of live admin WebSocket connections.

Learn: The registry is the only owner of the connection collection.
Everything else (heartbeat, broadcast) goes through add/remove/for_each,
so there is exactly one place where membership changes.

It is also the sole authorization gate at the transport layer: a socket
whose path is not the admin path never becomes a member. Session cookies
are not re-validated here — the upgrade endpoint trusts any same-origin
connection that reaches the admin path.
"""

import uuid
from datetime import datetime, timezone
from typing import Awaitable, Callable, Iterator

import structlog
from starlette.websockets import WebSocket, WebSocketDisconnect, WebSocketState

from invoiceportal.events.models import PING_FRAME

logger = structlog.get_logger()

NORMAL_CLOSURE = 1000
GOING_AWAY = 1001
POLICY_VIOLATION = 1008


class Connection:
    """One live transport session, wrapped so the registry stays transport-agnostic.

    Learn: `is_alive` is the heartbeat flag. Only three things touch it:
    the HeartbeatMonitor (clears it when probing), a PONG from the client
    (sets it), and a failed broadcast send (clears it).
    """

    def __init__(self, websocket: WebSocket, path: str | None = None):
        self.websocket = websocket
        self.path = path if path is not None else websocket.url.path
        self.id = uuid.uuid4().hex[:12]
        self.is_alive = True
        self.created_at = datetime.now(timezone.utc)

    def __repr__(self) -> str:
        return f"<Connection {self.id} path={self.path!r} alive={self.is_alive}>"

    async def send(self, frame: str) -> None:
        await self.websocket.send_text(frame)

    async def probe(self) -> None:
        """Clear the liveness flag and send a PING; the PONG sets it again."""
        self.is_alive = False
        await self.send(PING_FRAME)

    def mark_alive(self) -> None:
        self.is_alive = True

    async def close(self, code: int = NORMAL_CLOSURE, reason: str = "") -> None:
        """Close the socket if it is still open. Never raises for an already-closed socket."""
        if self.websocket.application_state == WebSocketState.DISCONNECTED:
            return
        try:
            await self.websocket.close(code=code, reason=reason)
        except (RuntimeError, WebSocketDisconnect, OSError) as e:
            # Close raced with the peer's own disconnect, or the transport is already broken
            logger.debug("live.close_failed", conn_id=self.id, error=str(e))


class ConnectionRegistry:
    """Tracks live admin connections for broadcast delivery.

    No locking: every caller runs on the same event loop, and for_each()
    iterates a snapshot so removals during an awaited visit are safe.
    """

    def __init__(self, admin_path: str):
        self.admin_path = admin_path
        self._members: dict[str, Connection] = {}

    def __len__(self) -> int:
        return len(self._members)

    def __contains__(self, conn: Connection) -> bool:
        return self._members.get(conn.id) is conn

    def __iter__(self) -> Iterator[Connection]:
        return iter(list(self._members.values()))

    async def add(self, conn: Connection) -> bool:
        """Register a connection. Returns False (and closes it) for non-admin paths."""
        if conn.path != self.admin_path:
            logger.warning("live.connection_rejected", conn_id=conn.id, path=conn.path)
            await conn.close(code=POLICY_VIOLATION, reason="Unknown live-update path")
            return False

        if conn.id not in self._members:
            self._members[conn.id] = conn
            logger.info("live.connection_added", conn_id=conn.id, members=len(self))
        return True

    def remove(self, conn: Connection) -> None:
        """Unregister a connection. Removing a non-member is a no-op."""
        if self._members.pop(conn.id, None) is not None:
            logger.info("live.connection_removed", conn_id=conn.id, members=len(self))

    async def for_each(self, visit: Callable[[Connection], Awaitable[None]]) -> None:
        """Await visit(conn) for every member. No ordering guarantee."""
        for conn in list(self._members.values()):
            await visit(conn)
