"""Broadcast bus — fan a domain event out to every registered dashboard.

Learn: publish() is fire-and-forget. The frame is serialized once and
handed to each member in turn. A failing member is logged, marked as
not alive (so the next heartbeat tick evicts it), and skipped — one bad
socket never stops delivery to the others.

There is no queue and no retry. A dashboard that misses an event only
notices on its next full reload, which is fine: the database is the
source of truth, the socket is just a hint to re-render sooner.
"""

import structlog

from invoiceportal.events.models import DomainEvent, encode_frame
from invoiceportal.realtime.registry import Connection, ConnectionRegistry

logger = structlog.get_logger()


class BroadcastBus:
    """Serializes domain events and sends them to all registry members."""

    def __init__(self, registry: ConnectionRegistry):
        self.registry = registry

    async def publish(self, event: DomainEvent) -> int:
        """Send the event to every current member. Returns how many sends succeeded."""
        frame = encode_frame(event)
        delivered = 0

        async def deliver(conn: Connection) -> None:
            nonlocal delivered
            try:
                await conn.send(frame)
                delivered += 1
            except Exception as e:
                conn.is_alive = False
                logger.warning(
                    "live.delivery_failed",
                    conn_id=conn.id,
                    event_type=event.type,
                    error=str(e),
                )

        await self.registry.for_each(deliver)
        logger.info(
            "live.published",
            event_type=event.type,
            delivered=delivered,
            members=len(self.registry),
        )
        return delivered
