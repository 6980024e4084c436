"""Heartbeat monitor — evicts connections that stop answering probes.

Learn: Each tick walks the registry:

  is_alive == False → the member missed the previous probe → close + remove
  is_alive == True  → clear the flag and send a new PING

A PONG sets the flag back. A silent member therefore survives exactly one
full interval after the probe it missed and is evicted on the next tick,
never sooner. A send failure while probing is just a missed probe.

Runs as a background task in the FastAPI lifespan, like any other worker.
"""

import asyncio

import structlog

from invoiceportal.realtime.registry import GOING_AWAY, Connection, ConnectionRegistry

logger = structlog.get_logger()


class HeartbeatMonitor:
    """Periodically probes registry members and prunes dead ones."""

    def __init__(self, registry: ConnectionRegistry, interval: float = 30.0):
        self.registry = registry
        self.interval = interval
        self._running = False

    async def tick(self) -> int:
        """Run one probe cycle. Returns the number of evicted connections."""
        evicted = 0

        async def visit(conn: Connection) -> None:
            nonlocal evicted
            if not conn.is_alive:
                self.registry.remove(conn)
                await conn.close(code=GOING_AWAY, reason="Heartbeat timeout")
                evicted += 1
                logger.info("live.connection_evicted", conn_id=conn.id)
                return
            try:
                await conn.probe()
            except Exception as e:
                # Flag is already cleared — the next tick evicts it
                logger.warning("live.probe_failed", conn_id=conn.id, error=str(e))

        await self.registry.for_each(visit)
        return evicted

    async def run_loop(self) -> None:
        """Tick forever until stop() is called or the task is cancelled."""
        self._running = True
        logger.info("live.heartbeat_started", interval=self.interval)
        while self._running:
            await asyncio.sleep(self.interval)
            if not self._running:
                break
            try:
                await self.tick()
            except Exception:
                logger.exception("live.heartbeat_tick_failed")

    def stop(self) -> None:
        self._running = False
