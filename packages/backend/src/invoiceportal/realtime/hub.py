"""Live-update hub — one registry, bus and heartbeat per application.

Learn: Instead of a module-level set of sockets mutated from everywhere,
create_app() builds exactly one hub and stores it on app.state. Routes
reach it through get_live_hub(); the lifespan starts and stops its
heartbeat task. Two apps in one process (e.g. in tests) never share
connections.
"""

import asyncio
from typing import Optional

from starlette.requests import HTTPConnection

from invoiceportal.realtime.broadcast import BroadcastBus
from invoiceportal.realtime.heartbeat import HeartbeatMonitor
from invoiceportal.realtime.registry import GOING_AWAY, ConnectionRegistry


class LiveUpdateHub:
    """Owns the live-update components for one application instance."""

    def __init__(self, admin_path: str, heartbeat_interval: float = 30.0):
        self.registry = ConnectionRegistry(admin_path)
        self.bus = BroadcastBus(self.registry)
        self.heartbeat = HeartbeatMonitor(self.registry, interval=heartbeat_interval)
        self._heartbeat_task: Optional[asyncio.Task] = None

    def start(self) -> None:
        if self._heartbeat_task is None:
            self._heartbeat_task = asyncio.create_task(self.heartbeat.run_loop())

    async def stop(self) -> None:
        """Stop the heartbeat and close every remaining connection."""
        self.heartbeat.stop()
        if self._heartbeat_task is not None:
            self._heartbeat_task.cancel()
            try:
                await self._heartbeat_task
            except asyncio.CancelledError:
                pass
            self._heartbeat_task = None

        for conn in self.registry:
            self.registry.remove(conn)
            await conn.close(code=GOING_AWAY, reason="Server shutting down")


def get_live_hub(conn: HTTPConnection) -> LiveUpdateHub:
    """FastAPI dependency — works for both HTTP requests and WebSockets."""
    return conn.app.state.live
