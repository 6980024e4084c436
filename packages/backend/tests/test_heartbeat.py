"""Tests for the heartbeat monitor.

Learn: Ticks are driven by hand. A member that never answers is probed
on the first tick and evicted on the second, no sooner.
"""

import asyncio
import json

import pytest
from starlette.websockets import WebSocketDisconnect

from invoiceportal.realtime.heartbeat import HeartbeatMonitor


@pytest.mark.asyncio
async def test_tick_probes_live_members(registry, make_connection):
    conn = make_connection()
    await registry.add(conn)
    monitor = HeartbeatMonitor(registry)

    evicted = await monitor.tick()

    assert evicted == 0
    assert conn in registry
    assert conn.is_alive is False
    assert json.loads(conn.websocket.sent[-1]) == {"type": "PING"}


@pytest.mark.asyncio
async def test_silent_member_evicted_on_second_tick(registry, make_connection):
    conn = make_connection()
    await registry.add(conn)
    monitor = HeartbeatMonitor(registry)

    await monitor.tick()
    assert conn in registry

    evicted = await monitor.tick()

    assert evicted == 1
    assert conn not in registry
    assert conn.websocket.closed[0] == 1001


@pytest.mark.asyncio
async def test_responsive_member_survives_many_ticks(registry, make_connection):
    conn = make_connection()
    await registry.add(conn)
    monitor = HeartbeatMonitor(registry)

    for _ in range(5):
        await monitor.tick()
        conn.mark_alive()  # the PONG arrives between ticks

    assert conn in registry
    assert conn.websocket.closed is None
    assert len(conn.websocket.sent) == 5


@pytest.mark.asyncio
async def test_failed_probe_counts_as_missed(registry, make_connection):
    conn = make_connection(fail_sends=True)
    await registry.add(conn)
    monitor = HeartbeatMonitor(registry)

    assert await monitor.tick() == 0
    assert conn in registry

    assert await monitor.tick() == 1
    assert len(registry) == 0


@pytest.mark.asyncio
async def test_eviction_only_affects_silent_members(registry, make_connection):
    quiet, chatty = make_connection(), make_connection()
    await registry.add(quiet)
    await registry.add(chatty)
    monitor = HeartbeatMonitor(registry)

    await monitor.tick()
    chatty.mark_alive()
    await monitor.tick()

    assert quiet not in registry
    assert chatty in registry


@pytest.mark.asyncio
async def test_run_loop_evicts_until_stopped(registry, make_connection):
    conn = make_connection()
    await registry.add(conn)
    monitor = HeartbeatMonitor(registry, interval=0.01)

    task = asyncio.create_task(monitor.run_loop())
    for _ in range(100):
        if conn not in registry:
            break
        await asyncio.sleep(0.01)
    monitor.stop()
    task.cancel()
    try:
        await task
    except asyncio.CancelledError:
        pass

    assert conn not in registry


@pytest.mark.asyncio
async def test_broken_close_does_not_stop_the_sweep(registry, make_connection):
    """Learn: Closing a socket whose transport already failed can raise.

    The member is still evicted and every other member is still probed.
    """
    broken = make_connection(close_error=WebSocketDisconnect(code=1006))
    healthy = make_connection()
    await registry.add(broken)
    await registry.add(healthy)
    monitor = HeartbeatMonitor(registry)

    await monitor.tick()
    healthy.mark_alive()
    evicted = await monitor.tick()

    assert evicted == 1
    assert broken not in registry
    assert healthy in registry
    assert len(healthy.websocket.sent) == 2


@pytest.mark.asyncio
async def test_run_loop_survives_a_failing_tick(registry, monkeypatch):
    monitor = HeartbeatMonitor(registry, interval=0.01)
    real_tick = monitor.tick
    calls = 0

    async def flaky_tick():
        nonlocal calls
        calls += 1
        if calls == 1:
            raise RuntimeError("sweep blew up")
        return await real_tick()

    monkeypatch.setattr(monitor, "tick", flaky_tick)

    task = asyncio.create_task(monitor.run_loop())
    for _ in range(100):
        if calls >= 3:
            break
        await asyncio.sleep(0.01)

    assert not task.done()
    assert calls >= 3

    monitor.stop()
    task.cancel()
    try:
        await task
    except asyncio.CancelledError:
        pass
