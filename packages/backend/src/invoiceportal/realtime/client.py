"""Live-update client — one dashboard's WebSocket session with auto-reconnect.

Learn: The client is an explicit state machine:

  DISCONNECTED ──enable()──▶ CONNECTING ──opened──▶ CONNECTED
        ▲                        │                      │
        │                    failed / closed(≠1000) ────┘
        │                        ▼
        └──── disable() ◀── ERROR / DISCONNECTED ──timer──▶ CONNECTING

Transport activity never mutates the client directly. A session task
reads the socket and posts immutable signals (Opened, Received, Closed,
Failed) into a queue; a single pump task feeds them to handle(), the one
place where transitions happen. Every signal and every retry timer is
tagged with the session epoch, so anything left over from an earlier
session — or from before disable() — is dropped on arrival.

Reconnects back off exponentially: 1s, 2s, 4s, 8s, 16s (capped at 30s),
then give up after 5 consecutive failures until enable() is called again.
A normal closure (1000) means someone hung up on purpose: no retry.
A policy violation (1008) means the server rejected the path: no retry.
"""

import asyncio
import enum
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, Protocol, Union

import structlog
from websockets.asyncio.client import connect
from websockets.exceptions import ConnectionClosed, WebSocketException

from invoiceportal.events.models import DomainEvent, PONG_FRAME, control_type, decode_frame
from invoiceportal.events.types import PING

logger = structlog.get_logger()

NORMAL_CLOSURE = 1000
ABNORMAL_CLOSURE = 1006
POLICY_VIOLATION = 1008

BASE_DELAY_MS = 1000
MAX_DELAY_MS = 30000
MAX_RECONNECT_ATTEMPTS = 5

# Errors that mean "the network let us down", not "the code is broken"
TRANSPORT_ERRORS = (OSError, asyncio.TimeoutError, WebSocketException)


class ConnectionStatus(str, enum.Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    ERROR = "error"


def backoff_delay_ms(attempt: int) -> int:
    """Delay before retry number `attempt` (0-based), capped at 30s."""
    return min(BASE_DELAY_MS * 2**attempt, MAX_DELAY_MS)


# ─── Transport ──────────────────────────────────────────


class Transport(Protocol):
    """What the client needs from a socket. websockets' ClientConnection fits."""

    close_code: Optional[int]
    close_reason: Optional[str]

    def __aiter__(self) -> Any: ...

    async def send(self, message: str) -> None: ...

    async def close(self, code: int = NORMAL_CLOSURE, reason: str = "") -> None: ...


Connector = Callable[[str], Awaitable[Transport]]


def websocket_connector(
    headers: Optional[dict[str, str]] = None, open_timeout: float = 10.0
) -> Connector:
    """Build a connector that opens a real WebSocket (cookies go in headers)."""

    async def _connect(url: str) -> Transport:
        return await connect(
            url,
            additional_headers=headers,
            open_timeout=open_timeout,
        )

    return _connect


# ─── Signals (transport → state machine) ────────────────


@dataclass(frozen=True)
class Opened:
    pass


@dataclass(frozen=True)
class Received:
    frame: str


@dataclass(frozen=True)
class Closed:
    code: int
    reason: str = ""


@dataclass(frozen=True)
class Failed:
    error: str


Signal = Union[Opened, Received, Closed, Failed]


# ─── Client ─────────────────────────────────────────────


class LiveUpdateClient:
    """Owns one logical live-update session for a dashboard.

    on_event receives every decoded domain event, in arrival order.
    on_status (optional) receives every status change.
    schedule defaults to loop.call_later; tests swap in a fake clock.
    """

    def __init__(
        self,
        url: str,
        on_event: Callable[[DomainEvent], Any],
        *,
        connector: Optional[Connector] = None,
        on_status: Optional[Callable[[ConnectionStatus], Any]] = None,
        schedule: Optional[Callable[..., asyncio.TimerHandle]] = None,
        max_reconnect_attempts: int = MAX_RECONNECT_ATTEMPTS,
    ):
        self.url = url
        self.on_event = on_event
        self.on_status = on_status
        self.connector = connector or websocket_connector()
        self.max_reconnect_attempts = max_reconnect_attempts
        self._schedule = schedule

        self.status = ConnectionStatus.DISCONNECTED
        self.reconnect_attempt = 0
        self.pending_timer: Optional[asyncio.TimerHandle] = None

        self._enabled = False
        self._epoch = 0
        self._transport: Optional[Transport] = None
        self._session_task: Optional[asyncio.Task] = None
        self._pump_task: Optional[asyncio.Task] = None
        self._inbox: asyncio.Queue[tuple[int, Signal]] = asyncio.Queue()

    @property
    def enabled(self) -> bool:
        return self._enabled

    # ─── Public API ─────────────────────────────────────

    def enable(self) -> None:
        """Start (or restart after giving up) the live-update session."""
        if self._enabled and (
            self.status in (ConnectionStatus.CONNECTING, ConnectionStatus.CONNECTED)
            or self.pending_timer is not None
        ):
            return

        self._enabled = True
        self.reconnect_attempt = 0
        if self._pump_task is None:
            self._pump_task = asyncio.create_task(self._pump())
        self._open_session()

    async def disable(self) -> None:
        """Stop for good: cancel any retry, close the socket with 1000, reset.

        Everything that affects state happens before the first await, so no
        timer, signal, or callback from the old session can be observed once
        this coroutine has started.
        """
        self._enabled = False
        self._epoch += 1

        if self.pending_timer is not None:
            self.pending_timer.cancel()
            self.pending_timer = None

        transport, self._transport = self._transport, None
        session, self._session_task = self._session_task, None
        pump, self._pump_task = self._pump_task, None

        self.reconnect_attempt = 0
        self._set_status(ConnectionStatus.DISCONNECTED)

        for task in (session, pump):
            if task is not None and not task.done():
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass

        if transport is not None:
            try:
                await transport.close(NORMAL_CLOSURE, "Client disabled")
            except TRANSPORT_ERRORS as e:
                logger.debug("live.close_failed", error=str(e))

    # ─── State machine ──────────────────────────────────

    def handle(self, signal: Signal) -> None:
        """Apply one transport signal. The only place status changes on its own."""
        if isinstance(signal, Opened):
            self.reconnect_attempt = 0
            self._set_status(ConnectionStatus.CONNECTED)

        elif isinstance(signal, Received):
            try:
                event = decode_frame(signal.frame)
            except ValueError as e:
                logger.warning("live.malformed_frame", error=str(e), frame=signal.frame[:200])
                return
            self.on_event(event)

        elif isinstance(signal, Closed):
            self._transport = None
            if signal.code == NORMAL_CLOSURE:
                self._set_status(ConnectionStatus.DISCONNECTED)
            elif signal.code == POLICY_VIOLATION:
                logger.error("live.rejected", url=self.url, reason=signal.reason)
                self._set_status(ConnectionStatus.ERROR)
            else:
                logger.info("live.closed", code=signal.code, reason=signal.reason)
                self._set_status(ConnectionStatus.DISCONNECTED)
                self._schedule_reconnect()

        elif isinstance(signal, Failed):
            self._transport = None
            logger.warning("live.transport_error", url=self.url, error=signal.error)
            self._set_status(ConnectionStatus.ERROR)
            self._schedule_reconnect()

    def _set_status(self, status: ConnectionStatus) -> None:
        if status == self.status:
            return
        self.status = status
        if self.on_status is not None:
            self.on_status(status)

    def _schedule_reconnect(self) -> None:
        if not self._enabled:
            return
        if self.reconnect_attempt >= self.max_reconnect_attempts:
            logger.warning("live.reconnect_gave_up", attempts=self.reconnect_attempt)
            return

        delay_ms = backoff_delay_ms(self.reconnect_attempt)
        self.reconnect_attempt += 1
        schedule = self._schedule or asyncio.get_running_loop().call_later
        self.pending_timer = schedule(delay_ms / 1000, self._on_retry_timer, self._epoch)
        logger.info(
            "live.reconnect_scheduled",
            attempt=self.reconnect_attempt,
            delay_ms=delay_ms,
        )

    def _on_retry_timer(self, epoch: int) -> None:
        if epoch != self._epoch or not self._enabled:
            return
        self.pending_timer = None
        self._open_session()

    # ─── Session plumbing ───────────────────────────────

    def _open_session(self) -> None:
        self._epoch += 1
        self._set_status(ConnectionStatus.CONNECTING)
        self._session_task = asyncio.create_task(self._run_session(self._epoch))

    def _post(self, epoch: int, signal: Signal) -> None:
        self._inbox.put_nowait((epoch, signal))

    async def _run_session(self, epoch: int) -> None:
        """Open the transport and turn its activity into signals."""
        try:
            transport = await self.connector(self.url)
        except Exception as e:
            if not isinstance(e, TRANSPORT_ERRORS):
                logger.exception("live.connector_failed", url=self.url)
            self._post(epoch, Failed(str(e) or type(e).__name__))
            return

        if epoch != self._epoch:
            await self._discard(transport, "Stale session")
            return

        self._transport = transport
        self._post(epoch, Opened())

        try:
            async for frame in transport:
                if isinstance(frame, bytes):
                    frame = frame.decode("utf-8", errors="replace")
                if control_type(frame) == PING:
                    await transport.send(PONG_FRAME)
                    continue
                self._post(epoch, Received(frame))
        except ConnectionClosed:
            pass
        except Exception as e:
            if not isinstance(e, TRANSPORT_ERRORS):
                logger.exception("live.session_failed", url=self.url)
            self._post(epoch, Failed(str(e) or type(e).__name__))
            await self._discard(transport, "Session failed")
            return

        self._post(
            epoch,
            Closed(transport.close_code or ABNORMAL_CLOSURE, transport.close_reason or ""),
        )

    async def _discard(self, transport: Transport, reason: str) -> None:
        """Best-effort close of a transport this session is giving up on."""
        try:
            await transport.close(NORMAL_CLOSURE, reason)
        except Exception as e:
            logger.debug("live.close_failed", error=str(e))

    async def _pump(self) -> None:
        """Feed queued signals into handle(), dropping stale ones."""
        while True:
            epoch, signal = await self._inbox.get()
            if epoch != self._epoch:
                continue
            try:
                self.handle(signal)
            except Exception:
                logger.exception("live.handler_failed", signal=type(signal).__name__)
