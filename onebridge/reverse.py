"""Reverse WebSocket connections — the bridge dials out to controllers.

Each configured URL gets a connection that reconnects on its own after
a close. Reconnects are tied to the service run that created them:
stopping the service advances the ``Generation`` first, and every
pending reconnect checks its stamp both when it is scheduled and when
its timer fires, so nothing from an old run reopens a socket.
"""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Optional

from .errors import TransportFailure
from .protocol import lifecycle_event

logger = logging.getLogger("onebridge.reverse")


class Generation:
    """Run token of the service. Stale stamps belong to a stopped run."""

    def __init__(self):
        self.current = 0

    def advance(self) -> int:
        self.current += 1
        return self.current

    def is_stale(self, stamp: int) -> bool:
        return stamp < self.current


class ConnectionState(str, Enum):
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSED_RETRYABLE = "closed_retryable"
    CLOSED_FINAL = "closed_final"


@dataclass
class ReverseConnection:
    url: str
    generation: int
    state: ConnectionState = ConnectionState.CONNECTING
    socket: Any = None


def reverse_headers(self_id: int, access_token: Optional[str] = None) -> dict[str, str]:
    headers = {
        "X-Self-ID": str(self_id),
        "X-Client-Role": "Universal",
        "User-Agent": "OneBot",
    }
    if access_token:
        headers["Authorization"] = f"Bearer {access_token}"
    return headers


class ReverseConnectionManager:
    """Owns outbound persistent connections and their reconnect policy."""

    def __init__(
        self,
        generation: Generation,
        self_id: int,
        connect: Callable[[str, dict], Awaitable[Any]],
        serve: Callable[[Any], Awaitable[None]],
        headers: Optional[dict] = None,
        reconnect_interval: float = 3.0,
    ):
        """Initialize manager.

        Args:
            generation: Run token shared with the service.
            self_id: Bot account id for lifecycle events.
            connect: Opens a client WebSocket: ``await connect(url, headers)``.
            serve: Handles inbound frames until the socket closes.
            headers: Identity/auth headers sent on connect.
            reconnect_interval: Seconds to wait before reconnecting.
        """
        self._generation = generation
        self._self_id = self_id
        self._connect = connect
        self._serve = serve
        self._headers = headers or {}
        self.reconnect_interval = reconnect_interval
        self.active: set = set()
        self.connections: dict[str, ReverseConnection] = {}
        self._tasks: set[asyncio.Task] = set()

    def open(self, url: str):
        """Start a connection to ``url`` stamped with the current run."""
        conn = ReverseConnection(url=url, generation=self._generation.current)
        self.connections[url] = conn
        self._spawn(self._run(conn))

    def _spawn(self, coro):
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _run(self, conn: ReverseConnection):
        try:
            conn.socket = await self._connect(conn.url, self._headers)
        except Exception as e:
            failure = TransportFailure(f"{type(e).__name__}: {e}")
            logger.error(f"Reverse ws ({conn.url}) connect failed: {failure}")
        else:
            if self._generation.is_stale(conn.generation):
                # Stopped while connecting
                await conn.socket.close()
                conn.state = ConnectionState.CLOSED_FINAL
                logger.info(f"Reverse ws ({conn.url}) connected after stop, closed")
                return
            await self._on_open(conn)
        self._on_close(conn)

    async def _on_open(self, conn: ReverseConnection):
        ws = conn.socket
        conn.state = ConnectionState.OPEN
        self.active.add(ws)
        logger.info(f"Reverse ws ({conn.url}) connected")
        try:
            for sub_type in ("connect", "enable"):
                await ws.send_json(lifecycle_event(self._self_id, sub_type))
            await self._serve(ws)
        except Exception as e:
            logger.error(f"Reverse ws ({conn.url}) error: {type(e).__name__}: {e}")
        finally:
            self.active.discard(ws)
            if not ws.closed:
                await ws.close()

    def _on_close(self, conn: ReverseConnection):
        if self._generation.is_stale(conn.generation):
            conn.state = ConnectionState.CLOSED_FINAL
            logger.info(f"Reverse ws ({conn.url}) closed")
            return
        conn.state = ConnectionState.CLOSED_RETRYABLE
        code = getattr(conn.socket, "close_code", None)
        logger.warning(
            f"Reverse ws ({conn.url}) closed (code {code}), "
            f"reconnecting in {self.reconnect_interval}s"
        )
        self._spawn(self._reconnect_later(conn))

    async def _reconnect_later(self, conn: ReverseConnection):
        await asyncio.sleep(self.reconnect_interval)
        if self._generation.is_stale(conn.generation):
            conn.state = ConnectionState.CLOSED_FINAL
            return
        self.open(conn.url)

    async def close_all(self):
        """Close every open reverse connection."""
        for ws in list(self.active):
            try:
                await ws.close()
            except Exception as e:
                logger.error(f"Error closing reverse ws: {type(e).__name__}: {e}")

    async def wait_closed(self, timeout: float = 5.0):
        """Wait for outstanding connection tasks, up to ``timeout`` seconds."""
        running = [t for t in self._tasks if not t.done()]
        if not running:
            return
        done, pending = await asyncio.wait(running, timeout=timeout)
        if pending:
            logger.debug(f"{len(pending)} reverse ws tasks still pending after {timeout}s")
