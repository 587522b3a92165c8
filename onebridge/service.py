"""Bridge service — wires the bridge components around one bot runtime.

Usage:
    service = BridgeService(runtime, load_settings())
    await service.start()
    service.dispatch(event)      # for every event the runtime emits
    # ... later ...
    await service.close()
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional

import aiohttp
import httpx

from .actions.router import ActionRouter
from .config import BridgeSettings
from .dispatcher import EventDispatcher
from .filter import load_filter
from .protocol import heartbeat_event, lifecycle_event
from .queue import QueueTask, RateLimitedQueue
from .quick_operation import QuickOperationExecutor
from .reverse import Generation, ReverseConnectionManager, reverse_headers
from .transport.http import HttpTransport
from .transport.websocket import FrameHandler

logger = logging.getLogger("onebridge.service")


class BridgeService:
    """Lifecycle owner of one bridge instance."""

    def __init__(
        self,
        runtime,
        settings: BridgeSettings,
        http_client: Optional[httpx.AsyncClient] = None,
        ws_connect: Optional[Callable[[str, dict], Awaitable[Any]]] = None,
    ):
        """Initialize service.

        Args:
            runtime: Bot runtime (see ``onebridge.runtime.BotRuntime``).
            settings: Bridge settings.
            http_client: Client for webhook POSTs (created if not given).
            ws_connect: Opens reverse WebSockets; defaults to an aiohttp session.
        """
        self.runtime = runtime
        self.settings = settings
        self.self_id = runtime.self_id
        self.generation = Generation()
        self._running = False
        self._heartbeat: Optional[asyncio.Task] = None
        self._session: Optional[aiohttp.ClientSession] = None
        self._ws_connect = ws_connect

        self.executor = QuickOperationExecutor(runtime)
        self.queue = RateLimitedQueue(invoke=self._invoke_queued, interval=settings.rate_limit_interval)
        self.router = ActionRouter(
            runtime,
            queue=self.queue,
            restart=self.restart,
            quick_operation=self.executor.apply,
        )
        self.frames = FrameHandler(self.router)
        self.http = HttpTransport(settings, self.router, self.frames, self.self_id)
        self.reverse = ReverseConnectionManager(
            self.generation,
            self.self_id,
            connect=self._connect_reverse,
            serve=self.frames.serve,
            headers=reverse_headers(self.self_id, settings.access_token),
            reconnect_interval=settings.ws_reverse_reconnect_interval,
        )
        self.dispatcher = EventDispatcher(
            self.self_id,
            sinks=[lambda: self.reverse.active, lambda: self.http.clients],
            webhook_urls=settings.post_url,
            secret=settings.secret,
            timeout=settings.post_timeout,
            quick_operation=self.executor.apply,
            http_client=http_client,
        )

    @property
    def running(self) -> bool:
        return self._running

    def _invoke_queued(self, task: QueueTask):
        return self.router.invoke(task)

    async def _connect_reverse(self, url: str, headers: dict):
        if self._ws_connect is not None:
            return await self._ws_connect(url, headers)
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
        return await self._session.ws_connect(url, headers=headers)

    # ────────────────────────────────────────────────────────────
    # Lifecycle
    # ────────────────────────────────────────────────────────────

    async def start(self):
        """Start the bridge: filter, reverse connections, heartbeat, server."""
        if self._running:
            logger.warning("Bridge already running")
            return
        self._running = True
        s = self.settings

        self.dispatcher.rule = load_filter(s.event_filter) if s.event_filter else None

        for url in s.ws_reverse_url:
            self.reverse.open(url)

        self.dispatcher.broadcast(lifecycle_event(self.self_id, "enable"))

        if s.enable_heartbeat:
            self._heartbeat = asyncio.create_task(self._heartbeat_loop())

        if s.use_http or s.use_ws:
            await self.http.start()
        logger.info(f"Bridge started for {self.self_id}")

    async def stop(self):
        """Stop the bridge. Pending reconnects of this run are invalidated first."""
        if not self._running:
            return
        self.generation.advance()
        self._running = False

        self.dispatcher.broadcast(lifecycle_event(self.self_id, "disable"))
        await self.dispatcher.drain()

        if self._heartbeat:
            self._heartbeat.cancel()
            try:
                await self._heartbeat
            except asyncio.CancelledError:
                pass
            self._heartbeat = None

        await self.reverse.close_all()
        await self.http.stop()
        if self._session is not None:
            await self._session.close()
            self._session = None
        logger.info(f"Bridge stopped for {self.self_id}")

    async def restart(self):
        logger.info("Restarting bridge...")
        await self.stop()
        await self.start()

    async def close(self):
        """Final shutdown: stop and release the queue and HTTP client."""
        await self.stop()
        await self.queue.close()
        await self.reverse.wait_closed(timeout=1.0)
        await self.dispatcher.aclose()

    async def _heartbeat_loop(self):
        interval = self.settings.heartbeat_interval
        while True:
            await asyncio.sleep(interval)
            self.dispatcher.broadcast(heartbeat_event(self.self_id, int(interval * 1000)))

    # ────────────────────────────────────────────────────────────
    # Events from the runtime
    # ────────────────────────────────────────────────────────────

    def dispatch(self, event: dict) -> bool:
        """Forward a runtime event to controllers.

        Returns:
            False if the event filter dropped it.
        """
        if event.get("post_type") == "message" and self.settings.post_message_format == "string":
            event = {**event, "message": event.get("raw_message")}
        return self.dispatcher.dispatch(event)
