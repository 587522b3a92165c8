"""Event dispatcher — fans one event out to every sink.

Sinks:
- reverse WebSocket connections (bridge is the client)
- forward WebSocket connections (bridge is the server)
- webhook URLs (HTTP POST, response body may carry a quick operation)

Every send runs as its own task. A failing sink is logged and never
affects the others or the caller.
"""

import asyncio
import hashlib
import hmac
import json
import logging
from typing import Any, Callable, Iterable, Optional

import httpx

from .errors import TransportFailure
from .filter import matches

logger = logging.getLogger("onebridge.dispatcher")


def sign_body(body: bytes, secret: str) -> str:
    """``X-Signature`` header value for a webhook body."""
    digest = hmac.new(str(secret).encode("utf-8"), body, hashlib.sha1).hexdigest()
    return f"sha1={digest}"


class EventDispatcher:

    def __init__(
        self,
        self_id: int,
        sinks: Iterable[Callable[[], Iterable[Any]]] = (),
        webhook_urls: Iterable[str] = (),
        secret: Optional[str] = None,
        timeout: float = 30.0,
        quick_operation: Optional[Callable[[dict, Any], None]] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        """Initialize dispatcher.

        Args:
            self_id: Bot account id, sent as ``X-Self-ID``.
            sinks: Providers returning the currently open sockets.
            webhook_urls: URLs each event is POSTed to.
            secret: HMAC secret for the ``X-Signature`` header.
            timeout: Webhook request timeout in seconds.
            quick_operation: Called with (event, operation) for webhook replies.
            http_client: Client for webhook POSTs (created if not given).
        """
        self.self_id = self_id
        self.rule: Any = None
        self._sinks = list(sinks)
        self.webhook_urls = list(webhook_urls)
        self.secret = secret
        self.timeout = timeout
        self._quick_operation = quick_operation
        self._client = http_client
        self._owns_client = http_client is None
        self._pending: set[asyncio.Task] = set()

    def dispatch(self, event: dict) -> bool:
        """Forward an event if it passes the filter.

        Returns:
            False if the filter dropped the event.
        """
        if self.rule is not None and not matches(self.rule, event):
            logger.debug(f"Event dropped by filter: {event.get('post_type')}")
            return False
        self.broadcast(event)
        return True

    def broadcast(self, event: dict):
        """Forward an event to every sink, bypassing the filter."""
        serialized = json.dumps(event, ensure_ascii=False, default=str)
        for provider in self._sinks:
            for ws in list(provider()):
                self._spawn(self._send(ws, serialized))
        for url in self.webhook_urls:
            self._spawn(self._post(url, event, serialized))

    def _spawn(self, coro):
        task = asyncio.create_task(coro)
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _send(self, ws, serialized: str):
        try:
            await ws.send_str(serialized)
        except Exception as e:
            failure = TransportFailure(f"{type(e).__name__}: {e}")
            logger.error(f"Event push to ws failed: {failure}")
            return
        logger.debug(f"Event pushed to ws: {serialized}")

    def _client_or_new(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient()
        return self._client

    async def _post(self, url: str, event: dict, serialized: str):
        body = serialized.encode("utf-8")
        headers = {
            "Content-Type": "application/json",
            "X-Self-ID": str(self.self_id),
            "User-Agent": "OneBot",
        }
        if self.secret:
            headers["X-Signature"] = sign_body(body, self.secret)

        try:
            response = await self._client_or_new().post(
                url, content=body, headers=headers, timeout=self.timeout,
            )
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            failure = TransportFailure(f"{type(e).__name__}: {e}")
            logger.error(f"POST ({url}) failed: {failure}")
            return

        if not response.is_success:
            logger.warning(f"POST ({url}) got HTTP {response.status_code}")
            return
        text = response.text
        logger.debug(f"POST ({url}) got HTTP {response.status_code}: {text}")
        if not text.strip():
            return

        try:
            operation = json.loads(text)
        except ValueError as e:
            logger.error(f"POST ({url}) returned a body that is not JSON: {e}")
            return
        if self._quick_operation is None:
            return
        try:
            self._quick_operation(event, operation)
        except Exception as e:
            logger.error(f"Quick operation from {url} failed: {type(e).__name__}: {e}")

    async def drain(self):
        """Wait for in-flight sends and POSTs."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def aclose(self):
        await self.drain()
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None
