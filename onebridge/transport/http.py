"""Inbound HTTP API and forward WebSocket server (aiohttp).

One catch-all route serves both:
- ``GET/POST /<action>``: call an action, answer with the response envelope
- WebSocket upgrade on any path: forward WebSocket session

Access token (when configured) is read from ``Authorization``
(``Bearer <token>``, ``Token <token>`` or bare) or the ``access_token``
query parameter.
"""

import hmac
import json
import logging
from typing import Optional

from aiohttp import WSCloseCode, web

from ..errors import MalformedRequest, http_status_for
from ..protocol import ProtocolResponse, lifecycle_event

logger = logging.getLogger("onebridge.http")

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "POST, GET, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type, authorization",
}

# Close code sent to forward ws clients with a wrong access token
WRONG_TOKEN_CLOSE_CODE = WSCloseCode.PROTOCOL_ERROR


def _token_from_header(value: str) -> str:
    scheme, _, rest = value.strip().partition(" ")
    if rest and scheme.lower() in ("bearer", "token"):
        return rest.strip()
    return value.strip()


def _same_token(given: str, expected: str) -> bool:
    return hmac.compare_digest(given.encode("utf-8"), expected.encode("utf-8"))


def check_access(request: web.Request, access_token: Optional[str]) -> Optional[int]:
    """Return the HTTP status to reject with, or None if allowed."""
    if not access_token:
        return None
    header = request.headers.get("Authorization")
    if header:
        return None if _same_token(_token_from_header(header), access_token) else 403
    token = request.query.get("access_token")
    if not token:
        return 401
    return None if _same_token(token, access_token) else 403


def action_from_path(path: str) -> str:
    """The action is the last path segment."""
    return path.rstrip("/").rsplit("/", 1)[-1]


class HttpTransport:
    """aiohttp server carrying the HTTP API and forward WebSockets."""

    def __init__(self, settings, router, frames, self_id: int):
        self.settings = settings
        self.router = router
        self.frames = frames
        self.self_id = self_id
        self.clients: set[web.WebSocketResponse] = set()
        self._runner: Optional[web.AppRunner] = None

    def build_app(self) -> web.Application:
        app = web.Application()
        app.router.add_route("*", "/{tail:.*}", self.handle)
        return app

    async def start(self) -> bool:
        """Bind and serve. Returns False if the server could not start."""
        host, port = self.settings.host, self.settings.port
        self._runner = web.AppRunner(self.build_app())
        await self._runner.setup()
        site = web.TCPSite(self._runner, host, port)
        try:
            await site.start()
        except OSError as e:
            logger.error(f"Failed to start HTTP server on {host}:{port}: {e}")
            await self._runner.cleanup()
            self._runner = None
            return False
        logger.info(f"HTTP server listening on {host}:{port}")
        return True

    async def stop(self):
        for ws in list(self.clients):
            await ws.close()
        if self._runner:
            await self._runner.cleanup()
            self._runner = None
            logger.info("HTTP server stopped")

    # ────────────────────────────────────────────────────────────
    # Request handling
    # ────────────────────────────────────────────────────────────

    async def handle(self, request: web.Request) -> web.StreamResponse:
        if request.headers.get("Upgrade", "").lower() == "websocket" and self.settings.use_ws:
            return await self._handle_ws(request)
        if not self.settings.use_http:
            return web.Response(status=404)

        cors = CORS_HEADERS if self.settings.enable_cors else {}
        if request.method == "OPTIONS" and self.settings.enable_cors:
            return web.Response(status=200, headers=cors)

        rejected = check_access(request, self.settings.access_token)
        if rejected:
            return web.Response(status=rejected)

        action = action_from_path(request.path)
        if request.method == "GET":
            logger.debug(f"GET {request.path_qs}")
            params = {k: v for k, v in request.query.items() if k != "access_token"}
        elif request.method == "POST":
            params = await self._read_body(request)
            if isinstance(params, web.Response):
                return params
        else:
            return web.Response(status=405)

        response = await self.router.apply({"action": action, "params": params})
        return self._respond(response, cors)

    async def _read_body(self, request: web.Request):
        """Decode POST params; a web.Response means the body was rejected."""
        body = await request.text()
        logger.debug(f"POST {request.path}: {body}")
        content_type = request.headers.get("Content-Type", "")
        if not content_type or "json" in content_type:
            if not body:
                return {}
            try:
                return json.loads(body)
            except ValueError:
                return self._respond(
                    ProtocolResponse.from_error(MalformedRequest("body is not valid JSON")),
                    CORS_HEADERS if self.settings.enable_cors else {},
                )
        if "x-www-form-urlencoded" in content_type:
            form = await request.post()
            return {k: v for k, v in form.items()}
        return web.Response(status=406)

    @staticmethod
    def _respond(response: ProtocolResponse, headers: dict) -> web.Response:
        return web.Response(
            text=response.to_json(),
            status=http_status_for(response),
            content_type="application/json",
            charset="utf-8",
            headers=headers,
        )

    async def _handle_ws(self, request: web.Request) -> web.WebSocketResponse:
        ws = web.WebSocketResponse()
        await ws.prepare(request)
        if check_access(request, self.settings.access_token):
            logger.warning(f"Forward ws from {request.remote} rejected: wrong access token")
            await ws.close(code=WRONG_TOKEN_CLOSE_CODE, message=b"wrong access token")
            return ws

        self.clients.add(ws)
        logger.info(f"Forward ws connected from {request.remote}")
        try:
            for sub_type in ("connect", "enable"):
                await ws.send_json(lifecycle_event(self.self_id, sub_type))
            await self.frames.serve(ws)
        finally:
            self.clients.discard(ws)
            logger.warning(f"Forward ws closed (code {ws.close_code})")
        return ws
