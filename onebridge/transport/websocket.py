"""WebSocket frame handling shared by forward and reverse connections."""

import json
import logging

import aiohttp

from ..errors import MalformedRequest
from ..protocol import ProtocolResponse

logger = logging.getLogger("onebridge.ws")


class FrameHandler:
    """Answers each inbound text frame with one response frame."""

    def __init__(self, router):
        self.router = router

    async def handle_frame(self, text: str) -> str:
        """Parse a request frame, route it and return the response frame."""
        logger.debug(f"Received ws frame: {text}")
        try:
            payload = json.loads(text)
        except ValueError:
            return ProtocolResponse.from_error(MalformedRequest("frame is not valid JSON")).to_json()
        response = await self.router.apply(payload)
        return response.to_json()

    async def serve(self, ws):
        """Process frames until the socket closes.

        Works with both ``web.WebSocketResponse`` and
        ``aiohttp.ClientWebSocketResponse``.
        """
        async for msg in ws:
            if msg.type == aiohttp.WSMsgType.TEXT:
                reply = await self.handle_frame(msg.data)
                await ws.send_str(reply)
            elif msg.type == aiohttp.WSMsgType.BINARY:
                reply = await self.handle_frame(msg.data.decode("utf-8", errors="replace"))
                await ws.send_str(reply)
            elif msg.type == aiohttp.WSMsgType.ERROR:
                logger.error(f"ws connection error: {ws.exception()}")
                break
