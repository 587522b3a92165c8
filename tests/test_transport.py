"""Tests for the HTTP API, forward WebSocket server and frame handling."""

import json

import aiohttp
import pytest
from aiohttp.test_utils import TestClient, TestServer

from onebridge.actions.router import ActionRouter
from onebridge.config import BridgeSettings
from onebridge.errors import RETCODE_MALFORMED, RETCODE_NOT_FOUND
from onebridge.transport.http import WRONG_TOKEN_CLOSE_CODE, HttpTransport, action_from_path
from onebridge.transport.websocket import FrameHandler


def make_transport(runtime, **overrides) -> HttpTransport:
    values = {"host": "127.0.0.1", "port": 0, "use_http": True, "use_ws": True}
    values.update(overrides)
    settings = BridgeSettings(**values)
    router = ActionRouter(runtime)
    return HttpTransport(settings, router, FrameHandler(router), runtime.self_id)


async def make_client(transport: HttpTransport) -> TestClient:
    client = TestClient(TestServer(transport.build_app()))
    await client.start_server()
    return client


@pytest.fixture
async def client(runtime):
    client = await make_client(make_transport(runtime))
    yield client
    await client.close()


@pytest.fixture
async def secured(runtime):
    client = await make_client(make_transport(runtime, access_token="s3cret"))
    yield client
    await client.close()


class TestFrames:

    @pytest.mark.asyncio
    async def test_frame_round_trip(self, runtime):
        frames = FrameHandler(ActionRouter(runtime))
        reply = json.loads(await frames.handle_frame(json.dumps({"action": "get_version_info", "echo": 3})))
        assert reply["status"] == "ok"
        assert reply["echo"] == 3

    @pytest.mark.asyncio
    async def test_invalid_json_frame(self, runtime):
        frames = FrameHandler(ActionRouter(runtime))
        reply = json.loads(await frames.handle_frame("{not json"))
        assert reply["retcode"] == RETCODE_MALFORMED
        assert "echo" not in reply


class TestPaths:

    @pytest.mark.parametrize("path,action", [
        ("/get_status", "get_status"),
        ("/get_status/", "get_status"),
        ("/api/v1/send_msg", "send_msg"),
    ])
    def test_action_from_path(self, path, action):
        assert action_from_path(path) == action


class TestHttpApi:

    @pytest.mark.asyncio
    async def test_get_with_query_params(self, client, runtime):
        resp = await client.get("/send_msg", params={"user_id": "1", "message": "hi"})
        assert resp.status == 200
        assert resp.content_type == "application/json"
        body = await resp.json()
        assert body["data"] == {"message_id": "p1"}
        assert runtime.calls == [("send_private_msg", ("1", "hi", False))]

    @pytest.mark.asyncio
    async def test_post_json(self, client, runtime):
        resp = await client.post("/send_group_msg", json={"group_id": 5, "message": "hi", "auto_escape": "1"})
        assert resp.status == 200
        assert runtime.calls == [("send_group_msg", (5, "hi", True))]

    @pytest.mark.asyncio
    async def test_post_form(self, client, runtime):
        resp = await client.post("/send_group_msg", data={"group_id": "5", "message": "hi"})
        assert resp.status == 200
        assert runtime.calls == [("send_group_msg", ("5", "hi", False))]

    @pytest.mark.asyncio
    async def test_post_empty_body(self, client):
        resp = await client.post("/get_version_info", data=b"", headers={"Content-Type": "application/json"})
        assert resp.status == 200
        assert (await resp.json())["data"]["app_name"] == "fake"

    @pytest.mark.asyncio
    async def test_post_invalid_json(self, client):
        resp = await client.post("/get_status", data=b"{oops", headers={"Content-Type": "application/json"})
        assert resp.status == 400
        assert (await resp.json())["retcode"] == RETCODE_MALFORMED

    @pytest.mark.asyncio
    async def test_unsupported_content_type(self, client):
        resp = await client.post("/get_status", data=b"x", headers={"Content-Type": "text/plain"})
        assert resp.status == 406

    @pytest.mark.asyncio
    async def test_unknown_action(self, client):
        resp = await client.get("/frobnicate")
        assert resp.status == 404
        assert (await resp.json())["retcode"] == RETCODE_NOT_FOUND

    @pytest.mark.asyncio
    async def test_method_not_allowed(self, client):
        resp = await client.put("/get_status")
        assert resp.status == 405

    @pytest.mark.asyncio
    async def test_runtime_failure_is_200(self, client):
        resp = await client.get("/get_status")
        assert resp.status == 200
        assert (await resp.json())["status"] == "failed"

    @pytest.mark.asyncio
    async def test_async_action(self, client):
        resp = await client.get("/send_group_msg_async", params={"group_id": "1", "message": "x"})
        body = await resp.json()
        assert body == {"retcode": 1, "status": "async", "data": None, "error": None}

    @pytest.mark.asyncio
    async def test_http_disabled(self, runtime):
        client = await make_client(make_transport(runtime, use_http=False))
        try:
            resp = await client.get("/get_version_info")
            assert resp.status == 404
        finally:
            await client.close()


class TestAccessToken:

    @pytest.mark.asyncio
    async def test_missing_token(self, secured):
        resp = await secured.get("/get_version_info")
        assert resp.status == 401

    @pytest.mark.asyncio
    async def test_wrong_token(self, secured):
        resp = await secured.get("/get_version_info", headers={"Authorization": "Bearer nope"})
        assert resp.status == 403

    @pytest.mark.asyncio
    @pytest.mark.parametrize("header", ["Bearer s3cret", "Token s3cret", "s3cret"])
    async def test_header_token(self, secured, header):
        resp = await secured.get("/get_version_info", headers={"Authorization": header})
        assert resp.status == 200

    @pytest.mark.asyncio
    async def test_query_token_not_passed_as_param(self, secured, runtime):
        resp = await secured.get("/delete_msg", params={"access_token": "s3cret", "message_id": "9"})
        assert resp.status == 200
        assert runtime.calls == [("delete_msg", ("9",))]

    @pytest.mark.asyncio
    async def test_wrong_query_token(self, secured):
        resp = await secured.get("/get_version_info", params={"access_token": "nope"})
        assert resp.status == 403


class TestCors:

    @pytest.mark.asyncio
    async def test_preflight(self, runtime):
        client = await make_client(make_transport(runtime, enable_cors=True, access_token="s3cret"))
        try:
            resp = await client.options("/send_msg")
            assert resp.status == 200
            assert resp.headers["Access-Control-Allow-Origin"] == "*"
        finally:
            await client.close()

    @pytest.mark.asyncio
    async def test_cors_headers_on_response(self, runtime):
        client = await make_client(make_transport(runtime, enable_cors=True))
        try:
            resp = await client.get("/get_version_info")
            assert resp.headers["Access-Control-Allow-Origin"] == "*"
        finally:
            await client.close()

    @pytest.mark.asyncio
    async def test_no_cors_by_default(self, client):
        resp = await client.get("/get_version_info")
        assert "Access-Control-Allow-Origin" not in resp.headers


class TestForwardWebSocket:

    @pytest.mark.asyncio
    async def test_lifecycle_then_request(self, client):
        ws = await client.ws_connect("/")
        connect = await ws.receive_json()
        enable = await ws.receive_json()
        assert (connect["sub_type"], enable["sub_type"]) == ("connect", "enable")
        assert connect["self_id"] == 10001

        await ws.send_str(json.dumps({"action": "get_version_info", "echo": "v"}))
        reply = await ws.receive_json()
        assert reply["status"] == "ok"
        assert reply["echo"] == "v"
        await ws.close()

    @pytest.mark.asyncio
    async def test_unknown_action_frame(self, client):
        ws = await client.ws_connect("/")
        await ws.receive_json()
        await ws.receive_json()
        await ws.send_str(json.dumps({"action": "frobnicate"}))
        reply = await ws.receive_json()
        assert reply["status"] == "failed"
        assert reply["retcode"] == RETCODE_NOT_FOUND
        await ws.close()

    @pytest.mark.asyncio
    async def test_invalid_frame(self, client):
        ws = await client.ws_connect("/")
        await ws.receive_json()
        await ws.receive_json()
        await ws.send_str("not json")
        reply = await ws.receive_json()
        assert reply["retcode"] == RETCODE_MALFORMED
        await ws.close()

    @pytest.mark.asyncio
    async def test_wrong_token_closes(self, secured):
        ws = await secured.ws_connect("/", headers={"Authorization": "Bearer nope"})
        msg = await ws.receive()
        assert msg.type == aiohttp.WSMsgType.CLOSE
        assert msg.data == WRONG_TOKEN_CLOSE_CODE
        await ws.close()

    @pytest.mark.asyncio
    async def test_token_accepted(self, secured):
        ws = await secured.ws_connect("/", headers={"Authorization": "Bearer s3cret"})
        assert (await ws.receive_json())["sub_type"] == "connect"
        await ws.close()

    @pytest.mark.asyncio
    async def test_ws_disabled_falls_back_to_http(self, runtime):
        client = await make_client(make_transport(runtime, use_ws=False))
        try:
            with pytest.raises(aiohttp.WSServerHandshakeError):
                await client.ws_connect("/")
        finally:
            await client.close()
