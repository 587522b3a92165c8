"""Pytest configuration and shared fixtures."""

import asyncio

import pytest

from onebridge.config import BridgeSettings
from onebridge.errors import RuntimeCallError
from onebridge.runtime import BotRuntime, IdMap, RuntimeResult


class FakeRuntime(BotRuntime):
    """In-memory runtime that records every call it receives."""

    def __init__(self, self_id: int = 10001):
        self._self_id = self_id
        self.calls: list[tuple[str, tuple]] = []
        self.call_times: list[float] = []
        self.dispatch = None

    @property
    def self_id(self) -> int:
        return self._self_id

    def attach(self, dispatch):
        self.dispatch = dispatch

    def _record(self, method, *args):
        self.calls.append((method, args))
        self.call_times.append(asyncio.get_running_loop().time())

    # Quick-operation surface
    async def send_private_msg(self, user_id, message, auto_escape=False):
        self._record("send_private_msg", user_id, message, auto_escape)
        return RuntimeResult(data={"message_id": "p1"})

    async def send_group_msg(self, group_id, message, auto_escape=False):
        self._record("send_group_msg", group_id, message, auto_escape)
        return RuntimeResult(data={"message_id": "g1"})

    async def delete_msg(self, message_id):
        self._record("delete_msg", message_id)
        return RuntimeResult()

    async def set_group_kick(self, group_id, user_id, reject_add_request=False):
        self._record("set_group_kick", group_id, user_id, reject_add_request)
        return RuntimeResult()

    async def set_group_ban(self, group_id, user_id, duration=1800):
        self._record("set_group_ban", group_id, user_id, duration)
        return RuntimeResult()

    async def set_friend_add_request(self, flag, approve=True, remark="", block=False):
        self._record("set_friend_add_request", flag, approve, remark, block)
        return RuntimeResult()

    async def set_group_add_request(self, flag, approve=True, reason="", block=False):
        self._record("set_group_add_request", flag, approve, reason, block)
        return RuntimeResult()

    # Optional actions
    def get_login_info(self):
        self._record("get_login_info")
        return {"retcode": 0, "status": "ok", "data": {"user_id": self._self_id, "nickname": "bot"}, "error": None}

    async def get_friend_list(self):
        self._record("get_friend_list")
        return RuntimeResult(data=IdMap({
            20001: {"user_id": 20001, "nickname": "alice"},
            20002: {"user_id": 20002, "nickname": "bob"},
        }))

    async def get_group_info(self, group_id, no_cache=False):
        self._record("get_group_info", group_id, no_cache)
        raise RuntimeCallError("group not found", code=104)

    async def get_status(self):
        self._record("get_status")
        raise ValueError("status unavailable")

    async def get_version_info(self):
        self._record("get_version_info")
        return {"app_name": "fake", "app_version": "1.0"}

    async def set_group_whole_ban(self, group_id, enable=True):
        self._record("set_group_whole_ban", group_id, enable)
        return RuntimeResult()


@pytest.fixture
def runtime():
    return FakeRuntime()


@pytest.fixture
def settings():
    return BridgeSettings(
        host="127.0.0.1",
        port=0,
        use_http=True,
        use_ws=True,
        rate_limit_interval=0.05,
        ws_reverse_reconnect_interval=0.05,
    )


async def settle(rounds: int = 5):
    """Let background tasks run a few loop iterations."""
    for _ in range(rounds):
        await asyncio.sleep(0)


def group_message(**overrides) -> dict:
    event = {
        "self_id": 10001,
        "time": 1606094532,
        "post_type": "message",
        "message_type": "group",
        "sub_type": "normal",
        "message_id": "REAq4xY6N",
        "group_id": 123456,
        "user_id": 654321,
        "anonymous": None,
        "message": "hello world",
        "raw_message": "hello world",
        "font": "sans",
        "sender": {"user_id": 654321, "nickname": "alice", "role": "member"},
    }
    event.update(overrides)
    return event
