"""Runtime method schema — the fixed action surface of the bridge.

Each action maps to one runtime method, its positional parameter order
and the parameters that arrive as strings/numbers but must reach the
runtime as real booleans. The table is built once and never changes;
an action that is not listed here cannot be called, whatever the
runtime happens to expose.
"""

from dataclasses import dataclass
from types import MappingProxyType
from typing import Any

BOOL_PARAMS = frozenset({
    "auto_escape",
    "reject_add_request",
    "enable",
    "approve",
    "block",
    "no_cache",
    "is_dismiss",
})

_FALSE_STRINGS = frozenset({"", "0", "false", "no", "off"})


@dataclass(frozen=True)
class MethodSpec:
    method: str
    params: tuple[str, ...]
    bools: frozenset[str]


def _spec(method: str, *params: str) -> MethodSpec:
    return MethodSpec(
        method=method,
        params=params,
        bools=frozenset(p for p in params if p in BOOL_PARAMS),
    )


_TABLE = [
    # Messages
    _spec("send_private_msg", "user_id", "message", "auto_escape"),
    _spec("send_group_msg", "group_id", "message", "auto_escape"),
    _spec("send_discuss_msg", "discuss_id", "message", "auto_escape"),
    _spec("delete_msg", "message_id"),
    _spec("get_msg", "message_id"),
    _spec("send_like", "user_id", "times"),

    # Group administration
    _spec("set_group_kick", "group_id", "user_id", "reject_add_request"),
    _spec("set_group_ban", "group_id", "user_id", "duration"),
    _spec("set_group_anonymous_ban", "group_id", "flag", "duration"),
    _spec("set_group_whole_ban", "group_id", "enable"),
    _spec("set_group_admin", "group_id", "user_id", "enable"),
    _spec("set_group_anonymous", "group_id", "enable"),
    _spec("set_group_card", "group_id", "user_id", "card"),
    _spec("set_group_name", "group_id", "group_name"),
    _spec("set_group_leave", "group_id", "is_dismiss"),
    _spec("set_group_special_title", "group_id", "user_id", "special_title", "duration"),
    _spec("send_group_notice", "group_id", "content"),
    _spec("send_group_poke", "group_id", "user_id"),
    _spec("invite_friend", "group_id", "user_id"),

    # Requests
    _spec("set_friend_add_request", "flag", "approve", "remark", "block"),
    _spec("set_group_add_request", "flag", "approve", "reason", "block"),

    # Information
    _spec("get_login_info"),
    _spec("get_stranger_info", "user_id", "no_cache"),
    _spec("get_friend_list"),
    _spec("get_stranger_list"),
    _spec("get_group_info", "group_id", "no_cache"),
    _spec("get_group_list"),
    _spec("get_group_member_info", "group_id", "user_id", "no_cache"),
    _spec("get_group_member_list", "group_id", "no_cache"),
    _spec("get_cookies", "domain"),
    _spec("get_csrf_token"),
    _spec("can_send_image"),
    _spec("can_send_record"),
    _spec("get_status"),
    _spec("get_version_info"),

    # Account
    _spec("delete_friend", "user_id", "block"),
    _spec("set_online_status", "status"),
    _spec("set_nickname", "nickname"),
    _spec("set_gender", "gender"),
    _spec("set_birthday", "birthday"),
    _spec("set_description", "description"),
    _spec("set_signature", "signature"),
    _spec("set_portrait", "file"),
    _spec("set_group_portrait", "group_id", "file"),

    # Maintenance
    _spec("clean_cache"),
    _spec("reload_friend_list"),
    _spec("reload_group_list"),
]

METHODS: MappingProxyType = MappingProxyType({spec.method: spec for spec in _TABLE})


def normalize_action(action: str) -> str:
    """Turn a wire action name into a runtime method identifier."""
    return action.strip().lower()


def to_bool(value: Any) -> bool:
    """Coerce "true"/"1"/1-style values into a real bool."""
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    if isinstance(value, (int, float)):
        return value != 0
    if isinstance(value, str):
        return value.strip().lower() not in _FALSE_STRINGS
    return bool(value)


def build_args(spec: MethodSpec, params: dict) -> list:
    """Positional args for a call, in schema order, present params only."""
    args = []
    for name in spec.params:
        if name in params:
            value = params[name]
            args.append(to_bool(value) if name in spec.bools else value)
    return args
