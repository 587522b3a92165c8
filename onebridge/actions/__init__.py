"""Action surface — method schema and request routing."""

from .router import ActionRouter, split_action, resolve_send_msg, to_response
from .schema import METHODS, MethodSpec, build_args, normalize_action, to_bool

__all__ = [
    "ActionRouter",
    "split_action",
    "resolve_send_msg",
    "to_response",
    "METHODS",
    "MethodSpec",
    "build_args",
    "normalize_action",
    "to_bool",
]
