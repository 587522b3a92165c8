"""Wire types — protocol requests, response envelopes and meta events."""

import json
import time
from dataclasses import dataclass, field
from typing import Any, Optional

from .errors import (
    RETCODE_ASYNC,
    RETCODE_OK,
    RETCODE_RUNTIME_FAILED,
    MalformedRequest,
    RequestError,
)

# Distinguishes "no echo" from an explicit null echo
_NO_ECHO = object()


@dataclass
class ProtocolRequest:
    action: str
    params: dict = field(default_factory=dict)
    echo: Any = _NO_ECHO

    @property
    def has_echo(self) -> bool:
        return self.echo is not _NO_ECHO

    @classmethod
    def from_payload(cls, payload: Any) -> "ProtocolRequest":
        """Build a request from a decoded JSON payload.

        Raises:
            MalformedRequest: payload is not an object, action is not a
                string or params is not an object.
        """
        if not isinstance(payload, dict):
            raise MalformedRequest("request must be a JSON object")
        echo = payload["echo"] if "echo" in payload else _NO_ECHO
        action = payload.get("action")
        if not isinstance(action, str):
            raise MalformedRequest("action must be a string")
        params = payload.get("params")
        if params is None:
            params = {}
        if not isinstance(params, dict):
            raise MalformedRequest("params must be an object")
        return cls(action=action, params=params, echo=echo)


@dataclass
class ProtocolResponse:
    retcode: int
    status: str                        # "ok" | "async" | "failed"
    data: Any = None
    error: Optional[dict] = None       # {"code": int, "message": str}
    echo: Any = _NO_ECHO

    @classmethod
    def ok(cls, data: Any = None) -> "ProtocolResponse":
        return cls(retcode=RETCODE_OK, status="ok", data=data)

    @classmethod
    def async_(cls) -> "ProtocolResponse":
        return cls(retcode=RETCODE_ASYNC, status="async")

    @classmethod
    def failed(cls, code: int = RETCODE_RUNTIME_FAILED, message: str = "",
               retcode: Optional[int] = None) -> "ProtocolResponse":
        return cls(
            retcode=code if retcode is None else retcode,
            status="failed",
            error={"code": code, "message": message},
        )

    @classmethod
    def from_error(cls, exc: RequestError) -> "ProtocolResponse":
        return cls.failed(exc.retcode, exc.message)

    def with_echo(self, request: Optional[ProtocolRequest]) -> "ProtocolResponse":
        if request is not None and request.has_echo:
            self.echo = request.echo
        return self

    def to_dict(self) -> dict:
        out = {
            "retcode": self.retcode,
            "status": self.status,
            "data": self.data,
            "error": self.error,
        }
        if self.echo is not _NO_ECHO:
            out["echo"] = self.echo
        return out

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), ensure_ascii=False, default=str)


# ────────────────────────────────────────────────────────────
# Meta events generated by the bridge itself
# ────────────────────────────────────────────────────────────

def lifecycle_event(self_id: int, sub_type: str) -> dict:
    """Build a lifecycle meta event (sub_type: enable, disable or connect)."""
    return {
        "self_id": self_id,
        "time": int(time.time()),
        "post_type": "meta_event",
        "meta_event_type": "lifecycle",
        "sub_type": sub_type,
    }


def heartbeat_event(self_id: int, interval_ms: int) -> dict:
    return {
        "self_id": self_id,
        "time": int(time.time()),
        "post_type": "meta_event",
        "meta_event_type": "heartbeat",
        "interval": interval_ms,
    }
