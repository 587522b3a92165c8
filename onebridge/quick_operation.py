"""Quick operations — side effects a controller requests in reply to an event.

A webhook response body (or a ``.handle_quick_operation`` request) carries
an operation object such as ``{"reply": "pong", "ban": true}``. The
executor maps it onto runtime calls for the event it answers. Every call
is fire-and-forget; fields that do not apply are ignored.
"""

import logging
from typing import Any

from .actions.schema import to_bool
from .runtime import fire

logger = logging.getLogger("onebridge.quick_operation")

DEFAULT_BAN_DURATION = 1800


class QuickOperationExecutor:

    def __init__(self, runtime):
        self.runtime = runtime

    def apply(self, event: dict, operation: Any):
        """Apply a quick operation for the event it responds to."""
        if not isinstance(operation, dict):
            logger.warning(f"Ignoring quick operation that is not an object: {operation!r}")
            return
        post_type = event.get("post_type")
        if post_type == "message":
            self._on_message(event, operation)
        elif post_type == "request":
            self._on_request(event, operation)

    def _on_message(self, event: dict, op: dict):
        message_type = event.get("message_type")
        rt = self.runtime

        # Discuss conversations cannot be replied to
        if op.get("reply") and message_type != "discuss":
            auto_escape = to_bool(op.get("auto_escape", False))
            if message_type == "private":
                fire(rt.send_private_msg(event["user_id"], op["reply"], auto_escape), "quick reply")
            else:
                fire(rt.send_group_msg(event["group_id"], op["reply"], auto_escape), "quick reply")

        if message_type != "group":
            return

        if op.get("delete"):
            fire(rt.delete_msg(event["message_id"]), "quick delete")
        if op.get("kick") and not event.get("anonymous"):
            fire(
                rt.set_group_kick(
                    event["group_id"], event["user_id"], to_bool(op.get("reject_add_request", False))
                ),
                "quick kick",
            )
        if op.get("ban"):
            duration = op.get("ban_duration")
            if not isinstance(duration, (int, float)) or isinstance(duration, bool) or duration <= 0:
                duration = DEFAULT_BAN_DURATION
            fire(rt.set_group_ban(event["group_id"], event["user_id"], duration), "quick ban")

    def _on_request(self, event: dict, op: dict):
        if "approve" not in op:
            return
        approve = to_bool(op["approve"])
        reason = op.get("reason") or ""
        block = bool(op.get("block"))
        if event.get("request_type") == "friend":
            fire(self.runtime.set_friend_add_request(event["flag"], approve, reason, block),
                 "quick friend request")
        else:
            fire(self.runtime.set_group_add_request(event["flag"], approve, reason, block),
                 "quick group request")
