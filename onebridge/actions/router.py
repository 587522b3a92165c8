"""Action router — turns protocol requests into runtime calls.

Request flow:
1. Validate and strip the ``_async`` / ``_rate_limited`` suffixes
2. Resolve ``send_msg`` to a concrete send action
3. Handle bridge-level actions (restart, quick operation)
4. Look the action up in the bound method table
5. Run it synchronously, in the background, or through the queue
6. Wrap the result in a response envelope (echo attached)

``apply`` never raises. Unknown actions and malformed requests come back
as failed envelopes with their own retcodes; runtime failures come back
as ``status: failed`` with the runtime's error.
"""

import asyncio
import inspect
import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, Union

from ..errors import (
    RETCODE_RUNTIME_FAILED,
    MalformedRequest,
    NotFoundAction,
    RequestError,
    RuntimeCallError,
)
from ..protocol import ProtocolRequest, ProtocolResponse
from ..queue import QueueTask, RateLimitedQueue
from ..runtime import IdMap, RuntimeResult, fire
from .schema import METHODS, MethodSpec, build_args, normalize_action

logger = logging.getLogger("onebridge.router")

ASYNC_SUFFIX = "_async"
RATE_LIMITED_SUFFIX = "_rate_limited"
RESTART_ACTION = "set_restart"
QUICK_OPERATION_ACTION = ".handle_quick_operation"

_SEND_MSG_TYPES = ("private", "group", "discuss")


@dataclass(frozen=True)
class BoundAction:
    spec: MethodSpec
    handler: Callable


@dataclass(frozen=True)
class RoutedAction:
    """An action name after suffix stripping."""
    name: str
    is_async: bool = False
    rate_limited: bool = False


def split_action(action: str) -> RoutedAction:
    """Strip the execution-mode suffixes, in any order."""
    name = action
    is_async = rate_limited = False
    while True:
        if name.endswith(ASYNC_SUFFIX):
            name = name[: -len(ASYNC_SUFFIX)]
            is_async = True
        elif name.endswith(RATE_LIMITED_SUFFIX):
            name = name[: -len(RATE_LIMITED_SUFFIX)]
            rate_limited = True
        else:
            return RoutedAction(name, is_async, rate_limited)


def resolve_send_msg(params: dict) -> str:
    """Pick the concrete send action for a generic ``send_msg``."""
    message_type = params.get("message_type")
    if message_type in _SEND_MSG_TYPES:
        return f"send_{message_type}_msg"
    if params.get("user_id"):
        return "send_private_msg"
    if params.get("group_id"):
        return "send_group_msg"
    if params.get("discuss_id"):
        return "send_discuss_msg"
    return "send_msg"


class ActionRouter:
    """Routes protocol requests to the runtime."""

    def __init__(
        self,
        runtime,
        queue: Optional[RateLimitedQueue] = None,
        restart: Optional[Callable[[], Awaitable[None]]] = None,
        quick_operation: Optional[Callable[[dict, Any], None]] = None,
    ):
        """Initialize router.

        Args:
            runtime: Bot runtime whose methods back the schema actions.
            queue: Queue used by ``*_rate_limited`` actions.
            restart: Coroutine function restarting the bridge.
            quick_operation: Callback applying a quick operation to an event.
        """
        self.queue = queue
        self._restart = restart
        self._quick_operation = quick_operation
        self._restart_task: Optional[asyncio.Task] = None
        self._actions = self._bind(runtime)

    @staticmethod
    def _bind(runtime) -> dict[str, BoundAction]:
        table = {}
        for name, spec in METHODS.items():
            handler = getattr(runtime, spec.method, None)
            if callable(handler):
                table[name] = BoundAction(spec=spec, handler=handler)
        missing = len(METHODS) - len(table)
        if missing:
            logger.debug(f"Runtime does not implement {missing} of {len(METHODS)} actions")
        return table

    @property
    def actions(self) -> list[str]:
        """Names of all routable actions."""
        return sorted(self._actions)

    def invoke(self, task: QueueTask) -> Any:
        """Start the runtime call for a queued task (result not awaited)."""
        bound = self._actions[task.method]
        return fire(bound.handler(*task.args), task.method)

    async def apply(self, request: Union[ProtocolRequest, dict]) -> ProtocolResponse:
        """Handle one protocol request.

        Args:
            request: A ProtocolRequest or its decoded JSON payload.

        Returns:
            Response envelope, with the request's echo when it has one.
        """
        parsed = request if isinstance(request, ProtocolRequest) else None
        try:
            if parsed is None:
                parsed = ProtocolRequest.from_payload(request)
            response = await self._route(parsed)
        except RequestError as e:
            logger.debug(f"Request rejected ({e.retcode}): {e.message}")
            response = ProtocolResponse.from_error(e)
            if parsed is None and isinstance(request, dict) and "echo" in request:
                response.echo = request["echo"]
        return response.with_echo(parsed)

    async def _route(self, request: ProtocolRequest) -> ProtocolResponse:
        if not isinstance(request.action, str) or not isinstance(request.params, dict):
            raise MalformedRequest()
        params = request.params
        routed = split_action(request.action)
        name = normalize_action(routed.name)

        if name == "send_msg":
            name = resolve_send_msg(params)

        if name == RESTART_ACTION:
            self._schedule_restart()
            return ProtocolResponse.async_()

        if name.startswith(QUICK_OPERATION_ACTION):
            return self._apply_quick_operation(params)

        bound = self._actions.get(name)
        if bound is None:
            raise NotFoundAction(f"unsupported action: {request.action}")

        args = build_args(bound.spec, params)

        if routed.rate_limited:
            if self.queue is not None:
                self.queue.enqueue(QueueTask(method=name, args=tuple(args)))
                return ProtocolResponse.async_()
            logger.warning(f"No queue configured, {name} runs without rate limiting")
            routed = RoutedAction(name, is_async=True)

        if routed.is_async:
            try:
                fire(bound.handler(*args), name)
            except Exception as e:
                logger.error(f"Action {name} failed: {type(e).__name__}: {e}")
            return ProtocolResponse.async_()

        try:
            result = bound.handler(*args)
            if inspect.isawaitable(result):
                result = await result
        except RuntimeCallError as e:
            logger.warning(f"Action {name} failed ({e.code}): {e.message}")
            return ProtocolResponse.failed(e.code, e.message, retcode=RETCODE_RUNTIME_FAILED)
        except Exception as e:
            logger.error(f"Action {name} raised {type(e).__name__}: {e}", exc_info=True)
            return ProtocolResponse.failed(RETCODE_RUNTIME_FAILED, f"{type(e).__name__}: {e}")

        return to_response(result)

    def _schedule_restart(self):
        if self._restart is None:
            logger.warning("Restart requested but no restart handler is configured")
            return
        if self._restart_task and not self._restart_task.done():
            logger.info("Restart already in progress")
            return
        logger.info("Restart requested by controller")
        self._restart_task = asyncio.create_task(self._restart())
        self._restart_task.add_done_callback(_log_restart_result)

    def _apply_quick_operation(self, params: dict) -> ProtocolResponse:
        context = params.get("context")
        operation = params.get("operation")
        if not isinstance(context, dict) or not isinstance(operation, dict):
            raise MalformedRequest("quick operation needs context and operation objects")
        if self._quick_operation is not None:
            try:
                self._quick_operation(context, operation)
            except Exception as e:
                logger.error(f"Quick operation failed: {type(e).__name__}: {e}")
        return ProtocolResponse.async_()


def _log_restart_result(task: asyncio.Task):
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.error(f"Restart failed: {type(exc).__name__}: {exc}")


def to_response(result: Any) -> ProtocolResponse:
    """Normalize whatever a runtime method returned into an envelope."""
    if isinstance(result, RuntimeResult):
        response = ProtocolResponse(
            retcode=result.retcode,
            status=result.status,
            data=result.data,
            error=result.error,
        )
    elif isinstance(result, Mapping) and "retcode" in result and "status" in result:
        response = ProtocolResponse(
            retcode=result["retcode"],
            status=result["status"],
            data=result.get("data"),
            error=result.get("error"),
        )
    else:
        response = ProtocolResponse.ok(result)
    response.data = flatten_id_map(response.data)
    return response


def flatten_id_map(data: Any) -> Any:
    """Turn an id-keyed collection into the list of its values."""
    if isinstance(data, IdMap):
        return list(data.values())
    if isinstance(data, Mapping) and data and all(
        isinstance(key, int) and not isinstance(key, bool) for key in data
    ):
        return list(data.values())
    return data
