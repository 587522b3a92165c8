"""Bot runtime interface — the chat-bot runtime the bridge fronts.

The runtime is an external collaborator. The bridge only relies on:
- ``self_id``: the account id reported in events and headers
- the methods named in ``onebridge.actions.schema`` (any subset)
- the quick-operation methods below, which every runtime must provide

Runtime methods may be plain functions or coroutines and may return a
``RuntimeResult``, an envelope mapping or bare data.
"""

import asyncio
import importlib
import inspect
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Optional

logger = logging.getLogger("onebridge.runtime")


@dataclass
class RuntimeResult:
    retcode: int = 0
    status: str = "ok"
    data: Any = None
    error: Optional[dict] = None


class IdMap(dict):
    """Collection keyed by numeric ids (friends, groups, members).

    Serialized to the wire as the list of its values.
    """
    pass


class BotRuntime(ABC):
    """Abstract base class for bot runtimes."""

    @property
    @abstractmethod
    def self_id(self) -> int:
        """Account id of the logged-in bot."""
        ...

    def attach(self, dispatch: Callable[[dict], Any]):
        """Register the callback that receives every event the runtime emits.

        Runtimes that deliver events some other way can leave this as is
        and call ``BridgeService.dispatch`` themselves.
        """
        pass

    @abstractmethod
    def send_private_msg(self, user_id, message, auto_escape=False):
        ...

    @abstractmethod
    def send_group_msg(self, group_id, message, auto_escape=False):
        ...

    @abstractmethod
    def delete_msg(self, message_id):
        ...

    @abstractmethod
    def set_group_kick(self, group_id, user_id, reject_add_request=False):
        ...

    @abstractmethod
    def set_group_ban(self, group_id, user_id, duration=1800):
        ...

    @abstractmethod
    def set_friend_add_request(self, flag, approve=True, remark="", block=False):
        ...

    @abstractmethod
    def set_group_add_request(self, flag, approve=True, reason="", block=False):
        ...


# Strong references to fire-and-forget tasks until they finish
_background: set[asyncio.Task] = set()


def _log_task_failure(task: asyncio.Task, label: str):
    _background.discard(task)
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.error(f"Runtime call {label} failed: {type(exc).__name__}: {exc}")


def fire(result: Any, label: str) -> Optional[asyncio.Task]:
    """Let an awaitable runtime result run without waiting for it.

    Non-awaitable results are already complete and are dropped.
    """
    if not inspect.isawaitable(result):
        return None
    task = asyncio.ensure_future(result)
    _background.add(task)
    task.add_done_callback(lambda t: _log_task_failure(t, label))
    return task


def load_runtime(spec: str, settings) -> BotRuntime:
    """Import and build a runtime from a ``module:factory`` string.

    The factory is called with the bridge settings.

    Raises:
        ValueError: spec is not in ``module:factory`` form.
        TypeError: the factory did not return a BotRuntime.
    """
    module_name, sep, attr = spec.partition(":")
    if not sep or not module_name or not attr:
        raise ValueError(f"Runtime must be given as 'module:factory', got '{spec}'")
    module = importlib.import_module(module_name)
    factory = getattr(module, attr)
    runtime = factory(settings)
    if not isinstance(runtime, BotRuntime):
        raise TypeError(f"{spec} returned {type(runtime).__name__}, not a BotRuntime")
    logger.info(f"Runtime loaded from {spec} (self_id={runtime.self_id})")
    return runtime
