"""
Cooperative cancellation for chain execution.

A ``CancellationToken`` fires at most once. ``cancellable`` races a pending
awaitable against a token and guarantees its listener is removed on every exit
path. The token a handle was created with is published through a context
variable while its steps run, so nested chain executions started inside a step
(combinator branches, recovered or wrapped sub-chains) pick it up implicitly.
"""

from __future__ import annotations

import asyncio
import contextvars
import inspect
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

from loguru import logger

from resumechain.errors import ChainCancelledError

T = TypeVar("T")

Listener = Callable[[Any], None]

_active_token: contextvars.ContextVar[CancellationToken | None] = contextvars.ContextVar(
    "resumechain_active_token", default=None
)


class CancellationToken:
    """Single-fire cancellation signal shared by everything driving one execution.

    Example:
        token = CancellationToken()
        token.cancel_after(5.0)
        value = await chain.exec(token=token)
    """

    def __init__(self) -> None:
        self._cancelled = False
        self._reason: Any = None
        self._listeners: list[Listener] = []

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def reason(self) -> Any:
        return self._reason

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def cancel(self, reason: Any = None) -> None:
        """Fire the token. Later calls are ignored."""

        if self._cancelled:
            return
        self._cancelled = True
        self._reason = reason
        listeners, self._listeners = self._listeners, []
        logger.debug("cancellation token fired ({} listeners): {!r}", len(listeners), reason)
        for listener in listeners:
            listener(reason)

    def cancel_after(self, delay: float, reason: Any = None) -> asyncio.TimerHandle:
        """Schedule :meth:`cancel` on the running loop after ``delay`` seconds."""

        loop = asyncio.get_running_loop()
        return loop.call_later(delay, self.cancel, reason)

    def add_listener(self, listener: Listener) -> None:
        if self._cancelled:
            listener(self._reason)
            return
        self._listeners.append(listener)

    def remove_listener(self, listener: Listener) -> None:
        try:
            self._listeners.remove(listener)
        except ValueError:
            pass

    def raise_if_cancelled(self) -> None:
        if self._cancelled:
            raise self.error()

    def error(self) -> ChainCancelledError:
        return ChainCancelledError("chain cancelled", reason=self._reason)

    def __repr__(self) -> str:
        state = "cancelled" if self._cancelled else "active"
        return f"CancellationToken({state})"


def current_token() -> CancellationToken | None:
    """Return the token of the chain step currently running, if any."""

    return _active_token.get()


def activate(token: CancellationToken | None) -> contextvars.Token:
    return _active_token.set(token)


def deactivate(reset: contextvars.Token) -> None:
    _active_token.reset(reset)


async def cancellable(awaitable: Awaitable[T], token: CancellationToken | None = None) -> T:
    """Await ``awaitable`` unless ``token`` fires first.

    Raises ``ChainCancelledError`` without starting the operation when the token
    is already cancelled. A task created here for a bare coroutine is cancelled
    when the token wins; futures owned by the caller are left alone.
    """

    if token is not None and token.cancelled:
        if inspect.iscoroutine(awaitable):
            awaitable.close()
        raise token.error()

    if token is None:
        return await awaitable

    owned = not asyncio.isfuture(awaitable)
    operation = asyncio.ensure_future(awaitable)
    loop = asyncio.get_running_loop()
    cancelled = loop.create_future()

    def on_cancel(reason: Any) -> None:
        if not cancelled.done():
            cancelled.set_result(reason)

    token.add_listener(on_cancel)
    try:
        await asyncio.wait({operation, cancelled}, return_when=asyncio.FIRST_COMPLETED)
        if operation.done():
            return operation.result()
        raise token.error()
    finally:
        token.remove_listener(on_cancel)
        if not cancelled.done():
            cancelled.cancel()
        if owned and not operation.done():
            operation.cancel()


__all__ = [
    "CancellationToken",
    "activate",
    "cancellable",
    "current_token",
    "deactivate",
]
