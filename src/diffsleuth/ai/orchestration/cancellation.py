"""Cooperative cancellation tokens.

A :class:`CancellationTokenSource` owns a readable :class:`CancellationToken`.
Consumers poll :attr:`CancellationToken.is_cancellation_requested` at their
suspension points, subscribe with :meth:`CancellationToken.on_cancellation_requested`,
or ``await token.wait()`` to race cancellation against other work.

Linked sources fire when any of their parent tokens fires, which lets a
single consumption loop be stopped by several triggers (user cancellation,
timeout) without sharing mutable state between the triggers.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Callable

from .errors import CancellationError

__all__ = ["CancellationToken", "CancellationTokenSource"]

LOGGER = logging.getLogger(__name__)

Unsubscribe = Callable[[], None]


class CancellationToken:
    """Read-only view of a cancellation flag with change notification."""

    __slots__ = ("_cancelled", "_callbacks")

    def __init__(self) -> None:
        self._cancelled = False
        self._callbacks: list[Callable[[], None]] = []

    @classmethod
    def none(cls) -> CancellationToken:
        """Return a token that is never cancelled."""
        return cls()

    @property
    def is_cancellation_requested(self) -> bool:
        return self._cancelled

    def raise_if_cancelled(self) -> None:
        if self._cancelled:
            raise CancellationError()

    def on_cancellation_requested(self, callback: Callable[[], None]) -> Unsubscribe:
        """Register ``callback`` to run once when the token fires.

        If the token has already fired the callback runs immediately. The
        returned function removes the subscription and is safe to call twice.
        """
        if self._cancelled:
            callback()
            return _noop
        self._callbacks.append(callback)

        def _unsubscribe() -> None:
            try:
                self._callbacks.remove(callback)
            except ValueError:
                pass

        return _unsubscribe

    async def wait(self) -> None:
        """Suspend until the token fires."""
        if self._cancelled:
            return
        future: asyncio.Future[None] = asyncio.get_running_loop().create_future()

        def _wake() -> None:
            if not future.done():
                future.set_result(None)

        unsubscribe = self.on_cancellation_requested(_wake)
        try:
            await future
        finally:
            unsubscribe()

    def _fire(self) -> None:
        if self._cancelled:
            return
        self._cancelled = True
        callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            try:
                callback()
            except Exception:
                LOGGER.exception("Cancellation callback raised")


class CancellationTokenSource:
    """Owner of a :class:`CancellationToken` that can trigger it."""

    def __init__(self) -> None:
        self._token = CancellationToken()
        self._parent_subscriptions: list[Unsubscribe] = []

    @classmethod
    def linked(cls, *parents: CancellationToken | None) -> CancellationTokenSource:
        """Create a source that also fires when any parent token fires."""
        source = cls()
        for parent in parents:
            if parent is None:
                continue
            source._parent_subscriptions.append(parent.on_cancellation_requested(source.cancel))
        return source

    @property
    def token(self) -> CancellationToken:
        return self._token

    @property
    def is_cancellation_requested(self) -> bool:
        return self._token.is_cancellation_requested

    def cancel(self) -> None:
        """Fire the token. Repeated calls are no-ops."""
        self._token._fire()

    def dispose(self) -> None:
        """Detach from parent tokens."""
        subscriptions, self._parent_subscriptions = self._parent_subscriptions, []
        for unsubscribe in subscriptions:
            unsubscribe()


def _noop() -> None:
    return None
