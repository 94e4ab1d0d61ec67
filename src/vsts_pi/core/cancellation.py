"""Cooperative cancellation shared between the host and running commands.

A :class:`CancellationToken` may be cancelled from any thread (signal
handlers run outside the event loop's control flow), while coroutines
observe it either by polling :meth:`~CancellationToken.raise_if_cancelled`
or by awaiting :meth:`~CancellationToken.wait`.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from collections.abc import Callable

from vsts_pi.exceptions import OperationCancelledError

logger = logging.getLogger(__name__)


class CancellationToken:
    """Thread-safe, single-shot cancellation flag with callbacks."""

    def __init__(self) -> None:
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._callbacks: list[Callable[[], None]] = []

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        """Cancel the token and run registered callbacks once."""
        with self._lock:
            if self._event.is_set():
                return
            self._event.set()
            callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            self._invoke(callback)

    def add_callback(self, callback: Callable[[], None]) -> Callable[[], None]:
        """Register *callback* and return a function that unregisters it.

        When the token is already cancelled the callback runs immediately.
        """
        with self._lock:
            if not self._event.is_set():
                self._callbacks.append(callback)
                return lambda: self._remove(callback)
        self._invoke(callback)
        return lambda: None

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise OperationCancelledError("The operation was cancelled.")

    async def wait(self) -> None:
        """Suspend until the token is cancelled."""
        if self._event.is_set():
            return
        loop = asyncio.get_running_loop()
        future: asyncio.Future[None] = loop.create_future()

        def _resolve() -> None:
            if not future.done():
                future.set_result(None)

        def _wake() -> None:
            if not loop.is_closed():
                loop.call_soon_threadsafe(_resolve)

        unregister = self.add_callback(_wake)
        try:
            await future
        finally:
            unregister()

    # ------------------------------------------------------------------

    def _remove(self, callback: Callable[[], None]) -> None:
        with self._lock:
            try:
                self._callbacks.remove(callback)
            except ValueError:
                pass

    @staticmethod
    def _invoke(callback: Callable[[], None]) -> None:
        try:
            callback()
        except Exception:  # noqa: BLE001
            logger.exception("Cancellation callback %r failed", callback)
