"""Shutdown coordination for a single command invocation.

Two independent sources can interrupt a running command:

* the **cancel key** (Ctrl+C), reported by the terminal; and
* a **termination request** (SIGTERM), reported by the host as an
  *unloading* event.

Both are routed through :class:`ShutdownCoordinator`, which owns the
listener registrations for exactly the lifetime of one invocation::

    IDLE --arm()--> ARMED --finalize()--> FINALIZING --> DONE

Ordering
--------
``finalize`` always unsubscribes both listeners *before* setting the
:class:`CompletionLatch`.  An unloading handler that is blocked on the
latch therefore resumes only after it can no longer be re-entered.
"""

from __future__ import annotations

import enum
import logging
import os
import sys
import threading
from collections.abc import Callable
from types import TracebackType

from vsts_pi.config import EXIT_ON_UNLOAD_TIMEOUT
from vsts_pi.core.models import ShutdownReason
from vsts_pi.core.protocols import Host, Terminal

logger = logging.getLogger(__name__)


def terminate_process(code: int) -> None:
    """Flush the standard streams and end the process without unwinding."""
    for stream in (sys.stdout, sys.stderr):
        try:
            stream.flush()
        except (OSError, ValueError):
            pass
    os._exit(code)


class CompletionLatch:
    """Binary, thread-safe "command finished" signal.

    Set exactly once per invocation by the coordinator's finalize step
    and waited on, with a timeout, by the unloading handler.
    """

    def __init__(self) -> None:
        self._event = threading.Event()

    @property
    def is_set(self) -> bool:
        return self._event.is_set()

    def reset(self) -> None:
        self._event.clear()

    def set(self) -> None:
        self._event.set()

    def wait(self, timeout: float | None = None) -> bool:
        """Block until set or until *timeout* seconds elapse.

        Returns ``True`` when the latch was set.
        """
        return self._event.wait(timeout)


class ShutdownState(enum.Enum):
    IDLE = "idle"
    ARMED = "armed"
    FINALIZING = "finalizing"
    DONE = "done"


class ShutdownCoordinator:
    """Install and tear down interruption handlers around one command.

    Parameters
    ----------
    terminal:
        Source of cancel-key events and sink for the "Exiting..." notice.
    host:
        Source of unloading events; disposed on fast-exit and asked to
        shut down cooperatively on termination.
    fast_exit_code:
        Process exit code used by the cancel-key fast-exit path.
    timeout:
        Seconds the unloading handler waits for the command to finish.
        Used as given; there is no minimum.
    exit_process:
        Callable that ends the process.  Defaults to
        :func:`terminate_process`; tests substitute a recorder.
    """

    def __init__(
        self,
        terminal: Terminal,
        host: Host,
        *,
        fast_exit_code: int,
        timeout: float = EXIT_ON_UNLOAD_TIMEOUT,
        exit_process: Callable[[int], None] | None = None,
    ) -> None:
        self._terminal = terminal
        self._host = host
        self._fast_exit_code = fast_exit_code
        self._timeout = timeout
        self._exit_process = exit_process or terminate_process
        self._latch = CompletionLatch()
        self._state = ShutdownState.IDLE

    @property
    def latch(self) -> CompletionLatch:
        return self._latch

    @property
    def state(self) -> ShutdownState:
        return self._state

    # ------------------------------------------------------------------
    # Scoped acquisition
    # ------------------------------------------------------------------

    def __enter__(self) -> ShutdownCoordinator:
        self.arm()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.finalize()

    def arm(self) -> None:
        """Reset the latch and subscribe both interruption handlers."""
        self._latch.reset()
        self._terminal.add_cancel_listener(self.on_cancel_key)
        try:
            self._host.add_unloading_listener(self.on_unloading)
        except BaseException:
            self._terminal.remove_cancel_listener(self.on_cancel_key)
            raise
        self._state = ShutdownState.ARMED

    def finalize(self) -> None:
        """Unsubscribe both handlers, then release anyone waiting on the latch.

        Only the first call after :meth:`arm` has any effect.
        """
        if self._state is not ShutdownState.ARMED:
            return
        self._state = ShutdownState.FINALIZING
        try:
            self._terminal.remove_cancel_listener(self.on_cancel_key)
            self._host.remove_unloading_listener(self.on_unloading)
        finally:
            self._latch.set()
            self._state = ShutdownState.DONE

    # ------------------------------------------------------------------
    # Handlers
    # ------------------------------------------------------------------

    def on_cancel_key(self) -> None:
        """Fast-exit: dispose the host and end the process immediately.

        This path skips :meth:`finalize`; the process is gone
        before any ``finally`` block in the running command can execute.
        """
        logger.info("Cancel key pressed; exiting")
        self._terminal.write_line("Exiting...")
        try:
            self._host.dispose()
        finally:
            self._exit_process(self._fast_exit_code)

    def on_unloading(self) -> None:
        """Request a cooperative shutdown and wait, bounded, for completion."""
        logger.info("Termination requested; waiting up to %ss for the command", self._timeout)
        self._host.request_shutdown(ShutdownReason.USER_CANCELLED)
        if not self._latch.wait(self._timeout):
            logger.warning(
                "Command did not finish within %ss of the termination request",
                self._timeout,
            )
