"""Process-wide host: service registry, shutdown token, and SIGTERM wiring.

The host satisfies :class:`~vsts_pi.core.protocols.Host`.  A SIGTERM is
surfaced as an *unloading* event.  Listeners run on a dedicated
``unloading`` thread so that a listener may block (for example, waiting
for the running command to finish) while the event loop on the main
thread keeps making progress.  When the listeners return, the host tears
itself down and ends the process unless the normal exit path already
disposed it.
"""

from __future__ import annotations

import logging
import signal
import threading
from collections.abc import Callable
from types import FrameType
from typing import Any, TypeVar

from vsts_pi.core.cancellation import CancellationToken
from vsts_pi.core.models import ShutdownReason
from vsts_pi.core.shutdown import terminate_process
from vsts_pi.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

T = TypeVar("T")

Listener = Callable[[], None]


class HostContext:
    """Concrete host used by the ``vsts-pi`` entry point.

    Parameters
    ----------
    unload_exit_code:
        Exit code used when the host ends the process after a
        termination request.
    exit_process:
        Callable that ends the process.  Tests substitute a recorder.
    handle_signals:
        Install a SIGTERM handler while unloading listeners exist.
        Only honoured on the main thread.
    """

    def __init__(
        self,
        *,
        unload_exit_code: int,
        exit_process: Callable[[int], None] | None = None,
        handle_signals: bool = True,
    ) -> None:
        self._unload_exit_code = unload_exit_code
        self._exit_process = exit_process or terminate_process
        self._handle_signals = handle_signals
        self._services: dict[type[Any], Any] = {}
        self._listeners: list[Listener] = []
        self._lock = threading.RLock()
        self._shutdown_token = CancellationToken()
        self._shutdown_reason: ShutdownReason | None = None
        self._previous_handler: Any = None
        self._signal_installed = False
        self._unloading_thread: threading.Thread | None = None
        self._disposed = False

    # ------------------------------------------------------------------
    # Context manager
    # ------------------------------------------------------------------

    def __enter__(self) -> HostContext:
        return self

    def __exit__(self, *_args: object) -> None:
        self.dispose()

    # ------------------------------------------------------------------
    # Services
    # ------------------------------------------------------------------

    def register_service(self, kind: type[T], instance: T) -> None:
        self._services[kind] = instance

    def get_service(self, kind: type[T]) -> T:
        try:
            return self._services[kind]
        except KeyError:
            raise ConfigurationError(
                f"No service registered for {kind.__name__}.",
            ) from None

    # ------------------------------------------------------------------
    # Shutdown
    # ------------------------------------------------------------------

    @property
    def shutdown_token(self) -> CancellationToken:
        return self._shutdown_token

    @property
    def shutdown_reason(self) -> ShutdownReason | None:
        return self._shutdown_reason

    @property
    def disposed(self) -> bool:
        return self._disposed

    def request_shutdown(self, reason: ShutdownReason) -> None:
        logger.info("Shutdown requested: %s", reason.value)
        self._shutdown_reason = reason
        self._shutdown_token.cancel()

    def dispose(self) -> None:
        # Off the main thread the handler cannot be restored; a later call
        # from the main thread finishes the job.
        with self._lock:
            already_disposed = self._disposed
            self._disposed = True
            self._restore_signal_handler()
        if not already_disposed:
            logger.debug("Host disposed")

    # ------------------------------------------------------------------
    # Unloading event
    # ------------------------------------------------------------------

    @property
    def unloading_listener_count(self) -> int:
        with self._lock:
            return len(self._listeners)

    def add_unloading_listener(self, listener: Listener) -> None:
        with self._lock:
            self._listeners.append(listener)
            if len(self._listeners) == 1:
                self._install_signal_handler()

    def remove_unloading_listener(self, listener: Listener) -> None:
        with self._lock:
            try:
                self._listeners.remove(listener)
            except ValueError:
                return
            if not self._listeners:
                self._restore_signal_handler()

    def notify_unloading(self) -> threading.Thread:
        """Run unloading listeners on a background thread and return it.

        Repeated notifications while the first is still running are
        coalesced into that run.
        """
        with self._lock:
            thread = self._unloading_thread
            if thread is not None and thread.is_alive():
                return thread
            thread = threading.Thread(target=self._unload, name="unloading", daemon=True)
            self._unloading_thread = thread
        thread.start()
        return thread

    def _unload(self) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener()
            except Exception:  # noqa: BLE001
                logger.exception("Unloading listener %r failed", listener)
        with self._lock:
            if self._disposed:
                return
        self.dispose()
        self._exit_process(self._unload_exit_code)

    # ------------------------------------------------------------------
    # Signal wiring
    # ------------------------------------------------------------------

    def _on_sigterm(self, signum: int, frame: FrameType | None) -> None:
        logger.info("Received signal %s", signum)
        self.notify_unloading()

    def _install_signal_handler(self) -> None:
        if not self._handle_signals or self._signal_installed:
            return
        if threading.current_thread() is not threading.main_thread():
            return
        self._previous_handler = signal.signal(signal.SIGTERM, self._on_sigterm)
        self._signal_installed = True

    def _restore_signal_handler(self) -> None:
        if not self._signal_installed:
            return
        if threading.current_thread() is not threading.main_thread():
            return
        previous = self._previous_handler
        signal.signal(signal.SIGTERM, previous if previous is not None else signal.SIG_DFL)
        self._signal_installed = False
