"""Protocols (interfaces) consumed by the core layer.

These define the contracts that infrastructure and CLI adapters must
satisfy.  Core code depends ONLY on these protocols — never on concrete
implementations — preserving the dependency inversion principle.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Protocol, TypeVar

from vsts_pi.core.cancellation import CancellationToken
from vsts_pi.core.models import CommandSettings, ShutdownReason

Listener = Callable[[], None]
"""Zero-argument callback used for cancel-key and unloading events."""

T = TypeVar("T")


class Terminal(Protocol):
    """Line-oriented output sink plus a cancel-key event source."""

    def write_line(self, text: str = "") -> None:
        """Write *text* followed by a newline to standard output."""
        ...  # pragma: no cover

    def write_error(self, text: str) -> None:
        """Write *text* as a single error line to standard error."""
        ...  # pragma: no cover

    def add_cancel_listener(self, listener: Listener) -> None:
        """Invoke *listener* when the user presses the cancel key."""
        ...  # pragma: no cover

    def remove_cancel_listener(self, listener: Listener) -> None:
        """Stop invoking *listener*.  Unknown listeners are ignored."""
        ...  # pragma: no cover


class LoginService(Protocol):
    """Contract for persisting and clearing server credentials."""

    async def login(self, settings: CommandSettings) -> int:
        """Authenticate and persist credentials; return a process exit code.

        Raises
        ------
        AuthError
            When credentials are missing, malformed, or cannot be stored.
        """
        ...  # pragma: no cover

    def logout(self) -> int:
        """Clear persisted credentials; return a process exit code."""
        ...  # pragma: no cover


class PipelineRunner(Protocol):
    """Contract for linting, validating and running pipeline files.

    Every operation raises a
    :class:`~vsts_pi.exceptions.PipelineError` subclass on malformed
    input or when a task reference cannot be resolved.
    """

    def lint(self, settings: CommandSettings, token: CancellationToken) -> None:
        """Check YAML syntax and structure only."""
        ...  # pragma: no cover

    async def validate_async(
        self, settings: CommandSettings, token: CancellationToken
    ) -> None:
        """Lint, then validate referenced tasks and their inputs."""
        ...  # pragma: no cover

    async def run_async(
        self, settings: CommandSettings, token: CancellationToken
    ) -> None:
        """Validate, then execute the pipeline steps in order."""
        ...  # pragma: no cover


class Host(Protocol):
    """Process-wide execution context shared by every service."""

    @property
    def shutdown_token(self) -> CancellationToken:
        """Token cancelled when the host is asked to shut down."""
        ...  # pragma: no cover

    def get_service(self, kind: type[T]) -> T:
        """Return the service registered for *kind*."""
        ...  # pragma: no cover

    def add_unloading_listener(self, listener: Listener) -> None:
        """Invoke *listener* when the process is asked to terminate."""
        ...  # pragma: no cover

    def remove_unloading_listener(self, listener: Listener) -> None:
        """Stop invoking *listener*.  Unknown listeners are ignored."""
        ...  # pragma: no cover

    def request_shutdown(self, reason: ShutdownReason) -> None:
        """Record *reason* and cancel :attr:`shutdown_token`."""
        ...  # pragma: no cover

    def dispose(self) -> None:
        """Release host resources.  Safe to call more than once."""
        ...  # pragma: no cover
