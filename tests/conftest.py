"""Shared pytest fixtures and configuration for the vsts-pi test suite.

Guidelines
----------
* No network access in any test.
* No real signals are sent: hosts and terminals are built with
  ``handle_signals=False`` and a recording ``exit_process``.
* Delegated services are mocked at the protocol boundary.
"""

from __future__ import annotations

from collections.abc import Callable, Iterator
from unittest.mock import AsyncMock, MagicMock

import pytest

from vsts_pi.cli import exit_codes
from vsts_pi.core.protocols import LoginService, PipelineRunner, Terminal
from vsts_pi.infra.host_context import HostContext


class RecordingTerminal:
    """In-memory :class:`Terminal` that records output and listeners."""

    def __init__(self) -> None:
        self.lines: list[str] = []
        self.errors: list[str] = []
        self.listeners: list[Callable[[], None]] = []

    def write_line(self, text: str = "") -> None:
        self.lines.append(text)

    def write_error(self, text: str) -> None:
        self.errors.append(text)

    def add_cancel_listener(self, listener: Callable[[], None]) -> None:
        self.listeners.append(listener)

    def remove_cancel_listener(self, listener: Callable[[], None]) -> None:
        if listener in self.listeners:
            self.listeners.remove(listener)

    def press_cancel(self) -> None:
        for listener in list(self.listeners):
            listener()


@pytest.fixture
def terminal() -> RecordingTerminal:
    return RecordingTerminal()


@pytest.fixture
def exit_calls() -> list[int]:
    return []


@pytest.fixture
def login_service() -> MagicMock:
    service = MagicMock(name="LoginService")
    service.login = AsyncMock(return_value=exit_codes.SUCCESS)
    service.logout = MagicMock(return_value=exit_codes.SUCCESS)
    return service


@pytest.fixture
def pipeline_runner() -> MagicMock:
    runner = MagicMock(name="PipelineRunner")
    runner.lint = MagicMock(return_value=None)
    runner.validate_async = AsyncMock(return_value=None)
    runner.run_async = AsyncMock(return_value=None)
    return runner


@pytest.fixture
def host(
    terminal: RecordingTerminal,
    exit_calls: list[int],
    login_service: MagicMock,
    pipeline_runner: MagicMock,
) -> Iterator[HostContext]:
    context = HostContext(
        unload_exit_code=exit_codes.TERMINATED_ERROR,
        exit_process=exit_calls.append,
        handle_signals=False,
    )
    context.register_service(Terminal, terminal)
    context.register_service(LoginService, login_service)
    context.register_service(PipelineRunner, pipeline_runner)
    yield context
    context.dispose()
