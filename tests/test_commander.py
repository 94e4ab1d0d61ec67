"""Tests for command dispatch (cli/commander.py).

All delegated services are mocks registered on a signal-free host.

Coverage:
* Each flag alone invokes exactly its own operation.
* Multiple flags honour the fixed priority order.
* No flags prints usage and fails.
* Delegated failures become one error line and a failing exit code.
* Handler subscription is balanced and the completion latch is set
  after unsubscription on every path.
* Cancel key and termination requests during a running command.
"""

from __future__ import annotations

import asyncio
import threading
from typing import Any
from unittest.mock import MagicMock

import pytest

from vsts_pi.cli import exit_codes
from vsts_pi.cli.commander import PipelineCommander
from vsts_pi.cli.usage import USAGE
from vsts_pi.core.cancellation import CancellationToken
from vsts_pi.core.models import CommandSettings, ShutdownReason
from vsts_pi.core.shutdown import ShutdownState
from vsts_pi.exceptions import AuthError, OperationCancelledError, PipelineError
from vsts_pi.infra.host_context import HostContext
from vsts_pi.version import __commit__, __version__


PRIORITY: tuple[str, ...] = (
    "help", "version", "commit", "lint", "login", "logout", "validate", "run",
)
DELEGATED: tuple[str, ...] = ("lint", "login", "logout", "validate", "run")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _run(commander: PipelineCommander, settings: CommandSettings) -> int:
    return asyncio.run(commander.run_async(settings))


def _delegate_calls(login: MagicMock, runner: MagicMock) -> dict[str, int]:
    return {
        "lint": runner.lint.call_count,
        "login": login.login.await_count,
        "logout": login.logout.call_count,
        "validate": runner.validate_async.await_count,
        "run": runner.run_async.await_count,
    }


@pytest.fixture
def commander(host: HostContext, exit_calls: list[int]) -> PipelineCommander:
    return PipelineCommander(host, unload_timeout=5.0, exit_process=exit_calls.append)


# ---------------------------------------------------------------------------
# Single-flag dispatch
# ---------------------------------------------------------------------------

class TestSingleFlag:
    @pytest.mark.parametrize("flag", DELEGATED)
    def test_invokes_only_its_operation(
        self,
        flag: str,
        commander: PipelineCommander,
        login_service: MagicMock,
        pipeline_runner: MagicMock,
    ) -> None:
        code = _run(commander, CommandSettings(**{flag: True}))

        assert code == exit_codes.SUCCESS
        expected = {name: int(name == flag) for name in DELEGATED}
        assert _delegate_calls(login_service, pipeline_runner) == expected

    def test_help_prints_usage(self, commander: PipelineCommander, terminal: Any) -> None:
        code = _run(commander, CommandSettings(help=True))
        assert code == exit_codes.SUCCESS
        assert terminal.lines == [USAGE]
        assert terminal.errors == []

    def test_version_prints_version(self, commander: PipelineCommander, terminal: Any) -> None:
        code = _run(commander, CommandSettings(version=True))
        assert code == exit_codes.SUCCESS
        assert terminal.lines == [__version__]

    def test_commit_prints_commit(self, commander: PipelineCommander, terminal: Any) -> None:
        code = _run(commander, CommandSettings(commit=True))
        assert code == exit_codes.SUCCESS
        assert terminal.lines == [__commit__]

    def test_lint_receives_shutdown_token(
        self,
        commander: PipelineCommander,
        host: HostContext,
        pipeline_runner: MagicMock,
    ) -> None:
        settings = CommandSettings(lint=True, yaml=None)
        _run(commander, settings)
        pipeline_runner.lint.assert_called_once_with(settings, host.shutdown_token)

    def test_run_receives_settings_and_token(
        self,
        commander: PipelineCommander,
        host: HostContext,
        pipeline_runner: MagicMock,
    ) -> None:
        from pathlib import Path

        settings = CommandSettings(run=True, yaml=Path("ci.yml"))
        code = _run(commander, settings)

        assert code == exit_codes.SUCCESS
        pipeline_runner.run_async.assert_awaited_once_with(settings, host.shutdown_token)


# ---------------------------------------------------------------------------
# Priority order
# ---------------------------------------------------------------------------

class TestPriority:
    @pytest.mark.parametrize("index", range(len(PRIORITY)))
    def test_highest_priority_flag_wins(
        self,
        index: int,
        commander: PipelineCommander,
        terminal: Any,
        login_service: MagicMock,
        pipeline_runner: MagicMock,
    ) -> None:
        winner = PRIORITY[index]
        settings = CommandSettings(**{flag: True for flag in PRIORITY[index:]})

        code = _run(commander, settings)

        assert code == exit_codes.SUCCESS
        expected = {name: int(name == winner) for name in DELEGATED}
        assert _delegate_calls(login_service, pipeline_runner) == expected
        if winner == "help":
            assert terminal.lines == [USAGE]
        elif winner == "version":
            assert terminal.lines == [__version__]
        elif winner == "commit":
            assert terminal.lines == [__commit__]

    def test_login_beats_run(
        self,
        commander: PipelineCommander,
        login_service: MagicMock,
        pipeline_runner: MagicMock,
    ) -> None:
        _run(commander, CommandSettings(run=True, login=True))
        login_service.login.assert_awaited_once()
        pipeline_runner.run_async.assert_not_awaited()


# ---------------------------------------------------------------------------
# No command
# ---------------------------------------------------------------------------

class TestNoCommand:
    def test_prints_usage_and_fails(
        self,
        commander: PipelineCommander,
        terminal: Any,
        login_service: MagicMock,
        pipeline_runner: MagicMock,
    ) -> None:
        code = _run(commander, CommandSettings())

        assert code == exit_codes.TERMINATED_ERROR
        assert terminal.lines == [USAGE]
        assert terminal.errors == []
        assert sum(_delegate_calls(login_service, pipeline_runner).values()) == 0

    def test_options_alone_are_not_a_command(
        self, commander: PipelineCommander, terminal: Any
    ) -> None:
        code = _run(commander, CommandSettings(offline=True, trace=True))
        assert code == exit_codes.TERMINATED_ERROR
        assert terminal.lines == [USAGE]


# ---------------------------------------------------------------------------
# Login pass-through
# ---------------------------------------------------------------------------

class TestLoginExitCode:
    def test_success_is_passed_through(
        self, commander: PipelineCommander, login_service: MagicMock
    ) -> None:
        login_service.login.return_value = 0
        assert _run(commander, CommandSettings(login=True)) == 0

    def test_non_standard_code_is_not_rewritten(
        self, commander: PipelineCommander, login_service: MagicMock
    ) -> None:
        login_service.login.return_value = 3
        assert _run(commander, CommandSettings(login=True)) == 3

    def test_logout_code_is_passed_through(
        self, commander: PipelineCommander, login_service: MagicMock
    ) -> None:
        login_service.logout.return_value = 7
        assert _run(commander, CommandSettings(logout=True)) == 7


# ---------------------------------------------------------------------------
# Delegated failures
# ---------------------------------------------------------------------------

class TestDelegatedFailure:
    def test_pipeline_error_becomes_one_error_line(
        self,
        commander: PipelineCommander,
        terminal: Any,
        pipeline_runner: MagicMock,
    ) -> None:
        pipeline_runner.validate_async.side_effect = PipelineError("task Foo@1 not found")

        code = _run(commander, CommandSettings(validate=True))

        assert code == exit_codes.TERMINATED_ERROR
        assert terminal.errors == ["task Foo@1 not found"]

    def test_auth_error_becomes_one_error_line(
        self,
        commander: PipelineCommander,
        terminal: Any,
        login_service: MagicMock,
    ) -> None:
        login_service.login.side_effect = AuthError("bad token")

        code = _run(commander, CommandSettings(login=True))

        assert code == exit_codes.TERMINATED_ERROR
        assert terminal.errors == ["bad token"]

    def test_sync_lint_failure_is_caught(
        self,
        commander: PipelineCommander,
        terminal: Any,
        pipeline_runner: MagicMock,
    ) -> None:
        pipeline_runner.lint.side_effect = PipelineError("ci.yml: line 3, column 1: bad indent")

        code = _run(commander, CommandSettings(lint=True))

        assert code == exit_codes.TERMINATED_ERROR
        assert len(terminal.errors) == 1

    def test_unexpected_exception_is_caught(
        self,
        commander: PipelineCommander,
        terminal: Any,
        pipeline_runner: MagicMock,
    ) -> None:
        pipeline_runner.run_async.side_effect = RuntimeError("boom")

        code = _run(commander, CommandSettings(run=True))

        assert code == exit_codes.TERMINATED_ERROR
        assert terminal.errors == ["boom"]


# ---------------------------------------------------------------------------
# Handler lifecycle
# ---------------------------------------------------------------------------

class TestHandlerLifecycle:
    def test_handlers_are_subscribed_while_running(
        self,
        commander: PipelineCommander,
        host: HostContext,
        terminal: Any,
        pipeline_runner: MagicMock,
    ) -> None:
        seen: dict[str, Any] = {}

        async def _observe(settings: CommandSettings, token: CancellationToken) -> None:
            seen["cancel"] = len(terminal.listeners)
            seen["unloading"] = host.unloading_listener_count
            seen["latch"] = commander.coordinator.latch.is_set
            seen["state"] = commander.coordinator.state

        pipeline_runner.run_async.side_effect = _observe
        _run(commander, CommandSettings(run=True))

        assert seen == {
            "cancel": 1,
            "unloading": 1,
            "latch": False,
            "state": ShutdownState.ARMED,
        }

    @pytest.mark.parametrize("fails", [False, True])
    def test_handlers_are_released_on_every_path(
        self,
        fails: bool,
        commander: PipelineCommander,
        host: HostContext,
        terminal: Any,
        pipeline_runner: MagicMock,
    ) -> None:
        if fails:
            pipeline_runner.run_async.side_effect = PipelineError("nope")

        _run(commander, CommandSettings(run=True))

        assert terminal.listeners == []
        assert host.unloading_listener_count == 0
        assert commander.coordinator.latch.is_set
        assert commander.coordinator.state is ShutdownState.DONE

    def test_released_when_no_command_matches(
        self, commander: PipelineCommander, host: HostContext, terminal: Any
    ) -> None:
        _run(commander, CommandSettings())
        assert terminal.listeners == []
        assert host.unloading_listener_count == 0

    def test_released_when_cancelled_error_escapes(
        self,
        commander: PipelineCommander,
        host: HostContext,
        terminal: Any,
        pipeline_runner: MagicMock,
    ) -> None:
        pipeline_runner.run_async.side_effect = asyncio.CancelledError()

        with pytest.raises(asyncio.CancelledError):
            _run(commander, CommandSettings(run=True))

        assert terminal.listeners == []
        assert host.unloading_listener_count == 0
        assert commander.coordinator.latch.is_set

    def test_latch_set_once_after_unsubscribe(
        self,
        commander: PipelineCommander,
        host: HostContext,
        terminal: Any,
        pipeline_runner: MagicMock,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        events: list[str] = []
        latch = commander.coordinator.latch
        original_set = latch.set
        original_remove_cancel = terminal.remove_cancel_listener
        original_remove_unloading = host.remove_unloading_listener

        def _set() -> None:
            events.append("latch")
            original_set()

        def _remove_cancel(listener: Any) -> None:
            events.append("cancel")
            original_remove_cancel(listener)

        def _remove_unloading(listener: Any) -> None:
            events.append("unloading")
            original_remove_unloading(listener)

        monkeypatch.setattr(latch, "set", _set)
        monkeypatch.setattr(terminal, "remove_cancel_listener", _remove_cancel)
        monkeypatch.setattr(host, "remove_unloading_listener", _remove_unloading)
        pipeline_runner.validate_async.side_effect = PipelineError("bad")

        _run(commander, CommandSettings(validate=True))

        assert events == ["cancel", "unloading", "latch"]

    def test_second_invocation_rearms(
        self,
        commander: PipelineCommander,
        host: HostContext,
        terminal: Any,
        pipeline_runner: MagicMock,
    ) -> None:
        _run(commander, CommandSettings(lint=True))
        seen: list[bool] = []

        async def _observe(settings: CommandSettings, token: CancellationToken) -> None:
            seen.append(commander.coordinator.latch.is_set)

        pipeline_runner.run_async.side_effect = _observe
        _run(commander, CommandSettings(run=True))

        assert seen == [False]
        assert terminal.listeners == []
        assert host.unloading_listener_count == 0


# ---------------------------------------------------------------------------
# Interruption during a running command
# ---------------------------------------------------------------------------

class TestInterruption:
    def test_cancel_key_fast_exits(
        self,
        commander: PipelineCommander,
        host: HostContext,
        terminal: Any,
        exit_calls: list[int],
        pipeline_runner: MagicMock,
    ) -> None:
        async def _press(settings: CommandSettings, token: CancellationToken) -> None:
            terminal.press_cancel()

        pipeline_runner.run_async.side_effect = _press
        _run(commander, CommandSettings(run=True))

        assert "Exiting..." in terminal.lines
        assert host.disposed
        assert exit_calls == [exit_codes.TERMINATED_ERROR]

    def test_termination_waits_for_cleanup(
        self,
        commander: PipelineCommander,
        host: HostContext,
        terminal: Any,
        exit_calls: list[int],
        pipeline_runner: MagicMock,
    ) -> None:
        threads: list[threading.Thread] = []

        async def _honour_token(settings: CommandSettings, token: CancellationToken) -> None:
            threads.append(host.notify_unloading())
            await token.wait()
            raise OperationCancelledError("The operation was cancelled.")

        pipeline_runner.run_async.side_effect = _honour_token

        code = _run(commander, CommandSettings(run=True))
        threads[0].join(timeout=5.0)

        assert code == exit_codes.TERMINATED_ERROR
        assert terminal.errors == ["The operation was cancelled."]
        assert host.shutdown_reason is ShutdownReason.USER_CANCELLED
        assert not threads[0].is_alive()
        assert commander.coordinator.latch.is_set
        # The host tears itself down once the unloading listeners return.
        assert exit_calls == [exit_codes.TERMINATED_ERROR]


# ---------------------------------------------------------------------------
# Missing services
# ---------------------------------------------------------------------------

class TestMissingRunner:
    def test_unregistered_runner_is_reported(
        self, terminal: Any, login_service: MagicMock, exit_calls: list[int]
    ) -> None:
        from vsts_pi.core.protocols import LoginService, Terminal

        with HostContext(
            unload_exit_code=exit_codes.TERMINATED_ERROR,
            exit_process=exit_calls.append,
            handle_signals=False,
        ) as bare_host:
            bare_host.register_service(Terminal, terminal)
            bare_host.register_service(LoginService, login_service)
            code = _run(PipelineCommander(bare_host), CommandSettings(run=True))

        assert code == exit_codes.TERMINATED_ERROR
        assert terminal.errors == ["No service registered for PipelineRunner."]
        assert terminal.listeners == []
