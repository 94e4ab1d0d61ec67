"""Command dispatch for ``vsts-pi``.

:class:`PipelineCommander` runs exactly one command per invocation.  The
settings flags are checked in a fixed order and the first match wins::

    help > version > commit > lint > login > logout > validate > run

When nothing matches, usage is printed and the invocation fails.

Error boundary
--------------
Any exception raised by a delegated service is logged with its
traceback, reported to the user as one line on stderr, and mapped to
:data:`~vsts_pi.cli.exit_codes.TERMINATED_ERROR`.  Nothing raised by a
service reaches the caller of :meth:`PipelineCommander.run_async`.

Interruption handlers are held by a
:class:`~vsts_pi.core.shutdown.ShutdownCoordinator` for the duration of
the call and released on every exit path.
"""

from __future__ import annotations

import logging
from collections.abc import Callable

from vsts_pi.cli import exit_codes
from vsts_pi.cli.usage import print_usage
from vsts_pi.config import EXIT_ON_UNLOAD_TIMEOUT
from vsts_pi.core.models import CommandSettings
from vsts_pi.core.protocols import Host, LoginService, PipelineRunner, Terminal
from vsts_pi.core.shutdown import ShutdownCoordinator
from vsts_pi.version import __commit__, __version__

logger = logging.getLogger(__name__)


class PipelineCommander:
    """Select and run one command, guaranteeing orderly shutdown.

    Parameters
    ----------
    host:
        Supplies the terminal, login service, pipeline runner and the
        shutdown token handed to long-running commands.
    unload_timeout:
        Seconds a termination request waits for the command to finish.
    exit_process:
        Forwarded to the coordinator's cancel-key fast-exit path.
    """

    def __init__(
        self,
        host: Host,
        *,
        unload_timeout: float = EXIT_ON_UNLOAD_TIMEOUT,
        exit_process: Callable[[int], None] | None = None,
    ) -> None:
        self._host = host
        self._terminal: Terminal = host.get_service(Terminal)
        self._login: LoginService = host.get_service(LoginService)
        self._coordinator = ShutdownCoordinator(
            self._terminal,
            host,
            fast_exit_code=exit_codes.TERMINATED_ERROR,
            timeout=unload_timeout,
            exit_process=exit_process,
        )

    @property
    def coordinator(self) -> ShutdownCoordinator:
        return self._coordinator

    async def run_async(self, settings: CommandSettings) -> int:
        """Run the highest-priority command in *settings*; return an exit code."""
        logger.info("run_async")
        with self._coordinator:
            try:
                return await self._dispatch(settings)
            except Exception as exc:  # noqa: BLE001
                logger.exception("Command failed")
                self._terminal.write_error(str(exc))
                return exit_codes.TERMINATED_ERROR

    async def _dispatch(self, settings: CommandSettings) -> int:
        runner: PipelineRunner = self._host.get_service(PipelineRunner)
        token = self._host.shutdown_token

        if settings.help:
            print_usage(self._terminal)
            return exit_codes.SUCCESS

        if settings.version:
            self._terminal.write_line(__version__)
            return exit_codes.SUCCESS

        if settings.commit:
            self._terminal.write_line(__commit__)
            return exit_codes.SUCCESS

        if settings.lint:
            runner.lint(settings, token)
            return exit_codes.SUCCESS

        if settings.login:
            return await self._login.login(settings)

        if settings.logout:
            return self._login.logout()

        if settings.validate:
            await runner.validate_async(settings, token)
            return exit_codes.SUCCESS

        if settings.run:
            await runner.run_async(settings, token)
            return exit_codes.SUCCESS

        # No command: print usage and fail.
        print_usage(self._terminal)
        return exit_codes.TERMINATED_ERROR
