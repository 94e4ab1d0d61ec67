"""CLI application entry point for vsts-pi.

This module wires the process together: it parses ``argv``, loads
configuration, configures diagnostic logging, builds the
:class:`~vsts_pi.infra.host_context.HostContext` with its services, and
hands the settings to :class:`~vsts_pi.cli.commander.PipelineCommander`.

Architecture notes
------------------
* No business logic lives here — all work is delegated to the commander
  and the services it resolves from the host.
* :func:`cli` is the outermost error boundary: nothing escapes it as a
  raw stack trace.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from collections.abc import Sequence
from typing import Any

from vsts_pi.cli import exit_codes
from vsts_pi.cli.commander import PipelineCommander
from vsts_pi.cli.console import RichTerminal
from vsts_pi.cli.login import LoginManager
from vsts_pi.cli.settings import parse_settings
from vsts_pi.config import load_config
from vsts_pi.core.protocols import LoginService, PipelineRunner, Terminal
from vsts_pi.exceptions import VstsPiError
from vsts_pi.infra.credential_store import CredentialStore
from vsts_pi.infra.host_context import HostContext
from vsts_pi.infra.yaml_runner import YamlRunner
from vsts_pi.utils.logging_setup import setup_logging

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Wiring
# ---------------------------------------------------------------------------

def build_host(config: dict[str, Any], terminal: Terminal | None = None) -> HostContext:
    """Create the host and register the default services."""
    host = HostContext(unload_exit_code=exit_codes.TERMINATED_ERROR)
    terminal = terminal if terminal is not None else RichTerminal()
    host.register_service(Terminal, terminal)
    host.register_service(
        LoginService,
        LoginManager(
            terminal,
            CredentialStore(config["credentials_file"]),
            default_url=config.get("url"),
            default_token=config.get("token"),
        ),
    )
    host.register_service(
        PipelineRunner,
        YamlRunner(terminal, tasks_dir=config["tasks_dir"]),
    )
    return host


# ---------------------------------------------------------------------------
# Main entry point
# ---------------------------------------------------------------------------

def main(argv: Sequence[str] | None = None) -> int:
    """Run the vsts-pi CLI.

    Parameters
    ----------
    argv:
        Explicit argument list.  When ``None`` (default), ``sys.argv[1:]``
        is used.  Accepting *argv* enables deterministic testing without
        monkeypatching.

    Returns
    -------
    int
        OS process exit code.
    """
    try:
        settings = parse_settings(sys.argv[1:] if argv is None else argv)
    except argparse.ArgumentError as exc:
        RichTerminal(handle_signals=False).write_error(f"Invalid arguments: {exc}")
        return exit_codes.TERMINATED_ERROR

    config = load_config()
    setup_logging(config["diag_dir"], trace=settings.trace)

    with build_host(config) as host:
        commander = PipelineCommander(host)
        return asyncio.run(commander.run_async(settings))


# ---------------------------------------------------------------------------
# Script-level error boundary
# ---------------------------------------------------------------------------

def cli() -> None:
    """Top-level error boundary invoked by the console-script entry point.

    This function wraps :func:`main` and guarantees the process never
    exits with a raw stack trace during normal usage.
    """
    try:
        code = main()
    except VstsPiError as exc:
        terminal = RichTerminal(handle_signals=False)
        terminal.write_error(f"Error: {exc}")
        if exc.hint:
            terminal.write_line(f"Hint: {exc.hint}")
        code = exit_codes.TERMINATED_ERROR
    except KeyboardInterrupt:
        RichTerminal(handle_signals=False).write_error("Aborted by user.")
        code = exit_codes.TERMINATED_ERROR
    except Exception as exc:  # noqa: BLE001
        logger.exception("Unexpected error")
        RichTerminal(handle_signals=False).write_error(
            f"Unexpected error. Please report this issue. {type(exc).__name__}: {exc}",
        )
        code = exit_codes.TERMINATED_ERROR
    sys.exit(code)
