"""Turn ``argv`` into an immutable :class:`~vsts_pi.core.models.CommandSettings`.

Parsing is lenient: unknown verbs and options are logged and
ignored so that the dispatcher, not the parser, decides what an
unrecognised command line means (usage plus a failing exit code).
"""

from __future__ import annotations

import argparse
import logging
from collections.abc import Sequence
from pathlib import Path

from vsts_pi.core.models import CommandSettings

logger = logging.getLogger(__name__)

COMMANDS: tuple[str, ...] = ("login", "logout", "lint", "validate", "run", "help", "version")


def _build_parser() -> argparse.ArgumentParser:
    """Construct the argument parser.

    ``add_help`` is disabled: help is a command like any other and is
    rendered by the dispatcher.
    """
    parser = argparse.ArgumentParser(
        prog="vsts-pi", add_help=False, allow_abbrev=False, exit_on_error=False,
    )
    parser.add_argument("commands", nargs="*", metavar="command")
    parser.add_argument("-h", "--help", action="store_true")
    parser.add_argument("--version", action="store_true")
    parser.add_argument("--commit", action="store_true")
    for command in ("lint", "login", "logout", "validate", "run"):
        parser.add_argument(f"--{command}", action="store_true")
    parser.add_argument("--yaml", "--yml", dest="yaml", type=Path, default=None)
    parser.add_argument("--offline", action="store_true")
    parser.add_argument("--url", default=None)
    parser.add_argument("--auth", default="pat")
    parser.add_argument("--token", default=None)
    parser.add_argument("--trace", action="store_true")
    return parser


def parse_settings(argv: Sequence[str]) -> CommandSettings:
    """Parse *argv* (without the program name) into settings."""
    args, unknown = _build_parser().parse_known_args(list(argv))
    if unknown:
        logger.debug("Ignoring unrecognised arguments: %s", unknown)

    verbs = {verb.lower() for verb in args.commands}
    for verb in sorted(verbs - set(COMMANDS)):
        logger.debug("Ignoring unrecognised command: %s", verb)

    return CommandSettings(
        help=args.help or "help" in verbs,
        version=args.version or "version" in verbs,
        commit=args.commit,
        lint=args.lint or "lint" in verbs,
        login=args.login or "login" in verbs,
        logout=args.logout or "logout" in verbs,
        validate=args.validate or "validate" in verbs,
        run=args.run or "run" in verbs,
        yaml=args.yaml,
        offline=args.offline,
        url=args.url,
        auth=args.auth,
        token=args.token,
        trace=args.trace,
    )
