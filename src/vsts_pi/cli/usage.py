"""Static usage text for ``vsts-pi``."""

from __future__ import annotations

from vsts_pi.core.protocols import Terminal

USAGE: str = """\
Commands:
    login        Login and connect with the service.  Only needed once.
    run          Run a pipeline
    lint         Validate syntax of a yaml file
    validate     Validate a pipeline file.  Includes lint and validating referenced tasks and inputs
    logout       Logout

    Each command may also be given as a flag, e.g. --run or --lint.

Options:
    --yml        Path to a yaml file.  If not supplied, first file ending in .yml is used
    --offline    Do not attempt to resolve task versions.  Always use what is local task cache.
    --trace      Print diagnostic logging to stderr
    --version    Print the version
    --commit     Print the source commit the build was made from

Examples:
    vsts-pi login --url https://<account>.visualstudio.com --auth pat --token <pat>
    vsts-pi validate --yaml vsts-ci.yml
    vsts-pi run --yaml vsts-ci.yml

Environment Variable Override:
    VSTS_URL     URL of the server or service
    VSTS_PAT     PAT token to use
"""


def render_usage() -> str:
    return USAGE


def print_usage(terminal: Terminal) -> None:
    terminal.write_line(render_usage())
