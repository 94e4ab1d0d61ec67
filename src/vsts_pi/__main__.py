"""Allow ``python -m vsts_pi`` invocation.

This module simply delegates to the CLI error-boundary entry point so
that ``python -m vsts_pi`` behaves identically to the ``vsts-pi``
console script.
"""

from __future__ import annotations

from vsts_pi.cli.app import cli

if __name__ == "__main__":
    cli()
