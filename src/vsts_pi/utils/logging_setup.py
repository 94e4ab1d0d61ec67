"""Diagnostic logging for a single vsts-pi invocation.

Every run appends to a timestamped log file under the diag directory.
With ``--trace`` the same records are mirrored to stderr through Rich's
log handler so they do not interleave with command output on stdout.
"""

from __future__ import annotations

import logging
import sys
from datetime import datetime, timezone
from pathlib import Path

__all__ = ["setup_logging"]

_FILE_FORMAT = "[%(asctime)s %(levelname)s %(name)s] %(message)s"
_PACKAGE_LOGGER = "vsts_pi"


def _diag_file(diag_dir: Path) -> Path:
    stamp = datetime.now(timezone.utc).strftime("%Y%m%d-%H%M%S")
    return diag_dir / f"vsts-pi_{stamp}.log"


def _build_file_handler(diag_dir: Path) -> logging.Handler | None:
    try:
        diag_dir.mkdir(parents=True, exist_ok=True)
        handler = logging.FileHandler(_diag_file(diag_dir), mode="a", encoding="utf-8")
    except OSError:
        # Diagnostics are best-effort; the command itself must still run.
        return None
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(logging.Formatter(_FILE_FORMAT))
    return handler


def _build_console_handler() -> logging.Handler:
    """Return a Rich handler on stderr, or a plain stream handler."""
    try:
        from rich.console import Console
        from rich.logging import RichHandler
    except ModuleNotFoundError:
        handler: logging.Handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter("%(levelname)s %(name)s: %(message)s"))
    else:
        handler = RichHandler(console=Console(stderr=True), show_path=False)
    handler.setLevel(logging.DEBUG)
    return handler


def setup_logging(diag_dir: Path, *, trace: bool = False) -> logging.Logger:
    """Configure the package logger and return it.

    Handlers installed by a previous call are replaced, so calling this
    more than once per process (as the test-suite does) is safe.
    """
    logger = logging.getLogger(_PACKAGE_LOGGER)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.setLevel(logging.DEBUG)
    logger.propagate = False

    file_handler = _build_file_handler(diag_dir)
    if file_handler is not None:
        logger.addHandler(file_handler)
    if trace:
        logger.addHandler(_build_console_handler())
    if not logger.handlers:
        logger.addHandler(logging.NullHandler())
    return logger
