"""Domain models for vsts-pi.

All records are **frozen** dataclasses — immutable value objects with no
behaviour beyond data access.  They are built once by the CLI layer and
passed by reference into the core.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from pathlib import Path


# ---------------------------------------------------------------------------
# Parsed command line
# ---------------------------------------------------------------------------

@dataclass(frozen=True, slots=True)
class CommandSettings:
    """Already-parsed representation of the requested action and options.

    Flags are advisory: more than one may be set, in which case the
    dispatcher honours only the highest-priority one.
    """

    help: bool = False
    version: bool = False
    commit: bool = False
    lint: bool = False
    login: bool = False
    logout: bool = False
    validate: bool = False
    run: bool = False

    yaml: Path | None = None
    """Pipeline definition file; ``None`` selects the first ``*.yml``."""

    offline: bool = False
    """Use the local task cache only; never resolve task versions remotely."""

    url: str | None = None
    """Server URL supplied on the command line (login only)."""

    auth: str = "pat"
    """Authentication scheme (login only)."""

    token: str | None = None
    """Personal access token supplied on the command line (login only)."""

    trace: bool = False
    """Mirror diagnostic logging to stderr."""


# ---------------------------------------------------------------------------
# Shutdown
# ---------------------------------------------------------------------------

class ShutdownReason(enum.Enum):
    """Why the host was asked to stop."""

    USER_CANCELLED = "user_cancelled"
    OPERATING_SYSTEM_SHUTDOWN = "operating_system_shutdown"


# ---------------------------------------------------------------------------
# Login
# ---------------------------------------------------------------------------

@dataclass(frozen=True, slots=True)
class Credentials:
    """Connection details persisted by ``vsts-pi login``."""

    url: str
    auth: str
    token: str
