"""Core layer — command models, collaborator contracts, and shutdown logic.

Rules
-----
* No ``print()`` calls.
* No imports from ``cli`` or ``infra``.
* Collaborators are reached only through :mod:`vsts_pi.core.protocols`.
"""

from vsts_pi.core.cancellation import CancellationToken
from vsts_pi.core.models import CommandSettings, Credentials, ShutdownReason
from vsts_pi.core.protocols import Host, LoginService, PipelineRunner, Terminal
from vsts_pi.core.shutdown import CompletionLatch, ShutdownCoordinator, ShutdownState

__all__: list[str] = [
    "CancellationToken",
    "CommandSettings",
    "CompletionLatch",
    "Credentials",
    "Host",
    "LoginService",
    "PipelineRunner",
    "ShutdownCoordinator",
    "ShutdownReason",
    "ShutdownState",
    "Terminal",
]
