"""Infrastructure layer — operating system and file-format integration.

This layer wraps signals, the filesystem, PyYAML and child processes.
Every raw third-party exception must be caught here and re-raised as a
:class:`~vsts_pi.exceptions.VstsPiError` subclass.

Rules
-----
* No imports from ``cli``.
* User-facing output only through the :class:`~vsts_pi.core.protocols.Terminal`
  protocol.
"""

from vsts_pi.infra.credential_store import CredentialStore
from vsts_pi.infra.host_context import HostContext
from vsts_pi.infra.yaml_runner import YamlRunner

__all__: list[str] = [
    "CredentialStore",
    "HostContext",
    "YamlRunner",
]
