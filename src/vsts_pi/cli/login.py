"""Interactive login and logout for the CLI layer.

:class:`LoginManager` satisfies :class:`~vsts_pi.core.protocols.LoginService`.
Values missing from the command line fall back to configuration
(``VSTS_URL`` / ``VSTS_PAT``) and finally to questionary prompts.
Prompts are blocking, so they run in a worker thread to keep the event
loop free.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from vsts_pi.cli import exit_codes
from vsts_pi.core.models import CommandSettings, Credentials
from vsts_pi.core.protocols import Terminal
from vsts_pi.exceptions import AuthError, DependencyMissingError
from vsts_pi.infra.credential_store import CredentialStore

logger = logging.getLogger(__name__)

SUPPORTED_AUTH: tuple[str, ...] = ("pat",)


def _import_questionary() -> Any:
    """Import questionary lazily for interactive prompts."""
    try:
        import questionary
    except ModuleNotFoundError as exc:
        raise DependencyMissingError(
            "questionary is not installed. Install with: pip install questionary",
        ) from exc
    return questionary


def _ask_url() -> str:
    questionary = _import_questionary()
    answer: str | None = questionary.text(
        "Server URL (e.g. https://<account>.visualstudio.com):",
    ).ask()  # Returns None on Ctrl+C / Esc
    if answer is None:
        raise AuthError("Login cancelled.")
    return answer


def _ask_token() -> str:
    questionary = _import_questionary()
    answer: str | None = questionary.password("Personal access token:").ask()
    if answer is None:
        raise AuthError("Login cancelled.")
    return answer


def normalize_url(url: str) -> str:
    """Strip whitespace and trailing slashes; require an http(s) scheme."""
    stripped = url.strip().rstrip("/")
    if not stripped:
        raise AuthError("A server URL is required.", hint="Pass --url or set VSTS_URL.")
    if not stripped.startswith(("http://", "https://")):
        raise AuthError(
            f"Invalid server URL: {stripped}",
            hint="URL must start with http:// or https://",
        )
    return stripped


class LoginManager:
    """Persist and clear server credentials.

    Parameters
    ----------
    terminal:
        Where success and status messages are written.
    store:
        Credential persistence backend.
    default_url, default_token:
        Configuration fallbacks used before prompting.
    """

    def __init__(
        self,
        terminal: Terminal,
        store: CredentialStore,
        *,
        default_url: str | None = None,
        default_token: str | None = None,
    ) -> None:
        self._terminal = terminal
        self._store = store
        self._default_url = default_url
        self._default_token = default_token

    async def login(self, settings: CommandSettings) -> int:
        """Resolve, validate and store credentials.

        Raises
        ------
        AuthError
            For an unsupported scheme, a malformed URL, an empty token, a
            cancelled prompt, or a storage failure.
        """
        auth = (settings.auth or "pat").strip().lower()
        if auth not in SUPPORTED_AUTH:
            raise AuthError(
                f"Unsupported authentication scheme: {settings.auth}",
                hint="Use --auth pat",
            )

        url = settings.url or self._default_url
        if not url:
            url = await asyncio.to_thread(_ask_url)
        url = normalize_url(url)

        token = settings.token or self._default_token
        if not token:
            token = await asyncio.to_thread(_ask_token)
        token = token.strip()
        if not token:
            raise AuthError("A personal access token is required.", hint="Pass --token or set VSTS_PAT.")

        try:
            previous = self._store.load()
        except AuthError as exc:
            logger.warning("Overwriting unreadable credentials: %s", exc)
            previous = None
        if previous is not None and previous.url != url:
            logger.info("Replacing credentials for %s", previous.url)

        self._store.save(Credentials(url=url, auth=auth, token=token))
        self._terminal.write_line(f"Logged in to {url}")
        return exit_codes.SUCCESS

    def logout(self) -> int:
        if self._store.delete():
            self._terminal.write_line("Logged out.")
        else:
            logger.info("No credentials at %s", self._store.path)
            self._terminal.write_line("Not logged in.")
        return exit_codes.SUCCESS
