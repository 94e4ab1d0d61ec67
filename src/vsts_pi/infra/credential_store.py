"""Infrastructure: on-disk persistence of login credentials.

Credentials live in a single JSON document (``credentials.json`` under
the vsts-pi home directory).  The file is written with owner-only
permissions where the platform supports it.

Rules
-----
* No user-facing output — callers report outcomes.
* Every ``OSError`` / decode error is re-raised as
  :class:`~vsts_pi.exceptions.AuthError`.
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path

from vsts_pi.core.models import Credentials
from vsts_pi.exceptions import AuthError

logger = logging.getLogger(__name__)

_REQUIRED_KEYS: tuple[str, ...] = ("url", "auth", "token")


class CredentialStore:
    """Read, write and delete the persisted :class:`Credentials`."""

    def __init__(self, path: Path) -> None:
        self._path = path

    @property
    def path(self) -> Path:
        return self._path

    def exists(self) -> bool:
        return self._path.is_file()

    def load(self) -> Credentials | None:
        """Return stored credentials, or ``None`` when not logged in.

        Raises
        ------
        AuthError
            When the file exists but cannot be read or parsed.
        """
        if not self.exists():
            return None
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            raise AuthError(
                f"Could not read stored credentials: {exc}",
                hint="Run 'vsts-pi logout' and log in again.",
            ) from exc
        if not isinstance(data, dict) or any(
            not isinstance(data.get(key), str) for key in _REQUIRED_KEYS
        ):
            raise AuthError(
                f"Stored credentials in {self._path} are malformed.",
                hint="Run 'vsts-pi logout' and log in again.",
            )
        return Credentials(url=data["url"], auth=data["auth"], token=data["token"])

    def save(self, credentials: Credentials) -> None:
        payload = {
            "url": credentials.url,
            "auth": credentials.auth,
            "token": credentials.token,
        }
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            self._path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
            os.chmod(self._path, 0o600)
        except OSError as exc:
            raise AuthError(f"Could not save credentials: {exc}") from exc
        logger.info("Saved credentials for %s to %s", credentials.url, self._path)

    def delete(self) -> bool:
        """Remove stored credentials; return ``True`` if a file was removed."""
        try:
            self._path.unlink()
        except FileNotFoundError:
            return False
        except OSError as exc:
            raise AuthError(f"Could not remove credentials: {exc}") from exc
        logger.info("Removed credentials at %s", self._path)
        return True
