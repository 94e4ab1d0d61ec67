"""Configuration management for vsts-pi.

Values are merged from three sources, highest precedence first:

1. the process environment (``VSTS_URL``, ``VSTS_PAT``, ``VSTS_PI_HOME``);
2. a ``.env`` file in the working directory;
3. built-in defaults.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from dotenv import dotenv_values

__all__ = [
    "EXIT_ON_UNLOAD_TIMEOUT",
    "deep_merge",
    "get_default_config",
    "load_config",
    "load_dotenv_config",
    "load_env_config",
    "merge_config",
]

logger = logging.getLogger(__name__)

EXIT_ON_UNLOAD_TIMEOUT: float = 30.0
"""Seconds a termination handler waits for the running command to finish."""

_ENV_TO_CONFIG_KEY = {
    "VSTS_URL": "url",
    "VSTS_PAT": "token",
    "VSTS_PI_HOME": "home",
}


def get_default_config() -> dict[str, Any]:
    """Return built-in defaults rooted at ``~/.vsts-pi``."""
    return {
        "url": None,
        "token": None,
        "home": Path.home() / ".vsts-pi",
    }


def deep_merge(base: dict[str, Any], overlay: Mapping[str, Any]) -> None:
    """Recursively merge ``overlay`` into ``base`` in place."""
    for key, value in overlay.items():
        if key in base and isinstance(base[key], dict) and isinstance(value, dict):
            deep_merge(base[key], value)
        else:
            base[key] = value


def _translate(values: Mapping[str, Any]) -> dict[str, Any]:
    config: dict[str, Any] = {}
    for env_key, config_key in _ENV_TO_CONFIG_KEY.items():
        value = values.get(env_key)
        if value:
            config[config_key] = value
    return config


def load_env_config(environ: Mapping[str, str] | None = None) -> dict[str, Any]:
    """Read overrides from the process environment."""
    return _translate(os.environ if environ is None else environ)


def load_dotenv_config(dotenv_path: Path | None = None) -> dict[str, Any]:
    """Read overrides from a ``.env`` file, or return an empty dict."""
    path = dotenv_path or Path(".env")
    if not path.is_file():
        return {}
    try:
        values = dotenv_values(path)
    except OSError as exc:
        logger.warning("Failed to load %s: %s", path, exc)
        return {}
    return _translate(values)


def merge_config(
    env_config: Mapping[str, Any],
    dotenv_config: Mapping[str, Any],
    defaults: Mapping[str, Any],
) -> dict[str, Any]:
    """Merge configuration dictionaries honoring precedence order."""
    merged = dict(defaults)
    deep_merge(merged, dotenv_config)
    deep_merge(merged, env_config)
    home = Path(merged["home"]).expanduser()
    merged["home"] = home
    merged.setdefault("tasks_dir", home / "tasks")
    merged.setdefault("credentials_file", home / "credentials.json")
    merged.setdefault("diag_dir", home / "_diag")
    return merged


def load_config(
    environ: Mapping[str, str] | None = None,
    dotenv_path: Path | None = None,
) -> dict[str, Any]:
    """Load the effective configuration for this process."""
    return merge_config(
        load_env_config(environ),
        load_dotenv_config(dotenv_path),
        get_default_config(),
    )
