"""Exit-code constants used by the CLI layer.

Centralised here so that every exit path uses a well-known, tested
value rather than magic integers scattered across the codebase.
"""

from __future__ import annotations

SUCCESS: int = 0
"""Clean exit — the selected command completed without error."""

TERMINATED_ERROR: int = 1
"""The command failed, no command was recognised, or the user forced an exit."""
