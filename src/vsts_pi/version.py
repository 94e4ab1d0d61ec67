"""Build provenance for vsts-pi.

Release builds stamp ``__commit__`` with the source revision; local
checkouts report ``"dev"``.
"""

from __future__ import annotations

__version__: str = "0.1.0"

__commit__: str = "dev"
