"""vsts-pi — run and validate YAML pipelines from the command line.

Built around a small dispatcher that owns command selection and
orderly shutdown; the actual work is delegated to pluggable services.
"""

from vsts_pi.version import __commit__, __version__

__all__: list[str] = ["__commit__", "__version__"]
