"""Custom exception hierarchy for vsts-pi.

All exceptions that cross layer boundaries must inherit from
:class:`VstsPiError`.  Raw third-party exceptions (e.g. from PyYAML or
the OS) must NEVER propagate beyond the infrastructure layer — they must
be caught and re-raised as a typed subclass defined here.

Hierarchy
---------
VstsPiError
├── ConfigurationError
├── AuthError
├── PipelineError
│   ├── PipelineNotFoundError
│   ├── YamlLintError
│   ├── TaskResolutionError
│   └── StepFailedError
├── OperationCancelledError
└── DependencyMissingError
"""

from __future__ import annotations


class VstsPiError(Exception):
    """Base exception for all vsts-pi errors.

    Every user-visible error condition must map to a subclass of this
    exception so that the dispatcher can render a single clean line
    without leaking internal stack traces.
    """

    def __init__(self, message: str, *, hint: str | None = None) -> None:
        super().__init__(message)
        self.hint: str | None = hint
        """Optional actionable guidance for the user."""


# --- Configuration ---------------------------------------------------------

class ConfigurationError(VstsPiError):
    """Raised when a configuration value is missing or malformed."""


# --- Authentication --------------------------------------------------------

class AuthError(VstsPiError):
    """Raised when login or logout cannot complete."""


# --- Pipeline --------------------------------------------------------------

class PipelineError(VstsPiError):
    """Raised by the pipeline runner for malformed input or failed work."""


class PipelineNotFoundError(PipelineError):
    """Raised when no pipeline definition file can be located."""


class YamlLintError(PipelineError):
    """Raised when a pipeline file is not valid YAML or has a bad shape."""


class TaskResolutionError(PipelineError):
    """Raised when a task reference cannot be resolved."""


class StepFailedError(PipelineError):
    """Raised when a pipeline step exits unsuccessfully."""

    def __init__(
        self,
        message: str,
        *,
        exit_code: int | None = None,
        hint: str | None = None,
    ) -> None:
        super().__init__(message, hint=hint)
        self.exit_code: int | None = exit_code


# --- Cancellation ----------------------------------------------------------

class OperationCancelledError(VstsPiError):
    """Raised when a running operation observes a cancellation request."""


# --- Environment / tooling -------------------------------------------------

class DependencyMissingError(VstsPiError):
    """Raised when an optional runtime package is not available."""
