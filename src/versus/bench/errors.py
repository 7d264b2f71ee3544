"""Exception types for the benchmark engine.

Process-level failures are not exceptions: they travel as
:class:`~versus.bench.timing.ProcessFailure` values so a single
bad combination never aborts a run.
"""

from __future__ import annotations

from dataclasses import dataclass


class VersusError(Exception):
    """Base class for versus errors."""


@dataclass
class ValidationError:
    """A single configuration validation error."""

    field: str
    message: str
    severity: str = "error"  # "error" or "warning"


class ConfigurationError(VersusError):
    """The descriptor or configuration is malformed or inconsistent.

    Raised before any process is spawned.
    """

    def __init__(self, message: str, errors: list[ValidationError] | None = None) -> None:
        super().__init__(message)
        self.errors: list[ValidationError] = errors or []

    @classmethod
    def from_errors(cls, errors: list[ValidationError]) -> ConfigurationError:
        """Build a single exception listing every validation error."""
        messages = [f"  {e.field}: {e.message}" for e in errors]
        return cls("Invalid benchmark configuration:\n" + "\n".join(messages), errors)


class AggregationError(VersusError):
    """Statistics cannot be computed (e.g. no measured samples)."""


class RunCancelled(VersusError):
    """The run was cancelled between two process invocations."""
