"""Exception taxonomy and the per-issue diagnostics record."""

from __future__ import annotations

from dataclasses import dataclass

MALFORMED_TIMESTAMP = "malformed_timestamp"
MISSING_CLASSIFICATION = "missing_classification"


class LifecycleError(Exception):
    """Base class for errors raised by the lifecycle engine."""


class MalformedTimestampError(LifecycleError, ValueError):
    def __init__(self, value, context: str | None = None):
        self.value = value
        self.context = context
        where = f" ({context})" if context else ""
        super().__init__(f"Unparsable timestamp {value!r}{where}")


class ConfigurationError(LifecycleError):
    """Raised when classification data is structurally invalid."""


@dataclass(frozen=True, slots=True)
class Diagnostic:
    kind: str
    project: str | None
    issue: str | None
    message: str
