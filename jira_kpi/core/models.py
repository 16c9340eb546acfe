"""Domain data models for issue histories, defects, and engine outputs."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime

import pandas as pd

from .config import DEFAULT_OPEN_STATUS, DEFAULT_REOPEN_STATUS
from .errors import ConfigurationError, Diagnostic

# value -> ISO date -> issue identifiers (numbers within one project, keys across projects)
DateFieldIndex = dict[str, dict[str, set[str]]]

# project -> issue number -> one minimum close timestamp per completion cycle
CompletionCycleMinDates = dict[str, dict[str, list[pd.Timestamp]]]


def _lowered(values: Iterable[str] | None) -> frozenset[str]:
    return frozenset(str(v).strip().lower() for v in (values or ()) if v and str(v).strip())


@dataclass(frozen=True, slots=True)
class IssueRef:
    number: str
    project: str

    @property
    def key(self) -> str:
        """Issue key unique across projects.

        Jira keys already carry their project prefix ("PROJ-12") and are
        returned unchanged; bare numbers are prefixed with the project.

        >>> IssueRef("PROJ-12", "PROJ").key
        'PROJ-12'
        >>> IssueRef("12", "PROJ").key
        'PROJ-12'
        """
        if self.number.startswith(f"{self.project}-"):
            return self.number
        return f"{self.project}-{self.number}"


@dataclass(frozen=True, slots=True)
class StatusChangeEvent:
    from_value: str | None
    to_value: str | None
    # datetime or raw string; parsed by the engine so failures stay per issue
    timestamp: datetime | str | None


@dataclass(slots=True)
class IssueHistory:
    ref: IssueRef
    created: datetime | str | None
    status_log: list[StatusChangeEvent] = field(default_factory=list)
    priority: str | None = None
    root_causes: list[str] = field(default_factory=list)

    @property
    def number(self) -> str:
        return self.ref.number

    @property
    def project(self) -> str:
        return self.ref.project


@dataclass(slots=True)
class Defect:
    ref: IssueRef
    status: str | None = None
    resolution: str | None = None
    priority: str | None = None
    root_causes: list[str] = field(default_factory=list)
    linked_stories: set[str] = field(default_factory=set)

    @property
    def number(self) -> str:
        return self.ref.number

    @property
    def project(self) -> str:
        return self.ref.project


@dataclass(frozen=True, slots=True)
class ReopenTransition:
    issue: IssueRef
    closed_at: pd.Timestamp
    reopened_at: pd.Timestamp
    dwell_hours: float


@dataclass(slots=True)
class FieldClassification:
    """Per-project status vocabulary and defect filtering rules.

    Status comparisons are case-insensitive; the ``*_keys`` properties expose
    the lowercase forms used for matching.
    """

    closed_values: frozenset[str] = frozenset()
    open_default: str = DEFAULT_OPEN_STATUS
    reopen_value: str = DEFAULT_REOPEN_STATUS
    completion_values: frozenset[str] = frozenset()
    rejection_status: str | None = None
    rejection_resolutions: frozenset[str] = frozenset()
    priority_exclusions: frozenset[str] = frozenset()
    rca_inclusions: frozenset[str] = frozenset()
    priority_count_tolerance: dict[str, int] = field(default_factory=dict)

    def __post_init__(self):
        self.closed_values = frozenset(self.closed_values)
        self.completion_values = frozenset(self.completion_values)
        self.rejection_resolutions = frozenset(self.rejection_resolutions)
        self.priority_exclusions = frozenset(self.priority_exclusions)
        self.rca_inclusions = frozenset(self.rca_inclusions)
        if not self.open_default or not str(self.open_default).strip():
            raise ConfigurationError("open_default must be a non-empty status")
        if str(self.open_default).strip().lower() in self.closed_keys:
            raise ConfigurationError(f"open_default {self.open_default!r} is also configured as a closed value")

    @property
    def closed_keys(self) -> frozenset[str]:
        return _lowered(self.closed_values)

    @property
    def completion_keys(self) -> frozenset[str]:
        return _lowered(self.completion_values)

    def is_closed(self, value: str | None) -> bool:
        if not value:
            return False
        return str(value).strip().lower() in self.closed_keys


@dataclass(slots=True)
class ReplayResult:
    # issue keys, so same-numbered issues of different projects stay distinct
    index: DateFieldIndex = field(default_factory=dict)
    # project -> index of that project's issue numbers
    by_project: dict[str, DateFieldIndex] = field(default_factory=dict)
    diagnostics: list[Diagnostic] = field(default_factory=list)
    processed: int = 0


@dataclass(slots=True)
class CompletionResult:
    dates: CompletionCycleMinDates = field(default_factory=dict)
    diagnostics: list[Diagnostic] = field(default_factory=list)
