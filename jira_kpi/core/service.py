"""LifecycleService: runs the lifecycle analyses for one multi-project request."""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field

import pandas as pd

from jira_kpi.analytics.aggregations.flow import cumulative_flow_frame
from jira_kpi.analytics.aggregations.quality import dwell_summary, reopen_frame, reopen_rate_by_priority
from jira_kpi.analytics.metrics.completion import (
    find_duplicate_issues,
    history_lookup_from,
    resolve_min_closed_dates,
)
from jira_kpi.analytics.metrics.reopen import detect_reopens_batch
from jira_kpi.analytics.metrics.replay import replay_by_field, replay_by_status
from jira_kpi.analytics.segments.defects import exclude_defects_for

from .classification import get_classification, load_classifications
from .config import SETTINGS, AppSettings
from .errors import Diagnostic
from .models import (
    CompletionResult,
    DateFieldIndex,
    Defect,
    FieldClassification,
    IssueHistory,
    ReopenTransition,
    ReplayResult,
)
from .status import status_key
from .timeutil import resolve_tz

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class FlowReport:
    index: DateFieldIndex
    frame: pd.DataFrame
    diagnostics: list[Diagnostic] = field(default_factory=list)
    by_project: dict[str, DateFieldIndex] = field(default_factory=dict)


@dataclass(slots=True)
class ReopenReport:
    defects: list[Defect]
    transitions: dict[str, list[ReopenTransition]]
    summary: dict[str, float]
    rates: dict[str, float]
    frame: pd.DataFrame
    diagnostics: list[Diagnostic] = field(default_factory=list)


class LifecycleService:
    def __init__(
        self,
        classifications: Mapping[str, FieldClassification] | None = None,
        settings: AppSettings | None = None,
    ):
        self.classifications = classifications if classifications is not None else load_classifications()
        self.settings = settings or SETTINGS
        self._tz = resolve_tz(self.settings.timezone)
        # one event per running replay
        self._active: set[threading.Event] = set()
        self._lock = threading.Lock()

    def cancel(self) -> None:
        """Stop submitting further issues to every replay running on this service."""
        with self._lock:
            for event in self._active:
                event.set()

    # ------------------ Cumulative flow ------------------
    def cumulative_flow(
        self,
        histories: Iterable[IssueHistory],
        start,
        today=None,
        *,
        field_name: str | None = None,
        cancel: threading.Event | None = None,
    ) -> FlowReport:
        """Replay histories by status (or by ``field_name``) and tabulate daily counts.

        ``cancel`` is this call's own flag; :meth:`cancel` sets the flags of
        all calls in flight.
        """
        event = cancel if cancel is not None else threading.Event()
        with self._lock:
            self._active.add(event)
        try:
            result = self._replay(histories, start, today, field_name, event)
        finally:
            with self._lock:
                self._active.discard(event)
        frame = cumulative_flow_frame(result.index, start, today)
        logger.info(
            "Cumulative flow over %d issues: %d values, %d diagnostics",
            result.processed,
            len(result.index),
            len(result.diagnostics),
        )
        return FlowReport(
            index=result.index, frame=frame, diagnostics=result.diagnostics, by_project=result.by_project
        )

    def _replay(self, histories, start, today, field_name, cancel: threading.Event) -> ReplayResult:
        kwargs = {
            "tz": self._tz,
            "max_workers": self.settings.max_workers,
            "min_parallel": self.settings.min_parallel,
            "max_issues": self.settings.max_issues,
            "cancel": cancel,
        }
        if field_name:
            return replay_by_field(histories, self.classifications, start, today, field_name, **kwargs)
        return replay_by_status(histories, self.classifications, start, today, **kwargs)

    # ------------------ Defect quality ------------------
    def filter_defects(self, defects: Iterable[Defect]) -> list[Defect]:
        return exclude_defects_for(defects, self.classifications)

    def _is_completed(self, defect: Defect) -> bool:
        cls = get_classification(self.classifications, defect.project)
        if cls is None:
            return False
        done = set(cls.closed_keys)
        if cls.rejection_status:
            done.add(status_key(cls.rejection_status))
        return status_key(defect.status) in done

    def reopen_report(
        self,
        histories: Iterable[IssueHistory],
        defects: Iterable[Defect],
        window_start,
        window_end,
        *,
        working_hours: bool = False,
    ) -> ReopenReport:
        """Reopen transitions, dwell statistics and reopen rate for filtered defects."""
        kept = self.filter_defects(defects)
        kept_keys = {(d.project, d.number) for d in kept}
        scoped = [h for h in histories if (h.project, h.number) in kept_keys]
        transitions, diagnostics = detect_reopens_batch(
            scoped,
            window_start,
            window_end,
            self.classifications,
            working_hours=working_hours,
            tz=self._tz,
        )
        reopened = [d for d in kept if d.ref.key in transitions]
        completed = [d for d in kept if self._is_completed(d)]
        all_transitions = [t for items in transitions.values() for t in items]
        logger.info(
            "Reopen detection: %d of %d defects reopened in window", len(reopened), len(kept)
        )
        return ReopenReport(
            defects=kept,
            transitions=transitions,
            summary=dwell_summary(all_transitions),
            rates=reopen_rate_by_priority(reopened, completed),
            frame=reopen_frame(transitions, kept),
            diagnostics=diagnostics,
        )

    # ------------------ Velocity dedup ------------------
    def completion_dates(
        self,
        project_windows: Mapping[str, Iterable[Iterable[str]]],
        histories: Iterable[IssueHistory],
        *,
        end_cycle_on_reopen: bool = False,
    ) -> CompletionResult:
        """Cycle-minimum completion dates for issues shared by overlapping windows."""
        duplicates = find_duplicate_issues(project_windows)
        reopen_values = None
        if end_cycle_on_reopen:
            reopen_values = {}
            for project in duplicates:
                cls = get_classification(self.classifications, project)
                if cls is not None:
                    reopen_values[project] = [cls.reopen_value]
        result = resolve_min_closed_dates(
            duplicates,
            history_lookup_from(histories),
            self.classifications,
            reopen_values=reopen_values,
            tz=self._tz,
        )
        for diag in result.diagnostics:
            logger.warning("Completion dedup %s for %s/%s: %s", diag.kind, diag.project, diag.issue, diag.message)
        return result
