"""Defect reopen detection over a single issue's status log."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping

import pandas as pd

from jira_kpi.core.classification import get_classification
from jira_kpi.core.errors import (
    MALFORMED_TIMESTAMP,
    MISSING_CLASSIFICATION,
    Diagnostic,
    MalformedTimestampError,
)
from jira_kpi.core.models import FieldClassification, IssueHistory, ReopenTransition
from jira_kpi.core.status import status_key
from jira_kpi.core.timeutil import hours_between, parse_window_bound, working_hours_between

from .status_flow import sorted_status_log

logger = logging.getLogger(__name__)


def detect_reopens(
    history: IssueHistory,
    window_start,
    window_end,
    closed_values: Iterable[str],
    reopen_value: str,
    *,
    working_hours: bool = False,
    tz=None,
) -> list[ReopenTransition]:
    """Find closed -> reopened transitions of one issue inside a window.

    The log is walked in time order until an entry falls after
    ``window_end``. Each closed value remembers the last time it was entered;
    entering a closed value that is already remembered starts a new closure
    cycle, so earlier closures are forgotten. A reopen inside the window
    pairs with the earliest remembered closure.

    Parameters
    ----------
    history : IssueHistory
        Issue whose log is scanned.
    window_start, window_end : datetime-like
        Inclusive window in which reopen events are reported. A date-only
        bound covers that whole day in ``tz``.
    closed_values : iterable of str
        Statuses that count as closed (case-insensitive).
    reopen_value : str
        Status that marks a reopen (case-insensitive).
    working_hours : bool
        If True, ``dwell_hours`` excludes 24h per weekend day crossed.

    Returns
    -------
    list[ReopenTransition]
        One entry per reopen with a recorded prior closure, in log order.

    Raises
    ------
    MalformedTimestampError
        If the window bounds or any log timestamp cannot be parsed.
    """
    start = parse_window_bound(window_start, tz, context="window start")
    end = parse_window_bound(window_end, tz, end=True, context="window end")
    closed = {status_key(v) for v in closed_values if v}
    reopen = status_key(reopen_value)
    duration = working_hours_between if working_hours else hours_between

    closed_at_by_value: dict[str, pd.Timestamp] = {}
    transitions: list[ReopenTransition] = []
    for ts, raw_value in sorted_status_log(history, tz):
        if ts > end:
            break
        value = status_key(raw_value)
        if value in closed:
            if value in closed_at_by_value:
                closed_at_by_value.clear()
            closed_at_by_value[value] = ts
        elif reopen and value == reopen and start <= ts <= end:
            if not closed_at_by_value:
                continue
            last_closed = min(closed_at_by_value.values())
            if last_closed >= ts:
                continue
            transitions.append(
                ReopenTransition(
                    issue=history.ref,
                    closed_at=last_closed,
                    reopened_at=ts,
                    dwell_hours=duration(last_closed, ts),
                )
            )
    return transitions


def detect_reopens_batch(
    histories: Iterable[IssueHistory],
    window_start,
    window_end,
    classification: Mapping[str, FieldClassification] | FieldClassification | None,
    *,
    working_hours: bool = False,
    tz=None,
) -> tuple[dict[str, list[ReopenTransition]], list[Diagnostic]]:
    """Run :func:`detect_reopens` for many issues using per-project classifications.

    Issues whose project has no classification cannot have closed statuses
    and are reported, not scanned. Issues with unparsable timestamps are
    reported and skipped. The returned mapping is keyed by issue key
    (``IssueRef.key``) and holds only issues with at least one reopen.
    """
    reopened: dict[str, list[ReopenTransition]] = {}
    diagnostics: list[Diagnostic] = []
    for history in histories:
        cls = get_classification(classification, history.project)
        if cls is None:
            diagnostics.append(
                Diagnostic(
                    MISSING_CLASSIFICATION,
                    history.project,
                    history.number,
                    f"No field classification for project {history.project}; reopen detection skipped",
                )
            )
            continue
        try:
            found = detect_reopens(
                history,
                window_start,
                window_end,
                cls.closed_values,
                cls.reopen_value,
                working_hours=working_hours,
                tz=tz,
            )
        except MalformedTimestampError as exc:
            logger.warning("Skipping reopen detection for %s: %s", history.number, exc)
            diagnostics.append(Diagnostic(MALFORMED_TIMESTAMP, history.project, history.number, str(exc)))
            continue
        if found:
            reopened[history.ref.key] = found
    return reopened, diagnostics
