"""Cross-sprint completion dedup: minimum close date per completion cycle.

When overlapping sprint windows are selected together, an issue completed
once would be counted in each window. Velocity consumers count an issue in a
window only when one of its completion-cycle minimums falls inside it.
"""

from __future__ import annotations

import logging
from collections import Counter
from collections.abc import Callable, Iterable, Mapping

import pandas as pd

from jira_kpi.core.classification import get_classification
from jira_kpi.core.errors import (
    MALFORMED_TIMESTAMP,
    MISSING_CLASSIFICATION,
    Diagnostic,
    MalformedTimestampError,
)
from jira_kpi.core.models import CompletionResult, FieldClassification, IssueHistory
from jira_kpi.core.status import status_key
from jira_kpi.core.timeutil import parse_window_bound

from .status_flow import StatusEntry, sorted_status_log

logger = logging.getLogger(__name__)

HistoryLookup = Callable[[str, str], "IssueHistory | None"]


def find_duplicate_issues(project_windows: Mapping[str, Iterable[Iterable[str]]]) -> dict[str, set[str]]:
    """Issues that appear in more than one selected window of the same project."""
    duplicates: dict[str, set[str]] = {}
    for project, windows in project_windows.items():
        counts: Counter[str] = Counter()
        for window in windows:
            counts.update(set(window))
        repeated = {issue for issue, seen in counts.items() if seen > 1}
        if repeated:
            duplicates[project] = repeated
    return duplicates


def history_lookup_from(histories: Iterable[IssueHistory]) -> HistoryLookup:
    by_key = {(h.project, h.number): h for h in histories}

    def lookup(project: str, issue: str) -> IssueHistory | None:
        return by_key.get((project, issue))

    return lookup


def completion_cycle_minimums(
    log: Iterable[StatusEntry],
    completion_values: Iterable[str],
    reopen_values: Iterable[str] | None = None,
) -> list[pd.Timestamp]:
    """Earliest completion timestamp of each completion cycle in a sorted log.

    Only completion statuses are tracked. The open cycle keeps the earliest
    time each status was reached; when a status repeats, the cycle closes and
    the repeating entry opens the next one. Entering a reopen status (when
    given) also closes the open cycle. A cycle still open at the end of the
    log is emitted too.
    """
    eligible = {status_key(v) for v in completion_values if v}
    reopens = {status_key(v) for v in reopen_values or () if v}
    minimums: list[pd.Timestamp] = []
    working: dict[str, pd.Timestamp] = {}

    def close_cycle() -> None:
        if working:
            minimums.append(min(working.values()))
            working.clear()

    for ts, raw_value in log:
        value = status_key(raw_value)
        if value in eligible:
            if value in working:
                close_cycle()
            working[value] = ts
        elif value in reopens:
            close_cycle()
    close_cycle()
    return minimums


def resolve_min_closed_dates(
    duplicates: Mapping[str, Iterable[str]],
    history_lookup: HistoryLookup,
    classification: Mapping[str, FieldClassification] | FieldClassification | None,
    *,
    reopen_values: Mapping[str, Iterable[str]] | Iterable[str] | None = None,
    tz=None,
) -> CompletionResult:
    """Resolve one minimum close timestamp per completion cycle for duplicated issues.

    Parameters
    ----------
    duplicates : mapping of project -> issue numbers
        Issues counted in more than one overlapping window.
    history_lookup : callable
        ``(project, issue) -> IssueHistory | None``.
    classification : FieldClassification or mapping of project -> FieldClassification
        Supplies each project's ``completion_values``.
    reopen_values : iterable or mapping of project -> iterable, optional
        Statuses that end a completion cycle when entered.

    Returns
    -------
    CompletionResult
        ``dates[project][issue]`` lists cycle minimums in time order. Projects
        without completion statuses are skipped and reported; issues without a
        history have no entry.
    """
    result = CompletionResult()
    for project, issues in duplicates.items():
        cls = get_classification(classification, project)
        if cls is None or not cls.completion_values:
            result.diagnostics.append(
                Diagnostic(
                    MISSING_CLASSIFICATION,
                    project,
                    None,
                    f"No completion statuses configured for project {project}; dedup skipped",
                )
            )
            continue
        if isinstance(reopen_values, Mapping):
            project_reopens = reopen_values.get(project)
        else:
            project_reopens = reopen_values

        per_issue: dict[str, list[pd.Timestamp]] = {}
        for issue in sorted(issues):
            history = history_lookup(project, issue)
            if history is None or not history.status_log:
                continue
            try:
                log = sorted_status_log(history, tz)
            except MalformedTimestampError as exc:
                logger.warning("Skipping completion dedup for %s/%s: %s", project, issue, exc)
                result.diagnostics.append(Diagnostic(MALFORMED_TIMESTAMP, project, issue, str(exc)))
                continue
            per_issue[issue] = completion_cycle_minimums(log, cls.completion_values, project_reopens)
        result.dates[project] = per_issue
    return result


def completed_within(cycle_minimums: Iterable[pd.Timestamp], start, end, tz=None) -> bool:
    """True if any cycle minimum falls inside ``[start, end]``; date-only bounds cover whole days."""
    lower = parse_window_bound(start, tz, context="window start")
    upper = parse_window_bound(end, tz, end=True, context="window end")
    return any(lower <= ts <= upper for ts in cycle_minimums)
