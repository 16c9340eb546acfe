"""Day-by-day replay of issue status histories (cumulative flow data).

Each issue is folded independently into a timeline ``date -> status`` and
then into a partial ``DateFieldIndex``; partial indices are merged by set
union. Folding is pure, so issues can be spread over worker threads without
locking.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterable, Mapping, Sequence
from concurrent.futures import ThreadPoolExecutor
from datetime import date

from jira_kpi.core.classification import get_classification
from jira_kpi.core.config import FIELD_PRIORITY, FIELD_RCA, ISO_DATE_FORMAT, SETTINGS
from jira_kpi.core.errors import (
    MALFORMED_TIMESTAMP,
    MISSING_CLASSIFICATION,
    Diagnostic,
    MalformedTimestampError,
)
from jira_kpi.core.models import DateFieldIndex, FieldClassification, IssueHistory, ReplayResult
from jira_kpi.core.status import clean_status_name, normalize_priority_name, primary_rca_label
from jira_kpi.core.timeutil import as_date, iter_days, today_in

from .status_flow import sorted_status_log_or_created

logger = logging.getLogger(__name__)

FieldSelector = Callable[[IssueHistory], "str | None"]
Classifications = Mapping[str, FieldClassification] | FieldClassification | None

# Fallback for projects without configuration: nothing counts as closed
_PASS_THROUGH = FieldClassification()


def priority_field(history: IssueHistory) -> str | None:
    if not history.priority or not str(history.priority).strip():
        return None
    return normalize_priority_name(history.priority)


def rca_field(history: IssueHistory) -> str | None:
    return primary_rca_label(history.root_causes)


_NAMED_SELECTORS: dict[str, FieldSelector] = {
    FIELD_PRIORITY: priority_field,
    FIELD_RCA: rca_field,
}


def resolve_selector(field_selector: FieldSelector | str) -> FieldSelector:
    if callable(field_selector):
        return field_selector
    try:
        return _NAMED_SELECTORS[str(field_selector).lower()]
    except KeyError:
        raise ValueError(f"Unknown field selector {field_selector!r}") from None


def build_status_timeline(
    history: IssueHistory,
    classification: FieldClassification,
    range_start: date,
    today: date,
    tz=None,
) -> dict[date, str]:
    """Reconstruct the status an issue held on each day of ``[range_start, today]``.

    Entries before ``range_start`` only move the current value. The first
    in-range entry of an issue with no earlier history opens the timeline at
    its own date. Later entries fill the days since the cursor with the
    previous value and give their own date the new value; several entries on
    one day collapse so the last one wins. If the final value is not closed,
    it is carried forward through ``today``.

    Raises
    ------
    MalformedTimestampError
        If the log or creation date cannot be parsed.
    """
    open_default = classification.open_default
    closed = classification.closed_keys
    log = sorted_status_log_or_created(history, open_default, tz)

    timeline: dict[date, str] = {}

    def write(day: date, value: str) -> None:
        if day <= today:
            timeline[day] = value

    cursor = range_start
    current: str | None = None
    for ts, raw_value in log:
        value = clean_status_name(raw_value, open_default)
        day = ts.date()
        if day < cursor:
            current = value
            continue
        if current is None:
            current = value
            cursor = day
            write(day, value)
        elif day == cursor:
            current = value
            write(day, value)
        else:
            for fill_day in iter_days(cursor, min(day, today)):
                write(fill_day, value if fill_day == day else current)
            current = value
            cursor = day

    if current is not None and current.lower() not in closed:
        for fill_day in iter_days(cursor, today):
            write(fill_day, current)
    return timeline


def _status_partial(
    history: IssueHistory, classification: FieldClassification, range_start: date, today: date, tz
) -> DateFieldIndex:
    closed = classification.closed_keys
    partial: DateFieldIndex = {}
    for day, value in build_status_timeline(history, classification, range_start, today, tz).items():
        if value.lower() in closed:
            continue
        partial.setdefault(value, {}).setdefault(day.strftime(ISO_DATE_FORMAT), set()).add(history.number)
    return partial


def _field_partial(
    history: IssueHistory,
    classification: FieldClassification,
    range_start: date,
    today: date,
    tz,
    selector: FieldSelector,
) -> DateFieldIndex:
    field_value = selector(history)
    if not field_value:
        return {}
    closed = classification.closed_keys
    by_date: dict[str, set[str]] = {}
    for day, status in build_status_timeline(history, classification, range_start, today, tz).items():
        if status.lower() in closed:
            continue
        by_date[day.strftime(ISO_DATE_FORMAT)] = {history.number}
    return {field_value: by_date} if by_date else {}


def merge_indices(partials: Iterable[DateFieldIndex]) -> DateFieldIndex:
    """Union independent partial indices into one ``DateFieldIndex``."""
    merged: DateFieldIndex = {}
    for partial in partials:
        for value, by_date in partial.items():
            target = merged.setdefault(value, {})
            for day, issues in by_date.items():
                target.setdefault(day, set()).update(issues)
    return merged


def _run_issue(
    history: IssueHistory,
    classifications: Classifications,
    fold: Callable[[IssueHistory, FieldClassification], DateFieldIndex],
) -> tuple[IssueHistory, DateFieldIndex, list[Diagnostic]]:
    diagnostics: list[Diagnostic] = []
    classification = get_classification(classifications, history.project)
    if classification is None:
        diagnostics.append(
            Diagnostic(
                MISSING_CLASSIFICATION,
                history.project,
                history.number,
                f"No field classification for project {history.project}; replayed without closed statuses",
            )
        )
        classification = _PASS_THROUGH
    try:
        return history, fold(history, classification), diagnostics
    except MalformedTimestampError as exc:
        diagnostics.append(Diagnostic(MALFORMED_TIMESTAMP, history.project, history.number, str(exc)))
        return history, {}, diagnostics


def _keyed(partial: DateFieldIndex, key: str) -> DateFieldIndex:
    return {value: {day: {key} for day in by_date} for value, by_date in partial.items()}


def _run_parallel(
    work: Sequence[IssueHistory],
    classifications: Classifications,
    fold: Callable[[IssueHistory, FieldClassification], DateFieldIndex],
    workers: int,
    cancel: threading.Event | None,
) -> list[tuple[IssueHistory, DateFieldIndex, list[Diagnostic]]]:
    # Submit in chunks of ``workers`` so a cancel takes effect between chunks
    outcomes = []
    with ThreadPoolExecutor(max_workers=workers) as pool:
        for offset in range(0, len(work), workers):
            if cancel is not None and cancel.is_set():
                break
            futures = [
                pool.submit(_run_issue, history, classifications, fold)
                for history in work[offset : offset + workers]
            ]
            outcomes.extend(fut.result() for fut in futures)
    return outcomes


def _replay(
    issues: Iterable[IssueHistory],
    classifications: Classifications,
    fold: Callable[[IssueHistory, FieldClassification], DateFieldIndex],
    *,
    max_workers: int | None,
    min_parallel: int | None,
    max_issues: int | None,
    cancel: threading.Event | None,
) -> ReplayResult:
    work: Sequence[IssueHistory] = list(issues)
    limit = max_issues if max_issues is not None else SETTINGS.max_issues
    if limit is not None and len(work) > limit:
        logger.info("Replay bounded to %d of %d issues", limit, len(work))
        work = work[:limit]
    if not work:
        return ReplayResult()

    workers = max_workers or SETTINGS.max_workers
    threshold = min_parallel if min_parallel is not None else SETTINGS.min_parallel
    # Sequential short-circuit
    if len(work) < threshold or workers <= 1:
        outcomes = []
        for history in work:
            if cancel is not None and cancel.is_set():
                break
            outcomes.append(_run_issue(history, classifications, fold))
    else:
        outcomes = _run_parallel(work, classifications, fold, workers, cancel)
    if len(outcomes) < len(work):
        logger.info("Replay cancelled after %d of %d issues", len(outcomes), len(work))

    diagnostics = [diag for _, _, diags in outcomes for diag in diags]
    for diag in diagnostics:
        logger.warning("Replay %s for %s/%s: %s", diag.kind, diag.project, diag.issue, diag.message)

    per_project: dict[str, list[DateFieldIndex]] = {}
    for history, partial, _ in outcomes:
        per_project.setdefault(history.project, []).append(partial)
    by_project = {project: merge_indices(partials) for project, partials in per_project.items()}
    index = merge_indices(_keyed(partial, history.ref.key) for history, partial, _ in outcomes)
    logger.debug("Replayed %d issues of %d projects into %d values", len(outcomes), len(by_project), len(index))
    return ReplayResult(index=index, by_project=by_project, diagnostics=diagnostics, processed=len(outcomes))


def replay_by_status(
    issues: Iterable[IssueHistory],
    classification: Classifications,
    range_start,
    today=None,
    *,
    tz=None,
    max_workers: int | None = None,
    min_parallel: int | None = None,
    max_issues: int | None = None,
    cancel: threading.Event | None = None,
) -> ReplayResult:
    """Index open issues by the status they held on each day.

    Parameters
    ----------
    issues : iterable of IssueHistory
        Issues to replay; each is processed independently.
    classification : FieldClassification or mapping of project -> FieldClassification
        Closed statuses and open default. Projects without an entry are
        replayed with no closed statuses and reported in diagnostics.
    range_start : date-like
        First day of the replay (inclusive).
    today : date-like, optional
        Last day of the replay (inclusive); defaults to the current date
        in ``tz``.
    tz : timezone or str, optional
        Timezone used to assign events to calendar days.
    max_workers, min_parallel, max_issues, cancel
        Fan-out width, the batch size below which issues run sequentially,
        an upper bound on issues replayed, and a flag checked before each
        issue (or each chunk of ``max_workers`` issues) is submitted.

    Returns
    -------
    ReplayResult
        ``index[status][iso_date]`` holds the keys of the issues in that
        status on that day; ``by_project[project]`` holds the same per
        project with issue numbers. Closed days are omitted. Issues with
        unparsable timestamps are skipped and listed in ``diagnostics``.
    """
    start_day = as_date(range_start, tz)
    end_day = as_date(today, tz) if today is not None else today_in(tz)

    def fold(history: IssueHistory, cls: FieldClassification) -> DateFieldIndex:
        return _status_partial(history, cls, start_day, end_day, tz)

    return _replay(
        issues,
        classification,
        fold,
        max_workers=max_workers,
        min_parallel=min_parallel,
        max_issues=max_issues,
        cancel=cancel,
    )


def replay_by_field(
    issues: Iterable[IssueHistory],
    classification: Classifications,
    range_start,
    today=None,
    field_selector: FieldSelector | str = FIELD_PRIORITY,
    *,
    tz=None,
    max_workers: int | None = None,
    min_parallel: int | None = None,
    max_issues: int | None = None,
    cancel: threading.Event | None = None,
) -> ReplayResult:
    """Index open issues by a static attribute (priority, root cause) per day.

    Days are selected exactly as in :func:`replay_by_status`; each open day
    places the issue under ``field_selector(issue)``. Issues whose field
    value is empty are skipped.
    """
    selector = resolve_selector(field_selector)
    start_day = as_date(range_start, tz)
    end_day = as_date(today, tz) if today is not None else today_in(tz)

    def fold(history: IssueHistory, cls: FieldClassification) -> DateFieldIndex:
        return _field_partial(history, cls, start_day, end_day, tz, selector)

    return _replay(
        issues,
        classification,
        fold,
        max_workers=max_workers,
        min_parallel=min_parallel,
        max_issues=max_issues,
        cancel=cancel,
    )
