"""Status log preparation shared by the lifecycle analyses.

Turns an issue's raw change events into a chronologically sorted list of
``(timestamp, to_value)`` pairs with parsed, timezone-aware timestamps.
"""

from __future__ import annotations

import pandas as pd

from jira_kpi.core.models import IssueHistory
from jira_kpi.core.timeutil import parse_timestamp

StatusEntry = tuple[pd.Timestamp, str | None]


def sorted_status_log(history: IssueHistory, tz=None) -> list[StatusEntry]:
    """Parse and sort an issue's status log.

    Parameters
    ----------
    history : IssueHistory
        Issue whose ``status_log`` is converted.
    tz : timezone or str, optional
        Timezone for timestamp normalization.

    Returns
    -------
    list[tuple[pd.Timestamp, str | None]]
        Entries ordered by timestamp. The sort is stable, so events sharing
        a timestamp keep their recorded order.

    Raises
    ------
    MalformedTimestampError
        If any event timestamp cannot be parsed.
    """
    entries: list[StatusEntry] = []
    for event in history.status_log:
        ts = parse_timestamp(event.timestamp, tz, context=f"{history.number} status log")
        entries.append((ts, event.to_value))
    entries.sort(key=lambda entry: entry[0])
    return entries


def sorted_status_log_or_created(history: IssueHistory, open_default: str, tz=None) -> list[StatusEntry]:
    """Sorted log, or a single open entry at creation time when the log is empty."""
    if history.status_log:
        return sorted_status_log(history, tz)
    created = parse_timestamp(history.created, tz, context=f"{history.number} created date")
    return [(created, open_default)]
