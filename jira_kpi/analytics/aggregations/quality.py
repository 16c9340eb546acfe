"""Quality KPI aggregations over reopen transitions and defect sets."""

from __future__ import annotations

from collections import Counter
from collections.abc import Iterable, Mapping

import pandas as pd

from jira_kpi.core.config import MISC_PRIORITY_LABEL, OVERALL_LABEL, PRIORITY_GROUPS
from jira_kpi.core.models import Defect, ReopenTransition
from jira_kpi.core.status import normalize_priority_name, priority_group
from jira_kpi.core.timeutil import hours_to_days_string


def dwell_summary(transitions: Iterable[ReopenTransition]) -> dict[str, float]:
    """Count, total, mean, median and max dwell hours (zeros when empty)."""
    hours = pd.Series([t.dwell_hours for t in transitions], dtype="float64")
    if hours.empty:
        return {"count": 0, "total_hours": 0.0, "mean_hours": 0.0, "median_hours": 0.0, "max_hours": 0.0}
    return {
        "count": int(hours.count()),
        "total_hours": round(float(hours.sum()), 2),
        "mean_hours": round(float(hours.mean()), 2),
        "median_hours": round(float(hours.median()), 2),
        "max_hours": round(float(hours.max()), 2),
    }


_GROUP_ORDER = [*PRIORITY_GROUPS, MISC_PRIORITY_LABEL]


def _group_counts(defects: Iterable[Defect]) -> Counter[str]:
    return Counter(priority_group(d.priority) for d in defects)


def reopen_rate_by_priority(reopened: Iterable[Defect], completed: Iterable[Defect]) -> dict[str, float]:
    """Percentage of completed defects that reopened, per priority group and overall.

    Defects are bucketed into ``P1``..``P5`` through ``PRIORITY_GROUPS``;
    anything else falls into ``Misc``. Groups appearing in either set are
    reported in that order; a group with no completed defects rates 0.
    """
    reopened_counts = _group_counts(reopened)
    completed_counts = _group_counts(completed)
    priorities = [g for g in _GROUP_ORDER if g in reopened_counts or g in completed_counts]

    def rate(r: int, c: int) -> float:
        return float(round(100.0 * r / c)) if c else 0.0

    rates = {p: rate(reopened_counts.get(p, 0), completed_counts.get(p, 0)) for p in priorities}
    rates[OVERALL_LABEL] = rate(sum(reopened_counts.values()), sum(completed_counts.values()))
    return rates


def reopen_frame(
    transitions: Mapping[str, list[ReopenTransition]],
    defects: Iterable[Defect] = (),
) -> pd.DataFrame:
    """Tabular reopen details, one row per transition, for export."""
    priorities = {d.ref.key: d.priority for d in defects}
    rows = [
        {
            "key": t.issue.key,
            "project": t.issue.project,
            "priority": normalize_priority_name(priorities.get(t.issue.key)),
            "priority_group": priority_group(priorities.get(t.issue.key)),
            "closed_at": t.closed_at,
            "reopened_at": t.reopened_at,
            "dwell_hours": t.dwell_hours,
            "dwell": hours_to_days_string(int(round(t.dwell_hours))),
        }
        for items in transitions.values()
        for t in items
    ]
    if not rows:
        return pd.DataFrame()
    return pd.DataFrame(rows).sort_values(["reopened_at", "key"]).reset_index(drop=True)
