"""Cumulative-flow frames built from a DateFieldIndex."""

from __future__ import annotations

from collections.abc import Sequence

import pandas as pd

from jira_kpi.core.models import DateFieldIndex
from jira_kpi.core.timeutil import as_date


def index_to_long_frame(index: DateFieldIndex) -> pd.DataFrame:
    """One row per (value, date, issue); handy for drill-down tables."""
    records = [
        {"value": value, "date": day, "key": issue}
        for value, by_date in index.items()
        for day, issues in by_date.items()
        for issue in issues
    ]
    if not records:
        return pd.DataFrame(columns=["value", "date", "key"])
    out = pd.DataFrame(records)
    out["date"] = pd.to_datetime(out["date"])
    return out.sort_values(["date", "value", "key"]).reset_index(drop=True)


def cumulative_flow_frame(
    index: DateFieldIndex,
    start=None,
    end=None,
    order: Sequence[str] | None = None,
) -> pd.DataFrame:
    """Issue counts per day (rows) and value (columns).

    Days between ``start`` and ``end`` (default: the first and last indexed
    day) with no issues are zero-filled. Columns follow ``order`` first, then
    the remaining values alphabetically.
    """
    records = [
        {"date": day, "value": value, "count": len(issues)}
        for value, by_date in index.items()
        for day, issues in by_date.items()
    ]
    if not records:
        return pd.DataFrame()
    long = pd.DataFrame(records)
    long["date"] = pd.to_datetime(long["date"])
    wide = long.pivot_table(index="date", columns="value", values="count", aggfunc="sum", fill_value=0)

    first = pd.Timestamp(as_date(start)) if start is not None else wide.index.min()
    last = pd.Timestamp(as_date(end)) if end is not None else wide.index.max()
    wide = wide.reindex(pd.date_range(first, last, freq="D"), fill_value=0)
    wide.index.name = "date"
    wide.columns.name = None

    preferred = [c for c in (order or ()) if c in wide.columns]
    rest = sorted(c for c in wide.columns if c not in preferred)
    return wide[preferred + rest].astype(int)
