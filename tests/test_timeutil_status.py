from datetime import date, datetime

import pandas as pd
import pytest

from jira_kpi.core.config import PRIORITY_ALIASES
from jira_kpi.core.errors import MalformedTimestampError
from jira_kpi.core.models import IssueRef
from jira_kpi.core.status import (
    clean_status_name,
    expand_priority_labels,
    normalize_priority_name,
    normalize_rca,
    primary_rca_label,
    priority_group,
    status_key,
)
from jira_kpi.core.timeutil import (
    as_date,
    hours_between,
    hours_to_days_string,
    is_date_only,
    iter_days,
    normalize_to_tz,
    parse_timestamp,
    parse_window_bound,
    today_in,
    weekend_days_between,
    work_hours,
    working_hours_between,
)


def test_normalize_to_tz_treats_naive_as_utc():
    ts = normalize_to_tz("2024-01-01T10:00:00")
    assert ts == pd.Timestamp("2024-01-01T10:00:00", tz="UTC")


def test_normalize_to_tz_converts_zone():
    ts = normalize_to_tz("2024-01-01T23:30:00Z", "America/Santiago")
    assert ts.date() == date(2024, 1, 1)
    assert ts.hour == 20


def test_normalize_to_tz_returns_none_for_bad_input():
    assert normalize_to_tz(None) is None
    assert normalize_to_tz("") is None
    assert normalize_to_tz("not a date") is None


def test_parse_timestamp_raises_with_context():
    with pytest.raises(MalformedTimestampError) as excinfo:
        parse_timestamp("nope", context="T-1 status log")
    assert excinfo.value.value == "nope"
    assert "T-1 status log" in str(excinfo.value)


def test_as_date_variants():
    assert as_date("2024-02-03") == date(2024, 2, 3)
    assert as_date(date(2024, 2, 3)) == date(2024, 2, 3)
    assert as_date(datetime(2024, 2, 3, 23, 0)) == date(2024, 2, 3)
    with pytest.raises(MalformedTimestampError):
        as_date("later")


def test_iter_days_inclusive():
    days = list(iter_days(date(2024, 2, 27), date(2024, 3, 1)))
    assert days == [date(2024, 2, 27), date(2024, 2, 28), date(2024, 2, 29), date(2024, 3, 1)]
    assert list(iter_days(date(2024, 3, 2), date(2024, 3, 1))) == []


def test_duration_helpers():
    start = pd.Timestamp("2024-03-01T10:00:00", tz="UTC")  # Friday
    end = pd.Timestamp("2024-03-05T11:30:00", tz="UTC")  # Tuesday
    assert hours_between(start, end) == 97.5
    assert weekend_days_between(start, end) == 2
    assert working_hours_between(start, end) == 49.5
    assert working_hours_between(start, start) == 0.0


def test_working_hours_never_negative():
    start = pd.Timestamp("2024-03-02T10:00:00", tz="UTC")  # Saturday
    end = pd.Timestamp("2024-03-02T12:00:00", tz="UTC")
    assert working_hours_between(start, end) == 0.0


def test_hours_to_days_string():
    assert work_hours(51) == 19
    assert hours_to_days_string(51) == "2d 3hrs"
    assert hours_to_days_string(48) == "2d"
    assert hours_to_days_string(0) == "0"


def test_clean_status_name():
    assert clean_status_name("  In Progress ", "Open") == "In Progress"
    assert clean_status_name("", "Open") == "Open"
    assert clean_status_name(None, "To Do") == "To Do"
    assert clean_status_name("null", "Open") == "Open"
    assert status_key(" Done ") == "done"
    assert status_key(None) == ""


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("high", "High"),
        ("Medium (migrated)", "Medium"),
        ("  CRITICAL ", "Critical"),
        (None, "Undefined"),
        ("Custom", "Custom"),
    ],
)
def test_normalize_priority_name(raw, expected):
    assert normalize_priority_name(raw) == expected


def test_expand_priority_labels():
    assert expand_priority_labels(["P1"]) == {"p1", "blocker", "highest", "1"}
    assert expand_priority_labels(["Urgent", None]) == {"urgent"}


def test_rca_helpers():
    assert normalize_rca("Coding") == "code issue"
    assert normalize_rca(" Code ") == "code issue"
    assert normalize_rca("Design") == "design"
    assert primary_rca_label(["", "coding", "design"]) == "Coding"
    assert primary_rca_label([]) is None


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("Blocker", "P1"),
        ("high", "P2"),
        ("Major", "P3"),
        ("Medium (migrated)", "P3"),
        ("3", "P3"),
        ("minor", "P4"),
        ("Lowest", "P5"),
        ("Custom", "Misc"),
        (None, "Misc"),
    ],
)
def test_priority_group(raw, expected):
    assert priority_group(raw) == expected


def test_priority_aliases_stay_in_their_group():
    for alias, canonical in PRIORITY_ALIASES.items():
        assert priority_group(alias) == priority_group(canonical), alias


def test_parse_window_bound_date_only():
    assert parse_window_bound("2024-03-01") == pd.Timestamp("2024-03-01", tz="UTC")
    end = parse_window_bound("2024-03-31", end=True)
    assert end == pd.Timestamp("2024-04-01", tz="UTC") - pd.Timedelta(1, unit="ns")
    assert parse_window_bound(date(2024, 3, 31), end=True) == end


def test_parse_window_bound_keeps_explicit_times():
    assert parse_window_bound("2024-03-31T12:00:00Z", end=True) == pd.Timestamp("2024-03-31T12:00:00", tz="UTC")


def test_parse_window_bound_uses_local_day():
    end = parse_window_bound("2024-03-31", "America/Santiago", end=True)
    assert end.tz_convert("America/Santiago").date() == date(2024, 3, 31)
    assert end.tz_convert("UTC") > pd.Timestamp("2024-04-01T00:00:00", tz="UTC")


def test_is_date_only():
    assert is_date_only("2024-03-31")
    assert is_date_only(date(2024, 3, 31))
    assert not is_date_only("2024-03-31T00:00:00")
    assert not is_date_only(datetime(2024, 3, 31))


def test_today_in_zone():
    assert today_in("Pacific/Kiritimati") == pd.Timestamp.now(tz="Pacific/Kiritimati").date()


def test_issue_ref_key():
    assert IssueRef("PROJ-12", "PROJ").key == "PROJ-12"
    assert IssueRef("12", "PROJ").key == "PROJ-12"
    assert IssueRef("12", "A").key != IssueRef("12", "B").key
