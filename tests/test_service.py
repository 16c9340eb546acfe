import threading

from jira_kpi.core.config import AppSettings
from jira_kpi.core.models import Defect, FieldClassification, IssueHistory, IssueRef, StatusChangeEvent
from jira_kpi.core.service import LifecycleService

CLS = FieldClassification(
    closed_values=frozenset({"Closed", "Done"}),
    reopen_value="Reopened",
    completion_values=frozenset({"Closed"}),
    rejection_status="Rejected",
)


def _history(number, events, project="D"):
    return IssueHistory(
        ref=IssueRef(number, project),
        created="2024-02-01T00:00:00Z",
        status_log=[StatusChangeEvent(None, to_value, ts) for ts, to_value in events],
        priority="High",
    )


HISTORIES = [
    _history("D-1", [("2024-03-01T10:00:00Z", "Closed"), ("2024-03-02T12:00:00Z", "Reopened")]),
    _history("D-2", [("2024-03-01T10:00:00Z", "Closed")]),
    _history("D-3", [("2024-03-01T10:00:00Z", "Rejected"), ("2024-03-03T10:00:00Z", "Reopened")]),
]


def _service():
    return LifecycleService(classifications={"D": CLS}, settings=AppSettings(max_workers=1))


def test_cumulative_flow_report():
    report = _service().cumulative_flow(HISTORIES, "2024-03-01", "2024-03-05")
    assert report.diagnostics == []
    assert report.frame.loc["2024-03-01", "Rejected"] == 1
    assert report.frame["Reopened"].tolist() == [0, 1, 2, 2, 2]


def test_cumulative_flow_by_priority():
    report = _service().cumulative_flow(HISTORIES, "2024-03-01", "2024-03-05", field_name="priority")
    assert list(report.index) == ["High"]


def test_reopen_report_filters_then_rates():
    defects = [
        Defect(ref=IssueRef("D-1", "D"), status="Closed", priority="High"),
        Defect(ref=IssueRef("D-2", "D"), status="Closed", priority="High"),
        Defect(ref=IssueRef("D-3", "D"), status="Rejected", priority="High"),
    ]
    report = _service().reopen_report(HISTORIES, defects, "2024-03-01", "2024-03-31")
    assert [d.number for d in report.defects] == ["D-1", "D-2"]
    assert list(report.transitions) == ["D-1"]
    assert report.rates == {"P2": 50.0, "Overall": 50.0}
    assert report.summary["count"] == 1
    assert report.summary["total_hours"] == 26.0
    assert len(report.frame) == 1


def test_completion_dates_for_overlapping_windows():
    result = _service().completion_dates({"D": [{"D-1", "D-2"}, {"D-1"}]}, HISTORIES)
    assert list(result.dates["D"]) == ["D-1"]
    assert len(result.dates["D"]["D-1"]) == 1


def test_reopen_report_counts_same_number_per_project():
    events = [("2024-03-01T10:00:00Z", "Closed"), ("2024-03-02T12:00:00Z", "Reopened")]
    histories = [_history("101", events, project="A"), _history("101", events[:1], project="B")]
    defects = [
        Defect(ref=IssueRef("101", "A"), status="Closed", priority="High"),
        Defect(ref=IssueRef("101", "B"), status="Closed", priority="High"),
    ]
    service = LifecycleService(classifications=CLS, settings=AppSettings(max_workers=1))
    report = service.reopen_report(histories, defects, "2024-03-01", "2024-03-31")
    assert list(report.transitions) == ["A-101"]
    assert report.rates == {"P2": 50.0, "Overall": 50.0}


def test_cumulative_flow_honours_its_own_cancel_flag():
    flag = threading.Event()
    flag.set()
    report = _service().cumulative_flow(HISTORIES, "2024-03-01", "2024-03-05", cancel=flag)
    assert report.index == {}
    assert report.frame.empty


def test_cancel_does_not_leak_into_later_calls():
    service = _service()
    service.cancel()
    report = service.cumulative_flow(HISTORIES, "2024-03-01", "2024-03-05")
    assert report.frame["Reopened"].tolist() == [0, 1, 2, 2, 2]
