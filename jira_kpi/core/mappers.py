"""Mapping raw Jira issue JSON into IssueHistory and Defect instances.

Timestamps are kept as the raw strings Jira returns; the engine parses them
so that a bad value is reported against its issue instead of failing here.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any

from .config import DEFECT_LINK_TYPES, FIELD_IDS
from .models import Defect, IssueHistory, IssueRef, StatusChangeEvent


def _name(value: Any) -> str | None:
    if isinstance(value, dict):
        return value.get("name") or value.get("value")
    if value is None:
        return None
    return str(value)


def _project_of(raw: dict[str, Any], default: str | None) -> str:
    fields = raw.get("fields") or {}
    project = fields.get("project") or {}
    if isinstance(project, dict) and project.get("key"):
        return str(project["key"])
    if default:
        return default
    key = str(raw.get("key") or "")
    return key.split("-", 1)[0] if "-" in key else key


def extract_status_events(raw: dict[str, Any]) -> list[StatusChangeEvent]:
    """Pull status transitions out of an issue's ``changelog.histories``."""
    histories = (raw.get("changelog") or {}).get("histories") or []
    events: list[StatusChangeEvent] = []
    for entry in histories:
        if not isinstance(entry, dict):
            continue
        for item in entry.get("items") or []:
            field_name = str(item.get("field") or "").lower()
            if field_name != "status":
                continue
            events.append(
                StatusChangeEvent(
                    from_value=item.get("fromString") or item.get("from"),
                    to_value=item.get("toString") or item.get("to"),
                    timestamp=entry.get("created"),
                )
            )
    return events


def extract_root_causes(fields: dict[str, Any]) -> list[str]:
    field_id = FIELD_IDS.get("root_cause")
    value = fields.get(field_id) if field_id else None
    if value is None:
        return []
    items = value if isinstance(value, list) else [value]
    out: list[str] = []
    for item in items:
        name = _name(item)
        if name and name.strip():
            out.append(name.strip())
    return out


def extract_linked_stories(fields: dict[str, Any]) -> set[str]:
    stories: set[str] = set()
    for link in fields.get("issuelinks") or []:
        if not isinstance(link, dict):
            continue
        link_type = (link.get("type") or {}).get("name")
        if link_type not in DEFECT_LINK_TYPES:
            continue
        for side in ("inwardIssue", "outwardIssue"):
            other = link.get(side)
            if isinstance(other, dict) and other.get("key"):
                stories.add(str(other["key"]))
    return stories


def map_history(raw: dict[str, Any], project: str | None = None) -> IssueHistory:
    fields = raw.get("fields") or {}
    return IssueHistory(
        ref=IssueRef(number=str(raw.get("key")), project=_project_of(raw, project)),
        created=fields.get("created"),
        status_log=extract_status_events(raw),
        priority=_name(fields.get("priority")),
        root_causes=extract_root_causes(fields),
    )


def map_defect(raw: dict[str, Any], project: str | None = None) -> Defect:
    fields = raw.get("fields") or {}
    return Defect(
        ref=IssueRef(number=str(raw.get("key")), project=_project_of(raw, project)),
        status=_name(fields.get("status")),
        resolution=_name(fields.get("resolution")),
        priority=_name(fields.get("priority")),
        root_causes=extract_root_causes(fields),
        linked_stories=extract_linked_stories(fields),
    )


def histories_from_raw(raw_issues: Iterable[dict[str, Any]], project: str | None = None) -> list[IssueHistory]:
    return [map_history(raw, project) for raw in raw_issues if raw.get("key")]


def defects_from_raw(raw_issues: Iterable[dict[str, Any]], project: str | None = None) -> list[Defect]:
    return [map_defect(raw, project) for raw in raw_issues if raw.get("key")]
