"""Status, priority, and root-cause normalization utilities.

Centralized value handling shared by the replay engine, the reopen detector
and the defect filters. Matching is always case-insensitive; display values
keep the casing found in the tracker.
"""

from __future__ import annotations

import re
from collections.abc import Iterable

from .config import MISC_PRIORITY_LABEL, NULL_LIKE_VALUES, PRIORITY_ALIASES, PRIORITY_GROUPS, RCA_ALIASES

_GROUP_BY_NAME: dict[str, str] = {name: group for group, names in PRIORITY_GROUPS.items() for name in names}


def clean_status_name(value: str | None, default: str) -> str:
    """Sanitize a raw status string, falling back to ``default`` when empty.

    Parameters
    ----------
    value : str | None
        Raw status string from the change log.
    default : str
        Value to use for empty or null-like input (the project's open default).

    Returns
    -------
    str
        Stripped status string or ``default``.

    Examples
    --------
    >>> clean_status_name("  In Progress ", "Open")
    'In Progress'
    >>> clean_status_name("", "Open")
    'Open'
    """
    if value is None:
        return default
    text = str(value).strip()
    if not text or text.lower() in NULL_LIKE_VALUES:
        return default
    return text


def status_key(value: str | None) -> str:
    """Lowercase matching key for a status value ("" for empty input)."""
    if not value:
        return ""
    return str(value).strip().lower()


def normalize_priority_name(priority: str | None) -> str:
    """Normalize a priority name to its canonical form.

    Handles variations like:
    - "(migrated)" suffixes: "Medium (migrated)" -> "Medium"
    - Case variations: "HIGH" -> "High"
    - Whitespace: "  Medium  " -> "Medium"

    Parameters
    ----------
    priority : str or None
        Raw priority string from Jira.

    Returns
    -------
    str
        Canonical priority name, or the cleaned string if no mapping found.
    """
    if priority is None:
        return "Undefined"

    cleaned = str(priority).strip()
    if not cleaned:
        return "Undefined"

    cleaned = re.sub(r"\s*\(migrated\)\s*$", "", cleaned, flags=re.IGNORECASE).strip()

    lookup_key = cleaned.lower()
    if lookup_key in PRIORITY_ALIASES:
        return PRIORITY_ALIASES[lookup_key]
    return cleaned


def priority_key(priority: str | None) -> str:
    if not priority:
        return ""
    return str(priority).strip().lower()


def priority_group(priority: str | None) -> str:
    """P-group label ("P1".."P5") of a raw priority, or ``"Misc"``.

    >>> priority_group("Major (migrated)")
    'P3'
    >>> priority_group(None)
    'Misc'
    """
    raw = priority_key(priority)
    if raw in _GROUP_BY_NAME:
        return _GROUP_BY_NAME[raw]
    return _GROUP_BY_NAME.get(normalize_priority_name(priority).lower(), MISC_PRIORITY_LABEL)


def expand_priority_labels(labels: Iterable[str] | None) -> frozenset[str]:
    """Expand configured priority labels into lowercase raw priority names.

    Group labels such as ``"P1"`` expand through ``PRIORITY_GROUPS``; any other
    label is taken literally.

    >>> sorted(expand_priority_labels(["High"]))
    ['high']
    """
    out: set[str] = set()
    for label in labels or ():
        if not label:
            continue
        text = str(label).strip()
        group = PRIORITY_GROUPS.get(text.upper())
        if group is not None:
            out.update(v.lower() for v in group)
        else:
            out.add(text.lower())
    return frozenset(out)


def normalize_rca(value: str | None) -> str:
    """Lowercase a root cause and collapse synonyms ("coding" -> "code issue")."""
    if not value:
        return ""
    text = str(value).strip().lower()
    return RCA_ALIASES.get(text, text)


def normalize_rca_set(values: Iterable[str] | None) -> frozenset[str]:
    return frozenset(n for n in (normalize_rca(v) for v in values or ()) if n)


def primary_rca_label(root_causes: Iterable[str] | None) -> str | None:
    """Display label for the first root cause, or None when there is none."""
    for value in root_causes or ():
        text = str(value or "").strip()
        if text:
            return text[0].upper() + text[1:]
    return None
