"""Central configuration, constants, defaults, and tuning knobs."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

# =============================================================================
# Time Settings
# =============================================================================
TIMEZONE = "UTC"
ISO_DATE_FORMAT = "%Y-%m-%d"

# Working-day conventions used by the weekend-aware duration helpers
WORK_HOURS_PER_DAY: int = 8
HOURS_PER_DAY: int = 24
WEEKEND_DAYS: frozenset[int] = frozenset({5, 6})  # Saturday, Sunday (date.weekday())

# =============================================================================
# Workflow Status Configuration
# =============================================================================
# Open value used when a project has no classification or a raw status is empty
DEFAULT_OPEN_STATUS = "Open"
DEFAULT_REOPEN_STATUS = "Reopened"

# Raw status strings that carry no information and count as "empty"
NULL_LIKE_VALUES: frozenset[str] = frozenset({"nan", "none", "null"})

# Field names accepted by the by-field replay
FIELD_PRIORITY = "priority"
FIELD_RCA = "rca"

# =============================================================================
# Priority Configuration
# =============================================================================
# Priority groups as configured per project (e.g. "exclude P4 and P5")
PRIORITY_GROUPS: dict[str, list[str]] = {
    "P1": ["p1", "blocker", "highest", "1"],
    "P2": ["p2", "critical", "high", "2"],
    "P3": ["p3", "major", "medium", "3"],
    "P4": ["p4", "minor", "low", "4"],
    "P5": ["p5", "trivial", "lowest", "5"],
}

# Priority aliases for normalization (lowercase keys). Every alias and its
# canonical name fall in the same PRIORITY_GROUPS entry.
PRIORITY_ALIASES: dict[str, str] = {
    "blocker": "Blocker",
    "highest": "Blocker",
    "critical": "Critical",
    "high": "High",
    "major": "Major",
    "medium": "Medium",
    "low": "Low",
    "minor": "Low",
    "trivial": "Trivial",
    "lowest": "Trivial",
    "undefined": "Undefined",
    "none": "Undefined",
    # Numeric priority IDs (legacy Jira values)
    "1": "Blocker",
    "2": "Critical",
    "3": "Medium",
    "4": "Low",
    "5": "Trivial",
}

# Bucket for priorities outside PRIORITY_GROUPS (including undefined ones)
MISC_PRIORITY_LABEL = "Misc"
OVERALL_LABEL = "Overall"

# =============================================================================
# Root Cause Configuration
# =============================================================================
CODE_ISSUE_RCA = "code issue"

# Root-cause synonyms collapsed before matching (lowercase keys)
RCA_ALIASES: dict[str, str] = {
    "coding": CODE_ISSUE_RCA,
    "code": CODE_ISSUE_RCA,
}

# =============================================================================
# Jira Custom Field IDs
# =============================================================================
FIELD_IDS = {
    "root_cause": "customfield_10053",
}

# Link types that tie a defect to the story it was raised against
DEFECT_LINK_TYPES: Sequence[str] = ("Relates", "Blocks", "Defect")

# =============================================================================
# Classification Storage
# =============================================================================
CLASSIFICATION_FILENAME = "field_classifications.yaml"

# =============================================================================
# Parallel replay tuning
# =============================================================================
# Replay is CPU bound but the per-issue fold is small; threads keep memory
# shared and let callers plug in their own executor later.
REPLAY_MAX_WORKERS = 8
REPLAY_MIN_PARALLEL = 64  # below this, stay sequential to reduce overhead


@dataclass(slots=True)
class AppSettings:
    timezone: str = TIMEZONE
    max_workers: int = REPLAY_MAX_WORKERS
    min_parallel: int = REPLAY_MIN_PARALLEL
    max_issues: int | None = None


SETTINGS = AppSettings()
