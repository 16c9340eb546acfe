"""Defect filters applied before any quality KPI counts defects.

Three stages run in order, each on the survivors of the previous one:
rejection rules, priority/root-cause rules, and linked-story priority-count
tolerance. Running the pipeline twice gives the same result as running it
once.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Iterable, Mapping
from dataclasses import dataclass

from jira_kpi.core.classification import get_classification
from jira_kpi.core.models import Defect, FieldClassification
from jira_kpi.core.status import normalize_rca, normalize_rca_set, priority_key, status_key

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class RejectionRule:
    status: str | None = None
    resolutions: frozenset[str] = frozenset()

    def matches(self, defect: Defect) -> bool:
        if not self.status and not self.resolutions:
            return False
        if self.status and status_key(defect.status) != status_key(self.status):
            return False
        if self.resolutions:
            allowed = {status_key(r) for r in self.resolutions}
            if status_key(defect.resolution) not in allowed:
                return False
        return True


def drop_rejected(defects: Iterable[Defect], rejection_rules: Mapping[str, RejectionRule]) -> list[Defect]:
    """Drop defects matching their project's rejection rule; no rule means keep."""
    kept = []
    for defect in defects:
        rule = rejection_rules.get(defect.project)
        if rule is not None and rule.matches(defect):
            continue
        kept.append(defect)
    return kept


def filter_priority_and_rca(
    defects: Iterable[Defect],
    priority_exclusions: Mapping[str, Iterable[str]],
    rca_inclusions: Mapping[str, Iterable[str]],
) -> list[Defect]:
    """Keep defects whose priority is not excluded and whose root cause is included.

    Empty rule sets do not filter. Comparison is case-insensitive and root
    causes are normalized ("coding"/"code" -> "code issue") on both sides.
    """
    excluded_by_project = {p: {priority_key(v) for v in values} for p, values in priority_exclusions.items()}
    included_by_project = {p: normalize_rca_set(values) for p, values in rca_inclusions.items()}
    kept = []
    for defect in defects:
        excluded = excluded_by_project.get(defect.project) or set()
        included = included_by_project.get(defect.project) or frozenset()
        if excluded and priority_key(defect.priority) in excluded:
            continue
        if included and not ({normalize_rca(rca) for rca in defect.root_causes} & included):
            continue
        kept.append(defect)
    return kept


def story_priority_counts(defects: Iterable[Defect]) -> dict[str, dict[str, int]]:
    """story -> lowercase priority -> number of linked defects."""
    counts: dict[str, dict[str, int]] = defaultdict(lambda: defaultdict(int))
    for defect in defects:
        priority = priority_key(defect.priority)
        for story in defect.linked_stories:
            counts[story][priority] += 1
    return {story: dict(by_priority) for story, by_priority in counts.items()}


def drop_within_tolerance(
    defects: Iterable[Defect], priority_count_tolerance: Mapping[str, Mapping[str, int]]
) -> list[Defect]:
    """Drop defects whose every linked story stays within the priority tolerance.

    A story "exceeds" tolerance for a priority when it has more linked defects
    of that priority than the project allows, or when the project sets no
    tolerance for that priority. A defect is kept if any linked story exceeds.
    """
    pool = list(defects)
    counts = story_priority_counts(pool)
    kept = []
    for defect in pool:
        tolerance = {priority_key(k): v for k, v in (priority_count_tolerance.get(defect.project) or {}).items()}
        if not tolerance:
            kept.append(defect)
            continue
        priority = priority_key(defect.priority)
        for story in defect.linked_stories:
            linked = counts.get(story, {}).get(priority, 0)
            if priority not in tolerance or linked > tolerance[priority]:
                kept.append(defect)
                break
    return kept


def exclude_defects(
    defects: Iterable[Defect],
    priority_exclusions: Mapping[str, Iterable[str]] | None = None,
    rca_inclusions: Mapping[str, Iterable[str]] | None = None,
    rejection_rules: Mapping[str, RejectionRule] | None = None,
    priority_count_tolerance: Mapping[str, Mapping[str, int]] | None = None,
) -> list[Defect]:
    """Apply every defect filter; rule mappings are keyed by project.

    Duplicate defects (same project and number) are collapsed first.
    """
    unique: dict[tuple[str, str], Defect] = {}
    for defect in defects:
        unique.setdefault((defect.project, defect.number), defect)
    survivors = drop_rejected(unique.values(), rejection_rules or {})
    survivors = filter_priority_and_rca(survivors, priority_exclusions or {}, rca_inclusions or {})
    survivors = drop_within_tolerance(survivors, priority_count_tolerance or {})
    logger.debug("Defect filters kept %d of %d defects", len(survivors), len(unique))
    return survivors


def exclude_defects_for(
    defects: Iterable[Defect],
    classification: Mapping[str, FieldClassification] | FieldClassification | None,
) -> list[Defect]:
    """Run :func:`exclude_defects` with rules taken from project classifications.

    Projects without a classification pass through unfiltered.
    """
    pool = list(defects)
    priority_exclusions: dict[str, frozenset[str]] = {}
    rca_inclusions: dict[str, frozenset[str]] = {}
    rejection_rules: dict[str, RejectionRule] = {}
    tolerance: dict[str, dict[str, int]] = {}
    for project in {d.project for d in pool}:
        cls = get_classification(classification, project)
        if cls is None:
            continue
        priority_exclusions[project] = cls.priority_exclusions
        rca_inclusions[project] = cls.rca_inclusions
        rejection_rules[project] = RejectionRule(cls.rejection_status, cls.rejection_resolutions)
        tolerance[project] = cls.priority_count_tolerance
    return exclude_defects(pool, priority_exclusions, rca_inclusions, rejection_rules, tolerance)
