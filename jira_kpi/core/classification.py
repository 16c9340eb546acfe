"""Load per-project field classifications from YAML (with fallbacks).

Expected layout::

    projects:
      PROJ:
        closed_values: [Closed, Done]
        open_default: Open
        reopen_value: Reopened
        completion_values: [Done, Closed]
        rejection_status: Rejected
        rejection_resolutions: [Invalid, "Won't Fix"]
        priority_exclusions: [P4, P5]
        rca_inclusions: [Coding]
        priority_count_tolerance: {P3: 2}
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml

from .config import CLASSIFICATION_FILENAME, DEFAULT_OPEN_STATUS, DEFAULT_REOPEN_STATUS
from .errors import ConfigurationError
from .models import FieldClassification
from .status import expand_priority_labels, normalize_rca_set

logger = logging.getLogger(__name__)

_CACHE: dict[str, FieldClassification] | None = None


def _as_list(value: Any, key: str, project: str) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    if isinstance(value, (list, tuple, set, frozenset)):
        return [str(v) for v in value if v is not None]
    raise ConfigurationError(f"{project}.{key} must be a string or list, got {type(value).__name__}")


def _tolerance_map(value: Any, project: str) -> dict[str, int]:
    if not value:
        return {}
    if not isinstance(value, Mapping):
        raise ConfigurationError(f"{project}.priority_count_tolerance must be a mapping")
    out: dict[str, int] = {}
    for label, count in value.items():
        try:
            limit = int(count)
        except (TypeError, ValueError) as exc:
            raise ConfigurationError(f"{project}.priority_count_tolerance[{label!r}] is not an integer") from exc
        # A group label ("P3") sets the tolerance for every priority it covers
        for name in expand_priority_labels([str(label)]):
            out[name] = limit
    return out


def classification_from_dict(project: str, data: Mapping[str, Any] | None) -> FieldClassification:
    """Build a ``FieldClassification`` from one project's raw mapping."""
    data = data or {}
    if not isinstance(data, Mapping):
        raise ConfigurationError(f"classification for {project} must be a mapping")
    rejection_status = data.get("rejection_status")
    return FieldClassification(
        closed_values=frozenset(_as_list(data.get("closed_values"), "closed_values", project)),
        open_default=str(data.get("open_default") or DEFAULT_OPEN_STATUS),
        reopen_value=str(data.get("reopen_value") or DEFAULT_REOPEN_STATUS),
        completion_values=frozenset(_as_list(data.get("completion_values"), "completion_values", project)),
        rejection_status=str(rejection_status) if rejection_status else None,
        rejection_resolutions=frozenset(
            _as_list(data.get("rejection_resolutions"), "rejection_resolutions", project)
        ),
        priority_exclusions=expand_priority_labels(
            _as_list(data.get("priority_exclusions"), "priority_exclusions", project)
        ),
        rca_inclusions=normalize_rca_set(_as_list(data.get("rca_inclusions"), "rca_inclusions", project)),
        priority_count_tolerance=_tolerance_map(data.get("priority_count_tolerance"), project),
    )


def parse_classifications(data: Mapping[str, Any] | None) -> dict[str, FieldClassification]:
    projects = (data or {}).get("projects") or {}
    if not isinstance(projects, Mapping):
        raise ConfigurationError("'projects' must be a mapping of project id to classification")
    return {str(key): classification_from_dict(str(key), value) for key, value in projects.items()}


def load_classifications(
    path: str | Path | None = None, *, refresh: bool = False
) -> dict[str, FieldClassification]:
    """Load classifications from ``path`` (default: repo root YAML file).

    A missing file yields an empty mapping, which downstream code treats as
    "no rules apply". The default file is cached for the process lifetime;
    explicit paths are always read.
    """
    global _CACHE
    if path is None and _CACHE is not None and not refresh:
        return _CACHE
    yaml_path = Path(path) if path is not None else Path(__file__).resolve().parents[2] / CLASSIFICATION_FILENAME
    if not yaml_path.exists():
        logger.info("No classification file at %s; all projects pass through", yaml_path)
        result: dict[str, FieldClassification] = {}
    else:
        try:
            data = yaml.safe_load(yaml_path.read_text()) or {}
        except yaml.YAMLError as exc:
            raise ConfigurationError(f"Invalid classification YAML in {yaml_path}: {exc}") from exc
        result = parse_classifications(data)
        logger.debug("Loaded %d project classifications from %s", len(result), yaml_path)
    if path is None:
        _CACHE = result
    return result


def get_classification(
    classifications: Mapping[str, FieldClassification] | FieldClassification | None, project: str
) -> FieldClassification | None:
    """Look up a project's classification; a single instance applies to every project."""
    if classifications is None:
        return None
    if isinstance(classifications, FieldClassification):
        return classifications
    return classifications.get(project)
