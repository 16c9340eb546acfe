"""Shared fixtures for the jira_kpi test suite.

The project root goes on sys.path so ``import jira_kpi`` works without an
editable install, and the process-wide classification cache is reset around
every test so a YAML load in one test never leaks into another.
"""

from __future__ import annotations

import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from jira_kpi.core import classification  # noqa: E402


@pytest.fixture(autouse=True)
def _fresh_classification_cache(monkeypatch):
    monkeypatch.setattr(classification, "_CACHE", None)


@pytest.fixture
def repo_root() -> Path:
    return ROOT
