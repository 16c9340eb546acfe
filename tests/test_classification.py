import pytest

from jira_kpi.core.classification import (
    classification_from_dict,
    get_classification,
    load_classifications,
    parse_classifications,
)
from jira_kpi.core.errors import ConfigurationError
from jira_kpi.core.models import FieldClassification

YAML_TEXT = """
projects:
  PROJ:
    closed_values: [Closed, Done]
    open_default: To Do
    completion_values: Done
    rejection_status: Rejected
    rejection_resolutions: [Invalid]
    priority_exclusions: [P5]
    rca_inclusions: [coding]
    priority_count_tolerance: {P3: 2}
  BARE: {}
"""


def test_load_classifications_from_yaml(tmp_path):
    path = tmp_path / "field_classifications.yaml"
    path.write_text(YAML_TEXT)
    loaded = load_classifications(path)
    proj = loaded["PROJ"]
    assert proj.closed_keys == {"closed", "done"}
    assert proj.open_default == "To Do"
    assert proj.reopen_value == "Reopened"
    assert proj.completion_values == {"Done"}
    assert proj.rejection_status == "Rejected"
    assert {"p5", "trivial", "lowest"} <= proj.priority_exclusions
    assert proj.rca_inclusions == {"code issue"}
    assert proj.priority_count_tolerance["medium"] == 2
    assert proj.priority_count_tolerance["major"] == 2
    bare = loaded["BARE"]
    assert bare.open_default == "Open"
    assert bare.closed_values == frozenset()


def test_missing_file_yields_empty_mapping(tmp_path):
    assert load_classifications(tmp_path / "absent.yaml") == {}


def test_invalid_yaml_raises(tmp_path):
    path = tmp_path / "broken.yaml"
    path.write_text("projects: [unclosed")
    with pytest.raises(ConfigurationError):
        load_classifications(path)


def test_projects_must_be_mapping():
    with pytest.raises(ConfigurationError):
        parse_classifications({"projects": ["PROJ"]})


def test_open_default_cannot_be_closed():
    with pytest.raises(ConfigurationError):
        classification_from_dict("P", {"closed_values": ["Open"], "open_default": "open"})


def test_non_integer_tolerance_raises():
    with pytest.raises(ConfigurationError):
        classification_from_dict("P", {"priority_count_tolerance": {"High": "many"}})


def test_list_field_rejects_mapping():
    with pytest.raises(ConfigurationError):
        classification_from_dict("P", {"closed_values": {"Done": True}})


def test_get_classification_lookup():
    single = FieldClassification(closed_values=frozenset({"Done"}))
    assert get_classification(single, "ANY") is single
    assert get_classification({"P": single}, "P") is single
    assert get_classification({"P": single}, "Q") is None
    assert get_classification(None, "P") is None


def test_is_closed_case_insensitive():
    cls = FieldClassification(closed_values=frozenset({"Done"}))
    assert cls.is_closed(" done ")
    assert not cls.is_closed("In Progress")
    assert not cls.is_closed(None)


def test_default_file_is_loaded_and_cached(repo_root):
    assert (repo_root / "field_classifications.yaml").exists()
    first = load_classifications()
    assert "DEMO" in first
    assert load_classifications() is first
    assert load_classifications(refresh=True) is not first
