"""Tests for trigger data lookups and comparisons."""

import pytest

from triggerflow.conditions import MISSING, compare, lookup, matches


def test_lookup_nested_path():
    data = {"lead": {"source": "web", "score": 7}}
    assert lookup(data, "lead.source") == "web"
    assert lookup(data, "lead.missing") is MISSING
    assert lookup(data, "lead.source.deeper") is MISSING


@pytest.mark.parametrize(
    "operator, actual, expected, outcome",
    [
        ("equals", "web", "web", True),
        ("equals", MISSING, None, False),
        ("not_equals", "web", "ads", True),
        ("not_equals", MISSING, "ads", True),
        ("exists", "web", None, True),
        ("exists", None, None, False),
        ("not_exists", MISSING, None, True),
        ("contains", "premium plan", "premium", True),
        ("greater_than", 10, 5, True),
        ("less_than", 10, 5, False),
        ("greater_than", "ten", 5, False),
    ],
)
def test_compare(operator, actual, expected, outcome):
    assert compare(operator, actual, expected) is outcome


def test_compare_rejects_unknown_operator():
    with pytest.raises(ValueError):
        compare("between", 1, 2)


def test_matches_requires_every_condition():
    data = {"source": "web", "lead": {"country": "DE"}}
    assert matches({}, data)
    assert matches({"source": "web", "lead.country": "DE"}, data)
    assert not matches({"source": "web", "lead.country": "FR"}, data)
