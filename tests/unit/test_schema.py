"""Tests for domain models."""

import pytest
from pydantic import ValidationError

from trialfinder.schema import GeoPoint, NormalizedTrial, SearchCriteria, SortMode


def test_sort_mode_values():
    assert SortMode.RECENT == "recent"
    assert SortMode.DISTANCE == "distance"
    assert SortMode.PHASE == "phase"


def test_criteria_defaults():
    c = SearchCriteria()
    assert c.sort_mode == SortMode.RECENT
    assert c.condition is None
    assert c.statuses is None


def test_criteria_accepts_camel_case():
    c = SearchCriteria.model_validate({"locationZip": "32202", "radiusMiles": 10, "sortMode": "distance"})
    assert c.location_zip == "32202"
    assert c.radius_miles == 10
    assert c.sort_mode == SortMode.DISTANCE


def test_blank_strings_become_none():
    c = SearchCriteria(condition="  ", location_zip="", page_token=" ")
    assert c.condition is None
    assert c.location_zip is None
    assert c.page_token is None


def test_non_positive_radius_dropped():
    assert SearchCriteria(radius_miles=0).radius_miles is None
    assert SearchCriteria(radius_miles=-5).radius_miles is None


def test_age_zero_kept_negative_dropped():
    assert SearchCriteria(min_age=0).min_age == 0
    assert SearchCriteria(min_age=-1).min_age is None


@pytest.mark.parametrize("value", [float("nan"), float("inf"), float("-inf")])
def test_non_finite_numbers_dropped(value):
    criteria = SearchCriteria(radius_miles=value, min_age=value)
    assert criteria.radius_miles is None
    assert criteria.min_age is None


def test_empty_statuses_become_none():
    assert SearchCriteria(statuses=["", " "]).statuses is None


def test_geopoint_bounds():
    with pytest.raises(ValidationError):
        GeoPoint(lat=91.0, lon=0.0)
    with pytest.raises(ValidationError):
        GeoPoint(lat=0.0, lon=-181.0)


def test_recency_date_fallback():
    assert NormalizedTrial(id="A", title="t", start_date="2020-01-01").recency_date == "2020-01-01"
    assert (
        NormalizedTrial(id="A", title="t", start_date="2020-01-01", last_update_date="2021-05-05").recency_date
        == "2021-05-05"
    )


def test_trial_is_immutable():
    trial = NormalizedTrial(id="A", title="t")
    with pytest.raises(ValidationError):
        trial.title = "changed"


def test_trial_serializes_with_camel_aliases():
    dumped = NormalizedTrial(id="A", title="t", last_update_date="2024-01-01").model_dump(by_alias=True)
    assert "lastUpdateDate" in dumped
    assert "nearestDistanceMiles" in dumped
    assert dumped["nearestDistanceMiles"] is None
