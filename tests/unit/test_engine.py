"""Tests for SearchEngine orchestration.

The registry client is faked; geocoding uses a one-entry table for
ZIP 32202. Async calls are driven via asyncio.run().
"""

from __future__ import annotations

import asyncio

import pytest
from conftest import JACKSONVILLE, make_study, point_north_of

from trialfinder.errors import CacheUnavailable, RegistryUnavailable, StudyNotFound
from trialfinder.registry.ctgov_client import RegistryPage
from trialfinder.schema import SearchCriteria, SortMode
from trialfinder.search.cache import InMemoryBackend, SearchCache
from trialfinder.search.engine import SearchEngine, annotate_distances
from trialfinder.registry.normalizer import normalize_studies


def _site(miles: float | None, name: str = "Site") -> dict:
    loc = {"facility": name, "city": "Jacksonville", "state": "Florida", "country": "United States"}
    if miles is not None:
        loc["geoPoint"] = point_north_of(JACKSONVILLE, miles)
    return loc


def _three_diabetes_studies() -> list[dict]:
    return [
        make_study("NCT00000030", "Far", ["Diabetes"], updated="2024-03-01", locations=[_site(30.0)]),
        make_study("NCT00000010", "Near", ["Type 2 Diabetes"], updated="2023-01-01", locations=[_site(10.0)]),
        make_study("NCT00000000", "Nowhere", ["Diabetes"], updated="2024-05-01", locations=[_site(None)]),
    ]


def test_end_to_end_radius_and_distance(fake_client, geocoder):
    fake_client.fetch_page.return_value = RegistryPage(
        studies=_three_diabetes_studies(), next_page_token="next", total_count=3
    )
    engine = SearchEngine(fake_client, geocoder, SearchCache())
    criteria = SearchCriteria(
        condition="diabetes", location_zip="32202", radius_miles=25, sort_mode=SortMode.DISTANCE
    )

    result = asyncio.run(engine.search(criteria))

    assert [t.id for t in result.trials] == ["NCT00000010"]
    assert result.trials[0].nearest_distance_miles == pytest.approx(10.0, abs=0.01)
    assert result.next_page_token == "next"
    assert result.total_count == 3


def test_distance_sort_without_radius_keeps_undistanced_last(fake_client, geocoder):
    fake_client.fetch_page.return_value = RegistryPage(studies=_three_diabetes_studies())
    engine = SearchEngine(fake_client, geocoder)
    criteria = SearchCriteria(location_zip="32202", sort_mode=SortMode.DISTANCE)

    result = asyncio.run(engine.search(criteria))

    assert [t.id for t in result.trials] == ["NCT00000010", "NCT00000030", "NCT00000000"]
    assert result.trials[-1].nearest_distance_miles is None


def test_nan_radius_is_treated_as_absent(fake_client, geocoder):
    fake_client.fetch_page.return_value = RegistryPage(studies=_three_diabetes_studies())
    engine = SearchEngine(fake_client, geocoder)
    criteria = SearchCriteria(location_zip="32202", radius_miles=float("nan"))

    result = asyncio.run(engine.search(criteria))

    assert len(result.trials) == 3


def test_unknown_zip_degrades_to_recent_without_distances(fake_client, geocoder):
    fake_client.fetch_page.return_value = RegistryPage(studies=_three_diabetes_studies())
    engine = SearchEngine(fake_client, geocoder)
    criteria = SearchCriteria(location_zip="99999", radius_miles=25, sort_mode=SortMode.DISTANCE)

    result = asyncio.run(engine.search(criteria))

    # No origin: radius ignored, recency order, no distances
    assert [t.id for t in result.trials] == ["NCT00000000", "NCT00000030", "NCT00000010"]
    assert all(t.nearest_distance_miles is None for t in result.trials)


def test_malformed_zip_is_not_an_error(fake_client, geocoder):
    fake_client.fetch_page.return_value = RegistryPage(studies=_three_diabetes_studies())
    engine = SearchEngine(fake_client, geocoder)

    result = asyncio.run(engine.search(SearchCriteria(location_zip="32-02", radius_miles=5)))

    assert len(result.trials) == 3


def test_condition_fallback_when_nothing_matches(fake_client, geocoder):
    fake_client.fetch_page.return_value = RegistryPage(studies=_three_diabetes_studies())
    engine = SearchEngine(fake_client, geocoder)

    result = asyncio.run(engine.search(SearchCriteria(condition="hyperglycemia")))

    assert len(result.trials) == 3


def test_condition_filter_tightens_when_some_match(fake_client, geocoder):
    studies = _three_diabetes_studies() + [make_study("NCT00000099", "Other", ["Obesity"])]
    fake_client.fetch_page.return_value = RegistryPage(studies=studies)
    engine = SearchEngine(fake_client, geocoder)

    result = asyncio.run(engine.search(SearchCriteria(condition="diabetes")))

    assert "NCT00000099" not in [t.id for t in result.trials]
    assert len(result.trials) == 3


def test_cache_hit_skips_registry(fake_client, geocoder):
    fake_client.fetch_page.return_value = RegistryPage(studies=_three_diabetes_studies())
    engine = SearchEngine(fake_client, geocoder, SearchCache())
    criteria = SearchCriteria(condition="diabetes")

    first = asyncio.run(engine.search(criteria))
    second = asyncio.run(engine.search(criteria))

    assert fake_client.fetch_page.await_count == 1
    assert second == first


def test_sort_mode_gets_its_own_cache_entry(fake_client, geocoder):
    studies = [
        make_study("NCT1", "Old phase 3", phases=["PHASE3"], updated="2019-01-01"),
        make_study("NCT2", "New phase 1", phases=["PHASE1"], updated="2024-01-01"),
    ]
    fake_client.fetch_page.return_value = RegistryPage(studies=studies)
    engine = SearchEngine(fake_client, geocoder, SearchCache())

    recent = asyncio.run(engine.search(SearchCriteria(sort_mode=SortMode.RECENT)))
    phase = asyncio.run(engine.search(SearchCriteria(sort_mode=SortMode.PHASE)))

    assert fake_client.fetch_page.await_count == 2
    assert [t.id for t in recent.trials] == ["NCT2", "NCT1"]
    assert [t.id for t in phase.trials] == ["NCT1", "NCT2"]


def test_registry_failure_propagates_and_is_not_cached(fake_client, geocoder):
    fake_client.fetch_page.side_effect = RegistryUnavailable("down")
    backend = InMemoryBackend()
    engine = SearchEngine(fake_client, geocoder, SearchCache(backend=backend))

    with pytest.raises(RegistryUnavailable):
        asyncio.run(engine.search(SearchCriteria(condition="x")))
    assert len(backend) == 0


def test_cache_backend_failure_bypasses_cache(fake_client, geocoder):
    class BrokenBackend(InMemoryBackend):
        def get(self, key):
            raise CacheUnavailable("get failed")

        def set(self, key, stored_at, value):
            raise CacheUnavailable("set failed")

    fake_client.fetch_page.return_value = RegistryPage(studies=_three_diabetes_studies())
    engine = SearchEngine(fake_client, geocoder, SearchCache(backend=BrokenBackend()))

    asyncio.run(engine.search(SearchCriteria()))
    result = asyncio.run(engine.search(SearchCriteria()))

    assert len(result.trials) == 3
    assert fake_client.fetch_page.await_count == 2


def test_no_cache_means_every_call_fetches(fake_client, geocoder):
    engine = SearchEngine(fake_client, geocoder, cache=None)
    asyncio.run(engine.search(SearchCriteria()))
    asyncio.run(engine.search(SearchCriteria()))
    assert fake_client.fetch_page.await_count == 2


def test_annotate_distances_returns_new_objects():
    trials = normalize_studies([make_study("NCT1", locations=[_site(5.0)])])
    annotated = annotate_distances(trials, JACKSONVILLE)
    assert trials[0].nearest_distance_miles is None
    assert annotated[0].nearest_distance_miles == pytest.approx(5.0, abs=0.01)
    assert annotate_distances(trials, None)[0].nearest_distance_miles is None


class TestGetTrial:
    def test_normalizes_and_annotates(self, fake_client, geocoder):
        fake_client.get_study.return_value = make_study("NCT12345678", locations=[_site(12.0)])
        engine = SearchEngine(fake_client, geocoder)

        trial = asyncio.run(engine.get_trial("NCT12345678", location_zip="32202"))

        assert trial.id == "NCT12345678"
        assert trial.nearest_distance_miles == pytest.approx(12.0, abs=0.01)

    def test_not_found_propagates(self, fake_client, geocoder):
        fake_client.get_study.side_effect = StudyNotFound("NCT12345678")
        engine = SearchEngine(fake_client, geocoder)
        with pytest.raises(StudyNotFound):
            asyncio.run(engine.get_trial("NCT12345678"))
