"""Shared fixtures: minimal CT.gov v2 study documents and pipeline fakes."""

from __future__ import annotations

import math
from unittest.mock import AsyncMock

import pytest

from trialfinder.geo.distance import EARTH_RADIUS_MILES
from trialfinder.geo.geocode import ZipGeocoder
from trialfinder.registry.ctgov_client import RegistryPage
from trialfinder.schema import GeoPoint

JACKSONVILLE = GeoPoint(lat=30.3292, lon=-81.6489)  # ZIP 32202 centroid
MILES_PER_DEGREE_LAT = EARTH_RADIUS_MILES * math.pi / 180


def point_north_of(origin: GeoPoint, miles: float) -> dict:
    """geoPoint dict exactly `miles` due north of origin."""
    return {"lat": origin.lat + miles / MILES_PER_DEGREE_LAT, "lon": origin.lon}


def make_study(
    nct_id: str = "NCT00000001",
    title: str = "A Study",
    conditions: list[str] | None = None,
    phases: list[str] | None = None,
    start: str | None = "2022-01-01",
    updated: str | None = "2024-01-01",
    locations: list[dict] | None = None,
    status: str = "RECRUITING",
) -> dict:
    status_mod: dict = {"overallStatus": status}
    if start:
        status_mod["startDateStruct"] = {"date": start}
    if updated:
        status_mod["lastUpdateSubmitDate"] = updated
    return {
        "protocolSection": {
            "identificationModule": {"nctId": nct_id, "briefTitle": title},
            "statusModule": status_mod,
            "conditionsModule": {"conditions": conditions or []},
            "designModule": {"phases": phases or []},
            "eligibilityModule": {"minimumAge": "18 Years", "maximumAge": "75 Years", "sex": "ALL"},
            "contactsLocationsModule": {"locations": locations or []},
        }
    }


@pytest.fixture
def study_factory():
    return make_study


@pytest.fixture
def geocoder() -> ZipGeocoder:
    return ZipGeocoder({"32202": JACKSONVILLE})


@pytest.fixture
def fake_client():
    """Stand-in for CTGovClient; set fake_client.fetch_page.return_value per test."""

    class _FakeClient:
        def __init__(self):
            self.fetch_page = AsyncMock(return_value=RegistryPage())
            self.get_study = AsyncMock(return_value={})
            self.aclose = AsyncMock()

    return _FakeClient()
