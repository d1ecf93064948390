"""Domain models for the search pipeline.

NormalizedTrial is the unit every later stage works on: the registry's
nested study document is flattened into it once and never mutated after.
Models serialize with camelCase aliases for the HTTP surface and accept
either spelling on input.
"""

from __future__ import annotations

import enum
import json
import math

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class SortMode(enum.StrEnum):
    """Result ordering requested by the caller."""

    RECENT = "recent"
    DISTANCE = "distance"
    PHASE = "phase"


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class GeoPoint(_CamelModel):
    """A resolved latitude/longitude pair."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    lat: float = Field(ge=-90.0, le=90.0)
    lon: float = Field(ge=-180.0, le=180.0)


class Site(_CamelModel):
    """One recruiting location of a trial."""

    facility: str = ""
    city: str = ""
    state: str = ""
    country: str = ""
    geo_point: GeoPoint | None = None


class AgeRange(_CamelModel):
    # Free-text registry values such as "18 Years" or "N/A"
    min: str = ""
    max: str = ""


class NormalizedTrial(_CamelModel):
    """Flat, stable trial record built from one registry study."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    id: str
    title: str
    status: str = ""
    conditions: list[str] = Field(default_factory=list)
    locations: list[Site] = Field(default_factory=list)
    start_date: str | None = None
    last_update_date: str | None = None
    phase: list[str] = Field(default_factory=list)
    age_range: AgeRange = Field(default_factory=AgeRange)
    gender: str | None = None  # None means all sexes eligible
    nearest_distance_miles: float | None = None  # None when no origin or no site coordinates

    @property
    def recency_date(self) -> str | None:
        """Most recent known timestamp: last update, else start date."""
        return self.last_update_date or self.start_date


class SearchCriteria(_CamelModel):
    """One search request.

    Every field takes part in the cache key, so two criteria objects that
    differ in any field never share a cached result.
    """

    condition: str | None = None
    location_zip: str | None = None
    radius_miles: float | None = None
    min_age: float | None = None
    gender: str | None = None
    phase: str | None = None
    statuses: list[str] | None = None  # None means the configured recruiting allow-list
    sort_mode: SortMode = SortMode.RECENT
    page_token: str | None = None

    @field_validator("condition", "location_zip", "gender", "phase", "page_token", mode="before")
    @classmethod
    def _blank_to_none(cls, value):
        if isinstance(value, str):
            value = value.strip()
            return value or None
        return value

    @field_validator("radius_miles")
    @classmethod
    def _non_positive_radius_to_none(cls, value):
        if value is not None and (not math.isfinite(value) or value <= 0):
            return None
        return value

    @field_validator("min_age")
    @classmethod
    def _negative_age_to_none(cls, value):
        if value is not None and (not math.isfinite(value) or value < 0):
            return None
        return value

    @field_validator("statuses", mode="before")
    @classmethod
    def _empty_statuses_to_none(cls, value):
        if isinstance(value, (list, tuple)):
            cleaned = [s.strip() for s in value if isinstance(s, str) and s.strip()]
            return cleaned or None
        return value

    def cache_key(self) -> str:
        """Canonical serialization of every field that affects output."""
        payload = self.model_dump(mode="json")
        if payload["statuses"] is not None:
            payload["statuses"] = sorted(payload["statuses"])
        return json.dumps(payload, sort_keys=True, separators=(",", ":"))


class SearchResult(_CamelModel):
    """Ranked page of trials returned by SearchEngine.search()."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    trials: list[NormalizedTrial] = Field(default_factory=list)
    next_page_token: str | None = None
    total_count: int | None = None
