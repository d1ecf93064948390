"""Search orchestration: cache -> geocode -> registry -> normalize -> rank.

SearchEngine.search() is the reusable core behind both the HTTP
surface and the CLI. Only RegistryUnavailable escapes it; every other
degradation (bad ZIP, unknown ZIP, sites without coordinates, a failing
cache backend, no local condition matches) is absorbed here.
"""

from __future__ import annotations

import time
from typing import TYPE_CHECKING

import structlog

from trialfinder.errors import CacheUnavailable
from trialfinder.geo.distance import nearest_site_miles
from trialfinder.registry.normalizer import normalize_studies, normalize_study
from trialfinder.schema import GeoPoint, NormalizedTrial, SearchCriteria, SearchResult
from trialfinder.search.ranking import (
    effective_sort_mode,
    filter_by_condition,
    filter_by_radius,
    rank_trials,
)

if TYPE_CHECKING:
    from trialfinder.geo.geocode import ZipGeocoder
    from trialfinder.registry.ctgov_client import CTGovClient
    from trialfinder.search.cache import SearchCache

logger = structlog.get_logger()


def annotate_distances(trials: list[NormalizedTrial], origin: GeoPoint | None) -> list[NormalizedTrial]:
    """Return copies of trials carrying nearest_distance_miles.

    Without an origin the field stays None on every trial.
    """
    if origin is None:
        return list(trials)
    return [
        t.model_copy(update={"nearest_distance_miles": nearest_site_miles(origin, t.locations)})
        for t in trials
    ]


class SearchEngine:
    """Owns the cache and wires the pipeline stages together.

    cache=None disables caching entirely (every call is a miss).
    """

    def __init__(
        self,
        client: CTGovClient,
        geocoder: ZipGeocoder,
        cache: SearchCache | None = None,
    ):
        self._client = client
        self._geocoder = geocoder
        self._cache = cache

    def _cache_get(self, key: str) -> SearchResult | None:
        if self._cache is None:
            return None
        try:
            return self._cache.get(key)
        except CacheUnavailable as exc:
            logger.warning("search_cache_unavailable", op="get", error=str(exc))
            return None

    def _cache_set(self, key: str, result: SearchResult) -> None:
        if self._cache is None:
            return
        try:
            self._cache.set(key, result)
        except CacheUnavailable as exc:
            logger.warning("search_cache_unavailable", op="set", error=str(exc))

    async def search(self, criteria: SearchCriteria) -> SearchResult:
        """Run one search. Raises RegistryUnavailable if CT.gov fails."""
        key = criteria.cache_key()
        cached = self._cache_get(key)
        if cached is not None:
            logger.info("search_cache_hit", results=len(cached.trials))
            return cached
        logger.debug("search_cache_miss", key=key)

        t0 = time.perf_counter()
        # Resolved for any ZIP, with or without a radius, so distance sort and
        # per-trial distances work on their own
        origin = self._geocoder.resolve(criteria.location_zip) if criteria.location_zip else None

        page = await self._client.fetch_page(criteria)
        trials = normalize_studies(page.studies)
        trials = annotate_distances(trials, origin)

        fetched = len(trials)
        trials = filter_by_condition(trials, criteria.condition)
        after_condition = len(trials)
        trials = filter_by_radius(trials, criteria.radius_miles, origin is not None)
        trials = rank_trials(trials, criteria.sort_mode, origin is not None)

        result = SearchResult(
            trials=trials,
            next_page_token=page.next_page_token,
            total_count=page.total_count,
        )
        self._cache_set(key, result)

        logger.info(
            "search_completed",
            fetched=fetched,
            after_condition_filter=after_condition,
            returned=len(trials),
            origin_resolved=origin is not None,
            sort=effective_sort_mode(criteria.sort_mode, origin is not None).value,
            latency_ms=round((time.perf_counter() - t0) * 1000),
        )
        return result

    async def get_trial(self, nct_id: str, location_zip: str | None = None) -> NormalizedTrial | None:
        """Fetch and normalize one study. Raises StudyNotFound / RegistryUnavailable."""
        raw = await self._client.get_study(nct_id)
        trial = normalize_study(raw)
        if trial is None:
            return None
        origin = self._geocoder.resolve(location_zip) if location_zip else None
        return annotate_distances([trial], origin)[0]
