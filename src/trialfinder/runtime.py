"""Runtime wiring shared by the HTTP app and the CLI.

This module centralizes:
1. Factories that build the client, geocoder, cache and engine from Settings.
2. A CT.gov connectivity preflight.
"""

from __future__ import annotations

import time
from dataclasses import dataclass

import structlog

from trialfinder.config import Settings
from trialfinder.errors import TrialFinderError
from trialfinder.geo.geocode import ZipGeocoder
from trialfinder.registry.ctgov_client import CTGovClient
from trialfinder.schema import SearchCriteria
from trialfinder.search.cache import SearchCache
from trialfinder.search.engine import SearchEngine

logger = structlog.get_logger()


@dataclass(slots=True)
class HealthCheckResult:
    """Result of one preflight check."""

    name: str
    ok: bool
    latency_ms: float
    detail: str


def create_client(settings: Settings) -> CTGovClient:
    reg = settings.registry
    return CTGovClient(
        base_url=reg.base_url,
        timeout_seconds=reg.timeout_seconds,
        max_retries=reg.max_retries,
        page_size=reg.page_size,
        default_statuses=reg.default_statuses,
    )


def create_geocoder(settings: Settings) -> ZipGeocoder:
    if settings.geocode.table_path:
        return ZipGeocoder.from_csv(settings.geocode.table_path)
    return ZipGeocoder()


def create_engine(settings: Settings, client: CTGovClient | None = None) -> SearchEngine:
    """Build a SearchEngine that owns its own cache instance."""
    cache = SearchCache(ttl_seconds=settings.cache.ttl_seconds) if settings.cache.enabled else None
    return SearchEngine(
        client=client or create_client(settings),
        geocoder=create_geocoder(settings),
        cache=cache,
    )


def _truncate_detail(raw: str, max_len: int = 200) -> str:
    if len(raw) <= max_len:
        return raw
    return raw[:max_len].rstrip() + "..."


async def check_ctgov_health(client: CTGovClient) -> HealthCheckResult:
    """Run a minimal CT.gov API connectivity check without raising."""
    start = time.perf_counter()
    try:
        page = await client.fetch_page(SearchCriteria(condition="cancer"))
    except TrialFinderError as exc:
        latency_ms = (time.perf_counter() - start) * 1000
        detail = _truncate_detail(f"{type(exc).__name__}: {exc}")
        logger.warning("preflight_ctgov_failed", latency_ms=f"{latency_ms:.0f}", error=detail)
        return HealthCheckResult(name="CT.gov API", ok=False, latency_ms=latency_ms, detail=detail)

    latency_ms = (time.perf_counter() - start) * 1000
    detail = f"ok ({len(page.studies)} studies)"
    logger.info("preflight_ctgov_ok", latency_ms=f"{latency_ms:.0f}", studies=len(page.studies))
    return HealthCheckResult(name="CT.gov API", ok=True, latency_ms=latency_ms, detail=detail)
