"""Async ClinicalTrials.gov API v2 client.

Wraps the public REST API at https://clinicaltrials.gov/api/v2/ and
translates SearchCriteria into the registry's query vocabulary.

This client is intentionally thin — it returns raw dicts from the
API. Flattening happens in normalizer.py. One call fetches one page;
pagination is driven by the caller through the continuation token.
"""

from __future__ import annotations

import asyncio
import re
from dataclasses import dataclass, field

import httpx
import structlog

from trialfinder.errors import RegistryUnavailable, StudyNotFound
from trialfinder.schema import SearchCriteria

logger = structlog.get_logger()

CTGOV_BASE = "https://clinicaltrials.gov/api/v2"
DEFAULT_PAGE_SIZE = 20
DEFAULT_STATUSES = ("RECRUITING", "NOT_YET_RECRUITING")

# Most recently updated first; local ranking re-sorts from this baseline.
UPSTREAM_SORT = "LastUpdatePostDate:desc"

# Minimal projection: exactly what normalizer.py reads.
SEARCH_FIELDS: tuple[str, ...] = (
    "NCTId",
    "BriefTitle",
    "OfficialTitle",
    "OverallStatus",
    "Condition",
    "LocationFacility",
    "LocationCity",
    "LocationState",
    "LocationCountry",
    "LocationGeoPoint",
    "StartDate",
    "LastUpdateSubmitDate",
    "LastUpdatePostDate",
    "Phase",
    "MinimumAge",
    "MaximumAge",
    "Sex",
)

# CT.gov API v2 uses aggFilters for phase filtering, not filter.phase.
# Keys are enum labels after _enum_label() normalization.
_PHASE_AGG_MAP: dict[str, str] = {
    "EARLY_PHASE1": "phase:early1",
    "PHASE1": "phase:1",
    "PHASE2": "phase:2",
    "PHASE3": "phase:3",
    "PHASE4": "phase:4",
    "NA": "phase:na",
    "N_A": "phase:na",
    "NOT_APPLICABLE": "phase:na",
}

# CT.gov API v2 sex filtering also uses aggFilters (comma-joined with phase).
_SEX_AGG_MAP: dict[str, str] = {
    "MALE": "sex:m",
    "FEMALE": "sex:f",
}

_NON_ALNUM = re.compile(r"[^A-Z0-9]+")
_PHASE_DIGIT = re.compile(r"PHASE_(\d)")
_PHASE_SEPARATOR = re.compile(r"[/,]")
_RETRYABLE_STATUS = {429, 500, 502, 503, 504}


def _enum_label(value: str) -> str:
    """'Active, not recruiting' -> 'ACTIVE_NOT_RECRUITING', 'Phase 2' -> 'PHASE2'."""
    label = _NON_ALNUM.sub("_", value.strip().upper()).strip("_")
    return _PHASE_DIGIT.sub(r"PHASE\1", label)


def _format_age(age: float) -> str:
    return f"{age:g} years"


def _phase_agg_filter(phase: str) -> str | None:
    """'Phase 3' -> 'phase:3', 'Phase 1/Phase 2' -> 'phase:1 2'.

    Labels the registry does not know are dropped rather than sent upstream.
    """
    whole = _PHASE_AGG_MAP.get(_enum_label(phase))
    if whole is not None:
        return whole
    values: list[str] = []
    for part in _PHASE_SEPARATOR.split(phase):
        if not part.strip():
            continue
        agg = _PHASE_AGG_MAP.get(_enum_label(part))
        if agg is None:
            logger.warning("search_phase_ignored", phase=part.strip())
            continue
        value = agg.split(":", 1)[1]
        if value not in values:
            values.append(value)
    return f"phase:{' '.join(values)}" if values else None


@dataclass(slots=True)
class RegistryPage:
    """One page of raw search results."""

    studies: list[dict] = field(default_factory=list)
    next_page_token: str | None = None
    total_count: int | None = None


def build_search_params(
    criteria: SearchCriteria,
    *,
    page_size: int = DEFAULT_PAGE_SIZE,
    default_statuses: tuple[str, ...] | list[str] = DEFAULT_STATUSES,
) -> dict:
    """Map SearchCriteria onto /studies query parameters."""
    params: dict = {
        "format": "json",
        "pageSize": min(page_size, 100),
        "sort": UPSTREAM_SORT,
        "countTotal": "true",
        "fields": ",".join(SEARCH_FIELDS),
    }

    if criteria.condition:
        params["query.cond"] = criteria.condition

    statuses = criteria.statuses or list(default_statuses)
    params["filter.overallStatus"] = ",".join(_enum_label(s) for s in statuses)

    # Patient age must fall inside the trial's [MinimumAge, MaximumAge] window
    if criteria.min_age is not None:
        age = _format_age(criteria.min_age)
        params["query.term"] = (
            f"AREA[MinimumAge]RANGE[MIN, {age}] AND AREA[MaximumAge]RANGE[{age}, MAX]"
        )

    # aggFilters: compose phase + sex (comma-joined)
    agg_parts: list[str] = []
    if criteria.phase:
        phase_filter = _phase_agg_filter(criteria.phase)
        if phase_filter:
            agg_parts.append(phase_filter)
    if criteria.gender:
        sex_val = _SEX_AGG_MAP.get(_enum_label(criteria.gender))
        if sex_val:
            agg_parts.append(sex_val)
    if agg_parts:
        params["aggFilters"] = ",".join(agg_parts)

    if criteria.page_token:
        params["pageToken"] = criteria.page_token

    return params


class CTGovClient:
    """Async HTTP client for ClinicalTrials.gov API v2.

    Instantiate once per process and reuse; the underlying connection
    pool is shared by all searches. max_retries=1 means a single attempt:
    any upstream failure fails the search.
    """

    def __init__(
        self,
        base_url: str = CTGOV_BASE,
        timeout_seconds: float = 30.0,
        max_retries: int = 1,
        page_size: int = DEFAULT_PAGE_SIZE,
        default_statuses: tuple[str, ...] | list[str] = DEFAULT_STATUSES,
    ):
        self._http = httpx.AsyncClient(
            base_url=base_url,
            timeout=timeout_seconds,
            headers={"Accept": "application/json"},
        )
        self._max_retries = max(1, max_retries)
        self._page_size = page_size
        self._default_statuses = tuple(default_statuses)

    async def _get(self, path: str, params: dict, *, not_found: bool = False) -> dict:
        """GET returning parsed JSON; every failure becomes RegistryUnavailable.

        With not_found=True a 404 raises StudyNotFound instead.
        """
        for attempt in range(self._max_retries):
            last_attempt = attempt == self._max_retries - 1
            try:
                resp = await self._http.get(path, params=params)
            except httpx.HTTPError as exc:
                logger.error("registry_transport_error", path=path, attempt=attempt, error=str(exc))
                if not last_attempt:
                    await asyncio.sleep(1.5**attempt)
                    continue
                raise RegistryUnavailable(f"CT.gov API unreachable: {exc}") from exc

            if not_found and resp.status_code == 404:
                raise StudyNotFound(path)
            if resp.status_code in _RETRYABLE_STATUS and not last_attempt:
                wait = 2.0**attempt
                logger.warning("registry_retry", status=resp.status_code, wait=wait, attempt=attempt)
                await asyncio.sleep(wait)
                continue
            if resp.status_code >= 400:
                logger.error(
                    "registry_bad_status", path=path, status=resp.status_code, body=resp.text[:300]
                )
                raise RegistryUnavailable(
                    f"CT.gov API returned HTTP {resp.status_code}", status_code=resp.status_code
                )

            try:
                payload = resp.json()
            except ValueError as exc:
                logger.error("registry_bad_json", path=path)
                raise RegistryUnavailable("CT.gov API returned unparseable JSON") from exc
            if not isinstance(payload, dict):
                raise RegistryUnavailable("CT.gov API returned an unexpected payload")
            return payload

        raise RegistryUnavailable("CT.gov API: max retries exceeded")

    async def fetch_page(self, criteria: SearchCriteria) -> RegistryPage:
        """Fetch one page of studies for the given criteria."""
        params = build_search_params(
            criteria, page_size=self._page_size, default_statuses=self._default_statuses
        )
        logger.debug(
            "ctgov_search", params={k: v for k, v in params.items() if k not in ("format", "fields")}
        )
        raw = await self._get("/studies", params)
        return parse_search_page(raw)

    async def get_study(self, nct_id: str) -> dict:
        """Fetch the full study record for a single NCT ID."""
        logger.debug("ctgov_get_study", nct_id=nct_id)
        return await self._get(f"/studies/{nct_id}", {"format": "json"}, not_found=True)

    async def aclose(self) -> None:
        await self._http.aclose()


def parse_search_page(raw: dict) -> RegistryPage:
    """Split a /studies response into studies, continuation token and count."""
    studies = raw.get("studies") or []
    total = raw.get("totalCount")
    return RegistryPage(
        studies=[s for s in studies if isinstance(s, dict)],
        next_page_token=raw.get("nextPageToken") or None,
        total_count=total if isinstance(total, int) else None,
    )
