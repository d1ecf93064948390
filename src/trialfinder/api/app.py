"""
trialfinder HTTP API (FastAPI)

Endpoints:
  GET /search             — ranked ClinicalTrials.gov search
  GET /studies/{nct_id}   — one normalized study
  GET /health             — liveness
"""

from __future__ import annotations

import re
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from trialfinder import __version__
from trialfinder.api.profiles import ProfileStore, apply_profile_defaults, current_user
from trialfinder.errors import InvalidInput, RegistryUnavailable, StudyNotFound
from trialfinder.registry.ctgov_client import CTGovClient
from trialfinder.schema import NormalizedTrial, SearchCriteria, SearchResult, SortMode
from trialfinder.search.engine import SearchEngine

logger = structlog.get_logger()

_NCT_ID = re.compile(r"^NCT\d{8}$")

REGISTRY_ERROR = "Could not reach the clinical trial registry"
GENERIC_ERROR = "Search failed"


def parse_positive_number(name: str, raw: str | None) -> float:
    """Parse a strictly positive number or raise InvalidInput."""
    try:
        value = float(raw)  # type: ignore[arg-type]
    except (TypeError, ValueError) as exc:
        raise InvalidInput(f"{name} must be a number, got {raw!r}") from exc
    if value != value or value <= 0:  # NaN or non-positive
        raise InvalidInput(f"{name} must be positive, got {raw!r}")
    return value


def _optional_number(name: str, raw: str | None) -> float | None:
    """Lenient variant: bad input is logged and treated as absent."""
    if raw is None or not raw.strip():
        return None
    try:
        return parse_positive_number(name, raw)
    except InvalidInput as exc:
        logger.warning("search_param_ignored", param=name, error=str(exc))
        return None


def _parse_sort(raw: str | None) -> SortMode | None:
    if raw is None or not raw.strip():
        return None
    try:
        return SortMode(raw.strip().lower())
    except ValueError:
        logger.warning("search_param_ignored", param="sort", value=raw)
        return None


def create_app(
    engine: SearchEngine,
    profiles: ProfileStore | None = None,
    cors_origins: list[str] | None = None,
    client: CTGovClient | None = None,
) -> FastAPI:
    """Build the API around an already-wired SearchEngine.

    When client is given it is closed on application shutdown.
    """

    @asynccontextmanager
    async def lifespan(_app: FastAPI):
        yield
        if client is not None:
            await client.aclose()

    app = FastAPI(
        title="trialfinder",
        description="Patient-facing clinical trial search over ClinicalTrials.gov.",
        version=__version__,
        lifespan=lifespan,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins or ["*"],
        allow_methods=["GET"],
        allow_headers=["*"],
    )

    @app.exception_handler(RegistryUnavailable)
    async def _registry_unavailable(_request: Request, exc: RegistryUnavailable):
        logger.error("registry_unavailable", error=str(exc), status=exc.status_code)
        return JSONResponse(status_code=502, content={"error": REGISTRY_ERROR})

    @app.exception_handler(StudyNotFound)
    async def _study_not_found(_request: Request, exc: StudyNotFound):
        return JSONResponse(status_code=404, content={"error": "Study not found"})

    @app.exception_handler(Exception)
    async def _unhandled(_request: Request, exc: Exception):
        logger.exception("search_failed", error=str(exc))
        return JSONResponse(status_code=500, content={"error": GENERIC_ERROR})

    @app.get("/health")
    async def health():
        return {"status": "ok", "service": "trialfinder", "version": __version__}

    @app.get("/search", response_model=SearchResult)
    async def search(
        request: Request,
        condition: str | None = None,
        location: str | None = None,
        radius: str | None = None,
        age: str | None = None,
        gender: str | None = None,
        phase: str | None = None,
        status: list[str] | None = Query(default=None),
        sort: str | None = None,
        page_token: str | None = Query(default=None, alias="pageToken"),
    ):
        sort_mode = _parse_sort(sort)
        criteria = SearchCriteria(
            condition=condition,
            location_zip=location,
            radius_miles=_optional_number("radius", radius),
            min_age=_optional_number("age", age),
            gender=gender,
            phase=phase,
            statuses=status,
            sort_mode=sort_mode or SortMode.RECENT,
            page_token=page_token,
        )

        user_id = current_user(request)
        if user_id is not None and profiles is not None:
            criteria = apply_profile_defaults(
                criteria, profiles.get_profile(user_id), sort_given=sort_mode is not None
            )

        return await engine.search(criteria)

    @app.get("/studies/{nct_id}", response_model=NormalizedTrial)
    async def get_study(nct_id: str, location: str | None = None):
        nct_id = nct_id.strip().upper()
        if not _NCT_ID.match(nct_id):
            return JSONResponse(status_code=400, content={"error": "Invalid NCT ID"})
        trial = await engine.get_trial(nct_id, location_zip=location)
        if trial is None:
            raise StudyNotFound(nct_id)
        return trial

    return app
