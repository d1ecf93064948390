"""Profile and identity collaborators consumed by the search API.

Accounts, sessions and profile persistence live outside this service.
The API only needs two things from them: who is calling, and what
search defaults that caller saved.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Protocol

import structlog
import yaml
from fastapi import Request
from pydantic import BaseModel

from trialfinder.schema import SearchCriteria, SortMode

logger = structlog.get_logger()

USER_HEADER = "X-User-Id"


class Profile(BaseModel):
    """Saved search preferences. Every field is optional."""

    zip: str | None = None
    radius: float | None = None
    age: float | None = None
    gender: str | None = None
    phase: str | None = None


class ProfileStore(Protocol):
    def get_profile(self, user_id: str) -> Profile | None: ...


class InMemoryProfileStore:
    """Dict-backed store; also the loader target for profile files."""

    def __init__(self, profiles: dict[str, Profile] | None = None):
        self._profiles = dict(profiles or {})

    @classmethod
    def from_file(cls, path: Path | str) -> InMemoryProfileStore:
        """Load {user_id: {zip, radius, age, gender, phase}} from YAML or JSON."""
        p = Path(path)
        with open(p) as f:
            data = json.load(f) if p.suffix == ".json" else yaml.safe_load(f)
        profiles = {str(uid): Profile.model_validate(raw or {}) for uid, raw in (data or {}).items()}
        logger.info("profiles_loaded", path=str(p), users=len(profiles))
        return cls(profiles)

    def get_profile(self, user_id: str) -> Profile | None:
        return self._profiles.get(user_id)

    def put_profile(self, user_id: str, profile: Profile) -> None:
        self._profiles[user_id] = profile


def current_user(request: Request) -> str | None:
    """Caller identity as asserted by the upstream session layer."""
    user_id = request.headers.get(USER_HEADER, "").strip()
    return user_id or None


def apply_profile_defaults(
    criteria: SearchCriteria, profile: Profile | None, sort_given: bool
) -> SearchCriteria:
    """Fill criteria fields the request left empty from the saved profile.

    Request values always win. A profile ZIP makes distance the default
    ordering when the request named none.
    """
    if profile is None:
        return criteria
    updates: dict = {}
    if criteria.location_zip is None and profile.zip:
        updates["location_zip"] = profile.zip
        if not sort_given:
            updates["sort_mode"] = SortMode.DISTANCE
    if criteria.radius_miles is None and profile.radius:
        updates["radius_miles"] = profile.radius
    if criteria.min_age is None and profile.age is not None:
        updates["min_age"] = profile.age
    if criteria.gender is None and profile.gender:
        updates["gender"] = profile.gender
    if criteria.phase is None and profile.phase:
        updates["phase"] = profile.phase
    if not updates:
        return criteria
    # Re-validate so profile values get the same cleaning as request values
    return SearchCriteria.model_validate({**criteria.model_dump(), **updates})
