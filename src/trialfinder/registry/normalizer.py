"""Flatten CT.gov v2 study documents into NormalizedTrial records.

Registry modules are populated inconsistently across studies, so each
module has its own tolerant reader that defaults every missing piece.
Nothing upstream-shaped leaks past this module.
"""

from __future__ import annotations

from typing import Any

import structlog

from trialfinder.geo.distance import coordinates_of
from trialfinder.schema import AgeRange, NormalizedTrial, Site

logger = structlog.get_logger()

UNTITLED = "Untitled study"

_PHASE_LABELS: dict[str, str] = {
    "EARLY_PHASE1": "Early Phase 1",
    "PHASE1": "Phase 1",
    "PHASE2": "Phase 2",
    "PHASE3": "Phase 3",
    "PHASE4": "Phase 4",
    "NA": "Not Applicable",
}


def _dict(value: Any) -> dict:
    return value if isinstance(value, dict) else {}


def _str(value: Any) -> str:
    return value.strip() if isinstance(value, str) else ""


def _str_list(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [v.strip() for v in value if isinstance(v, str) and v.strip()]


def phase_label(raw: str) -> str:
    """'PHASE3' -> 'Phase 3'; unknown labels pass through unchanged."""
    return _PHASE_LABELS.get(raw.strip().upper(), raw.strip())


def _read_identification(proto: dict) -> tuple[str, str]:
    id_mod = _dict(proto.get("identificationModule"))
    title = _str(id_mod.get("briefTitle")) or _str(id_mod.get("officialTitle")) or UNTITLED
    return _str(id_mod.get("nctId")), title


def _read_status(proto: dict) -> tuple[str, str | None, str | None]:
    status_mod = _dict(proto.get("statusModule"))
    start = _str(_dict(status_mod.get("startDateStruct")).get("date")) or None
    updated = _str(status_mod.get("lastUpdateSubmitDate")) or None
    if updated is None:
        # Some payloads only carry the posted-date struct
        updated = _str(_dict(status_mod.get("lastUpdatePostDateStruct")).get("date")) or None
    return _str(status_mod.get("overallStatus")), start, updated


def _read_conditions(proto: dict) -> list[str]:
    return _str_list(_dict(proto.get("conditionsModule")).get("conditions"))


def _read_phases(proto: dict) -> list[str]:
    return [phase_label(p) for p in _str_list(_dict(proto.get("designModule")).get("phases"))]


def _read_eligibility(proto: dict) -> tuple[AgeRange, str | None]:
    elig_mod = _dict(proto.get("eligibilityModule"))
    ages = AgeRange(min=_str(elig_mod.get("minimumAge")), max=_str(elig_mod.get("maximumAge")))
    sex = _str(elig_mod.get("sex"))
    return ages, (sex if sex and sex.upper() != "ALL" else None)


def _read_locations(proto: dict) -> list[Site]:
    raw_locations = _dict(proto.get("contactsLocationsModule")).get("locations")
    if not isinstance(raw_locations, list):
        return []
    sites = []
    for loc in raw_locations:
        if not isinstance(loc, dict):
            continue
        sites.append(
            Site(
                facility=_str(loc.get("facility")),
                city=_str(loc.get("city")),
                state=_str(loc.get("state")),
                country=_str(loc.get("country")),
                geo_point=coordinates_of(loc),
            )
        )
    return sites


def normalize_study(study: dict) -> NormalizedTrial | None:
    """Flatten one study; None when it has no NCT ID to key on."""
    proto = _dict(_dict(study).get("protocolSection"))
    nct_id, title = _read_identification(proto)
    if not nct_id:
        logger.warning("normalize_skipped_study", reason="missing_nct_id")
        return None
    status, start_date, last_update = _read_status(proto)
    age_range, gender = _read_eligibility(proto)
    return NormalizedTrial(
        id=nct_id,
        title=title,
        status=status,
        conditions=_read_conditions(proto),
        locations=_read_locations(proto),
        start_date=start_date,
        last_update_date=last_update,
        phase=_read_phases(proto),
        age_range=age_range,
        gender=gender,
    )


def normalize_studies(studies: list[dict]) -> list[NormalizedTrial]:
    """Flatten a page of studies, preserving registry order."""
    trials = []
    for study in studies:
        trial = normalize_study(study)
        if trial is not None:
            trials.append(trial)
    return trials
