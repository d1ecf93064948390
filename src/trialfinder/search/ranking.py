"""Local post-filters and sort modes applied after normalization.

All functions take and return new lists; trials themselves are never
modified.
"""

from __future__ import annotations

import re
from collections.abc import Sequence

from trialfinder.schema import NormalizedTrial, SortMode

# Keys are labels after _phase_key() normalization, so "Phase 3" and
# "PHASE3" share a rank.
PHASE_RANK: dict[str, float] = {
    "PHASE4": 4.0,
    "PHASE3": 3.0,
    "PHASE2": 2.0,
    "PHASE1": 1.0,
    "EARLYPHASE1": 0.5,
}

_DATE_PARTS = re.compile(r"^\s*(\d{4})(?:-(\d{1,2}))?(?:-(\d{1,2}))?")
_NON_ALNUM = re.compile(r"[^A-Z0-9]")


def _phase_key(label: str) -> str:
    return _NON_ALNUM.sub("", label.upper())


def phase_rank(phases: Sequence[str]) -> float:
    """Highest rank among a trial's phase labels; 0 when none are ranked."""
    return max((PHASE_RANK.get(_phase_key(p), 0.0) for p in phases), default=0.0)


def recency_key(trial: NormalizedTrial) -> tuple[int, int, int]:
    """(year, month, day) of the last update, falling back to start date.

    Missing parts count as 0, so "2024-05" sorts before "2024-05-01".
    Undated trials get (0, 0, 0) and land last in descending order.
    """
    date = trial.recency_date
    match = _DATE_PARTS.match(date) if date else None
    if not match:
        return (0, 0, 0)
    return tuple(int(part) if part else 0 for part in match.groups())  # type: ignore[return-value]


def filter_by_condition(trials: list[NormalizedTrial], term: str | None) -> list[NormalizedTrial]:
    """Keep trials whose conditions contain term, unless none do.

    When no trial matches locally the registry's own relevance wins and
    the list comes back unfiltered.
    """
    if not term or not term.strip():
        return list(trials)
    needle = term.strip().lower()
    matching = [t for t in trials if any(needle in c.lower() for c in t.conditions)]
    return matching if matching else list(trials)


def filter_by_radius(
    trials: list[NormalizedTrial], radius_miles: float | None, origin_resolved: bool
) -> list[NormalizedTrial]:
    """Drop trials farther than radius (inclusive bound) or without a distance."""
    if not origin_resolved or radius_miles is None or radius_miles <= 0:
        return list(trials)
    return [
        t
        for t in trials
        if t.nearest_distance_miles is not None and t.nearest_distance_miles <= radius_miles
    ]


def sort_by_recency(trials: list[NormalizedTrial]) -> list[NormalizedTrial]:
    # sorted() is stable under reverse=True, so ties keep registry order
    return sorted(trials, key=recency_key, reverse=True)


def sort_by_distance(trials: list[NormalizedTrial]) -> list[NormalizedTrial]:
    return sorted(
        trials,
        key=lambda t: (
            t.nearest_distance_miles is None,
            t.nearest_distance_miles if t.nearest_distance_miles is not None else 0.0,
        ),
    )


def sort_by_phase(trials: list[NormalizedTrial]) -> list[NormalizedTrial]:
    """Phase rank desc, then recency desc, then title asc."""
    ordered = sorted(trials, key=lambda t: t.title.lower())
    ordered.sort(key=recency_key, reverse=True)
    ordered.sort(key=lambda t: phase_rank(t.phase), reverse=True)
    return ordered


def effective_sort_mode(requested: SortMode, origin_resolved: bool) -> SortMode:
    """Distance ordering needs an origin; without one fall back to recent."""
    if requested == SortMode.DISTANCE and not origin_resolved:
        return SortMode.RECENT
    return requested


def rank_trials(
    trials: list[NormalizedTrial], sort_mode: SortMode, origin_resolved: bool
) -> list[NormalizedTrial]:
    mode = effective_sort_mode(sort_mode, origin_resolved)
    if mode == SortMode.DISTANCE:
        return sort_by_distance(trials)
    if mode == SortMode.PHASE:
        return sort_by_phase(trials)
    return sort_by_recency(trials)
