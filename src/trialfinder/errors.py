"""Error taxonomy for the search pipeline.

Only RegistryUnavailable (and StudyNotFound on the detail lookup) is meant
to reach a caller. The rest are absorbed where they are raised.
"""

from __future__ import annotations


class TrialFinderError(Exception):
    """Base class for all trialfinder errors."""


class InvalidInput(TrialFinderError, ValueError):
    """A request parameter could not be coerced (non-numeric radius, bad ZIP)."""


class RegistryUnavailable(TrialFinderError):
    """ClinicalTrials.gov could not be reached or returned an unusable response."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class StudyNotFound(TrialFinderError):
    """The registry has no study with the requested NCT ID."""


class CacheUnavailable(TrialFinderError):
    """The cache backing store failed; callers treat this as a miss."""
