"""trialfinder: patient-facing ClinicalTrials.gov search with distance ranking."""

__version__ = "0.1.0"
