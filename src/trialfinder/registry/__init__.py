"""REGISTRY module: SearchCriteria -> CT.gov API v2 -> NormalizedTrial list.

Public API:
  CTGovClient.fetch_page() — one page of raw studies
  normalize_studies()      — flatten raw studies into NormalizedTrial
"""

from trialfinder.registry.ctgov_client import CTGovClient, RegistryPage
from trialfinder.registry.normalizer import normalize_studies, normalize_study

__all__ = [
    "CTGovClient",
    "RegistryPage",
    "normalize_studies",
    "normalize_study",
]
