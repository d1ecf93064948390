"""SEARCH module: criteria -> cache -> registry -> normalize -> rank.

Public API:
  SearchEngine.search() — full aggregation and ranking pipeline
"""

from trialfinder.search.cache import InMemoryBackend, SearchCache
from trialfinder.search.engine import SearchEngine
from trialfinder.schema import NormalizedTrial, SearchCriteria, SearchResult, SortMode

__all__ = [
    "InMemoryBackend",
    "NormalizedTrial",
    "SearchCache",
    "SearchCriteria",
    "SearchEngine",
    "SearchResult",
    "SortMode",
]
