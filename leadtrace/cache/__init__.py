"""Enrichment cache, write gates and backoff."""

from .backoff import BackoffPolicy, CacheState
from .improvement import is_improvement, is_people_improvement, merge_record
from .store import EnrichmentStore

__all__ = [
    "BackoffPolicy",
    "CacheState",
    "EnrichmentStore",
    "is_improvement",
    "is_people_improvement",
    "merge_record",
]
