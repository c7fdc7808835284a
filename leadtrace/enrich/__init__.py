"""Company website and team page enrichment."""

from .dedupe import PeopleDeduplicator
from .people import PeopleScraper, is_likely_person_name, is_likely_short_role
from .website import WebsiteScraper

__all__ = [
    "PeopleDeduplicator",
    "PeopleScraper",
    "WebsiteScraper",
    "is_likely_person_name",
    "is_likely_short_role",
]
