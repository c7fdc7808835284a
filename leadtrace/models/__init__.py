"""Data models for leadtrace."""

from .signals import (
    SourceKind,
    DomainSignal,
    FusedIdentity,
    HostnameClassification,
    BusinessLocation,
    GeoMatchResult,
    IpGeolocation,
)
from .enrichment import (
    RecordStatus,
    KeyKind,
    EnrichmentCacheRecord,
    Person,
    PeopleScrapeResult,
    PeopleCacheRecord,
    WebsiteContacts,
    VisitorContext,
)

__all__ = [
    "SourceKind",
    "DomainSignal",
    "FusedIdentity",
    "HostnameClassification",
    "BusinessLocation",
    "GeoMatchResult",
    "IpGeolocation",
    "RecordStatus",
    "KeyKind",
    "EnrichmentCacheRecord",
    "Person",
    "PeopleScrapeResult",
    "PeopleCacheRecord",
    "WebsiteContacts",
    "VisitorContext",
]
