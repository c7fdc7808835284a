"""Cache record and enrichment result models."""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from .signals import FusedIdentity, IpGeolocation, SourceKind


class RecordStatus(str, Enum):
    """Lifecycle status of a cache record, ordered by tier."""

    EMPTY = "empty"
    ERROR = "error"
    FAILED_PERMANENT = "failed_permanent"
    BLOCKED = "blocked"
    NO_MATCH = "no_match"
    NO_TEAM = "no_team"
    STALE = "stale"
    FRESH = "fresh"

    @property
    def tier(self) -> int:
        return STATUS_TIERS[self]


STATUS_TIERS = {
    RecordStatus.EMPTY: 0,
    RecordStatus.ERROR: 1,
    RecordStatus.FAILED_PERMANENT: 1,
    RecordStatus.BLOCKED: 2,
    RecordStatus.NO_MATCH: 3,
    RecordStatus.NO_TEAM: 3,
    RecordStatus.STALE: 4,
    RecordStatus.FRESH: 5,
}

# Company fields whose appearance counts as an improvement
CONTACT_FIELDS = (
    "company_name",
    "address",
    "postal_code",
    "city",
    "country",
    "latitude",
    "longitude",
    "category",
    "phone",
    "email",
    "linkedin_url",
    "facebook_url",
    "instagram_url",
    "twitter_url",
    "meta_description",
)


class KeyKind(str, Enum):
    IP = "ip"
    DOMAIN = "domain"


class EnrichmentCacheRecord(BaseModel):
    """Persisted identity and company data for an IP or a domain."""

    cache_key: str = Field(description="IP address or company domain")
    key_kind: KeyKind = KeyKind.IP

    ip_address: Optional[str] = None
    company_domain: Optional[str] = None
    company_name: Optional[str] = None

    # Address
    address: Optional[str] = None
    postal_code: Optional[str] = None
    city: Optional[str] = None
    country: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    category: Optional[str] = None

    # Contacts
    phone: Optional[str] = None
    email: Optional[str] = None
    linkedin_url: Optional[str] = None
    facebook_url: Optional[str] = None
    instagram_url: Optional[str] = None
    twitter_url: Optional[str] = None
    meta_description: Optional[str] = None

    # Identity
    confidence: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    confidence_reason: Optional[str] = None
    enrichment_source: Optional[SourceKind] = None

    # Backoff state
    status: RecordStatus = RecordStatus.EMPTY
    attempts: int = 0
    last_error: Optional[str] = None
    enriched_at: Optional[datetime] = None
    next_allowed_at: Optional[datetime] = None

    # Advisory lock
    processing: bool = False
    processing_started_at: Optional[datetime] = None
    processing_lock_ttl_sec: int = 300

    def identity(self) -> Optional[FusedIdentity]:
        """The stored identity, if one was resolved."""
        if not self.company_domain or self.confidence is None:
            return None
        return FusedIdentity(
            domain=self.company_domain,
            enrichment_source=self.enrichment_source or SourceKind.FINAL_LIKELY,
            confidence=self.confidence,
            confidence_reason=self.confidence_reason,
        )

    def has_company_info(self) -> bool:
        return any([self.address, self.city, self.postal_code, self.phone])


class Person(BaseModel):
    """A person found on a team/about page."""

    full_name: str
    role_title: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    linkedin_url: Optional[str] = None
    photo_url: Optional[str] = None
    evidence: list[str] = Field(default_factory=list, exclude=True)

    def signal_count(self) -> int:
        return sum(
            1 for value in (self.role_title, self.linkedin_url, self.photo_url, self.email, self.phone)
            if value
        )


class PeopleScrapeResult(BaseModel):
    """Outcome of scraping one company domain for team members."""

    accept: bool = False
    url: Optional[str] = None
    people: list[Person] = Field(default_factory=list)
    detection_reason: Optional[str] = None
    source_quality: int = Field(default=0, ge=0, le=3)
    team_page_hash: Optional[str] = None
    etag: Optional[str] = None
    last_modified: Optional[str] = None
    evidence_urls: list[str] = Field(default_factory=list)

    @property
    def people_count(self) -> int:
        return len(self.people)


class PeopleCacheRecord(BaseModel):
    """Persisted team-page scrape for a company domain."""

    company_domain: str
    status: RecordStatus = RecordStatus.EMPTY
    people: list[Person] = Field(default_factory=list)
    people_count: int = 0
    team_page_url: Optional[str] = None
    team_page_hash: Optional[str] = None
    etag: Optional[str] = None
    last_modified: Optional[str] = None
    evidence_urls: list[str] = Field(default_factory=list)
    detection_reason: Optional[str] = None
    source_quality: int = 0
    last_verified: Optional[datetime] = None
    ttl_days: int = 14
    retry_count: int = 0
    next_allowed_crawl_at: Optional[datetime] = None
    last_error: Optional[str] = None

    processing: bool = False
    processing_started_at: Optional[datetime] = None
    processing_lock_ttl_sec: int = 300


class WebsiteContacts(BaseModel):
    """Contact details scraped from a company homepage."""

    phone: Optional[str] = None
    email: Optional[str] = None
    linkedin_url: Optional[str] = None
    facebook_url: Optional[str] = None
    instagram_url: Optional[str] = None
    twitter_url: Optional[str] = None
    meta_description: Optional[str] = None


class VisitorContext(BaseModel):
    """Everything collectors know about one visitor at collection time."""

    ip: str
    geo: Optional[IpGeolocation] = None
    candidate_domains: list[str] = Field(default_factory=list)
    known: Optional[EnrichmentCacheRecord] = Field(
        default=None,
        description="Previously cached record for this IP",
    )

    @property
    def latitude(self) -> Optional[float]:
        return self.geo.latitude if self.geo else None

    @property
    def longitude(self) -> Optional[float]:
        return self.geo.longitude if self.geo else None
