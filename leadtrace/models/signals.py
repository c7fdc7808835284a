"""Signal and identity models."""

import math
from enum import Enum
from typing import Any, NamedTuple, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from leadtrace.domains import normalize_domain


class SourceKind(str, Enum):
    """Evidentiary channel a signal came from."""

    REVERSE_DNS = "reverse_dns"
    TLS_CERT = "tls_cert"
    HTTP_FETCH = "http_fetch"
    FAVICON_HASH = "favicon_hash"
    HOST_HEADER = "host_header"
    GOOGLE_MAPS = "google_maps"
    WEBSITE_SCRAPE = "website_scrape"
    ISP_BASELINE = "isp_baseline"
    IPAPI_BASELINE = "ipapi_baseline"
    CACHE_REUSE = "cache_reuse"
    FORM_SUBMISSION = "form_submission"
    FINAL_LIKELY = "final_likely"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, value: Any) -> "SourceKind":
        """Map a raw tag onto a known source, falling back to UNKNOWN."""
        if isinstance(value, cls):
            return value
        if value is None:
            return cls.UNKNOWN
        tag = str(value).strip().lower()
        try:
            return cls(tag)
        except ValueError:
            return cls.UNKNOWN


def coerce_confidence(value: Any) -> float:
    """Coerce a raw confidence into [0, 1]; garbage becomes 0."""
    if isinstance(value, bool):
        return 0.0
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    if not math.isfinite(number):
        return 0.0
    return min(1.0, max(0.0, number))


class DomainSignal(BaseModel):
    """One collector's guess at the visitor's company domain."""

    domain: Optional[str] = Field(default=None, description="Normalized lowercase hostname")
    source: SourceKind = Field(default=SourceKind.UNKNOWN, description="Collector that produced the signal")
    confidence: float = Field(default=0.0, ge=0.0, le=1.0, description="Collector-local confidence")
    confidence_reason: Optional[str] = Field(default=None, description="Short justification")

    @field_validator("domain", mode="before")
    @classmethod
    def _normalize_domain(cls, value: Any) -> Optional[str]:
        if value is None:
            return None
        return normalize_domain(str(value)) or None

    @field_validator("source", mode="before")
    @classmethod
    def _parse_source(cls, value: Any) -> SourceKind:
        return SourceKind.parse(value)

    @field_validator("confidence", mode="before")
    @classmethod
    def _coerce_confidence(cls, value: Any) -> float:
        return coerce_confidence(value)

    @field_validator("confidence_reason", mode="before")
    @classmethod
    def _clean_reason(cls, value: Any) -> Optional[str]:
        if value is None:
            return None
        text = str(value).strip()
        return text or None


class FusedIdentity(BaseModel):
    """Best-guess identity for one visitor IP."""

    domain: Optional[str] = None
    enrichment_source: Optional[SourceKind] = None
    confidence: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    confidence_reason: Optional[str] = None

    @model_validator(mode="after")
    def _domain_and_confidence_together(self) -> "FusedIdentity":
        if (self.domain is None) != (self.confidence is None):
            raise ValueError("domain and confidence must be set together")
        return self

    def as_signal(self, source: SourceKind = SourceKind.CACHE_REUSE) -> DomainSignal:
        """Re-emit this identity as a signal, e.g. for cache reuse."""
        return DomainSignal(
            domain=self.domain,
            source=source,
            confidence=self.confidence,
            confidence_reason=self.confidence_reason,
        )


class HostnameClassification(NamedTuple):
    """Score and reason for a reverse-DNS hostname."""

    score: float
    reason: str


class BusinessLocation(BaseModel):
    """A business listing returned by a directory lookup."""

    name: Optional[str] = None
    address: Optional[str] = None
    phone: Optional[str] = None
    website: Optional[str] = None
    category: Optional[str] = None
    lat: float
    lon: float

    # Parsed address parts
    street: Optional[str] = None
    postal_code: Optional[str] = None
    city: Optional[str] = None
    country: Optional[str] = None


class GeoMatchResult(BaseModel):
    """Outcome of choosing one location among directory candidates."""

    match: BusinessLocation
    confidence: float
    reason: str
    selected_random_match: bool = False
    distance_m: Optional[float] = None
    random_seed: Optional[int] = Field(
        default=None,
        description="Seed used for a random tie-break, recorded for replay",
    )


class IpGeolocation(BaseModel):
    """Geolocation and registration data for an IP address."""

    ip: str
    hostname: Optional[str] = None
    city: Optional[str] = None
    region: Optional[str] = None
    country: Optional[str] = None
    postal_code: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    org: Optional[str] = None
    company_domain: Optional[str] = None
    asn_domain: Optional[str] = None

    @property
    def has_coordinates(self) -> bool:
        return self.latitude is not None and self.longitude is not None
