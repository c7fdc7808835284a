"""SQLAlchemy database models and setup."""

import json
from datetime import datetime
from typing import Optional

from sqlalchemy import (
    Column,
    Integer,
    String,
    Float,
    Boolean,
    DateTime,
    Text,
    Index,
    create_engine,
)
from sqlalchemy.orm import declarative_base, sessionmaker, Session

from leadtrace.config import settings

Base = declarative_base()


class DBEnrichmentCache(Base):
    """Identity and company data per IP address or company domain."""

    __tablename__ = "enrichment_cache"

    id = Column(Integer, primary_key=True, autoincrement=True)
    cache_key = Column(String(255), nullable=False)
    key_kind = Column(String(20), nullable=False, default="ip")

    ip_address = Column(String(64))
    company_domain = Column(String(255), index=True)
    company_name = Column(String(500))

    # Address
    address = Column(String(500))
    postal_code = Column(String(20))
    city = Column(String(200))
    country = Column(String(100))
    latitude = Column(Float)
    longitude = Column(Float)
    category = Column(String(200))

    # Contacts
    phone = Column(String(50))
    email = Column(String(255))
    linkedin_url = Column(String(1000))
    facebook_url = Column(String(1000))
    instagram_url = Column(String(1000))
    twitter_url = Column(String(1000))
    meta_description = Column(Text)

    # Identity
    confidence = Column(Float)
    confidence_reason = Column(Text)
    enrichment_source = Column(String(50))

    # Backoff state
    status = Column(String(30), nullable=False, default="empty")
    attempts = Column(Integer, nullable=False, default=0)
    last_error = Column(Text)
    enriched_at = Column(DateTime)
    next_allowed_at = Column(DateTime)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Advisory lock
    processing = Column(Boolean, nullable=False, default=False)
    processing_started_at = Column(DateTime)
    processing_lock_ttl_sec = Column(Integer, nullable=False, default=300)

    __table_args__ = (
        Index("idx_enrichment_key", "key_kind", "cache_key", unique=True),
        Index("idx_enrichment_status", "status"),
    )


class DBPeopleCache(Base):
    """Team page scrape per company domain."""

    __tablename__ = "people_cache"

    id = Column(Integer, primary_key=True, autoincrement=True)
    company_domain = Column(String(255), unique=True, nullable=False, index=True)
    status = Column(String(30), nullable=False, default="empty")

    people = Column(Text)  # JSON array of Person
    people_count = Column(Integer, nullable=False, default=0)
    team_page_url = Column(String(1000))
    team_page_hash = Column(String(64))
    etag = Column(String(255))
    last_modified = Column(String(100))
    evidence_urls = Column(Text)  # JSON array
    detection_reason = Column(Text)
    source_quality = Column(Integer, nullable=False, default=0)

    last_verified = Column(DateTime)
    ttl_days = Column(Integer, nullable=False, default=14)
    retry_count = Column(Integer, nullable=False, default=0)
    next_allowed_crawl_at = Column(DateTime)
    last_error = Column(Text)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    processing = Column(Boolean, nullable=False, default=False)
    processing_started_at = Column(DateTime)
    processing_lock_ttl_sec = Column(Integer, nullable=False, default=300)

    def get_people(self) -> list[dict]:
        return json.loads(self.people) if self.people else []

    def set_people(self, people: list[dict]):
        self.people = json.dumps(people)

    def get_evidence_urls(self) -> list[str]:
        return json.loads(self.evidence_urls) if self.evidence_urls else []

    def set_evidence_urls(self, urls: list[str]):
        self.evidence_urls = json.dumps(urls)


class DBEnrichmentJob(Base):
    """Queued enrichment request for an IP."""

    __tablename__ = "enrichment_queue"

    id = Column(Integer, primary_key=True, autoincrement=True)
    ip_address = Column(String(64), nullable=False, index=True)
    status = Column(String(30), nullable=False, default="pending")  # pending, running, done, error, failed_permanent
    attempts = Column(Integer, nullable=False, default=0)
    payload = Column(Text)  # JSON dict
    error_text = Column(Text)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (Index("idx_queue_status", "status", "created_at"),)

    def get_payload(self) -> dict:
        return json.loads(self.payload) if self.payload else {}

    def set_payload(self, payload: dict):
        self.payload = json.dumps(payload)


class DBFormSubmission(Base):
    """Form email submitted from a visitor IP."""

    __tablename__ = "form_submissions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    ip_address = Column(String(64), nullable=False, index=True)
    email = Column(String(255), nullable=False)
    domain = Column(String(255), nullable=False)
    site_id = Column(String(100))
    submitted_at = Column(DateTime, default=datetime.utcnow)


class DBFaviconIndex(Base):
    """Known favicon fingerprints."""

    __tablename__ = "favicon_index"

    id = Column(Integer, primary_key=True, autoincrement=True)
    favicon_hash = Column(String(64), unique=True, nullable=False, index=True)
    domain = Column(String(255), nullable=False)
    added_at = Column(DateTime, default=datetime.utcnow)


# Database initialization
def init_db(db_url: Optional[str] = None) -> sessionmaker:
    """Initialize database and return session maker."""
    url = db_url or settings.database_url
    engine = create_engine(url, echo=False)
    Base.metadata.create_all(engine)
    return sessionmaker(bind=engine)


def get_session() -> Session:
    """Get a new database session."""
    SessionLocal = init_db()
    return SessionLocal()
