"""Persistent enrichment cache, people cache, queue and indexes."""

import logging
from datetime import datetime, timedelta
from enum import Enum
from typing import Optional

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from leadtrace.config import settings
from leadtrace.domains import email_domain, normalize_domain
from leadtrace.models import (
    EnrichmentCacheRecord,
    KeyKind,
    PeopleCacheRecord,
    Person,
)
from leadtrace.models.database import (
    DBEnrichmentCache,
    DBEnrichmentJob,
    DBFaviconIndex,
    DBFormSubmission,
    DBPeopleCache,
    init_db,
)
from .improvement import is_improvement, is_people_improvement, merge_record

logger = logging.getLogger(__name__)

# Written on every save; governed by the backoff state machine, not the gate
STATE_FIELDS = ("status", "attempts", "last_error", "enriched_at", "next_allowed_at")

CONTENT_FIELDS = (
    "ip_address", "company_domain", "company_name",
    "address", "postal_code", "city", "country", "latitude", "longitude", "category",
    "phone", "email", "linkedin_url", "facebook_url", "instagram_url", "twitter_url",
    "meta_description", "confidence", "confidence_reason", "enrichment_source",
)

PEOPLE_CONTENT_FIELDS = (
    "status", "people_count", "team_page_url", "team_page_hash", "etag", "last_modified",
    "detection_reason", "source_quality", "last_verified",
)

PEOPLE_STATE_FIELDS = ("retry_count", "next_allowed_crawl_at", "last_error")


def _column_value(value):
    return value.value if isinstance(value, Enum) else value


class EnrichmentStore:
    """All reads and writes of the cache tables.

    Content writes go through the improvement gate; state fields (status,
    attempts, retry times) always land. The ``processing`` flag is an
    advisory lock taken with a compare-and-set update that also succeeds
    when the previous holder's lock has outlived its TTL.
    """

    def __init__(self, session_factory: Optional[sessionmaker] = None, db_url: Optional[str] = None):
        self.Session = session_factory or init_db(db_url)

    # Enrichment cache

    def get(self, key: str, kind: KeyKind = KeyKind.IP) -> Optional[EnrichmentCacheRecord]:
        session = self.Session()
        try:
            row = self._enrichment_row(session, key, kind)
            return self._to_record(row) if row else None
        finally:
            session.close()

    def put(self, record: EnrichmentCacheRecord) -> bool:
        """Save a record; returns whether its content improved the cache."""
        session = self.Session()
        try:
            row = self._enrichment_row(session, record.cache_key, record.key_kind)
            old = self._to_record(row) if row else None

            improved = is_improvement(old, record)
            if row is None:
                row = DBEnrichmentCache(cache_key=record.cache_key, key_kind=record.key_kind.value)
                session.add(row)

            if improved:
                merged = merge_record(old, record)
                for name in CONTENT_FIELDS:
                    setattr(row, name, _column_value(getattr(merged, name)))
                logger.info(f"Cache {record.key_kind.value}:{record.cache_key} updated")
            else:
                logger.info(f"No improvement, cache {record.key_kind.value}:{record.cache_key} content unchanged")

            for name in STATE_FIELDS:
                setattr(row, name, _column_value(getattr(record, name)))

            session.commit()
            return improved
        finally:
            session.close()

    def acquire_lock(
        self,
        key: str,
        kind: KeyKind = KeyKind.IP,
        ttl_seconds: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> bool:
        """Take the processing lock for a key, creating the row if needed."""
        ttl_seconds = ttl_seconds or settings.lock_ttl_seconds
        now = now or datetime.utcnow()
        expired_before = now - timedelta(seconds=ttl_seconds)

        session = self.Session()
        try:
            if self._enrichment_row(session, key, kind) is None:
                session.add(DBEnrichmentCache(
                    cache_key=key,
                    key_kind=kind.value,
                    ip_address=key if kind == KeyKind.IP else None,
                    company_domain=key if kind == KeyKind.DOMAIN else None,
                ))
                try:
                    session.commit()
                except IntegrityError:
                    # Another worker created the row first
                    session.rollback()

            updated = (
                session.query(DBEnrichmentCache)
                .filter(
                    DBEnrichmentCache.cache_key == key,
                    DBEnrichmentCache.key_kind == kind.value,
                    or_(
                        DBEnrichmentCache.processing.is_(False),
                        DBEnrichmentCache.processing_started_at.is_(None),
                        DBEnrichmentCache.processing_started_at < expired_before,
                    ),
                )
                .update(
                    {
                        "processing": True,
                        "processing_started_at": now,
                        "processing_lock_ttl_sec": ttl_seconds,
                    },
                    synchronize_session=False,
                )
            )
            session.commit()

            if not updated:
                logger.info(f"{kind.value}:{key} is already being processed")
            return bool(updated)
        finally:
            session.close()

    def release_lock(self, key: str, kind: KeyKind = KeyKind.IP):
        session = self.Session()
        try:
            session.query(DBEnrichmentCache).filter_by(cache_key=key, key_kind=kind.value).update(
                {"processing": False, "processing_started_at": None},
                synchronize_session=False,
            )
            session.commit()
        finally:
            session.close()

    # People cache

    def get_people(self, domain: str) -> Optional[PeopleCacheRecord]:
        session = self.Session()
        try:
            row = session.query(DBPeopleCache).filter_by(company_domain=normalize_domain(domain)).first()
            return self._to_people_record(row) if row else None
        finally:
            session.close()

    def ensure_people(self, domain: str) -> PeopleCacheRecord:
        """Fetch the people record, creating an empty one that may crawl now."""
        domain = normalize_domain(domain)
        session = self.Session()
        try:
            row = session.query(DBPeopleCache).filter_by(company_domain=domain).first()
            if row is None:
                row = DBPeopleCache(
                    company_domain=domain,
                    status="empty",
                    people_count=0,
                    ttl_days=settings.people_ttl_days,
                )
                row.set_people([])
                session.add(row)
                session.commit()
            return self._to_people_record(row)
        finally:
            session.close()

    def put_people(self, record: PeopleCacheRecord) -> bool:
        """Save a people record behind the people improvement gate."""
        domain = normalize_domain(record.company_domain)
        session = self.Session()
        try:
            row = session.query(DBPeopleCache).filter_by(company_domain=domain).first()
            old = self._to_people_record(row) if row else None
            improved = is_people_improvement(old, record)

            if row is None:
                row = DBPeopleCache(company_domain=domain)
                session.add(row)

            if improved:
                for name in PEOPLE_CONTENT_FIELDS:
                    setattr(row, name, _column_value(getattr(record, name)))
                row.set_people([p.model_dump() for p in record.people])
                row.set_evidence_urls(record.evidence_urls)
                logger.info(f"People cache for {domain} updated ({record.people_count} people)")
            else:
                # Housekeeping only
                row.detection_reason = record.detection_reason
                row.source_quality = max(old.source_quality, record.source_quality)
                row.last_verified = record.last_verified or old.last_verified
                logger.info(f"No improvement, people cache for {domain} unchanged")

            for name in PEOPLE_STATE_FIELDS:
                setattr(row, name, getattr(record, name))

            session.commit()
            return improved
        finally:
            session.close()

    def acquire_people_lock(
        self,
        domain: str,
        ttl_seconds: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> bool:
        ttl_seconds = ttl_seconds or settings.lock_ttl_seconds
        now = now or datetime.utcnow()
        expired_before = now - timedelta(seconds=ttl_seconds)
        domain = normalize_domain(domain)

        self.ensure_people(domain)
        session = self.Session()
        try:
            updated = (
                session.query(DBPeopleCache)
                .filter(
                    DBPeopleCache.company_domain == domain,
                    or_(
                        DBPeopleCache.processing.is_(False),
                        DBPeopleCache.processing_started_at.is_(None),
                        DBPeopleCache.processing_started_at < expired_before,
                    ),
                )
                .update(
                    {
                        "processing": True,
                        "processing_started_at": now,
                        "processing_lock_ttl_sec": ttl_seconds,
                    },
                    synchronize_session=False,
                )
            )
            session.commit()
            return bool(updated)
        finally:
            session.close()

    def release_people_lock(self, domain: str):
        session = self.Session()
        try:
            session.query(DBPeopleCache).filter_by(company_domain=normalize_domain(domain)).update(
                {"processing": False, "processing_started_at": None},
                synchronize_session=False,
            )
            session.commit()
        finally:
            session.close()

    # Queue

    def enqueue(self, ip: str, payload: Optional[dict] = None) -> int:
        """Queue an IP for enrichment; an already pending job is reused."""
        session = self.Session()
        try:
            job = (
                session.query(DBEnrichmentJob)
                .filter(
                    DBEnrichmentJob.ip_address == ip,
                    DBEnrichmentJob.status.in_(["pending", "running"]),
                )
                .first()
            )
            if job is None:
                job = DBEnrichmentJob(ip_address=ip, status="pending", attempts=0)
                job.set_payload(payload or {})
                session.add(job)
                session.commit()
                logger.info(f"Queued enrichment job {job.id} for {ip}")
            return job.id
        finally:
            session.close()

    def claim_jobs(self, batch: Optional[int] = None, max_attempts: Optional[int] = None) -> list[dict]:
        """Mark up to ``batch`` retryable jobs as running and return them.

        Each job is claimed with its own compare-and-set so that two workers
        never process the same job.
        """
        batch = batch or settings.queue_batch_size
        max_attempts = max_attempts or settings.max_attempts

        session = self.Session()
        try:
            candidates = (
                session.query(DBEnrichmentJob)
                .filter(
                    DBEnrichmentJob.status.in_(["pending", "error"]),
                    DBEnrichmentJob.attempts < max_attempts,
                )
                .order_by(DBEnrichmentJob.created_at.asc(), DBEnrichmentJob.id.asc())
                .limit(batch)
                .all()
            )

            claimed = []
            now = datetime.utcnow()
            for job in candidates:
                updated = (
                    session.query(DBEnrichmentJob)
                    .filter(DBEnrichmentJob.id == job.id, DBEnrichmentJob.status == job.status)
                    .update({"status": "running", "updated_at": now}, synchronize_session=False)
                )
                if updated:
                    claimed.append({
                        "id": job.id,
                        "ip_address": job.ip_address,
                        "attempts": job.attempts,
                        "payload": job.get_payload(),
                    })
            session.commit()
            return claimed
        finally:
            session.close()

    def complete_job(self, job_id: int):
        self._update_job(job_id, {"status": "done", "error_text": None})

    def fail_job(self, job_id: int, error: str, max_attempts: Optional[int] = None) -> str:
        """Record a failed attempt; returns the job's new status."""
        max_attempts = max_attempts or settings.max_attempts
        session = self.Session()
        try:
            job = session.query(DBEnrichmentJob).filter_by(id=job_id).first()
            if job is None:
                return "missing"
            job.attempts = (job.attempts or 0) + 1
            job.status = "failed_permanent" if job.attempts >= max_attempts else "error"
            job.error_text = error
            job.updated_at = datetime.utcnow()
            session.commit()
            return job.status
        finally:
            session.close()

    def cleanup_jobs(self, days: Optional[int] = None, now: Optional[datetime] = None) -> int:
        """Delete permanently failed jobs not touched for ``days`` days."""
        days = days if days is not None else settings.queue_cleanup_days
        cutoff = (now or datetime.utcnow()) - timedelta(days=days)

        session = self.Session()
        try:
            removed = (
                session.query(DBEnrichmentJob)
                .filter(
                    DBEnrichmentJob.status == "failed_permanent",
                    DBEnrichmentJob.updated_at < cutoff,
                )
                .delete(synchronize_session=False)
            )
            session.commit()
            if removed:
                logger.info(f"Cleanup removed {removed} old failed_permanent jobs")
            return removed
        finally:
            session.close()

    def get_job(self, job_id: int) -> Optional[dict]:
        session = self.Session()
        try:
            job = session.query(DBEnrichmentJob).filter_by(id=job_id).first()
            if job is None:
                return None
            return {
                "id": job.id,
                "ip_address": job.ip_address,
                "status": job.status,
                "attempts": job.attempts,
                "error_text": job.error_text,
            }
        finally:
            session.close()

    # Form submissions

    def add_form_submission(self, ip: str, email: str, site_id: Optional[str] = None) -> Optional[str]:
        """Store a submission; returns its email domain, or None if the email is invalid."""
        email = (email or "").strip().lower()
        domain = email_domain(email)
        if not domain:
            return None

        session = self.Session()
        try:
            session.add(DBFormSubmission(ip_address=ip, email=email, domain=domain, site_id=site_id))
            session.commit()
            return domain
        finally:
            session.close()

    def latest_form_email(self, ip: str) -> Optional[str]:
        session = self.Session()
        try:
            row = (
                session.query(DBFormSubmission)
                .filter_by(ip_address=ip)
                .order_by(DBFormSubmission.submitted_at.desc(), DBFormSubmission.id.desc())
                .first()
            )
            return row.email if row else None
        finally:
            session.close()

    # Favicon index

    def add_favicon(self, favicon_hash: str, domain: str):
        session = self.Session()
        try:
            row = session.query(DBFaviconIndex).filter_by(favicon_hash=favicon_hash).first()
            if row is None:
                row = DBFaviconIndex(favicon_hash=favicon_hash)
                session.add(row)
            row.domain = normalize_domain(domain)
            session.commit()
        finally:
            session.close()

    def favicon_domain(self, favicon_hash: str) -> Optional[str]:
        session = self.Session()
        try:
            row = session.query(DBFaviconIndex).filter_by(favicon_hash=favicon_hash).first()
            return row.domain if row else None
        finally:
            session.close()

    # Helpers

    def _update_job(self, job_id: int, values: dict):
        session = self.Session()
        try:
            values["updated_at"] = datetime.utcnow()
            session.query(DBEnrichmentJob).filter_by(id=job_id).update(values, synchronize_session=False)
            session.commit()
        finally:
            session.close()

    @staticmethod
    def _enrichment_row(session: Session, key: str, kind: KeyKind) -> Optional[DBEnrichmentCache]:
        return session.query(DBEnrichmentCache).filter_by(cache_key=key, key_kind=kind.value).first()

    @staticmethod
    def _to_record(row: DBEnrichmentCache) -> EnrichmentCacheRecord:
        return EnrichmentCacheRecord.model_validate(row, from_attributes=True)

    @staticmethod
    def _to_people_record(row: DBPeopleCache) -> PeopleCacheRecord:
        return PeopleCacheRecord(
            company_domain=row.company_domain,
            status=row.status or "empty",
            people=[Person.model_validate(p) for p in row.get_people()],
            people_count=row.people_count or 0,
            team_page_url=row.team_page_url,
            team_page_hash=row.team_page_hash,
            etag=row.etag,
            last_modified=row.last_modified,
            evidence_urls=row.get_evidence_urls(),
            detection_reason=row.detection_reason,
            source_quality=row.source_quality or 0,
            last_verified=row.last_verified,
            ttl_days=row.ttl_days or settings.people_ttl_days,
            retry_count=row.retry_count or 0,
            next_allowed_crawl_at=row.next_allowed_crawl_at,
            last_error=row.last_error,
            processing=bool(row.processing),
            processing_started_at=row.processing_started_at,
            processing_lock_ttl_sec=row.processing_lock_ttl_sec or settings.lock_ttl_seconds,
        )
