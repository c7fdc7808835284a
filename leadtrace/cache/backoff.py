"""Per-key refresh and retry state machine."""

import logging
from datetime import datetime, timedelta
from enum import Enum
from typing import Optional

from leadtrace.config import settings
from leadtrace.models import EnrichmentCacheRecord, RecordStatus

logger = logging.getLogger(__name__)


class CacheState(str, Enum):
    """Where a cache key stands with respect to (re)enrichment.

    ``stale`` covers every key that is due: never enriched, past its TTL,
    or past its retry time.
    """

    FRESH = "fresh"
    STALE = "stale"
    RETRY_PENDING = "retry_pending"
    PERMANENTLY_FAILED = "permanently_failed"


class BackoffPolicy:
    """Refresh windows and exponential retry delays for one kind of record.

    Success schedules the next refresh ``ttl`` ahead. Each failure waits
    ``min(max_delay, 2^attempts * base)``. Errors past ``max_attempts``
    become permanent; a no-match outcome keeps backing off but never does.
    """

    def __init__(
        self,
        ttl: Optional[timedelta] = None,
        base_delay: Optional[timedelta] = None,
        max_delay: Optional[timedelta] = None,
        max_attempts: Optional[int] = None,
    ):
        self.ttl = ttl or timedelta(days=settings.identity_ttl_days)
        self.base_delay = base_delay or timedelta(minutes=settings.retry_base_minutes)
        self.max_delay = max_delay or timedelta(minutes=settings.retry_max_minutes)
        self.max_attempts = max_attempts or settings.max_attempts

    @classmethod
    def for_people(cls) -> "BackoffPolicy":
        return cls(ttl=timedelta(days=settings.people_ttl_days))

    def retry_delay(self, attempts: int) -> timedelta:
        return min(self.max_delay, self.base_delay * (2 ** max(0, attempts)))

    def next_retry_at(self, attempts: int, now: Optional[datetime] = None) -> datetime:
        return (now or datetime.utcnow()) + self.retry_delay(attempts)

    def next_refresh_at(self, now: Optional[datetime] = None, ttl: Optional[timedelta] = None) -> datetime:
        return (now or datetime.utcnow()) + (ttl or self.ttl)

    def state(
        self,
        status: RecordStatus,
        next_allowed_at: Optional[datetime],
        now: Optional[datetime] = None,
        attempts: int = 0,
    ) -> CacheState:
        """Classify a key; waiting after a success is fresh, any other wait is a retry."""
        now = now or datetime.utcnow()

        if status == RecordStatus.FAILED_PERMANENT:
            return CacheState.PERMANENTLY_FAILED

        if next_allowed_at is not None and now < next_allowed_at:
            if status == RecordStatus.FRESH and attempts == 0:
                return CacheState.FRESH
            return CacheState.RETRY_PENDING

        return CacheState.STALE

    def state_of(self, record: Optional[EnrichmentCacheRecord], now: Optional[datetime] = None) -> CacheState:
        if record is None:
            return CacheState.STALE
        return self.state(record.status, record.next_allowed_at, now, record.attempts)

    def should_enrich(
        self,
        record: Optional[EnrichmentCacheRecord],
        force: bool = False,
        now: Optional[datetime] = None,
    ) -> bool:
        """Whether an enrichment attempt is allowed now; ``force`` skips the schedule."""
        return force or self.state_of(record, now) == CacheState.STALE

    # Transitions

    def on_success(self, record: EnrichmentCacheRecord, now: Optional[datetime] = None) -> EnrichmentCacheRecord:
        now = now or datetime.utcnow()
        return record.model_copy(update={
            "status": RecordStatus.FRESH,
            "attempts": 0,
            "last_error": None,
            "enriched_at": now,
            "next_allowed_at": self.next_refresh_at(now),
        })

    def on_no_match(self, record: EnrichmentCacheRecord, now: Optional[datetime] = None) -> EnrichmentCacheRecord:
        now = now or datetime.utcnow()
        attempts = record.attempts + 1
        status = record.status if record.status.tier > RecordStatus.NO_MATCH.tier else RecordStatus.NO_MATCH
        return record.model_copy(update={
            "status": status,
            "attempts": attempts,
            "last_error": None,
            "next_allowed_at": self.next_retry_at(attempts, now),
        })

    def on_failure(
        self,
        record: EnrichmentCacheRecord,
        error: str,
        now: Optional[datetime] = None,
    ) -> EnrichmentCacheRecord:
        now = now or datetime.utcnow()
        attempts = record.attempts + 1

        if attempts >= self.max_attempts:
            logger.warning(f"Giving up on {record.cache_key} after {attempts} attempts: {error}")
            return record.model_copy(update={
                "status": RecordStatus.FAILED_PERMANENT,
                "attempts": attempts,
                "last_error": error,
                "next_allowed_at": None,
            })

        status = RecordStatus.ERROR if record.status == RecordStatus.EMPTY else record.status
        return record.model_copy(update={
            "status": status,
            "attempts": attempts,
            "last_error": error,
            "next_allowed_at": self.next_retry_at(attempts, now),
        })
