"""Tests for the SQLite-backed enrichment store."""

from datetime import datetime, timedelta

from leadtrace.models import (
    EnrichmentCacheRecord,
    KeyKind,
    PeopleCacheRecord,
    Person,
    RecordStatus,
    SourceKind,
)

NOW = datetime(2024, 3, 1, 12, 0, 0)
IP = "203.0.113.7"


def make_record(**kwargs) -> EnrichmentCacheRecord:
    """Create a cache record with defaults."""
    defaults = {"cache_key": IP, "ip_address": IP}
    defaults.update(kwargs)
    return EnrichmentCacheRecord(**defaults)


class TestEnrichmentCache:
    """Tests for gated writes of identity records."""

    def test_missing_key(self, store):
        assert store.get(IP) is None

    def test_put_and_get(self, store):
        record = make_record(
            company_domain="acme.nl",
            confidence=0.96,
            enrichment_source=SourceKind.FINAL_LIKELY,
            city="Utrecht",
            status=RecordStatus.FRESH,
            next_allowed_at=NOW,
        )
        assert store.put(record)

        stored = store.get(IP)
        assert stored.company_domain == "acme.nl"
        assert stored.confidence == 0.96
        assert stored.enrichment_source == SourceKind.FINAL_LIKELY
        assert stored.city == "Utrecht"
        assert stored.status == RecordStatus.FRESH
        assert stored.next_allowed_at == NOW

    def test_ip_and_domain_keys_are_separate(self, store):
        store.put(make_record(company_domain="acme.nl", confidence=0.9))
        store.put(EnrichmentCacheRecord(cache_key="acme.nl", key_kind=KeyKind.DOMAIN, company_name="Acme"))

        assert store.get(IP).company_name is None
        assert store.get("acme.nl", KeyKind.DOMAIN).company_name == "Acme"
        assert store.get("acme.nl") is None

    def test_worse_content_is_not_written(self, store):
        store.put(make_record(company_domain="acme.nl", confidence=0.9, phone="+31 30 123 4567"))
        improved = store.put(make_record(company_domain="other.nl", confidence=0.5))

        assert not improved
        stored = store.get(IP)
        assert stored.company_domain == "acme.nl"
        assert stored.phone == "+31 30 123 4567"

    def test_state_fields_are_always_written(self, store):
        store.put(make_record(company_domain="acme.nl", confidence=0.9, status=RecordStatus.FRESH))
        retry_at = NOW + timedelta(minutes=30)
        improved = store.put(make_record(
            company_domain="acme.nl",
            confidence=0.9,
            status=RecordStatus.FRESH,
            attempts=2,
            last_error="timeout",
            next_allowed_at=retry_at,
        ))

        assert not improved
        stored = store.get(IP)
        assert stored.attempts == 2
        assert stored.last_error == "timeout"
        assert stored.next_allowed_at == retry_at

    def test_improvement_merges_fields(self, store):
        store.put(make_record(company_domain="acme.nl", confidence=0.9, phone="+31 30 123 4567"))
        store.put(make_record(company_domain="acme.nl", confidence=0.9, email="info@acme.nl"))

        stored = store.get(IP)
        assert stored.phone == "+31 30 123 4567"
        assert stored.email == "info@acme.nl"


class TestProcessingLock:
    """Tests for the compare-and-set advisory lock."""

    def test_lock_creates_row(self, store):
        assert store.acquire_lock(IP, now=NOW)
        record = store.get(IP)
        assert record.processing
        assert record.ip_address == IP
        assert record.status == RecordStatus.EMPTY

    def test_second_holder_is_refused(self, store):
        assert store.acquire_lock(IP, now=NOW)
        assert not store.acquire_lock(IP, now=NOW + timedelta(seconds=10))

    def test_release_allows_relock(self, store):
        store.acquire_lock(IP, now=NOW)
        store.release_lock(IP)
        assert not store.get(IP).processing
        assert store.acquire_lock(IP, now=NOW + timedelta(seconds=1))

    def test_expired_lock_can_be_taken(self, store):
        assert store.acquire_lock(IP, ttl_seconds=60, now=NOW)
        assert store.acquire_lock(IP, ttl_seconds=60, now=NOW + timedelta(seconds=61))

    def test_locks_are_per_key(self, store):
        assert store.acquire_lock(IP, now=NOW)
        assert store.acquire_lock("198.51.100.1", now=NOW)
        assert store.acquire_lock("acme.nl", KeyKind.DOMAIN, now=NOW)


class TestPeopleCache:
    """Tests for people records."""

    def test_ensure_creates_empty_record(self, store):
        record = store.ensure_people("www.Acme.nl")
        assert record.company_domain == "acme.nl"
        assert record.status == RecordStatus.EMPTY
        assert record.people == []
        assert store.get_people("acme.nl") is not None

    def test_put_and_read_people(self, store):
        record = PeopleCacheRecord(
            company_domain="acme.nl",
            status=RecordStatus.FRESH,
            people=[Person(full_name="Jan de Vries", role_title="Directeur", evidence=["card"])],
            people_count=1,
            team_page_url="https://acme.nl/team",
            source_quality=2,
            evidence_urls=["https://acme.nl/team"],
        )
        assert store.put_people(record)

        stored = store.get_people("acme.nl")
        assert stored.status == RecordStatus.FRESH
        assert stored.people_count == 1
        assert stored.people[0].full_name == "Jan de Vries"
        assert stored.people[0].role_title == "Directeur"
        assert stored.evidence_urls == ["https://acme.nl/team"]

    def test_fewer_people_keeps_stored_list(self, store):
        two = [Person(full_name="Jan de Vries"), Person(full_name="Petra Jansen")]
        store.put_people(PeopleCacheRecord(
            company_domain="acme.nl", status=RecordStatus.FRESH, people=two, people_count=2, source_quality=2,
        ))
        improved = store.put_people(PeopleCacheRecord(
            company_domain="acme.nl",
            status=RecordStatus.NO_TEAM,
            people_count=0,
            source_quality=1,
            detection_reason="Geen valide personen gevonden",
            retry_count=1,
            next_allowed_crawl_at=NOW,
        ))

        assert not improved
        stored = store.get_people("acme.nl")
        assert stored.people_count == 2
        assert stored.status == RecordStatus.FRESH
        assert stored.source_quality == 2
        assert stored.detection_reason == "Geen valide personen gevonden"
        assert stored.retry_count == 1
        assert stored.next_allowed_crawl_at == NOW

    def test_people_lock(self, store):
        assert store.acquire_people_lock("acme.nl", now=NOW)
        assert not store.acquire_people_lock("acme.nl", now=NOW + timedelta(seconds=5))
        store.release_people_lock("acme.nl")
        assert store.acquire_people_lock("acme.nl", now=NOW + timedelta(seconds=6))


class TestQueue:
    """Tests for the enrichment job queue."""

    def test_enqueue_reuses_pending_job(self, store):
        first = store.enqueue(IP, {"site_id": "s1"})
        assert store.enqueue(IP) == first
        assert store.enqueue("198.51.100.1") != first

    def test_claim_marks_running(self, store):
        job_id = store.enqueue(IP, {"page_url": "https://example.com/pricing"})
        claimed = store.claim_jobs(batch=10)

        assert [job["id"] for job in claimed] == [job_id]
        assert claimed[0]["payload"] == {"page_url": "https://example.com/pricing"}
        assert store.get_job(job_id)["status"] == "running"
        assert store.claim_jobs(batch=10) == []

    def test_claim_respects_batch(self, store):
        for i in range(5):
            store.enqueue(f"198.51.100.{i}")
        assert len(store.claim_jobs(batch=3)) == 3
        assert len(store.claim_jobs(batch=3)) == 2

    def test_complete(self, store):
        job_id = store.enqueue(IP)
        store.claim_jobs()
        store.complete_job(job_id)
        assert store.get_job(job_id)["status"] == "done"

    def test_failed_job_is_retried_until_ceiling(self, store):
        job_id = store.enqueue(IP)
        store.claim_jobs(max_attempts=2)
        assert store.fail_job(job_id, "boom", max_attempts=2) == "error"

        assert [job["id"] for job in store.claim_jobs(max_attempts=2)] == [job_id]
        assert store.fail_job(job_id, "boom again", max_attempts=2) == "failed_permanent"

        job = store.get_job(job_id)
        assert job["attempts"] == 2
        assert job["error_text"] == "boom again"
        assert store.claim_jobs(max_attempts=2) == []

    def test_fail_missing_job(self, store):
        assert store.fail_job(12345, "boom") == "missing"

    def test_cleanup_removes_old_permanent_failures(self, store):
        dead = store.enqueue(IP)
        store.claim_jobs()
        store.fail_job(dead, "boom", max_attempts=1)
        alive = store.enqueue("198.51.100.1")

        assert store.cleanup_jobs(days=30) == 0
        assert store.cleanup_jobs(days=30, now=datetime.utcnow() + timedelta(days=31)) == 1
        assert store.get_job(dead) is None
        assert store.get_job(alive) is not None


class TestIndexes:
    """Tests for form submissions and the favicon index."""

    def test_form_submission(self, store):
        assert store.add_form_submission(IP, " Jan@Acme-Logistics.NL ", site_id="s1") == "acme-logistics.nl"
        assert store.latest_form_email(IP) == "jan@acme-logistics.nl"

    def test_latest_form_email_wins(self, store):
        store.add_form_submission(IP, "old@acme.nl")
        store.add_form_submission(IP, "new@acme-group.nl")
        assert store.latest_form_email(IP) == "new@acme-group.nl"

    def test_invalid_email(self, store):
        assert store.add_form_submission(IP, "not-an-email") is None
        assert store.latest_form_email(IP) is None

    def test_favicon_index(self, store):
        store.add_favicon("ab" * 32, "www.acme.nl")
        assert store.favicon_domain("ab" * 32) == "acme.nl"
        store.add_favicon("ab" * 32, "acme-group.nl")
        assert store.favicon_domain("ab" * 32) == "acme-group.nl"
        assert store.favicon_domain("cd" * 32) is None
