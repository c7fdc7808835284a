"""Enrichment orchestration: collect, fuse, persist."""

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Optional

from leadtrace.cache import BackoffPolicy, CacheState, EnrichmentStore
from leadtrace.collectors import (
    CacheReuseCollector,
    DirectoryLookup,
    FaviconCollector,
    FormSubmissionCollector,
    HostHeaderProbe,
    HttpFetchCollector,
    IpBaselineCollector,
    IpInfoClient,
    ReverseDnsCollector,
    SignalCollector,
    TlsCertificateCollector,
    signal_from_email,
)
from leadtrace.config import settings
from leadtrace.domains import normalize_domain
from leadtrace.enrich import PeopleScraper, WebsiteScraper
from leadtrace.models import (
    DomainSignal,
    EnrichmentCacheRecord,
    FusedIdentity,
    GeoMatchResult,
    KeyKind,
    PeopleCacheRecord,
    PeopleScrapeResult,
    RecordStatus,
    SourceKind,
    VisitorContext,
    WebsiteContacts,
)
from leadtrace.models.enrichment import CONTACT_FIELDS
from leadtrace.score import EvidenceFusion

logger = logging.getLogger(__name__)


class EnrichmentPipeline:
    """Resolve visitor IPs to company identities and keep the cache current.

    Phase one runs the independent collectors concurrently. Phase two needs
    candidate domains, so the host-header probe and the directory lookup
    run after it. Any collaborator left as None is skipped, which is how
    offline and test runs are wired.
    """

    MAX_CANDIDATES = 5

    def __init__(
        self,
        store: EnrichmentStore,
        geo_client: Optional[IpInfoClient] = None,
        collectors: Optional[list[SignalCollector]] = None,
        host_probe: Optional[HostHeaderProbe] = None,
        directory: Optional[DirectoryLookup] = None,
        website: Optional[WebsiteScraper] = None,
        people_scraper: Optional[PeopleScraper] = None,
        fusion: Optional[EvidenceFusion] = None,
        policy: Optional[BackoffPolicy] = None,
        people_policy: Optional[BackoffPolicy] = None,
    ):
        self.store = store
        self.geo_client = geo_client
        self.collectors = collectors if collectors is not None else []
        self.host_probe = host_probe
        self.directory = directory
        self.website = website
        self.people_scraper = people_scraper
        self.fusion = fusion or EvidenceFusion()
        self.policy = policy or BackoffPolicy()
        self.people_policy = people_policy or BackoffPolicy.for_people()

    @classmethod
    def default(cls, store: EnrichmentStore) -> "EnrichmentPipeline":
        """Pipeline wired with every live collector."""
        geo_client = IpInfoClient()
        return cls(
            store=store,
            geo_client=geo_client,
            collectors=[
                ReverseDnsCollector(),
                TlsCertificateCollector(),
                HttpFetchCollector(),
                FaviconCollector(known_hashes=store.favicon_domain),
                IpBaselineCollector(client=geo_client),
                CacheReuseCollector(),
                FormSubmissionCollector(latest_email=store.latest_form_email),
            ],
            host_probe=HostHeaderProbe(),
            directory=DirectoryLookup(),
            website=WebsiteScraper(),
            people_scraper=PeopleScraper(),
        )

    # Identity

    async def resolve(self, ip: str, force: bool = False) -> Optional[EnrichmentCacheRecord]:
        """Enrich an IP if its cache state allows it; returns the stored record.

        A failure is recorded on the record (attempts, backoff) and then
        re-raised so queue workers can account for it.
        """
        known = self.store.get(ip)
        state = self.policy.state_of(known)

        if not self.policy.should_enrich(known, force):
            logger.info(f"{ip} is {state.value}, using cached record")
            return known

        if not self.store.acquire_lock(ip, KeyKind.IP):
            return known

        base = known or EnrichmentCacheRecord(cache_key=ip, key_kind=KeyKind.IP, ip_address=ip)
        try:
            await self._enrich(ip, base)
        except Exception as e:
            logger.error(f"Enrichment failed for {ip}: {e}")
            self.store.put(self.policy.on_failure(base, str(e)))
            raise
        finally:
            self.store.release_lock(ip, KeyKind.IP)

        return self.store.get(ip)

    async def collect(self, visitor: VisitorContext) -> list[DomainSignal]:
        """Run phase one and phase two; returns every signal gathered."""
        logger.info(f"Phase 1: running {len(self.collectors)} collectors for {visitor.ip}")
        results = await asyncio.gather(*(c.safe_collect(visitor) for c in self.collectors))
        signals = [signal for batch in results for signal in batch]

        ranked = self.fusion.rank(signals)
        visitor.candidate_domains = [evidence.domain for evidence in ranked[: self.MAX_CANDIDATES]]
        logger.info(f"{len(signals)} signals, candidates: {visitor.candidate_domains}")

        if visitor.candidate_domains and self.host_probe:
            logger.info(f"Phase 2: host-header probe for {visitor.ip}")
            signals.extend(await self.host_probe.safe_collect(visitor))

        return signals

    async def _enrich(self, ip: str, base: EnrichmentCacheRecord):
        geo = await self.geo_client.lookup(ip) if self.geo_client else None
        visitor = VisitorContext(ip=ip, geo=geo, known=base)

        signals = await self.collect(visitor)

        listing = None
        listed_domain = visitor.candidate_domains[0] if visitor.candidate_domains else None
        if listed_domain and self.directory:
            logger.info(f"Phase 2: directory lookup for {listed_domain}")
            listing = await self._directory_match(listed_domain, visitor)
            if listing:
                signals.append(self.directory.to_signal(listed_domain, listing))

        identity = self.fusion.fuse(signals)
        if identity is None:
            logger.info(f"No identity assertable for {ip} from {len(signals)} signals")
            self.store.put(self.policy.on_no_match(base))
            return

        logger.info(f"{ip} -> {identity.domain} ({identity.confidence:.2f}): {identity.confidence_reason}")

        if identity.domain != listed_domain:
            listing = None
        contacts = await self._website_contacts(identity.domain)
        content = self._company_fields(identity, listing, contacts)

        ip_record = self.policy.on_success(base).model_copy(update={**content, "ip_address": ip})
        self.store.put(ip_record)

        domain_base = self.store.get(identity.domain, KeyKind.DOMAIN) or EnrichmentCacheRecord(
            cache_key=identity.domain, key_kind=KeyKind.DOMAIN,
        )
        self.store.put(self.policy.on_success(domain_base).model_copy(update=content))

    async def _directory_match(self, domain: str, visitor: VisitorContext) -> Optional[GeoMatchResult]:
        budget = self.directory.timeout * (self.directory.MAX_RESULTS + 1)
        try:
            return await asyncio.wait_for(
                self.directory.lookup(domain, visitor.latitude, visitor.longitude),
                timeout=budget,
            )
        except asyncio.TimeoutError:
            logger.warning(f"Directory lookup for {domain} timed out after {budget}s")
        except Exception as e:
            logger.warning(f"Directory lookup for {domain} failed: {e}")
        return None

    async def _website_contacts(self, domain: str) -> Optional[WebsiteContacts]:
        if not self.website:
            return None
        try:
            return await self.website.scrape(domain)
        except Exception as e:
            logger.warning(f"Website scrape for {domain} failed: {e}")
            return None

    @staticmethod
    def _company_fields(
        identity: FusedIdentity,
        listing: Optional[GeoMatchResult],
        contacts: Optional[WebsiteContacts],
    ) -> dict:
        # Contacts not supplied below stay empty
        fields = {
            **dict.fromkeys(CONTACT_FIELDS),
            "company_domain": identity.domain,
            "confidence": identity.confidence,
            "confidence_reason": identity.confidence_reason,
            "enrichment_source": identity.enrichment_source,
        }

        if listing:
            place = listing.match
            fields.update({
                "company_name": place.name,
                "address": place.street,
                "postal_code": place.postal_code,
                "city": place.city,
                "country": place.country,
                "latitude": place.lat,
                "longitude": place.lon,
                "category": place.category,
                "phone": place.phone,
            })

        if contacts:
            scraped = contacts.model_dump(exclude_none=True)
            fields.update(scraped)

        return fields

    # Form submissions

    def record_form_submission(
        self,
        ip: str,
        email: str,
        site_id: Optional[str] = None,
    ) -> Optional[EnrichmentCacheRecord]:
        """Store a form email as ground truth for the IP; None for an unusable email."""
        signal = signal_from_email(email)
        if signal is None or not self.store.add_form_submission(ip, email, site_id):
            logger.warning(f"Ignoring form submission from {ip}: invalid email")
            return None

        base = self.store.get(ip) or EnrichmentCacheRecord(cache_key=ip, key_kind=KeyKind.IP, ip_address=ip)
        record = self.policy.on_success(base).model_copy(update={
            **dict.fromkeys(CONTACT_FIELDS),
            "company_domain": signal.domain,
            "confidence": signal.confidence,
            "confidence_reason": signal.confidence_reason,
            "enrichment_source": SourceKind.FORM_SUBMISSION,
        })
        self.store.put(record)
        logger.info(f"Form submission pinned {ip} to {signal.domain}")
        return self.store.get(ip)

    # People

    async def refresh_people(self, domain: str, force: bool = False) -> Optional[PeopleCacheRecord]:
        """Re-scrape a domain's team page when its schedule (or ``force``) allows."""
        domain = normalize_domain(domain)
        record = self.store.ensure_people(domain)

        state = self.people_policy.state(record.status, record.next_allowed_crawl_at, attempts=record.retry_count)
        if not force and state != CacheState.STALE:
            logger.info(f"People for {domain} are {state.value}, not crawling")
            return record

        if not self.people_scraper:
            return record

        if not self.store.acquire_people_lock(domain):
            logger.info(f"People for {domain} are already being crawled")
            return record

        try:
            try:
                result = await self.people_scraper.scrape(domain)
                outcome = self._people_outcome(record, result)
            except Exception as e:
                logger.warning(f"People scrape for {domain} failed: {e}")
                outcome = self._people_error(record, str(e))
            self.store.put_people(outcome)
        finally:
            self.store.release_people_lock(domain)

        return self.store.get_people(domain)

    def _people_outcome(self, record: PeopleCacheRecord, result: PeopleScrapeResult) -> PeopleCacheRecord:
        now = datetime.utcnow()

        if result.accept:
            return record.model_copy(update={
                "status": RecordStatus.FRESH if result.people_count >= 1 else RecordStatus.NO_TEAM,
                "people": result.people,
                "people_count": result.people_count,
                "team_page_url": result.url,
                "team_page_hash": result.team_page_hash,
                "etag": result.etag,
                "last_modified": result.last_modified,
                "evidence_urls": result.evidence_urls,
                "detection_reason": result.detection_reason,
                "source_quality": result.source_quality,
                "last_verified": now,
                "retry_count": 0,
                "next_allowed_crawl_at": self.people_policy.next_refresh_at(now, timedelta(days=record.ttl_days)),
                "last_error": None,
            })

        # Keep the previous people but remember which page was judged
        evidence = list(dict.fromkeys(
            record.evidence_urls + result.evidence_urls + ([result.url] if result.url else [])
        ))
        retries = record.retry_count + 1
        return record.model_copy(update={
            "status": RecordStatus.BLOCKED if result.detection_reason == "blocked" else RecordStatus.NO_TEAM,
            "team_page_url": result.url or record.team_page_url,
            "team_page_hash": result.team_page_hash or record.team_page_hash,
            "etag": result.etag or record.etag,
            "last_modified": result.last_modified or record.last_modified,
            "evidence_urls": evidence,
            "detection_reason": result.detection_reason or "no-accept",
            "source_quality": max(record.source_quality, result.source_quality),
            "last_verified": now,
            "retry_count": retries,
            "next_allowed_crawl_at": self.people_policy.next_retry_at(retries, now),
            "last_error": None,
        })

    def _people_error(self, record: PeopleCacheRecord, error: str) -> PeopleCacheRecord:
        retries = record.retry_count + 1
        return record.model_copy(update={
            "status": RecordStatus.ERROR if record.status == RecordStatus.EMPTY else record.status,
            "detection_reason": f"error:{error}",
            "retry_count": retries,
            "next_allowed_crawl_at": self.people_policy.next_retry_at(retries),
            "last_error": error,
        })


class QueueWorker:
    """Drain the enrichment queue in batches."""

    def __init__(self, pipeline: EnrichmentPipeline, max_attempts: Optional[int] = None):
        self.pipeline = pipeline
        self.store = pipeline.store
        self.max_attempts = max_attempts or settings.max_attempts

    async def process_pending(self, batch: Optional[int] = None) -> dict:
        """Process up to ``batch`` queued jobs; returns counts."""
        self.store.cleanup_jobs()

        jobs = self.store.claim_jobs(batch, self.max_attempts)
        if not jobs:
            return {"processed": 0, "ok": 0, "fail": 0}

        ok = fail = 0
        for job in jobs:
            try:
                await self.pipeline.resolve(job["ip_address"])
                self.store.complete_job(job["id"])
                ok += 1
            except Exception as e:
                status = self.store.fail_job(job["id"], str(e), self.max_attempts)
                logger.warning(f"Job {job['id']} for {job['ip_address']} failed ({status}): {e}")
                fail += 1

            await asyncio.sleep(0.025)

        logger.info(f"Processed {len(jobs)} jobs: {ok} ok, {fail} failed")
        return {"processed": len(jobs), "ok": ok, "fail": fail}
