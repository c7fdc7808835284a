"""API routes for leadtrace."""

import logging
import re
from typing import Optional

from fastapi import APIRouter, HTTPException, BackgroundTasks
from pydantic import BaseModel

from leadtrace.cache import EnrichmentStore
from leadtrace.domains import normalize_domain
from leadtrace.models import EnrichmentCacheRecord, PeopleCacheRecord
from leadtrace.pipeline import EnrichmentPipeline, QueueWorker

logger = logging.getLogger(__name__)

router = APIRouter()

DOMAIN_RE = re.compile(r"^[a-z0-9.-]+\.[a-z]{2,}$", re.I)


class EnrichRequest(BaseModel):
    """Request body for queueing an enrichment."""
    ip: str
    page_url: Optional[str] = None
    site_id: Optional[str] = None


class EnrichResponse(BaseModel):
    """Response for an enrichment request."""
    job_id: int
    status: str
    message: str


class FormSubmissionRequest(BaseModel):
    """Request body for a form submission."""
    ip: str
    email: str
    site_id: Optional[str] = None


class FormSubmissionResponse(BaseModel):
    """Response for a recorded form submission."""
    success: bool
    domain: Optional[str] = None


# Shared per process; replaced in tests
_store: Optional[EnrichmentStore] = None
_pipeline: Optional[EnrichmentPipeline] = None


def get_store() -> EnrichmentStore:
    global _store
    if _store is None:
        _store = EnrichmentStore()
    return _store


def get_pipeline() -> EnrichmentPipeline:
    global _pipeline
    if _pipeline is None:
        _pipeline = EnrichmentPipeline.default(get_store())
    return _pipeline


@router.get("/identity/{ip}", response_model=EnrichmentCacheRecord)
async def get_identity(ip: str):
    """Get the cached identity for an IP."""
    record = get_pipeline().store.get(ip)
    if record is None:
        raise HTTPException(status_code=404, detail="No identity cached for this IP")
    return record


@router.post("/enrich", response_model=EnrichResponse)
async def enrich(request: EnrichRequest, background_tasks: BackgroundTasks):
    """Queue an IP for enrichment and kick the worker."""
    pipeline = get_pipeline()
    job_id = pipeline.store.enqueue(
        request.ip,
        {"page_url": request.page_url, "site_id": request.site_id},
    )

    background_tasks.add_task(run_worker, pipeline)

    return EnrichResponse(
        job_id=job_id,
        status="pending",
        message=f"Enrichment queued. Use /api/identity/{request.ip} to read the result.",
    )


@router.post("/form-submission", response_model=FormSubmissionResponse)
async def form_submission(request: FormSubmissionRequest):
    """Record a submitted email as the IP's identity."""
    record = get_pipeline().record_form_submission(request.ip, request.email, request.site_id)
    if record is None:
        raise HTTPException(status_code=400, detail="Invalid email address")
    return FormSubmissionResponse(success=True, domain=record.company_domain)


@router.get("/people/{domain}", response_model=PeopleCacheRecord)
async def get_people(domain: str, background_tasks: BackgroundTasks, refresh: bool = False):
    """Return cached people now; refresh in the background when due or requested."""
    domain = normalize_domain(domain)
    if not domain or not DOMAIN_RE.match(domain):
        raise HTTPException(status_code=400, detail="Invalid domain")

    pipeline = get_pipeline()
    record = pipeline.store.ensure_people(domain)

    background_tasks.add_task(refresh_people, pipeline, domain, refresh)

    return record


async def run_worker(pipeline: EnrichmentPipeline):
    """Background task: drain pending jobs."""
    try:
        await QueueWorker(pipeline).process_pending()
    except Exception as e:
        logger.error(f"Worker run failed: {e}")


async def refresh_people(pipeline: EnrichmentPipeline, domain: str, force: bool):
    """Background task: re-crawl a team page if allowed."""
    try:
        await pipeline.refresh_people(domain, force=force)
    except Exception as e:
        logger.error(f"People refresh for {domain} failed: {e}")
