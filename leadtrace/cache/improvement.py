"""Write gates: decide whether new data beats what is stored."""

from typing import Optional

from leadtrace.models import EnrichmentCacheRecord, PeopleCacheRecord
from leadtrace.models.enrichment import CONTACT_FIELDS

IDENTITY_FIELDS = ("company_domain",) + CONTACT_FIELDS


def _number(value: Optional[float]) -> float:
    return value if isinstance(value, (int, float)) else -1.0


def _same_company(old: EnrichmentCacheRecord, new: EnrichmentCacheRecord) -> bool:
    return not old.company_domain or not new.company_domain or old.company_domain == new.company_domain


def _replaces_identity(old: EnrichmentCacheRecord, new: EnrichmentCacheRecord) -> bool:
    return bool(new.company_domain) and _number(new.confidence) >= _number(old.confidence)


def is_improvement(old: Optional[EnrichmentCacheRecord], new: EnrichmentCacheRecord) -> bool:
    """True when ``new`` adds something ``old`` lacks.

    An improvement fills a field that was empty, raises the confidence, or
    moves the record to a better status tier. Fields filled by a different
    company never count on their own. Anything else leaves the stored
    record untouched.
    """
    if old is None:
        return True

    if _same_company(old, new):
        for name in IDENTITY_FIELDS:
            if getattr(old, name) in (None, "") and getattr(new, name) not in (None, ""):
                return True

    if _number(new.confidence) > _number(old.confidence):
        return True

    return new.status.tier > old.status.tier


def is_people_improvement(old: Optional[PeopleCacheRecord], new: PeopleCacheRecord) -> bool:
    """People-cache counterpart of :func:`is_improvement`."""
    if old is None:
        return True
    if new.people_count > old.people_count:
        return True
    if new.source_quality > old.source_quality:
        return True
    if new.team_page_hash and new.team_page_hash != old.team_page_hash and new.people_count >= 1:
        return True
    return new.status.tier > old.status.tier


def merge_record(old: Optional[EnrichmentCacheRecord], new: EnrichmentCacheRecord) -> EnrichmentCacheRecord:
    """Combine ``new`` with the stored ``old`` record.

    For the same company the populated fields of ``new`` are overlaid and
    None never erases. A different company is taken whole when it is at
    least as confident as the stored identity and ignored otherwise, so
    contact details always belong to the stored domain.
    """
    if old is None:
        return new.model_copy()

    merged = old.model_copy()
    replaces = _replaces_identity(old, new)

    if _same_company(old, new):
        for name in CONTACT_FIELDS:
            value = getattr(new, name)
            if value not in (None, ""):
                setattr(merged, name, value)
    elif replaces:
        for name in CONTACT_FIELDS:
            setattr(merged, name, getattr(new, name))

    if new.ip_address:
        merged.ip_address = new.ip_address

    if replaces:
        merged.company_domain = new.company_domain
        merged.confidence = new.confidence
        merged.confidence_reason = new.confidence_reason
        merged.enrichment_source = new.enrichment_source

    if new.status.tier >= old.status.tier:
        merged.status = new.status
    return merged
