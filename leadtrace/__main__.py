"""CLI entry point for leadtrace."""

import argparse
import asyncio
import json
import logging
import sys
from typing import Optional

from leadtrace.cache import EnrichmentStore
from leadtrace.collectors import StaticCollector
from leadtrace.config import settings
from leadtrace.models import EnrichmentCacheRecord, PeopleCacheRecord
from leadtrace.pipeline import EnrichmentPipeline, QueueWorker

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger(__name__)


def build_pipeline(store: EnrichmentStore, use_mock: bool = False) -> EnrichmentPipeline:
    """Live pipeline, or an offline one fed by static signals."""
    if use_mock:
        logger.info("Using static collector for testing")
        return EnrichmentPipeline(store=store, collectors=[StaticCollector()])
    return EnrichmentPipeline.default(store)


def print_identity(ip: str, record: Optional[EnrichmentCacheRecord]):
    """Print an identity record to console."""
    print("\n" + "=" * 60)
    print(f"IDENTITY FOR {ip}")
    print("=" * 60)

    if record is None:
        print("\nNo record")
        print("=" * 60)
        return

    print(f"\nStatus: {record.status.value} (attempts: {record.attempts})")
    if record.company_domain:
        confidence = f"{record.confidence:.2f}" if record.confidence is not None else "-"
        print(f"Domain: {record.company_domain} | Confidence: {confidence}")
        if record.confidence_reason:
            print(f"Why: {record.confidence_reason}")
    else:
        print("Domain: (none)")

    if record.company_name:
        print(f"Company: {record.company_name}")
    location = ", ".join(filter(None, [record.address, record.postal_code, record.city, record.country]))
    if location:
        print(f"Address: {location}")
    if record.phone or record.email:
        print(f"Contact: {record.phone or ''} {record.email or ''}".rstrip())
    if record.last_error:
        print(f"Last error: {record.last_error}")
    if record.next_allowed_at:
        print(f"Next enrichment after: {record.next_allowed_at:%Y-%m-%d %H:%M}")

    print("\n" + "=" * 60)


def print_people(record: Optional[PeopleCacheRecord]):
    """Print cached team members to console."""
    if record is None:
        print("No people record")
        return

    print("\n" + "=" * 60)
    print(f"PEOPLE AT {record.company_domain} ({record.status.value})")
    print("=" * 60)
    if record.team_page_url:
        print(f"Team page: {record.team_page_url} (quality {record.source_quality})")
    if record.detection_reason:
        print(f"Detection: {record.detection_reason}")

    for person in record.people:
        print(f"\n  {person.full_name}")
        if person.role_title:
            print(f"     {person.role_title}")
        for value in (person.email, person.phone, person.linkedin_url):
            if value:
                print(f"     {value}")

    print("\n" + "=" * 60)


async def run_enrich(store: EnrichmentStore, ip: str, force: bool, use_mock: bool):
    pipeline = build_pipeline(store, use_mock)
    record = await pipeline.resolve(ip, force=force)
    print_identity(ip, record)


async def run_worker(store: EnrichmentStore, batch: int):
    worker = QueueWorker(build_pipeline(store))
    counts = await worker.process_pending(batch)
    print(json.dumps(counts))


async def run_people(store: EnrichmentStore, domain: str, refresh: bool):
    pipeline = build_pipeline(store)
    record = await pipeline.refresh_people(domain, force=refresh)
    print_people(record)


def main():
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="leadtrace - resolve visitor IPs to company identities"
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose logging",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    enrich = subparsers.add_parser("enrich", help="Resolve the company behind an IP")
    enrich.add_argument("ip", help="Visitor IP address")
    enrich.add_argument("--force", action="store_true", help="Ignore the refresh/backoff schedule")
    enrich.add_argument("--mock", action="store_true", help="Use static signals instead of live collectors")

    worker = subparsers.add_parser("worker", help="Process queued enrichment jobs")
    worker.add_argument(
        "--batch", "-b",
        type=int,
        default=settings.queue_batch_size,
        help=f"Maximum jobs to process (default: {settings.queue_batch_size})",
    )

    people = subparsers.add_parser("people", help="Show (and refresh) team members of a domain")
    people.add_argument("domain", help="Company domain")
    people.add_argument("--refresh", action="store_true", help="Crawl now even if not due")

    form = subparsers.add_parser("form", help="Record a form submission as ground truth")
    form.add_argument("ip", help="Visitor IP address")
    form.add_argument("email", help="Submitted email address")

    args = parser.parse_args()

    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    store = EnrichmentStore()

    try:
        if args.command == "enrich":
            asyncio.run(run_enrich(store, args.ip, args.force, args.mock))
        elif args.command == "worker":
            asyncio.run(run_worker(store, args.batch))
        elif args.command == "people":
            asyncio.run(run_people(store, args.domain, args.refresh))
        elif args.command == "form":
            record = build_pipeline(store).record_form_submission(args.ip, args.email)
            if record is None:
                logger.error(f"Invalid email address: {args.email}")
                sys.exit(1)
            print_identity(args.ip, record)
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        sys.exit(1)
    except Exception as e:
        logger.error(f"{args.command} failed: {e}")
        if args.verbose:
            import traceback
            traceback.print_exc()
        sys.exit(1)


if __name__ == "__main__":
    main()
