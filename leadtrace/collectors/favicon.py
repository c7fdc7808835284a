"""Favicon hash collector."""

import hashlib
import logging
from typing import Callable, Mapping, Optional

import httpx

from leadtrace.config import settings
from leadtrace.models import DomainSignal, SourceKind, VisitorContext
from .base import SignalCollector

logger = logging.getLogger(__name__)

HashLookup = Callable[[str], Optional[str]]


class FaviconCollector(SignalCollector):
    """Fingerprint the favicon served on an IP and look it up.

    ``known_hashes`` is either a mapping of SHA-256 hex digest to domain or
    a callable doing the same lookup (e.g. against the favicon index table).
    """

    name = "favicon_hash"
    source = SourceKind.FAVICON_HASH

    CONFIDENCE = 0.85

    def __init__(
        self,
        known_hashes: Optional[Mapping[str, str] | HashLookup] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: Optional[float] = None,
    ):
        super().__init__(timeout if timeout is not None else settings.favicon_timeout)
        self.known_hashes = known_hashes or {}
        self.transport = transport

    async def collect(self, visitor: VisitorContext) -> list[DomainSignal]:
        digest = await self.fetch_hash(visitor.ip)
        if not digest:
            return []

        domain = self.lookup(digest)
        if not domain:
            logger.debug(f"Favicon {digest[:12]} for {visitor.ip} not in index")
            return []

        return [self.signal(domain, self.CONFIDENCE, "favicon hash match")]

    def lookup(self, digest: str) -> Optional[str]:
        if callable(self.known_hashes):
            return self.known_hashes(digest)
        return self.known_hashes.get(digest)

    async def fetch_hash(self, ip: str) -> Optional[str]:
        """SHA-256 hex digest of ``http://ip/favicon.ico``, or None."""
        url = f"http://{ip}/favicon.ico"
        try:
            async with httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout),
                transport=self.transport,
            ) as client:
                response = await client.get(url, headers={"User-Agent": settings.user_agent})

        except httpx.TimeoutException:
            logger.debug(f"Timeout fetching favicon from {ip}")
            return None
        except httpx.RequestError as e:
            logger.debug(f"Favicon fetch failed for {ip}: {e}")
            return None

        content_type = response.headers.get("content-type", "")
        if not response.is_success or "image" not in content_type:
            logger.debug(f"No usable favicon on {ip}: HTTP {response.status_code} {content_type}")
            return None

        return hashlib.sha256(response.content).hexdigest()
