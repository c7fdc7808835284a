"""Collector that reads self-references from the website served on an IP."""

import logging
from typing import Optional
from urllib.parse import urljoin

import httpx

from leadtrace.config import settings
from leadtrace.crawler import ContentExtractor
from leadtrace.domains import extract_domain, looks_like_domain
from leadtrace.models import DomainSignal, SourceKind, VisitorContext
from .base import SignalCollector

logger = logging.getLogger(__name__)


class HttpFetchCollector(SignalCollector):
    """Request the bare IP and look for where it says it lives.

    Redirects are not followed: the ``Location`` header itself is the
    evidence. Preference order is redirect, og:url, canonical, meta refresh,
    then the first absolute URL in the HTML.
    """

    name = "http_fetch"
    source = SourceKind.HTTP_FETCH

    SCHEMES = ["https", "http"]

    CONFIDENCE = {
        "redirect": (0.6, "HTTP redirect (Location header)"),
        "og_url": (0.58, "OG URL"),
        "canonical": (0.6, "Canonical"),
        "refresh_url": (0.55, "Meta refresh"),
        "absolute_url": (0.55, "Absolute URL in HTML"),
    }

    def __init__(
        self,
        extractor: Optional[ContentExtractor] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: Optional[float] = None,
    ):
        super().__init__(timeout)
        self.extractor = extractor or ContentExtractor()
        self.transport = transport

    async def collect(self, visitor: VisitorContext) -> list[DomainSignal]:
        async with httpx.AsyncClient(
            timeout=httpx.Timeout(self.timeout),
            follow_redirects=False,
            verify=False,
            transport=self.transport,
        ) as client:
            for scheme in self.SCHEMES:
                root_url = f"{scheme}://{visitor.ip}/"
                try:
                    response = await client.get(root_url, headers={"User-Agent": settings.user_agent})
                except httpx.TimeoutException:
                    logger.debug(f"Timeout fetching {root_url}")
                    continue
                except httpx.RequestError as e:
                    logger.debug(f"Request error fetching {root_url}: {e}")
                    continue

                signal = self._from_response(visitor.ip, root_url, response)
                return [signal] if signal else []

        return []

    def _from_response(self, ip: str, root_url: str, response: httpx.Response) -> Optional[DomainSignal]:
        location = response.headers.get("location")
        if location and "." in location:
            domain = self._usable(urljoin(root_url, location), ip)
            if domain:
                return self._signal_for("redirect", domain)

        html = response.text if "html" in response.headers.get("content-type", "") else ""
        if not html:
            return None

        metadata = self.extractor.extract_metadata(html, root_url)
        for key in ("og_url", "canonical", "refresh_url"):
            domain = self._usable(metadata.get(key), ip)
            if domain:
                return self._signal_for(key, domain)

        domain = self._usable(self.extractor.find_absolute_host(html), ip)
        if domain:
            return self._signal_for("absolute_url", domain)

        return None

    def _signal_for(self, kind: str, domain: str) -> DomainSignal:
        confidence, reason = self.CONFIDENCE[kind]
        return self.signal(domain, confidence, reason)

    @staticmethod
    def _usable(url: Optional[str], ip: str) -> Optional[str]:
        domain = extract_domain(url)
        if not domain or domain == ip or not looks_like_domain(domain):
            return None
        return domain
