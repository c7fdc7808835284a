"""HTTP fetcher with guard rails and rate limiting."""

import asyncio
import hashlib
import logging
from datetime import datetime
from typing import Optional
from urllib.parse import urljoin, urlparse

import httpx

from leadtrace.config import settings

logger = logging.getLogger(__name__)


class FetchResult:
    """Result of a fetch operation."""

    def __init__(
        self,
        url: str,
        content: Optional[str] = None,
        status_code: int = 0,
        content_type: Optional[str] = None,
        headers: Optional[dict[str, str]] = None,
        error: Optional[str] = None,
    ):
        self.url = url
        self.content = content
        self.status_code = status_code
        self.content_type = content_type
        self.headers = headers or {}
        self.error = error

    @property
    def success(self) -> bool:
        return self.content is not None and 200 <= self.status_code < 400

    @property
    def content_hash(self) -> Optional[str]:
        if self.content is None:
            return None
        return hashlib.sha256(self.content.encode("utf-8")).hexdigest()


class Fetcher:
    """HTML fetcher with content-type/size guard rails and per-domain rate limiting."""

    def __init__(
        self,
        user_agent: Optional[str] = None,
        min_bytes: int = 0,
        max_bytes: Optional[int] = None,
        rate_limit_delay: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.user_agent = user_agent or settings.browser_user_agent
        self.min_bytes = min_bytes
        self.max_bytes = max_bytes
        self.rate_limit_delay = (
            rate_limit_delay if rate_limit_delay is not None else settings.rate_limit_delay
        )
        self.transport = transport

        # Rate limiting per domain
        self._domain_last_request: dict[str, datetime] = {}
        self._rate_limit_lock = asyncio.Lock()

    async def fetch(self, url: str) -> FetchResult:
        """Fetch a URL, respecting the per-domain rate limit."""
        await self._wait_for_rate_limit(url)
        return await self._do_fetch(url)

    async def fetch_pages(
        self,
        base_url: str,
        paths: list[str],
    ) -> dict[str, FetchResult]:
        """Fetch multiple pages from the same domain."""
        results = {}

        for path in paths:
            url = urljoin(base_url.rstrip("/") + "/", path)
            results[url] = await self.fetch(url)

        return results

    async def _wait_for_rate_limit(self, url: str):
        """Wait to respect rate limiting for the domain."""
        if self.rate_limit_delay <= 0:
            return

        domain = urlparse(url).netloc

        async with self._rate_limit_lock:
            last_request = self._domain_last_request.get(domain)
            if last_request:
                elapsed = (datetime.utcnow() - last_request).total_seconds()
                if elapsed < self.rate_limit_delay:
                    await asyncio.sleep(self.rate_limit_delay - elapsed)

            self._domain_last_request[domain] = datetime.utcnow()

    async def _do_fetch(self, url: str) -> FetchResult:
        """Perform the actual HTTP fetch."""
        try:
            async with httpx.AsyncClient(
                timeout=httpx.Timeout(
                    connect=settings.connect_timeout,
                    read=settings.read_timeout,
                    write=settings.read_timeout,
                    pool=settings.connect_timeout,
                ),
                follow_redirects=True,
                transport=self.transport,
            ) as client:
                response = await client.get(
                    url,
                    headers={
                        "User-Agent": self.user_agent,
                        "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
                        "Accept-Language": "nl-NL,nl;q=0.9,en;q=0.8",
                    },
                )

                content_type = response.headers.get("content-type", "")
                headers = {k.lower(): v for k, v in response.headers.items()}

                # Only process HTML content
                if "html" not in content_type:
                    return FetchResult(
                        url=url,
                        status_code=response.status_code,
                        content_type=content_type,
                        headers=headers,
                        error=f"Unsupported content type: {content_type}",
                    )

                size = len(response.content)
                if size < self.min_bytes or (self.max_bytes and size > self.max_bytes):
                    return FetchResult(
                        url=url,
                        status_code=response.status_code,
                        content_type=content_type,
                        headers=headers,
                        error=f"HTML size out of range: {size // 1024}KB",
                    )

                return FetchResult(
                    url=str(response.url),
                    content=response.text,
                    status_code=response.status_code,
                    content_type=content_type,
                    headers=headers,
                )

        except httpx.TimeoutException:
            logger.warning(f"Timeout fetching {url}")
            return FetchResult(url=url, error="Timeout", status_code=0)

        except httpx.RequestError as e:
            logger.warning(f"Request error fetching {url}: {e}")
            return FetchResult(url=url, error=str(e), status_code=0)

        except Exception as e:
            logger.error(f"Unexpected error fetching {url}: {e}")
            return FetchResult(url=url, error=str(e), status_code=0)
