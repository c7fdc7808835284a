"""Homepage contact scraping."""

import logging
from typing import Optional

from leadtrace.crawler import ContentExtractor, Fetcher
from leadtrace.domains import normalize_domain
from leadtrace.models import WebsiteContacts

logger = logging.getLogger(__name__)


class WebsiteScraper:
    """Pull phone, email, social links and description from a homepage."""

    def __init__(self, fetcher: Optional[Fetcher] = None, extractor: Optional[ContentExtractor] = None):
        self.fetcher = fetcher or Fetcher()
        self.extractor = extractor or ContentExtractor()

    async def scrape(self, domain: str) -> Optional[WebsiteContacts]:
        """Contacts from ``https://<domain>``; None when the page is unavailable."""
        url = f"https://{normalize_domain(domain)}"
        result = await self.fetcher.fetch(url)

        if not result.success:
            logger.info(f"Could not fetch homepage {url}: {result.error or result.status_code}")
            return None

        contacts = self.extractor.extract_contacts(result.content, result.url)
        logger.debug(f"Scraped contacts for {domain}: {contacts.model_dump(exclude_none=True)}")
        return contacts
