"""HTML metadata, link and contact extraction."""

import json
import logging
import re
from typing import Optional
from urllib.parse import urljoin

from bs4 import BeautifulSoup

from leadtrace.models import WebsiteContacts

logger = logging.getLogger(__name__)


class ContentExtractor:
    """Extract identity hints and contact data from HTML."""

    META_REFRESH_RE = re.compile(r"url\s*=\s*['\"]?([^'\"]+)", re.I)
    ABSOLUTE_URL_RE = re.compile(r"https?://([a-zA-Z0-9.-]+\.[a-zA-Z0-9-]{2,})")

    SOCIAL_HOSTS = {
        "linkedin_url": "linkedin.com",
        "facebook_url": "facebook.com",
        "instagram_url": "instagram.com",
        "twitter_url": "twitter.com",
    }

    def parse(self, html: str) -> BeautifulSoup:
        return BeautifulSoup(html or "", "lxml")

    def extract_metadata(self, html: str, base_url: Optional[str] = None) -> dict:
        """Extract title, description and self-referencing URLs."""
        metadata = {}

        try:
            soup = self.parse(html)

            # Title
            title_tag = soup.find("title")
            if title_tag:
                metadata["title"] = title_tag.get_text(strip=True)

            h1 = soup.find("h1")
            if h1:
                metadata["h1"] = h1.get_text(" ", strip=True)

            # Meta description
            meta_desc = soup.find("meta", attrs={"name": "description"})
            if meta_desc and meta_desc.get("content"):
                metadata["description"] = meta_desc.get("content", "")

            # Open Graph
            og_url = soup.find("meta", property="og:url")
            if og_url and og_url.get("content"):
                metadata["og_url"] = self._absolutize(og_url["content"], base_url)

            canonical = soup.find("link", rel="canonical")
            if canonical and canonical.get("href"):
                metadata["canonical"] = self._absolutize(canonical["href"], base_url)

            refresh = soup.find("meta", attrs={"http-equiv": re.compile("^refresh$", re.I)})
            if refresh and refresh.get("content"):
                match = self.META_REFRESH_RE.search(refresh["content"])
                if match:
                    metadata["refresh_url"] = self._absolutize(match.group(1), base_url)

        except Exception as e:
            logger.debug(f"Failed to extract metadata: {e}")

        return {k: v for k, v in metadata.items() if v}

    def extract_links(self, html: str, base_url: Optional[str] = None) -> list[str]:
        """All anchor hrefs, made absolute where possible."""
        soup = self.parse(html)
        links = []
        for anchor in soup.find_all("a", href=True):
            href = anchor["href"].strip()
            if href.startswith(("mailto:", "tel:")):
                links.append(href)
                continue
            absolute = self._absolutize(href, base_url)
            if absolute:
                links.append(absolute)
        return links

    def extract_contacts(self, html: str, base_url: Optional[str] = None) -> WebsiteContacts:
        """Phone, email, social profiles and description from a homepage."""
        links = self.extract_links(html, base_url)

        phones = [
            re.sub(r"\s+", "", link[len("tel:"):]).strip()
            for link in links if link.lower().startswith("tel:")
        ]
        emails = [
            link[len("mailto:"):].split("?")[0].strip()
            for link in links if link.lower().startswith("mailto:")
        ]

        socials = {}
        for field_name, host in self.SOCIAL_HOSTS.items():
            socials[field_name] = next((link for link in links if host in link.lower()), None)

        metadata = self.extract_metadata(html, base_url)

        return WebsiteContacts(
            phone=phones[0] if phones else None,
            email=emails[0] if emails else None,
            meta_description=metadata.get("description"),
            **socials,
        )

    def extract_json_ld(self, html: str) -> list[dict]:
        """Every JSON-LD object on the page, with arrays and @graph flattened."""
        objects: list[dict] = []
        soup = self.parse(html)

        for script in soup.find_all("script", type="application/ld+json"):
            raw = script.string or script.get_text()
            if not raw or not raw.strip():
                continue
            try:
                data = json.loads(raw)
            except (json.JSONDecodeError, TypeError):
                continue
            self._flatten_json_ld(data, objects)

        return objects

    def find_absolute_host(self, html: str) -> Optional[str]:
        """Host of the first absolute URL mentioned in raw HTML."""
        if not html:
            return None
        match = self.ABSOLUTE_URL_RE.search(html)
        return match.group(1).lower() if match else None

    def _flatten_json_ld(self, data, out: list[dict]):
        if isinstance(data, list):
            for item in data:
                self._flatten_json_ld(item, out)
        elif isinstance(data, dict):
            out.append(data)
            if "@graph" in data:
                self._flatten_json_ld(data["@graph"], out)

    @staticmethod
    def _absolutize(url: str, base_url: Optional[str]) -> Optional[str]:
        url = (url or "").strip()
        if not url:
            return None
        try:
            return urljoin(base_url, url) if base_url else url
        except ValueError:
            return None
