"""Team page discovery and people extraction."""

import logging
import re
from dataclasses import dataclass, field
from typing import Optional
from urllib.parse import urljoin

from bs4 import BeautifulSoup, Tag

from leadtrace.config import settings
from leadtrace.crawler import ContentExtractor, Fetcher, FetchResult
from leadtrace.domains import normalize_domain
from leadtrace.models import PeopleScrapeResult, Person
from .dedupe import PeopleDeduplicator

logger = logging.getLogger(__name__)

# Common noise on Dutch and English company sites
NAME_STOPWORDS = [
    "style guide", "fout 404", "404", "not found", "we konden de pagina",
    "overige ruimtes", "ontvang onze e-mail nieuwsbrief", "nieuwsbrief",
    "we maken het graag persoonlijk", "privacy", "cookies", "algemene voorwaarden",
    "contact", "services", "oplossingen", "producten", "vacatures", "werken bij",
    "aanmelden", "inschrijven", "projecten", "cases", "referenties",
    "capaciteit", "integrale oplossingen", "bouwstoffen",
    "kennis van regelgeving", "van afval naar grondstof",
]

# Surname particles allowed in lowercase
NAME_PARTICLES = {"de", "den", "der", "van", "von", "vom", "la", "le", "di", "da", "du", "del", "della"}

NAME_WORD_RE = re.compile(r"^[A-ZÀ-ÖØ-Þ][A-Za-zÀ-ÖØ-öø-ÿ'’-]*$")
NAME_FOREIGN_CHAR_RE = re.compile(r"[^A-Za-zÀ-ÖØ-öø-ÿ'’\-\s]")
ROLE_NOISE_RE = re.compile(r"(cookie|privacy|error|404|nieuwsbrief|inschrijven|afmelden|algemene voorwaarden)", re.I)
LOGO_RE = re.compile(r"logo|icon|favicon|sprite")
NOISE_PAGE_RE = re.compile(r"(404|page not found|niet gevonden|oops|sorry|error)", re.I)


def is_likely_person_name(name: Optional[str]) -> bool:
    """Heuristic: at least two capitalized words, no digits, no slogan."""
    if not name:
        return False

    name = re.sub(r"\s+", " ", name).strip()
    if len(name) < 4 or len(name) > 80:
        return False
    if re.search(r"\d", name):
        return False
    if len(NAME_FOREIGN_CHAR_RE.findall(name)) > 2:
        return False

    lower = name.lower()
    if any(stopword in lower for stopword in NAME_STOPWORDS):
        return False
    if name.endswith(("!", ":")):
        return False

    parts = name.split()
    if len(parts) < 2:
        return False

    ok = [p for p in parts if p.lower() in NAME_PARTICLES or NAME_WORD_RE.match(p)]
    return len(ok) >= 2


def is_likely_short_role(text: Optional[str]) -> bool:
    """A job title, not a bio paragraph or boilerplate."""
    if not text or not text.strip():
        return False
    if len(text.strip()) > 120:
        return False
    return not ROLE_NOISE_RE.search(text)


def is_logo_url(url: Optional[str]) -> bool:
    return bool(url) and bool(LOGO_RE.search(url.lower()))


def looks_like_noise_page(title: str, h1: str, status_code: int) -> bool:
    """404 pages and error pages that happen to return HTML."""
    if status_code in (404, 410):
        return True
    return bool(NOISE_PAGE_RE.search(title or "") or NOISE_PAGE_RE.search(h1 or ""))


@dataclass
class PeopleScore:
    """Credibility verdict for the people found on one page."""

    accept: bool
    source_quality: int
    detection_reason: str
    people: list[Person] = field(default_factory=list)


class PeopleScraper:
    """Find the team page of a company and extract its people.

    Candidate pages are the team-like links on the homepage followed by a
    fixed list of common team/about paths. Each page is scored for
    credibility (0-3); the best accepted page wins and a quality-3 page
    stops the search early. When nothing is accepted, the first failure
    seen (blocked, noise, error or weak evidence) is reported so the
    caller can record it.
    """

    CANDIDATE_PATHS = [
        "/team", "/over-ons", "/ons-team", "/about", "/about-us", "/who-we-are",
        "/organisatie", "/management", "/bestuur", "/wie-zijn-wij", "/het-team",
        "/mensen", "/directie", "/board", "/leadership",
    ]

    TEAM_LINK_RE = re.compile(
        r"team|over-?ons|about|who-we-are|organisatie|management|bestuur|leadership|board", re.I
    )
    TEAM_CONTEXT_RE = re.compile(
        r"team|over\s?ons|about|wie\s?zijn\s?wij|organisatie|management|bestuur", re.I
    )

    BLOCKED_STATUSES = {401, 403, 429, 503}

    CARD_SELECTORS = [
        ".team-member", ".team__member", ".member", ".person", ".profile-card",
        ".staff", ".employee", ".card:has(.name)", ".card:has(h3)", ".card:has(h4)",
        "li:has(.name)", "li:has(h3)", "li:has(h4)",
    ]

    def __init__(
        self,
        fetcher: Optional[Fetcher] = None,
        extractor: Optional[ContentExtractor] = None,
        deduplicator: Optional[PeopleDeduplicator] = None,
        max_candidates: Optional[int] = None,
        max_extra_links: Optional[int] = None,
    ):
        self.fetcher = fetcher or Fetcher(
            min_bytes=settings.people_min_bytes,
            max_bytes=settings.people_max_bytes,
        )
        self.extractor = extractor or ContentExtractor()
        self.deduplicator = deduplicator or PeopleDeduplicator()
        self.max_candidates = max_candidates or settings.people_max_candidates
        self.max_extra_links = max_extra_links if max_extra_links is not None else settings.people_max_extra_links

    async def scrape(self, domain: str) -> PeopleScrapeResult:
        """Scrape a company domain for team members."""
        domain = normalize_domain(domain)
        root = f"https://{domain}"

        candidates = await self.candidate_urls(root)
        best: Optional[PeopleScrapeResult] = None

        for url in candidates[: self.max_candidates]:
            result = await self.scrape_page(url)

            if not result.accept:
                best = best or result
                continue

            if best is None or not best.accept or best.source_quality < result.source_quality:
                best = result

            if result.source_quality == 3:
                logger.debug(f"High quality team page found at {url}, stopping")
                break

        if best is None:
            return PeopleScrapeResult(accept=False, detection_reason="no-candidates")

        logger.info(
            f"People scrape for {domain}: accept={best.accept} people={best.people_count} "
            f"quality={best.source_quality} ({best.detection_reason})"
        )
        return best

    async def candidate_urls(self, root: str) -> list[str]:
        """Team-like homepage links first, then the fixed paths."""
        candidates: list[str] = []

        homepage = await self.fetcher.fetch(root)
        if homepage.success:
            for link in self.extractor.extract_links(homepage.content, homepage.url):
                if len(candidates) >= self.max_extra_links:
                    break
                if not link.startswith("http") or not self.TEAM_LINK_RE.search(link):
                    continue
                if link not in candidates:
                    candidates.append(link)
        else:
            logger.debug(f"Homepage {root} unavailable for link discovery: {homepage.error}")

        for path in self.CANDIDATE_PATHS:
            url = urljoin(root + "/", path.lstrip("/"))
            if url not in candidates:
                candidates.append(url)

        return candidates

    async def scrape_page(self, url: str) -> PeopleScrapeResult:
        """Fetch and judge one candidate page."""
        fetched = await self.fetcher.fetch(url)

        if fetched.status_code in self.BLOCKED_STATUSES:
            return self._rejected(url, fetched, "blocked")

        if fetched.content is None:
            return self._rejected(url, fetched, f"error:{fetched.error}")

        soup = self.extractor.parse(fetched.content)
        title = soup.title.get_text(" ", strip=True) if soup.title else ""
        h1_tag = soup.find("h1")
        h1 = h1_tag.get_text(" ", strip=True) if h1_tag else ""

        if looks_like_noise_page(title, h1, fetched.status_code):
            return self._rejected(url, fetched, "page-404-or-noise")

        people = self.deduplicator.deduplicate(self.extract_people(soup, fetched.url))
        score = self.score_and_reason(people, f"{title} | {h1}")

        if not score.accept:
            return self._rejected(url, fetched, score.detection_reason, score.source_quality)

        return PeopleScrapeResult(
            accept=True,
            url=url,
            people=score.people,
            detection_reason=score.detection_reason,
            source_quality=score.source_quality,
            team_page_hash=fetched.content_hash,
            etag=fetched.headers.get("etag"),
            last_modified=fetched.headers.get("last-modified"),
            evidence_urls=[url],
        )

    def extract_people(self, soup: BeautifulSoup, base_url: str) -> list[Person]:
        """Raw (undeduplicated) people from every extraction strategy."""
        people: list[Person] = []
        people.extend(self._from_json_ld(soup))
        people.extend(self._from_cards(soup, base_url))
        people.extend(self._from_headings(soup, base_url))
        people.extend(self._from_linkedin_anchors(soup))
        return people

    def score_and_reason(self, people: list[Person], page_context: str) -> PeopleScore:
        team_context = bool(self.TEAM_CONTEXT_RE.search(page_context or ""))

        valid = [p for p in people if self._is_valid(p)]
        names_only = [p for p in people if is_likely_person_name(p.full_name)]

        has_json_ld = any("jsonld" in p.evidence for p in people)
        quality = 2 if has_json_ld else 0

        # Strong: two or more people with a name plus role/contact/photo
        if len(valid) >= 2:
            return PeopleScore(
                accept=True,
                source_quality=max(quality, 2 + int(has_json_ld)),
                detection_reason=">=2 personen met naam + (rol of contact/link)",
                people=valid,
            )

        # One-person company with at least two signals
        if len(valid) == 1 and valid[0].signal_count() >= 2:
            return PeopleScore(
                accept=True,
                source_quality=max(quality, 2 + int(has_json_ld)),
                detection_reason="1 persoon met ≥2 sterke signalen (rol/email/phone/linkedin/foto)",
                people=valid,
            )

        if team_context and len(names_only) >= 2:
            return PeopleScore(
                accept=True,
                source_quality=max(quality, 1),
                detection_reason=">=2 namen op team/about pagina (zonder extra signalen)",
                people=names_only,
            )

        reason = (
            "Onvoldoende bewijs voor 1-persoon-bedrijf"
            if len(valid) == 1
            else "Geen valide personen gevonden"
        )
        if team_context:
            quality = min(3, quality + 1)
        return PeopleScore(accept=False, source_quality=quality, detection_reason=reason)

    def _is_valid(self, person: Person) -> bool:
        if not is_likely_person_name(person.full_name):
            return False
        return bool(
            is_likely_short_role(person.role_title)
            or person.email or person.phone or person.linkedin_url or person.photo_url
        )

    def _rejected(
        self,
        url: str,
        fetched: FetchResult,
        reason: str,
        quality: int = 0,
    ) -> PeopleScrapeResult:
        return PeopleScrapeResult(
            accept=False,
            url=url,
            detection_reason=reason,
            source_quality=quality,
            team_page_hash=fetched.content_hash,
            etag=fetched.headers.get("etag"),
            last_modified=fetched.headers.get("last-modified"),
            evidence_urls=[url],
        )

    # Extraction strategies

    def _from_json_ld(self, soup: BeautifulSoup) -> list[Person]:
        people = []
        for obj in self.extractor.extract_json_ld(str(soup)):
            types = obj.get("@type")
            types = types if isinstance(types, list) else [types]
            if "Person" not in types:
                continue

            full_name = str(obj.get("name") or "").strip()
            if not is_likely_person_name(full_name):
                continue

            image = obj.get("image")
            if isinstance(image, dict):
                image = image.get("url")

            people.append(Person(
                full_name=full_name,
                role_title=_text_or_none(obj.get("jobTitle")),
                email=_text_or_none(re.sub(r"^mailto:", "", str(obj.get("email") or ""), flags=re.I)),
                phone=_text_or_none(obj.get("telephone")),
                photo_url=_text_or_none(image),
                evidence=["jsonld"],
            ))
        return people

    def _from_cards(self, soup: BeautifulSoup, base_url: str) -> list[Person]:
        people = []
        for card in soup.select(", ".join(self.CARD_SELECTORS)):
            name_tag = card.select_one(".name") or card.find(["h3", "h4"])
            raw_name = _squash(name_tag.get_text(" ") if name_tag else card.get_text(" "))
            if not is_likely_person_name(raw_name):
                continue

            role_tag = card.select_one(".role, .title, .function")
            role = _squash(role_tag.get_text(" ")) if role_tag else ""

            people.append(Person(
                full_name=raw_name,
                role_title=role if is_likely_short_role(role) else None,
                photo_url=self._pick_image(card, base_url),
                evidence=["card"],
                **self._contacts(card),
            ))
        return people

    def _from_headings(self, soup: BeautifulSoup, base_url: str) -> list[Person]:
        people = []
        for heading in soup.find_all(["h1", "h2", "h3"]):
            full_name = _squash(heading.get_text(" "))
            if not is_likely_person_name(full_name):
                continue

            scope = heading.find_parent(["section", "article", "div"]) or heading.parent

            role_title = None
            for paragraph in scope.find_all("p"):
                text = _squash(paragraph.get_text(" "))
                if text:
                    role_title = text if is_likely_short_role(text) else None
                    break

            people.append(Person(
                full_name=full_name,
                role_title=role_title,
                photo_url=self._pick_image(scope, base_url),
                evidence=["heading-block"],
                **self._contacts(scope),
            ))
        return people

    def _from_linkedin_anchors(self, soup: BeautifulSoup) -> list[Person]:
        people = []
        for anchor in soup.find_all("a", href=re.compile("linkedin.com", re.I)):
            name = _squash(anchor.get_text(" "))
            if not is_likely_person_name(name):
                continue
            people.append(Person(
                full_name=name,
                linkedin_url=anchor["href"],
                evidence=["anchor-linkedin"],
            ))
        return people

    @staticmethod
    def _contacts(scope: Tag) -> dict:
        hrefs = [a["href"].strip() for a in scope.find_all("a", href=True)]

        email = next((h for h in hrefs if h.lower().startswith("mailto:")), None)
        phone = next((h for h in hrefs if h.lower().startswith("tel:")), None)
        linkedin = next((h for h in hrefs if "linkedin.com" in h.lower()), None)

        return {
            "email": email[len("mailto:"):].split("?")[0].strip() or None if email else None,
            "phone": re.sub(r"\s+", "", phone[len("tel:"):]) or None if phone else None,
            "linkedin_url": linkedin,
        }

    @staticmethod
    def _pick_image(scope: Tag, base_url: str) -> Optional[str]:
        img = scope.find("img")
        if img is None:
            return None

        src = img.get("src") or img.get("data-src") or img.get("data-lazy-src")
        if not src and img.get("srcset"):
            src = img["srcset"].split(",")[0].strip().split(" ")[0]
        if not src:
            return None

        url = urljoin(base_url, src)
        return None if is_logo_url(url) else url


def _squash(text: str) -> str:
    return re.sub(r"\s+", " ", text or "").strip()


def _text_or_none(value) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None
