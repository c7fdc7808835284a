"""Tests for team page discovery and homepage scraping."""

import asyncio
import json

import httpx

from leadtrace.crawler import Fetcher
from leadtrace.enrich import PeopleScraper, WebsiteScraper

TEAM_PAGE = """
<html><head><title>Ons team</title></head><body>
<h1>Maak kennis met ons team</h1>
<div class="team-member">
    <img src="/img/jan.jpg"><h3>Jan de Vries</h3><p class="role">Directeur</p>
    <a href="mailto:jan@acme.nl">Mail Jan</a>
</div>
<div class="team-member">
    <img src="/img/petra.jpg"><h3>Petra Jansen</h3><p class="role">Planner</p>
    <a href="https://www.linkedin.com/in/petra-jansen">LinkedIn</a>
</div>
<div class="footer"><img src="/img/logo.svg"></div>
</body></html>
"""

JSON_LD_PAGE = """
<html><head><title>Over ons</title>
<script type="application/ld+json">
%s
</script></head><body><h1>Over Acme</h1></body></html>
""" % json.dumps([
    {"@type": "Person", "name": "Jan de Vries", "jobTitle": "Directeur", "email": "mailto:jan@acme.nl"},
    {"@type": "Person", "name": "Petra Jansen", "jobTitle": "Planner"},
])

NAMES_ONLY_PAGE = """
<html><head><title>Home</title></head><body><h1>Welkom</h1><p>Wij zijn Acme.</p></body></html>
"""

NOT_FOUND = "<html><head><title>Pagina niet gevonden</title></head><body></body></html>"


def make_fetcher(pages: dict, requested: list = None, default_status: int = 404) -> Fetcher:
    """Fetcher serving ``pages`` (path -> html or (status, html, headers))."""

    def handler(request):
        if requested is not None:
            requested.append(request.url.path)
        page = pages.get(request.url.path)
        if page is None:
            return httpx.Response(default_status, html=NOT_FOUND)
        if isinstance(page, tuple):
            status, html, headers = page
            return httpx.Response(status, html=html, headers=headers)
        return httpx.Response(200, html=page)

    return Fetcher(min_bytes=0, rate_limit_delay=0, transport=httpx.MockTransport(handler))


class TestCandidateUrls:
    """Tests for candidate team page discovery."""

    def test_homepage_links_come_first(self):
        homepage = """
        <a href="/team-amsterdam">Ons team</a>
        <a href="/about-us">Over ons</a>
        <a href="/leadership">Leiding</a>
        <a href="/contact">Contact</a>
        <a href="https://linkedin.com/company/acme">LinkedIn</a>
        """
        scraper = PeopleScraper(fetcher=make_fetcher({"/": homepage}), max_extra_links=2)
        candidates = asyncio.run(scraper.candidate_urls("https://acme.nl"))

        assert candidates[:3] == [
            "https://acme.nl/team-amsterdam",
            "https://acme.nl/about-us",
            "https://acme.nl/team",
        ]
        assert len(candidates) == len(set(candidates))
        assert len(candidates) == 2 + len(PeopleScraper.CANDIDATE_PATHS) - 1

    def test_unavailable_homepage_uses_fixed_paths(self):
        scraper = PeopleScraper(fetcher=make_fetcher({}, default_status=500))
        candidates = asyncio.run(scraper.candidate_urls("https://acme.nl"))
        assert candidates[0] == "https://acme.nl/team"
        assert len(candidates) == len(PeopleScraper.CANDIDATE_PATHS)


class TestPeopleScraper:
    """Tests for scraping a company domain."""

    def test_team_page_found_via_homepage_link(self):
        pages = {
            "/": '<a href="/wie-wij-zijn/team">Team</a>',
            "/wie-wij-zijn/team": (200, TEAM_PAGE, {"etag": '"v1"', "last-modified": "Fri, 01 Mar 2024 12:00:00 GMT"}),
        }
        result = asyncio.run(PeopleScraper(fetcher=make_fetcher(pages)).scrape("www.acme.nl"))

        assert result.accept
        assert result.url == "https://acme.nl/wie-wij-zijn/team"
        assert result.source_quality == 2
        assert result.etag == '"v1"'
        assert result.last_modified == "Fri, 01 Mar 2024 12:00:00 GMT"
        assert result.team_page_hash
        assert result.evidence_urls == ["https://acme.nl/wie-wij-zijn/team"]

        assert [p.full_name for p in result.people] == ["Jan de Vries", "Petra Jansen"]
        jan, petra = result.people
        assert jan.role_title == "Directeur"
        assert jan.email == "jan@acme.nl"
        assert jan.photo_url == "https://acme.nl/img/jan.jpg"
        assert petra.linkedin_url == "https://www.linkedin.com/in/petra-jansen"

    def test_json_ld_page_stops_search(self):
        requested = []
        pages = {"/team": JSON_LD_PAGE, "/over-ons": TEAM_PAGE}
        result = asyncio.run(PeopleScraper(fetcher=make_fetcher(pages, requested)).scrape("acme.nl"))

        assert result.accept
        assert result.source_quality == 3
        assert result.people[0].email == "jan@acme.nl"
        assert "/over-ons" not in requested

    def test_accepted_page_replaces_earlier_rejection(self):
        pages = {"/team": NAMES_ONLY_PAGE, "/over-ons": TEAM_PAGE}
        result = asyncio.run(PeopleScraper(fetcher=make_fetcher(pages)).scrape("acme.nl"))
        assert result.accept
        assert result.url == "https://acme.nl/over-ons"

    def test_blocked_site(self):
        scraper = PeopleScraper(fetcher=make_fetcher({}, default_status=403))
        result = asyncio.run(scraper.scrape("acme.nl"))
        assert not result.accept
        assert result.detection_reason == "blocked"
        assert result.people == []

    def test_no_team_page(self):
        result = asyncio.run(PeopleScraper(fetcher=make_fetcher({"/team": NAMES_ONLY_PAGE})).scrape("acme.nl"))
        assert not result.accept
        assert result.detection_reason == "Geen valide personen gevonden"

    def test_candidate_budget(self):
        requested = []
        scraper = PeopleScraper(fetcher=make_fetcher({}, requested), max_candidates=3)
        asyncio.run(scraper.scrape("acme.nl"))
        # Homepage plus three candidates
        assert requested == ["/", "/team", "/over-ons", "/ons-team"]

    def test_not_found_page_is_noise(self):
        scraper = PeopleScraper(fetcher=make_fetcher({}))
        result = asyncio.run(scraper.scrape_page("https://acme.nl/team"))
        assert not result.accept
        assert result.detection_reason == "page-404-or-noise"

    def test_too_small_page_is_an_error(self):
        handler = lambda r: httpx.Response(200, html=TEAM_PAGE)
        fetcher = Fetcher(min_bytes=30 * 1024, rate_limit_delay=0, transport=httpx.MockTransport(handler))
        result = asyncio.run(PeopleScraper(fetcher=fetcher).scrape_page("https://acme.nl/team"))
        assert not result.accept
        assert result.detection_reason.startswith("error:HTML size out of range")


class TestWebsiteScraper:
    """Tests for homepage contact scraping."""

    def test_scrape_contacts(self):
        homepage = """
        <html><head><meta name="description" content="Transport en opslag"></head><body>
        <a href="tel:030 123 4567">Bel</a> <a href="mailto:info@acme.nl">Mail</a>
        <a href="https://instagram.com/acme">Instagram</a>
        </body></html>
        """
        contacts = asyncio.run(WebsiteScraper(fetcher=make_fetcher({"/": homepage})).scrape("acme.nl"))
        assert contacts.phone == "0301234567"
        assert contacts.email == "info@acme.nl"
        assert contacts.instagram_url == "https://instagram.com/acme"
        assert contacts.meta_description == "Transport en opslag"

    def test_unavailable_homepage(self):
        scraper = WebsiteScraper(fetcher=make_fetcher({}, default_status=500))
        assert asyncio.run(scraper.scrape("acme.nl")) is None
