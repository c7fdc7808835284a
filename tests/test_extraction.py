"""Tests for HTML extraction and people heuristics."""

import pytest

from leadtrace.crawler import ContentExtractor
from leadtrace.enrich import PeopleScraper, is_likely_person_name, is_likely_short_role
from leadtrace.enrich.people import is_logo_url, looks_like_noise_page
from leadtrace.models import Person


class TestContentExtractor:
    """Tests for HTML content extraction."""

    def test_extract_metadata(self):
        extractor = ContentExtractor()
        html = """
        <html>
        <head>
            <title>Acme Logistics - Transport en opslag</title>
            <meta name="description" content="Wij verzorgen transport door heel Nederland">
        </head>
        <body><h1>Welkom bij Acme</h1></body>
        </html>
        """
        metadata = extractor.extract_metadata(html)
        assert metadata.get("title") == "Acme Logistics - Transport en opslag"
        assert "transport" in metadata.get("description", "")
        assert metadata.get("h1") == "Welkom bij Acme"

    def test_extract_self_references(self):
        extractor = ContentExtractor()
        html = """
        <html><head>
            <meta property="og:url" content="https://www.acme.nl/">
            <link rel="canonical" href="/home">
            <meta http-equiv="Refresh" content="0; url='https://acme.nl/nl/'">
        </head></html>
        """
        metadata = extractor.extract_metadata(html, "https://203.0.113.7/")
        assert metadata["og_url"] == "https://www.acme.nl/"
        assert metadata["canonical"] == "https://203.0.113.7/home"
        assert metadata["refresh_url"] == "https://acme.nl/nl/"

    def test_extract_empty_html(self):
        assert ContentExtractor().extract_metadata("") == {}

    def test_extract_contacts(self):
        extractor = ContentExtractor()
        html = """
        <html><head><meta name="description" content="Acme Logistics"></head><body>
            <a href="tel:+31 30 123 4567">Bel ons</a>
            <a href="mailto:info@acme.nl?subject=Vraag">Mail</a>
            <a href="https://www.linkedin.com/company/acme">LinkedIn</a>
            <a href="https://facebook.com/acme">Facebook</a>
            <a href="/contact">Contact</a>
        </body></html>
        """
        contacts = extractor.extract_contacts(html, "https://acme.nl/")
        assert contacts.phone == "+31301234567"
        assert contacts.email == "info@acme.nl"
        assert contacts.linkedin_url == "https://www.linkedin.com/company/acme"
        assert contacts.facebook_url == "https://facebook.com/acme"
        assert contacts.instagram_url is None
        assert contacts.meta_description == "Acme Logistics"

    def test_extract_links_absolutizes(self):
        links = ContentExtractor().extract_links('<a href="/over-ons">Over ons</a>', "https://acme.nl/")
        assert links == ["https://acme.nl/over-ons"]

    def test_extract_json_ld_flattens_graph(self):
        html = """
        <script type="application/ld+json">
        {"@context": "https://schema.org", "@graph": [
            {"@type": "Organization", "name": "Acme"},
            {"@type": "Person", "name": "Jan de Vries"}
        ]}
        </script>
        <script type="application/ld+json">not json</script>
        """
        objects = ContentExtractor().extract_json_ld(html)
        assert [o.get("@type") for o in objects] == [None, "Organization", "Person"]

    def test_find_absolute_host(self):
        extractor = ContentExtractor()
        assert extractor.find_absolute_host('<img src="https://CDN.Acme.nl/a.png">') == "cdn.acme.nl"
        assert extractor.find_absolute_host("<p>no links</p>") is None

    def test_handles_malformed_html(self):
        metadata = ContentExtractor().extract_metadata("<html><title>Acme</title><p>Unclosed<div>Some content")
        assert "Acme" in metadata.get("title", "")


class TestPersonHeuristics:
    """Tests for name and role heuristics."""

    @pytest.mark.parametrize("name", [
        "Jan de Vries",
        "Petra van der Berg",
        "José Müller",
        "Anne-Marie O'Brien",
    ])
    def test_likely_names(self, name):
        assert is_likely_person_name(name)

    @pytest.mark.parametrize("name", [
        None,
        "Jan",
        "Team 2024",
        "Fout 404",
        "Ontvang onze e-mail nieuwsbrief",
        "Neem contact op",
        "Welkom bij ons!",
        "onze mensen",
    ])
    def test_unlikely_names(self, name):
        assert not is_likely_person_name(name)

    def test_short_roles(self):
        assert is_likely_short_role("Directeur")
        assert not is_likely_short_role("")
        assert not is_likely_short_role("x" * 121)
        assert not is_likely_short_role("Lees onze privacy verklaring")

    def test_logo_urls(self):
        assert is_logo_url("https://acme.nl/img/Logo-white.svg")
        assert not is_logo_url("https://acme.nl/img/jan.jpg")
        assert not is_logo_url(None)

    def test_noise_pages(self):
        assert looks_like_noise_page("Pagina niet gevonden", "", 200)
        assert looks_like_noise_page("", "", 404)
        assert not looks_like_noise_page("Ons team", "Maak kennis", 200)


class TestPeopleScoring:
    """Tests for the page credibility verdict."""

    def test_two_people_with_roles(self):
        people = [
            Person(full_name="Jan de Vries", role_title="Directeur"),
            Person(full_name="Petra Jansen", email="petra@acme.nl"),
        ]
        score = PeopleScraper().score_and_reason(people, "Home | Welkom")
        assert score.accept
        assert score.source_quality == 2
        assert score.detection_reason == ">=2 personen met naam + (rol of contact/link)"

    def test_json_ld_raises_quality(self):
        people = [
            Person(full_name="Jan de Vries", role_title="Directeur", evidence=["jsonld"]),
            Person(full_name="Petra Jansen", role_title="Planner", evidence=["jsonld"]),
        ]
        assert PeopleScraper().score_and_reason(people, "").source_quality == 3

    def test_single_person_with_two_signals(self):
        people = [Person(full_name="Jan de Vries", role_title="Eigenaar", phone="+31612345678")]
        score = PeopleScraper().score_and_reason(people, "")
        assert score.accept
        assert score.detection_reason == "1 persoon met ≥2 sterke signalen (rol/email/phone/linkedin/foto)"

    def test_single_person_with_one_signal(self):
        people = [Person(full_name="Jan de Vries", role_title="Eigenaar")]
        score = PeopleScraper().score_and_reason(people, "")
        assert not score.accept
        assert score.detection_reason == "Onvoldoende bewijs voor 1-persoon-bedrijf"

    def test_names_only_on_team_page(self):
        people = [Person(full_name="Jan de Vries"), Person(full_name="Petra Jansen")]
        score = PeopleScraper().score_and_reason(people, "Ons team | Maak kennis")
        assert score.accept
        assert score.source_quality == 1
        assert score.detection_reason == ">=2 namen op team/about pagina (zonder extra signalen)"

    def test_names_only_elsewhere(self):
        people = [Person(full_name="Jan de Vries"), Person(full_name="Petra Jansen")]
        score = PeopleScraper().score_and_reason(people, "Home | Welkom")
        assert not score.accept
        assert score.source_quality == 0
        assert score.detection_reason == "Geen valide personen gevonden"

    def test_rejected_team_page_gets_quality_bump(self):
        score = PeopleScraper().score_and_reason([], "Over ons | Wie zijn wij")
        assert not score.accept
        assert score.source_quality == 1
