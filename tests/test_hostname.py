"""Tests for reverse-DNS hostname scoring."""

import pytest

from leadtrace.models import EnrichmentCacheRecord
from leadtrace.score import HostnameScorer


def make_known(**kwargs) -> EnrichmentCacheRecord:
    """Create a cached record with defaults."""
    defaults = {
        "cache_key": "203.0.113.7",
        "company_domain": "acme.nl",
        "confidence": 0.9,
    }
    defaults.update(kwargs)
    return EnrichmentCacheRecord(**defaults)


class TestHostnameScorer:
    """Tests for the hostname rule table."""

    def test_isp_blacklist(self):
        result = HostnameScorer().classify("123.dynamic.kpn.net")
        assert result.score == 0.1
        assert result.reason == "Consumentenhost of ISP-domein"

    def test_exact_match_with_company_info(self):
        known = make_known(address="Main St 1")
        result = HostnameScorer().classify("acme.nl", known)
        assert result.score == 1.0
        assert result.reason == "Match op domein met verrijkte bedrijfsinformatie"

    def test_exact_match_without_company_info(self):
        result = HostnameScorer().classify("acme.nl", make_known())
        assert result.score == 0.6
        assert result.reason == "Match op domein zonder voldoende enrichment"

    def test_subdomain_of_known_domain_matches(self):
        known = make_known(city="Utrecht")
        assert HostnameScorer().score("mail.acme.nl", known) == 1.0

    @pytest.mark.parametrize("hostname", ["vpn1.acme.nl", "proxy.example.com", "VPN.Corp.io"])
    def test_vpn_and_proxy(self, hostname):
        result = HostnameScorer().classify(hostname)
        assert result.score == 0.0
        assert result.reason == "Waarschijnlijk VPN, proxy of dynamisch IP"

    def test_vpn_beats_known_match(self):
        known = make_known(company_domain="vpn.nl", address="Main St 1")
        assert HostnameScorer().score("vpn.nl", known) == 0.0

    def test_consumer_keyword(self):
        result = HostnameScorer().classify("customer-42.provider.de")
        assert result.score == 0.2
        assert result.reason == "Mogelijk consumentennetwerk"

    def test_business_like_subdomain(self):
        result = HostnameScorer().classify("mail.acme-logistics.nl")
        assert result.score == 0.5
        assert result.reason == "Zakelijk ogende subdomeinstructuur"

    def test_bare_domain(self):
        assert HostnameScorer().score("acme-logistics.nl") == 0.4

    def test_single_label(self):
        result = HostnameScorer().classify("localhost")
        assert result.score == 0.3
        assert result.reason == "Onbekende hostname-structuur"

    @pytest.mark.parametrize("hostname", [None, ""])
    def test_missing_hostname(self, hostname):
        result = HostnameScorer().classify(hostname)
        assert result.score == 0.0
        assert result.reason == "Waarschijnlijk VPN, proxy of dynamisch IP"

    def test_trailing_dot_and_case(self):
        assert HostnameScorer().score("Mail.Acme-Logistics.NL.") == 0.5

    @pytest.mark.parametrize("score,reason", [
        (0.95, "Match op domein met verrijkte bedrijfsinformatie"),
        (0.7, "Match op domein zonder voldoende enrichment"),
        (0.45, "Onbekende hostname-structuur"),
        (0.15, "Consumentenhost of ISP-domein"),
        (0.05, "Waarschijnlijk VPN, proxy of dynamisch IP"),
    ])
    def test_reason_bands(self, score, reason):
        assert HostnameScorer().reason_for(score) == reason
