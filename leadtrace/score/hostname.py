"""Reverse-DNS hostname scoring."""

from typing import Optional

from leadtrace.domains import registrable_domain
from leadtrace.models import EnrichmentCacheRecord, HostnameClassification


class HostnameScorer:
    """Score how likely a reverse-DNS hostname names a business."""

    VPN_KEYWORDS = ["vpn", "proxy"]

    # Residential/consumer ISPs
    ISP_BLACKLIST = [
        "kpn.net", "ziggo.nl", "glasoperator.nl", "t-mobilethuis.nl", "chello.nl",
        "dynamic.upc.nl", "vodafone.nl", "xs4all.nl", "home.nl",
        "client.t-mobilethuis.nl", "ip.telfort.nl",
    ]

    CONSUMER_KEYWORDS = ["dynamic", "client", "customer", "dsl", "broadband", "home", "pool", "ip"]

    # (lower bound, reason), checked top-down
    REASON_BANDS = [
        (0.95, "Match op domein met verrijkte bedrijfsinformatie"),
        (0.6, "Match op domein zonder voldoende enrichment"),
        (0.5, "Zakelijk ogende subdomeinstructuur"),
        (0.3, "Onbekende hostname-structuur"),
        (0.2, "Mogelijk consumentennetwerk"),
        (0.1, "Consumentenhost of ISP-domein"),
    ]
    FALLBACK_REASON = "Waarschijnlijk VPN, proxy of dynamisch IP"

    def classify(
        self,
        hostname: Optional[str],
        known: Optional[EnrichmentCacheRecord] = None,
    ) -> HostnameClassification:
        """Score a hostname and attach the matching reason."""
        score = self.score(hostname, known)
        return HostnameClassification(score=score, reason=self.reason_for(score))

    def score(
        self,
        hostname: Optional[str],
        known: Optional[EnrichmentCacheRecord] = None,
    ) -> float:
        """Score a hostname in [0, 1]."""
        if not hostname:
            return 0.0

        lower = hostname.lower().rstrip(".")
        domain = registrable_domain(lower)

        if any(k in lower for k in self.VPN_KEYWORDS):
            return 0.0

        if domain in self.ISP_BLACKLIST:
            return 0.1
        if any(k in lower for k in self.CONSUMER_KEYWORDS):
            return 0.2

        known_domain = known.company_domain.lower() if known and known.company_domain else None
        if known_domain and (lower == known_domain or domain == known_domain):
            return 1.0 if known.has_company_info() else 0.6

        segments = lower.split(".")
        if len(segments) >= 3 and not lower.startswith("ip"):
            return 0.5
        if len(segments) == 2:
            return 0.4

        return 0.3

    def reason_for(self, score: float) -> str:
        for bound, reason in self.REASON_BANDS:
            if score >= bound:
                return reason
        return self.FALLBACK_REASON
