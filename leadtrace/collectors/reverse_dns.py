"""Reverse-DNS collector."""

import logging
from typing import Optional

import dns.asyncresolver
import dns.exception
import dns.resolver

from leadtrace.domains import registrable_domain
from leadtrace.models import DomainSignal, SourceKind, VisitorContext
from leadtrace.score import HostnameScorer
from .base import SignalCollector

logger = logging.getLogger(__name__)


class ReverseDnsCollector(SignalCollector):
    """Resolve the PTR hostname of an IP and score it."""

    name = "reverse_dns"
    source = SourceKind.REVERSE_DNS

    def __init__(
        self,
        resolver: Optional[dns.asyncresolver.Resolver] = None,
        scorer: Optional[HostnameScorer] = None,
        timeout: Optional[float] = None,
    ):
        super().__init__(timeout)
        self.resolver = resolver
        self.scorer = scorer or HostnameScorer()

    async def collect(self, visitor: VisitorContext) -> list[DomainSignal]:
        hostname = await self.resolve_hostname(visitor.ip)
        if not hostname and visitor.geo:
            hostname = visitor.geo.hostname

        if not hostname:
            return []

        classification = self.scorer.classify(hostname, visitor.known)
        if classification.score <= 0:
            logger.debug(f"Hostname {hostname} for {visitor.ip} rejected: {classification.reason}")
            return []

        return [self.signal(
            registrable_domain(hostname),
            classification.score,
            classification.reason,
        )]

    async def resolve_hostname(self, ip: str) -> Optional[str]:
        """PTR lookup; None on any DNS failure."""
        resolver = self.resolver
        if resolver is None:
            resolver = dns.asyncresolver.Resolver()
            resolver.timeout = 1.0
            resolver.lifetime = self.timeout

        try:
            answer = await resolver.resolve_address(ip)
            for rdata in answer:
                hostname = str(rdata.target).rstrip(".").lower()
                if hostname:
                    return hostname

        except (dns.resolver.NXDOMAIN, dns.resolver.NoAnswer):
            logger.debug(f"No PTR record for {ip}")

        except (dns.resolver.LifetimeTimeout, dns.exception.Timeout):
            logger.debug(f"PTR lookup timed out for {ip}")

        except dns.resolver.NoNameservers:
            logger.debug(f"No nameservers answered PTR for {ip}")

        except (dns.exception.DNSException, ValueError) as e:
            logger.debug(f"PTR lookup failed for {ip}: {e}")

        return None
