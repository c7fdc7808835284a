"""IP geolocation lookup and the baseline signals derived from it."""

import logging
from typing import Optional

import httpx

from leadtrace.config import settings
from leadtrace.domains import normalize_domain
from leadtrace.models import DomainSignal, IpGeolocation, SourceKind, VisitorContext
from .base import SignalCollector

logger = logging.getLogger(__name__)


class IpInfoClient:
    """Client for the ipinfo.io lookup API."""

    BASE_URL = "https://ipinfo.io"

    def __init__(
        self,
        token: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: Optional[float] = None,
    ):
        self.token = token if token is not None else settings.ipinfo_token
        self.transport = transport
        self.timeout = timeout if timeout is not None else settings.collector_timeout

    async def lookup(self, ip: str) -> Optional[IpGeolocation]:
        """Geolocate an IP; None when the service can't be reached."""
        params = {"token": self.token} if self.token else {}

        try:
            async with httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout),
                transport=self.transport,
            ) as client:
                response = await client.get(f"{self.BASE_URL}/{ip}/json", params=params)

            if response.status_code != 200:
                logger.warning(f"ipinfo returned {response.status_code} for {ip}")
                return None

            return self.parse(ip, response.json())

        except httpx.TimeoutException:
            logger.warning(f"ipinfo request timed out for {ip}")
        except httpx.RequestError as e:
            logger.warning(f"ipinfo request failed for {ip}: {e}")
        except ValueError as e:
            logger.warning(f"Unparseable ipinfo response for {ip}: {e}")

        return None

    @staticmethod
    def parse(ip: str, data: dict) -> Optional[IpGeolocation]:
        """Geolocation from an ipinfo payload; None when the payload is not an object."""
        if not isinstance(data, dict):
            logger.warning(f"Unexpected ipinfo payload for {ip}: {type(data).__name__}")
            return None

        latitude = longitude = None
        loc = data.get("loc")
        if isinstance(loc, str) and loc:
            try:
                lat, lon = loc.split(",")
                latitude, longitude = float(lat), float(lon)
            except ValueError:
                logger.debug(f"Ignoring malformed loc '{loc}' for {ip}")
        elif loc:
            logger.debug(f"Ignoring non-text loc {loc!r} for {ip}")

        company = data.get("company")
        asn = data.get("asn")

        return IpGeolocation(
            ip=data.get("ip") or ip,
            hostname=data.get("hostname"),
            city=data.get("city"),
            region=data.get("region"),
            country=data.get("country"),
            postal_code=data.get("postal"),
            latitude=latitude,
            longitude=longitude,
            org=data.get("org"),
            company_domain=_domain_of(company),
            asn_domain=_domain_of(asn),
        )


def _domain_of(block) -> Optional[str]:
    """The ``domain`` of an ipinfo company/asn block, when it is text."""
    domain = block.get("domain") if isinstance(block, dict) else None
    if not isinstance(domain, str):
        return None
    return normalize_domain(domain) or None


class IpBaselineCollector(SignalCollector):
    """Low-confidence domains from the IP registration data.

    Uses the geolocation already on the visitor when present, otherwise
    performs the lookup itself.
    """

    name = "ip_baseline"
    source = SourceKind.IPAPI_BASELINE

    COMPANY_CONFIDENCE = 0.5
    ISP_CONFIDENCE = 0.3

    def __init__(self, client: Optional[IpInfoClient] = None, timeout: Optional[float] = None):
        super().__init__(timeout)
        self.client = client or IpInfoClient(timeout=self.timeout)

    async def collect(self, visitor: VisitorContext) -> list[DomainSignal]:
        geo = visitor.geo or await self.client.lookup(visitor.ip)
        if geo is None:
            return []

        signals = []
        if geo.company_domain:
            signals.append(DomainSignal(
                domain=geo.company_domain,
                source=SourceKind.IPAPI_BASELINE,
                confidence=self.COMPANY_CONFIDENCE,
                confidence_reason="IP registration company domain",
            ))
        if geo.asn_domain and geo.asn_domain != geo.company_domain:
            signals.append(DomainSignal(
                domain=geo.asn_domain,
                source=SourceKind.ISP_BASELINE,
                confidence=self.ISP_CONFIDENCE,
                confidence_reason=f"ASN owner {geo.org}" if geo.org else "ASN owner domain",
            ))
        return signals
