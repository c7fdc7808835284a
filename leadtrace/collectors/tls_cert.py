"""TLS certificate collector."""

import asyncio
import logging
import ssl
from dataclasses import dataclass, field
from typing import Optional

from cryptography import x509
from cryptography.x509.oid import NameOID

from leadtrace.domains import looks_like_domain, normalize_domain
from leadtrace.models import DomainSignal, SourceKind, VisitorContext
from .base import SignalCollector

logger = logging.getLogger(__name__)


@dataclass
class CertificateNames:
    """Names presented by a peer certificate."""

    common_name: Optional[str] = None
    alt_names: list[str] = field(default_factory=list)
    port: int = 443
    sni: bool = False


def names_from_certificate(der: bytes) -> CertificateNames:
    """Decode CN and SAN DNS names from a DER certificate."""
    cert = x509.load_der_x509_certificate(der)

    common_name = None
    attributes = cert.subject.get_attributes_for_oid(NameOID.COMMON_NAME)
    if attributes:
        common_name = str(attributes[0].value)

    try:
        san = cert.extensions.get_extension_for_class(x509.SubjectAlternativeName)
        alt_names = san.value.get_values_for_type(x509.DNSName)
    except x509.ExtensionNotFound:
        alt_names = []

    return CertificateNames(common_name=common_name, alt_names=list(alt_names))


class TlsCertificateCollector(SignalCollector):
    """Read the certificate an IP presents on its HTTPS port.

    Verification is disabled: the peer's identity is exactly what is being
    investigated.
    """

    name = "tls_cert"
    source = SourceKind.TLS_CERT

    COMMON_NAME_CONFIDENCE = 0.8
    ALT_NAME_CONFIDENCE = 0.7
    MAX_ALT_NAMES = 10

    # Default certificates of hosting panels and CDNs say nothing about the tenant
    GENERIC_SUFFIXES = (
        "localhost", "localdomain", "cloudflaressl.com", "amazonaws.com",
        "herokuapp.com", "azurewebsites.net", "plesk.page",
        "invalid", "example.com",
    )

    def __init__(self, port: int = 443, servername: Optional[str] = None, timeout: Optional[float] = None):
        super().__init__(timeout)
        self.port = port
        self.servername = servername

    async def collect(self, visitor: VisitorContext) -> list[DomainSignal]:
        names = await self.fetch_names(visitor.ip)
        if names is None:
            return []

        signals = []
        seen = set()

        common = self._clean(names.common_name)
        if common:
            seen.add(common)
            signals.append(self.signal(common, self.COMMON_NAME_CONFIDENCE, "certificate common name"))

        for alt in names.alt_names[: self.MAX_ALT_NAMES]:
            domain = self._clean(alt)
            if domain and domain not in seen:
                seen.add(domain)
                signals.append(self.signal(domain, self.ALT_NAME_CONFIDENCE, "certificate subject alt name"))

        return signals

    async def fetch_names(self, ip: str) -> Optional[CertificateNames]:
        """Handshake with the IP and decode its certificate; None on any failure."""
        context = ssl.create_default_context()
        context.check_hostname = False
        context.verify_mode = ssl.CERT_NONE

        writer = None
        try:
            kwargs = {"ssl": context}
            if self.servername:
                kwargs["server_hostname"] = self.servername
            _, writer = await asyncio.wait_for(
                asyncio.open_connection(ip, self.port, **kwargs),
                timeout=self.timeout,
            )
            ssl_object = writer.get_extra_info("ssl_object")
            der = ssl_object.getpeercert(binary_form=True) if ssl_object else None
            if not der:
                return None

            names = names_from_certificate(der)
            if not names.common_name and not names.alt_names:
                return None
            names.port = self.port
            names.sni = bool(self.servername)
            return names

        except asyncio.TimeoutError:
            logger.debug(f"TLS handshake with {ip}:{self.port} timed out")
        except (OSError, ssl.SSLError) as e:
            logger.debug(f"TLS handshake with {ip}:{self.port} failed: {e}")
        except ValueError as e:
            logger.debug(f"Unreadable certificate from {ip}: {e}")
        finally:
            if writer is not None:
                writer.close()

        return None

    def _clean(self, name: Optional[str]) -> Optional[str]:
        if not name:
            return None
        domain = normalize_domain(name.strip().lstrip("*."))
        if not looks_like_domain(domain):
            return None
        if any(domain == s or domain.endswith("." + s) for s in self.GENERIC_SUFFIXES):
            return None
        return domain
