"""Signal collectors that each derive a company domain from one channel."""

from .base import SignalCollector
from .reverse_dns import ReverseDnsCollector
from .tls_cert import TlsCertificateCollector, names_from_certificate
from .http_fetch import HttpFetchCollector
from .favicon import FaviconCollector
from .host_header import HostHeaderProbe, ProbeResult, ProbeTrial
from .directory import DirectoryLookup, format_category, parse_address
from .ip_geo import IpBaselineCollector, IpInfoClient
from .cache_reuse import CacheReuseCollector
from .form_submission import FormSubmissionCollector, signal_from_email
from .mock import StaticCollector

__all__ = [
    "SignalCollector",
    "ReverseDnsCollector",
    "TlsCertificateCollector",
    "names_from_certificate",
    "HttpFetchCollector",
    "FaviconCollector",
    "HostHeaderProbe",
    "ProbeResult",
    "ProbeTrial",
    "DirectoryLookup",
    "format_category",
    "parse_address",
    "IpBaselineCollector",
    "IpInfoClient",
    "CacheReuseCollector",
    "FormSubmissionCollector",
    "signal_from_email",
    "StaticCollector",
]
