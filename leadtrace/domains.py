"""Domain and hostname normalization helpers."""

import ipaddress
from typing import Optional
from urllib.parse import urlparse


def normalize_domain(domain: Optional[str]) -> str:
    """Normalize a domain name or URL to a bare lowercase hostname."""
    if not domain:
        return ""

    domain = str(domain).strip()

    # Handle full URLs
    if "://" in domain:
        parsed = urlparse(domain)
        domain = parsed.netloc or parsed.path

    domain = domain.lower().strip()

    # Remove credentials, path and port
    domain = domain.split("@")[-1]
    domain = domain.split("/")[0]
    domain = domain.split(":")[0]
    domain = domain.rstrip(".")

    # Remove www prefix
    if domain.startswith("www."):
        domain = domain[4:]

    return domain


def extract_domain(url: Optional[str]) -> Optional[str]:
    """Extract and normalize the host of a URL, or None if there is none."""
    if not url:
        return None

    try:
        parsed = urlparse(url if "://" in url else f"http://{url}")
        domain = normalize_domain(parsed.hostname or "")
    except ValueError:
        return None

    return domain or None


def registrable_domain(hostname: Optional[str]) -> str:
    """Return the last two dot-separated labels of a hostname."""
    if not hostname:
        return ""
    return ".".join(hostname.lower().rstrip(".").split(".")[-2:])


def email_domain(email: Optional[str]) -> Optional[str]:
    """Return the normalized domain part of an email address."""
    if not email or "@" not in email:
        return None
    domain = normalize_domain(email.strip().lower().rsplit("@", 1)[1])
    return domain if "." in domain else None


def brand_label(domain: str) -> str:
    """First label of a domain, used as its branding keyword."""
    return normalize_domain(domain).split(".")[0]


def is_ip_address(value: Optional[str]) -> bool:
    """Check whether a string is an IPv4 or IPv6 literal."""
    if not value:
        return False
    try:
        ipaddress.ip_address(value.strip("[]"))
        return True
    except ValueError:
        return False


def looks_like_domain(value: Optional[str]) -> bool:
    """Cheap structural check for a public hostname."""
    if not value or is_ip_address(value):
        return False
    labels = value.split(".")
    if len(labels) < 2 or not all(labels):
        return False
    return labels[-1].isalpha() and len(labels[-1]) >= 2
