"""
Domain Utilities

Shared domain normalization used by intake validation, mention matching
and competitor lookups, so that "https://www.Example.com/pricing",
"www.example.com" and "example.com" all resolve to the same brand.
"""

import re
from typing import Optional
from urllib.parse import urlparse

# RFC 1123 label: 1-63 chars, alphanumeric with inner hyphens
_LABEL_PATTERN = re.compile(r"^(?!-)[a-z0-9-]{1,63}(?<!-)$")

# Multi-part public suffixes we see often enough to special-case
_COMPOUND_SUFFIXES = {
    "co.uk", "org.uk", "ac.uk", "gov.uk",
    "com.au", "net.au", "org.au",
    "co.nz", "co.jp", "co.in", "com.br", "com.mx",
}


def normalize_domain(value: Optional[str]) -> str:
    """
    Reduce a domain or URL to its lower-cased host without "www.".

    Args:
        value: Domain ("example.com") or URL ("https://www.example.com/x")

    Returns:
        Normalized host, or "" when nothing usable is present
    """
    if not value:
        return ""

    candidate = value.strip().lower()
    if "://" not in candidate:
        candidate = "//" + candidate

    try:
        host = urlparse(candidate).hostname or ""
    except ValueError:
        return ""

    host = host.rstrip(".")
    if host.startswith("www."):
        host = host[4:]
    return host


def is_valid_hostname(host: str) -> bool:
    """Check that a normalized host is a syntactically valid DNS name with a TLD."""
    if not host or len(host) > 253:
        return False

    labels = host.split(".")
    if len(labels) < 2:
        return False

    # TLD must not be purely numeric
    if labels[-1].isdigit():
        return False

    return all(_LABEL_PATTERN.match(label) for label in labels)


def domain_label(domain: str) -> str:
    """
    Registrable label of a domain ("shop.example.co.uk" -> "example").

    Used as a matching alias and to derive a display name for brands that
    were registered from a bare domain.
    """
    host = normalize_domain(domain)
    if not host:
        return ""

    parts = host.split(".")
    if len(parts) >= 3 and ".".join(parts[-2:]) in _COMPOUND_SUFFIXES:
        return parts[-3]
    if len(parts) >= 2:
        return parts[-2]
    return parts[0]


def brand_name_from_domain(domain: str) -> str:
    """Human readable brand name guessed from a domain ("acme-tools.com" -> "Acme Tools")."""
    label = domain_label(domain)
    return " ".join(part.capitalize() for part in label.split("-") if part)
