"""Utility modules for OpenSight."""

from .config import Settings, get_settings
from .domains import (
    normalize_domain,
    is_valid_hostname,
    domain_label,
    brand_name_from_domain,
)
from .logging_setup import setup_logging

__all__ = [
    "Settings",
    "get_settings",
    # Domains
    "normalize_domain",
    "is_valid_hostname",
    "domain_label",
    "brand_name_from_domain",
    # Logging
    "setup_logging",
]
