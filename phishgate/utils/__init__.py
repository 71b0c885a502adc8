"""Utility helpers for phishgate."""

from .domains import (
    count_subdomains,
    decode_punycode,
    extract_registrable_domain,
    host_matches,
    is_ip_address,
    normalize_host,
    strip_diacritics,
)
from .similarity import distance_ratio, levenshtein

__all__ = [
    "count_subdomains",
    "decode_punycode",
    "distance_ratio",
    "extract_registrable_domain",
    "host_matches",
    "is_ip_address",
    "levenshtein",
    "normalize_host",
    "strip_diacritics",
]
