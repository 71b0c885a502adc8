"""Domain normalization utilities."""

from __future__ import annotations

import ipaddress
import logging
import unicodedata
from typing import Iterable, Optional
from urllib.parse import urlsplit

import idna
import tldextract

logger = logging.getLogger(__name__)

ACE_PREFIX = "xn--"

# Offline extractor: uses the public-suffix snapshot bundled with tldextract.
_extract = tldextract.TLDExtract(suffix_list_urls=())


def normalize_host(url: str) -> Optional[str]:
    """
    Return the canonical host of an http(s) URL, or None.

    - Only http/https origins are accepted
    - Lowercase
    - Strip leading "www." and trailing dots/slashes
    - Port, path, query and fragment are ignored
    """
    raw = (url or "").strip() if isinstance(url, str) else ""
    if not raw:
        return None
    try:
        parsed = urlsplit(raw)
        host = parsed.hostname
    except ValueError:
        return None
    if parsed.scheme.lower() not in ("http", "https") or not host:
        return None

    host = host.strip().lower().rstrip("/").strip(".")
    if host.startswith("www.") and len(host) > 4:
        host = host[4:]
    return host or None


def has_punycode(host: str) -> bool:
    return any(label.startswith(ACE_PREFIX) for label in (host or "").split("."))


def decode_punycode(host: str) -> tuple[str, bool]:
    """
    Decode ACE (xn--) labels to Unicode.

    Returns ``(host, failed)``. On a decode error the original host is
    returned with ``failed=True``; never raises.
    """
    if not has_punycode(host):
        return host, False
    try:
        return idna.decode(host), False
    except (idna.IDNAError, UnicodeError, ValueError) as exc:
        logger.debug("Punycode decode failed for %s: %s", host, exc)
        return host, True


def strip_diacritics(value: str) -> str:
    """Decompose, drop combining marks, recompose."""
    decomposed = unicodedata.normalize("NFD", value or "")
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    return unicodedata.normalize("NFC", stripped)


def _ends_with_compound(host: str, compound_tlds: Iterable[str]) -> bool:
    return any(host == tld or host.endswith("." + tld) for tld in compound_tlds)


def extract_registrable_domain(host: str, compound_tlds: Iterable[str] = ()) -> str:
    """Last three labels for configured compound TLDs (co.uk), else the last two."""
    host = (host or "").strip(".").lower()
    labels = host.split(".")
    keep = 3 if _ends_with_compound(host, compound_tlds) else 2
    return ".".join(labels[-keep:])


def count_subdomains(host: str, compound_tlds: Iterable[str] = ()) -> int:
    """Number of labels in front of the registrable domain."""
    host = (host or "").strip(".")
    if not host:
        return 0
    labels = host.split(".")
    registrable = 3 if _ends_with_compound(host, compound_tlds) else 2
    return max(0, len(labels) - registrable)


def top_level_domain(host: str) -> str:
    return (host or "").rstrip(".").rsplit(".", 1)[-1].lower()


def is_ip_address(host: str) -> bool:
    candidate = (host or "").strip("[]")
    try:
        ipaddress.ip_address(candidate)
    except ValueError:
        return False
    return True


def host_matches(host: str, domains: Iterable[str]) -> bool:
    """True when host equals, or is a subdomain of, any listed domain."""
    host = (host or "").lower().strip(".")
    if not host:
        return False
    for domain in domains:
        domain = (domain or "").lower().strip(".")
        if domain and (host == domain or host.endswith("." + domain)):
            return True
    return False


def registered_domain(host: str) -> str:
    """Registrable domain per the public suffix list (best-effort)."""
    host = (host or "").strip(".").lower()
    if not host:
        return ""
    extracted = _extract(host)
    if extracted.domain and extracted.suffix:
        return f"{extracted.domain}.{extracted.suffix}"
    return host
