"""Synchronous URL checks that need no network access."""

from __future__ import annotations

import logging
import re
from typing import Iterable, Optional
from urllib.parse import urlsplit

from ..config import EngineConfig
from ..constants import NO_HTTPS_LOGIN_WEIGHT_KEY, Reason
from ..utils.domains import (
    count_subdomains,
    extract_registrable_domain,
    host_matches,
    is_ip_address,
    normalize_host,
    top_level_domain,
)
from ..utils.similarity import levenshtein
from .models import CheckResult, PageContext

logger = logging.getLogger(__name__)

PERCENT_ENCODING = re.compile(r"%[0-9a-f]{2}", re.IGNORECASE)
BASE64_BLOB = re.compile(r"[A-Za-z0-9+/]{40,}={0,2}")
HEX_BLOB = re.compile(r"\b[0-9a-fA-F]{32,}\b")
TOKEN_SPLIT = re.compile(r"[^a-z0-9]+")


def is_login_page(config: EngineConfig, url: str, context: Optional[PageContext] = None) -> bool:
    """A password field on the page, or a login-looking URL."""
    if context is not None and context.has_password_field:
        return True
    return bool(config.login_pattern.search(url or ""))


def has_encoding_anomaly(url: str) -> bool:
    """Percent-encoding anywhere, except a single ``%20`` confined to the path."""
    parsed = urlsplit(url)
    matches = PERCENT_ENCODING.findall(url)
    if not matches:
        return False
    if len(matches) == 1 and matches[0] == "%20" and "%20" in parsed.path:
        return False
    return True


def url_tokens(host: str, path: str) -> set[str]:
    text = f"{host} {path}".lower()
    return {token for token in TOKEN_SPLIT.split(text) if token}


class StaticRiskChecker:
    """Protocol, TLD, structure, encoding and brand-similarity checks."""

    def __init__(self, config: EngineConfig):
        self.config = config

    def is_trusted(self, host: str, trusted_domains: Iterable[str] = ()) -> bool:
        return host_matches(host, self.config.legitimate_domains) or host_matches(host, trusted_domains)

    def check(
        self,
        url: str,
        context: Optional[PageContext] = None,
        trusted_domains: Iterable[str] = (),
    ) -> CheckResult:
        result = CheckResult()
        host = normalize_host(url)
        if host is None:
            return result
        if self.is_trusted(host, trusted_domains):
            result.trusted = True
            return result

        cfg = self.config
        parsed = urlsplit(url)

        if parsed.scheme.lower() == "http":
            key = NO_HTTPS_LOGIN_WEIGHT_KEY if is_login_page(cfg, url, context) else Reason.NO_HTTPS.value
            result.add(Reason.NO_HTTPS, cfg.weight(key))

        if top_level_domain(host) in cfg.suspicious_tlds:
            result.add(Reason.SUSPICIOUS_TLD, cfg.weight(Reason.SUSPICIOUS_TLD.value))

        if is_ip_address(host):
            result.add(Reason.IP_AS_DOMAIN, cfg.weight(Reason.IP_AS_DOMAIN.value))
        elif count_subdomains(host, cfg.compound_tlds) > cfg.max_subdomains:
            result.add(Reason.TOO_MANY_SUBDOMAINS, cfg.weight(Reason.TOO_MANY_SUBDOMAINS.value))

        if len(url) > cfg.max_url_length:
            result.add(Reason.URL_TOO_LONG, cfg.weight(Reason.URL_TOO_LONG.value))

        if has_encoding_anomaly(url):
            result.add(Reason.ENCODED_CHARACTERS, cfg.weight(Reason.ENCODED_CHARACTERS.value))

        try:
            port = parsed.port
        except ValueError:
            port = -1
        if port is not None and port not in (80, 443):
            result.add(Reason.UNUSUAL_PORT, cfg.weight(Reason.UNUSUAL_PORT.value))

        if not is_ip_address(host):
            self._check_brand_similarity(host, result)
            self._check_keywords(host, parsed.path, result)

        if BASE64_BLOB.search(parsed.path + parsed.query) or HEX_BLOB.search(parsed.path + parsed.query):
            result.add(Reason.BASE64_OR_HEX, cfg.weight(Reason.BASE64_OR_HEX.value))

        logger.debug("Static checks for %s: %s", host, result.reasons)
        return result

    def _check_brand_similarity(self, host: str, result: CheckResult) -> None:
        registrable = extract_registrable_domain(host, self.config.compound_tlds)
        closest: Optional[str] = None
        closest_distance = 3
        for brand in self.config.legitimate_domains:
            distance = levenshtein(registrable, brand)
            if 0 < distance < closest_distance:
                closest, closest_distance = brand, distance
        if closest is not None:
            weight = self.config.domain_risk_weights.get(closest, 1)
            result.add(Reason.SIMILAR_TO_LEGITIMATE, weight)

    def _check_keywords(self, host: str, path: str, result: CheckResult) -> None:
        cfg = self.config
        if url_tokens(host, path) & cfg.phishing_keywords:
            result.add(Reason.PHISHING_KEYWORD, cfg.weight(Reason.PHISHING_KEYWORD.value))

        registrable = extract_registrable_domain(host, cfg.compound_tlds)
        brand_zone = host[: -len(registrable)] + registrable.split(".")[0]
        host_tokens = {token for token in TOKEN_SPLIT.split(brand_zone) if token}
        if host_tokens & set(cfg.brand_keywords):
            result.add(Reason.BRAND_KEYWORD_SUBDOMAIN, cfg.weight(Reason.BRAND_KEYWORD_SUBDOMAIN.value))
