"""Content analysis of external scripts and embedded iframes."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Iterable, Optional
from urllib.parse import urlsplit

from ..cache import TTLCache
from ..config import EngineConfig
from ..exceptions import LookupFailed
from ..lookups.web import WebFetcher
from ..utils.domains import host_matches, normalize_host, top_level_domain
from .models import IframeInfo

logger = logging.getLogger(__name__)

MIN_SCRIPT_LENGTH = 2048
MINIFIED_RATIO = 0.8
SOURCE_MAP = re.compile(r"//[#@]?\s*sourceMappingURL=", re.IGNORECASE)
# Institutional TLDs whose scripts are not fetched.
SKIPPED_SCRIPT_TLDS = frozenset({"edu", "org", "gov"})

KNOWN_LIBRARIES: tuple[re.Pattern, ...] = tuple(
    re.compile(p)
    for p in (
        r"jQuery\s+v?[\d.]+",
        r"React(?:DOM)?\s+v?[\d.]+",
        r"angular[\d.]+",
        r"vue[\d.]+",
        r"bootstrap[\d.]+",
        r"lodash[\d.]+",
        r"moment\.js",
        r"axios[\d.]+",
        r"d3\s+v?[\d.]+",
        r"chart\.js",
        r"backbone[\d.]+",
        r"underscore[\d.]+",
        r"gtag",
        r"sentry\.io",
    )
)


@dataclass(frozen=True)
class ScriptAnalysis:
    url: str
    is_suspicious: bool = False
    matched_patterns: tuple[str, ...] = ()
    total_weight: float = 0.0


def is_minified(text: str) -> bool:
    if not text:
        return False
    non_whitespace = len(re.sub(r"\s", "", text))
    return non_whitespace > len(text) * MINIFIED_RATIO


def analyze_script_text(url: str, text: str, config: EngineConfig) -> ScriptAnalysis:
    """Weighted pattern scoring, gated by size, known libraries and minification."""
    if len(text) < MIN_SCRIPT_LENGTH:
        return ScriptAnalysis(url)
    if any(pattern.search(text) for pattern in KNOWN_LIBRARIES):
        logger.debug("Known library detected in %s", url)
        return ScriptAnalysis(url)

    total = 0.0
    matched: list[str] = []
    for pattern in config.script_patterns:
        if pattern.regex.search(text):
            total += pattern.weight
            matched.append(pattern.description or pattern.regex.pattern)

    suspicious = (
        total > 0
        and total >= config.script_risk_threshold
        and is_minified(text)
        and not SOURCE_MAP.search(text)
    )
    if suspicious:
        logger.debug("Suspicious script %s (weight %s): %s", url, total, ", ".join(matched))
    return ScriptAnalysis(url, suspicious, tuple(matched), total)


class ScriptAnalyzer:
    def __init__(self, config: EngineConfig, fetcher: WebFetcher, cache: TTLCache):
        self.config = config
        self.fetcher = fetcher
        self.cache = cache

    def should_skip(self, url: str, trusted_hosts: Iterable[str]) -> bool:
        host = normalize_host(url)
        if host is None:
            return True
        return top_level_domain(host) in SKIPPED_SCRIPT_TLDS or host_matches(host, trusted_hosts)

    async def analyze(self, url: str) -> ScriptAnalysis:
        async def _fetch_and_score() -> ScriptAnalysis:
            try:
                text = await self.fetcher.fetch_text(url)
            except LookupFailed as exc:
                logger.debug("Script fetch failed: %s", exc)
                return ScriptAnalysis(url)
            return analyze_script_text(url, text, self.config)

        return await self.cache.get_or_fetch(url, _fetch_and_score)

    async def find_suspicious(self, urls: Iterable[str], trusted_hosts: Iterable[str]) -> list[ScriptAnalysis]:
        trusted_hosts = tuple(trusted_hosts)
        suspicious: list[ScriptAnalysis] = []
        for url in list(dict.fromkeys(urls))[: self.config.max_scripts]:
            if self.should_skip(url, trusted_hosts):
                continue
            analysis = await self.analyze(url)
            if analysis.is_suspicious:
                suspicious.append(analysis)
        return suspicious


def is_suspicious_iframe(iframe: IframeInfo, config: EngineConfig, page_host: Optional[str] = None) -> bool:
    """Hidden or tiny iframes that also carry an onload hook, a javascript: src or a bad pattern."""
    src = (iframe.src or "").strip()
    if not src:
        return False
    if src.lower().startswith("javascript:"):
        host = None
    else:
        host = (urlsplit(src).hostname or "").lower()
        if host_matches(host, config.trusted_iframe_domains):
            return False
        if page_host and host and host_matches(host, [page_host]):
            return False

    tiny = (iframe.width is not None and iframe.width < 2) or (iframe.height is not None and iframe.height < 2)
    if not (iframe.hidden or tiny):
        return False

    if iframe.has_onload or host is None:
        return True
    for pattern in config.iframe_patterns:
        if pattern.regex.search(src):
            logger.debug("Hidden iframe %s matches %s pattern", src, pattern.name)
            return True
    return False
