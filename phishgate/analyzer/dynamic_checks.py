"""Network-assisted and heuristic URL checks.

Every check runs in its own failure boundary: an exception becomes an
``error_<name>`` reason with no weight and the other checks still complete.
"""

from __future__ import annotations

import asyncio
import logging
import re
from typing import Awaitable, Callable, Optional, Union
from urllib.parse import parse_qsl, unquote, urlsplit

from ..cache import MISS, TTLCache
from ..config import EngineConfig
from ..constants import Reason
from ..exceptions import LookupFailed
from ..lookups.assets import TrustedListLoader
from ..lookups.web import WebFetcher
from ..utils.domains import extract_registrable_domain, host_matches, normalize_host
from ..utils.similarity import levenshtein
from .homoglyph import HomoglyphDetector
from .models import CheckResult, PageContext
from .scripts import ScriptAnalyzer, is_suspicious_iframe

logger = logging.getLogger(__name__)

SUSPICIOUS_PARAM = re.compile(r"(token|auth|password|key|session|id|login|verify|secure|access)", re.IGNORECASE)
FREE_HOSTING_KEYWORDS = ("free", "webhost", "cheap", "hosting", "unlimited")
MAX_LABEL_LENGTH = 25
FRAGMENT_LIMIT = 10

CRYPTO_KEYWORDS = (
    "crypto", "bitcoin", "btc", "eth", "ether", "wallet", "coin", "token",
    "blockchain", "ledger", "exchange", "airdrop",
)
CRYPTO_PATTERNS: tuple[re.Pattern, ...] = (
    re.compile(r"(?:^|[./])(?:secure|auth|verify|2fa|locked)-?(?:wallet|crypto|coin|exchange|token|account)(?:$|[./])", re.I),
    re.compile(r"wallet[-_]?connect", re.I),
    re.compile(r"crypto[-_]?auth", re.I),
    re.compile(r"(?:free|earn|claim|bonus)[-_]?(?:crypto|bitcoin|btc|eth|coin)", re.I),
    re.compile(r"airdrop[-_]?(?:crypto|coin|token)", re.I),
)

WEIGHTED_KEYWORDS: tuple[tuple[str, int], ...] = (
    ("login", 4),
    ("secure", 3),
    ("verify", 4),
    ("password", 4),
    ("auth", 3),
    ("account", 2),
    ("billing", 2),
    ("invoice", 2),
    ("payment", 3),
    ("token", 3),
    ("session", 2),
    ("activate", 3),
    ("reset", 4),
)
KEYWORD_PATTERNS: tuple[re.Pattern, ...] = (
    re.compile(r"/(signin|reset-password|confirm|validate|secure-login|update-account|activate)", re.I),
    re.compile(r"[?&](action|step|verify|auth|reset|token|session)=", re.I),
    re.compile(r"(password-reset|confirm-email|verify-account|secure-payment|2fa-verification)", re.I),
)
LEGITIMATE_PATHS = frozenset({
    "/wp-login.php",
    "/admin/login",
    "/user/account",
    "/password-reset/valid",
    "/secure-payment/success",
})
LEGITIMATE_QUERY_PATTERNS: tuple[re.Pattern, ...] = (
    re.compile(r"reset-password=valid", re.I),
    re.compile(r"verify-email=completed", re.I),
    re.compile(r"session-id=[a-z0-9]+", re.I),
)

CheckFn = Callable[[str, str, Optional[PageContext]], Union[CheckResult, Awaitable[CheckResult]]]


class DynamicRiskChecker:
    """Runs the dynamic checks concurrently and merges their results."""

    def __init__(
        self,
        config: EngineConfig,
        detector: HomoglyphDetector,
        fetcher: WebFetcher,
        scripts: ScriptAnalyzer,
        redirect_cache: TTLCache,
        trusted_lists: Optional[TrustedListLoader] = None,
    ):
        self.config = config
        self.detector = detector
        self.fetcher = fetcher
        self.scripts = scripts
        self.redirect_cache = redirect_cache
        self.trusted_lists = trusted_lists
        self.checks: dict[str, CheckFn] = {
            "homoglyph": self.check_homoglyph,
            "typosquatting": self.check_typosquatting,
            "shortened_url": self.check_shortened_url,
            "download_page": self.check_download_page,
            "query_params": self.check_query_params,
            "mixed_content": self.check_mixed_content,
            "port": self.check_port,
            "javascript_scheme": self.check_javascript_scheme,
            "fragment": self.check_fragment,
            "crypto": self.check_crypto_phishing,
            "free_hosting": self.check_free_hosting,
            "keywords": self.check_keywords,
            "url_patterns": self.check_url_patterns,
            "scripts": self.check_scripts,
            "iframes": self.check_iframes,
        }

    async def _run_isolated(
        self, name: str, check: CheckFn, url: str, host: str, context: Optional[PageContext]
    ) -> CheckResult:
        try:
            result = check(url, host, context)
            if asyncio.iscoroutine(result):
                result = await result
            return result
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.warning("Check %s failed for %s: %s", name, url, exc)
            failed = CheckResult()
            failed.add(f"error_{name}", 0)
            return failed

    async def check(self, url: str, context: Optional[PageContext] = None) -> CheckResult:
        host = normalize_host(url) or ""
        results = await asyncio.gather(
            *(self._run_isolated(name, check, url, host, context) for name, check in self.checks.items())
        )
        merged = CheckResult()
        for result in results:
            merged.extend(result)
        logger.debug("Dynamic checks for %s: %s", host, merged.reasons)
        return merged

    def _single(self, reason: Reason) -> CheckResult:
        result = CheckResult()
        result.add(reason, self.config.weight(reason.value))
        return result

    # -- individual checks ------------------------------------------------

    def check_homoglyph(self, url: str, host: str, context: Optional[PageContext]) -> CheckResult:
        result = CheckResult()
        if not host:
            return result
        impersonation = self.detector.check(host)
        if impersonation.is_impersonation:
            result.add(Reason.HOMOGLYPH_ATTACK, self.config.weight(Reason.HOMOGLYPH_ATTACK.value))
        for reason in impersonation.reasons:
            result.add(reason, self.config.weight(reason))
        return result

    def check_typosquatting(self, url: str, host: str, context: Optional[PageContext]) -> CheckResult:
        if host and any(pattern.search(host) for pattern in self.config.typosquat_patterns):
            return self._single(Reason.TYPOSQUATTING_ATTACK)
        return CheckResult()

    async def check_shortened_url(self, url: str, host: str, context: Optional[PageContext]) -> CheckResult:
        if host not in self.config.shortened_url_domains:
            return CheckResult()
        result = self._single(Reason.SHORTENED_URL)

        resolved = self.redirect_cache.get(url)
        if resolved is MISS:
            try:
                resolved = await self.fetcher.resolve_redirect(url)
            except LookupFailed as exc:
                logger.debug("Could not resolve shortened URL %s: %s", url, exc)
                resolved = None
            self.redirect_cache.set(url, resolved)
        if resolved is None:
            # Unresolvable short links are assumed to hide something.
            result.add(Reason.SHORTENED_URL_UNRESOLVED, self.config.weight(Reason.SHORTENED_URL_UNRESOLVED.value))
        return result

    def check_download_page(self, url: str, host: str, context: Optional[PageContext]) -> CheckResult:
        path = urlsplit(url).path.lower()
        match = re.search(r"\.([0-9a-z]+)$", path)
        if match and match.group(1) in self.config.malware_extensions:
            return self._single(Reason.DOWNLOAD_PAGE)
        return CheckResult()

    def check_query_params(self, url: str, host: str, context: Optional[PageContext]) -> CheckResult:
        for key, value in parse_qsl(urlsplit(url).query, keep_blank_values=True):
            if not (SUSPICIOUS_PARAM.search(key) or SUSPICIOUS_PARAM.search(value)):
                continue
            if any(pattern.search(key) for pattern in self.config.allowed_query_params):
                continue
            return self._single(Reason.SUSPICIOUS_PARAMS)
        return CheckResult()

    def check_mixed_content(self, url: str, host: str, context: Optional[PageContext]) -> CheckResult:
        if url.lower().startswith("https://") and "http://" in url[len("https://"):].lower():
            return self._single(Reason.MIXED_CONTENT)
        return CheckResult()

    def check_port(self, url: str, host: str, context: Optional[PageContext]) -> CheckResult:
        try:
            port = urlsplit(url).port
        except ValueError:
            port = -1
        if port is not None and port not in (80, 443):
            return self._single(Reason.UNUSUAL_PORT)
        return CheckResult()

    def check_javascript_scheme(self, url: str, host: str, context: Optional[PageContext]) -> CheckResult:
        decoded = unquote(url).lower()
        if decoded.startswith("javascript:") or "=javascript:" in decoded.replace(" ", ""):
            return self._single(Reason.JAVASCRIPT_SCHEME)
        return CheckResult()

    def check_fragment(self, url: str, host: str, context: Optional[PageContext]) -> CheckResult:
        fragment = urlsplit(url).fragment
        if len(fragment) + 1 > FRAGMENT_LIMIT:
            return self._single(Reason.URL_FRAGMENT_TRICK)
        return CheckResult()

    def check_crypto_phishing(self, url: str, host: str, context: Optional[PageContext]) -> CheckResult:
        if not host:
            return CheckResult()
        official = self.config.crypto_domains
        if host_matches(host, official):
            return CheckResult()

        label = extract_registrable_domain(host, self.config.compound_tlds).split(".")[0]
        for domain in official:
            brand = domain.split(".")[0]
            if re.fullmatch(rf"{re.escape(brand)}[-_]?\d+", label):
                return self._single(Reason.CRYPTO_PHISHING)
            if brand in host and host != domain and levenshtein(host, domain) <= 3:
                return self._single(Reason.CRYPTO_PHISHING)

        full_path = f"{host}{urlsplit(url).path}".lower()
        if any(k in full_path for k in CRYPTO_KEYWORDS) and any(p.search(full_path) for p in CRYPTO_PATTERNS):
            return self._single(Reason.CRYPTO_PHISHING)
        return CheckResult()

    def check_free_hosting(self, url: str, host: str, context: Optional[PageContext]) -> CheckResult:
        if not host:
            return CheckResult()
        providers = self.config.free_hosting_domains
        if host_matches(host, providers):
            return self._single(Reason.FREE_HOSTING)

        label = extract_registrable_domain(host, self.config.compound_tlds).split(".")[0]
        stripped = label.rstrip("0123456789")
        if stripped != label and stripped in {p.split(".")[0] for p in providers}:
            return self._single(Reason.FREE_HOSTING)

        if any(keyword in host for keyword in FREE_HOSTING_KEYWORDS):
            return self._single(Reason.FREE_HOSTING)
        if "--" in host.replace("xn--", "") or any(len(part) > MAX_LABEL_LENGTH for part in host.split(".")):
            return self._single(Reason.FREE_HOSTING)
        return CheckResult()

    def check_keywords(self, url: str, host: str, context: Optional[PageContext]) -> CheckResult:
        parsed = urlsplit(url)
        path = parsed.path.lower()
        query = parsed.query.lower()
        if path in LEGITIMATE_PATHS or any(p.search(query) for p in LEGITIMATE_QUERY_PATTERNS):
            return CheckResult()
        if any(p.search(parsed.path) for p in self.config.allowed_paths):
            return CheckResult()

        score = sum(weight for keyword, weight in WEIGHTED_KEYWORDS if keyword in path or keyword in query)
        search_space = f"{path}?{query}" if query else path
        if score >= 3 and any(p.search(search_space) for p in KEYWORD_PATTERNS):
            return self._single(Reason.SUSPICIOUS_KEYWORDS)
        return CheckResult()

    def check_url_patterns(self, url: str, host: str, context: Optional[PageContext]) -> CheckResult:
        parsed = urlsplit(url)
        target = f"{parsed.path}?{parsed.query}"
        matches = sum(1 for pattern in self.config.suspicious_url_patterns if pattern.search(target))
        if matches >= 2:
            return self._single(Reason.SUSPICIOUS_PATTERN)
        return CheckResult()

    async def check_scripts(self, url: str, host: str, context: Optional[PageContext]) -> CheckResult:
        if context is None or not context.scripts:
            return CheckResult()
        if self.trusted_lists is not None:
            trusted = await self.trusted_lists.trusted_scripts()
        else:
            trusted = self.config.trusted_script_domains
        suspicious = await self.scripts.find_suspicious(context.scripts, trusted)
        if suspicious:
            return self._single(Reason.EXTERNAL_SCRIPTS)
        return CheckResult()

    def check_iframes(self, url: str, host: str, context: Optional[PageContext]) -> CheckResult:
        if context is None or not context.iframes:
            return CheckResult()
        page_host = normalize_host(context.page_url or "")
        if any(is_suspicious_iframe(iframe, self.config, page_host) for iframe in context.iframes):
            return self._single(Reason.SUSPICIOUS_IFRAMES)
        return CheckResult()
