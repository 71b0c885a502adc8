"""Risk aggregation engine for phishgate.

``Engine`` owns the configuration, the caches and every checker, and runs
one evaluation through the forward-only stages:

    UNSCORED -> STATICALLY_SCORED -> DYNAMICALLY_SCORED
             -> DEEP_VALIDATED (only past the gate) -> FINALIZED
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Callable, Optional
from urllib.parse import urlsplit

import aiohttp
import httpx

from .analyzer.deep_validation import DeepValidator
from .analyzer.dynamic_checks import DynamicRiskChecker
from .analyzer.homoglyph import HomoglyphDetector
from .analyzer.models import EvaluationContext, PageContext, Verdict
from .analyzer.scripts import ScriptAnalyzer
from .analyzer.static_checks import StaticRiskChecker, is_login_page
from .cache import MISS, CacheRegistry
from .config import EngineConfig, default_config
from .constants import ALLOWED_NON_HTTP_SCHEMES, EvaluationStage, Reason, VerdictLevel
from .lookups.assets import TrustedListLoader
from .lookups.doh import DohResolver
from .lookups.mail_queue import MailLookupQueue
from .lookups.rdap import RdapClient
from .lookups.web import WebFetcher
from .utils.domains import normalize_host

logger = logging.getLogger(__name__)


class Engine:
    """URL risk scoring engine.

    Construct once and share; swap configuration with ``reconfigure``.
    ``evaluate`` never raises: unexpected failures yield a ``caution``
    verdict.
    """

    def __init__(
        self,
        config: Optional[EngineConfig] = None,
        *,
        http_client: Optional[httpx.AsyncClient] = None,
        doh_session: Optional[aiohttp.ClientSession] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        config = config or default_config()
        self._clock = clock
        self._inflight: dict[str, asyncio.Future] = {}
        self._sweeper: Optional[asyncio.Task] = None

        # Network clients survive reconfiguration; they read timeouts from
        # ``config`` at call time.
        self.fetcher = WebFetcher(config, http_client)
        self.rdap = RdapClient(config, http_client)
        self.resolver = DohResolver(config, doh_session)
        self.trusted_lists = TrustedListLoader(config, None, doh_session)  # cache wired below
        self.mail_queue = MailLookupQueue(self.resolver, None)

        self._wire(config)

    def _wire(self, config: EngineConfig) -> None:
        self.config = config
        self.caches = CacheRegistry(config, clock=self._clock)

        for client in (self.fetcher, self.rdap, self.resolver, self.trusted_lists):
            client.config = config
        self.trusted_lists.cache = self.caches.assets
        self.mail_queue.cache = self.caches.mail_lookups

        self.detector = HomoglyphDetector(config)
        self.static = StaticRiskChecker(config)
        self.scripts = ScriptAnalyzer(config, self.fetcher, self.caches.scripts)
        self.dynamic = DynamicRiskChecker(
            config,
            self.detector,
            self.fetcher,
            self.scripts,
            self.caches.redirects,
            trusted_lists=self.trusted_lists,
        )
        self.deep = DeepValidator(config, self.rdap, self.mail_queue, self.caches.domain_ages)

    def reconfigure(self, config: EngineConfig) -> None:
        """Swap in a new configuration; derived tables and caches start fresh."""
        logger.info("Reconfiguring engine")
        self._wire(config)

    # -- verdict mapping --------------------------------------------------

    def classify(self, score: float) -> VerdictLevel:
        """Two-way threshold mapping; the medium threshold is not consulted."""
        if score < self.config.low_threshold:
            return VerdictLevel.SAFE
        if score < self.config.high_threshold:
            return VerdictLevel.CAUTION
        return VerdictLevel.ALERT

    def _benign(self, url: str, reason: Reason) -> Verdict:
        verdict = Verdict(VerdictLevel.SAFE, 0.0, (reason.value,))
        self.caches.verdicts.set(url, verdict)
        return verdict

    def _error_verdict(self) -> Verdict:
        return Verdict(VerdictLevel.CAUTION, float(self.config.low_threshold), (Reason.EVALUATION_ERROR.value,))

    # -- evaluation -------------------------------------------------------

    async def evaluate(self, url: str, context: Optional[PageContext] = None) -> Verdict:
        """Score one URL. Concurrent calls for the same URL share one evaluation."""
        if not self.config.protection_enabled:
            return Verdict(VerdictLevel.SAFE, 0.0, ())

        key = url.strip() if isinstance(url, str) else ""
        cached = self.caches.verdicts.get(key)
        if cached is not MISS:
            logger.debug("Verdict cache hit for %s", key)
            return cached

        pending = self._inflight.get(key)
        if pending is not None:
            return await asyncio.shield(pending)

        future = asyncio.ensure_future(self._evaluate_safely(key, context))
        self._inflight[key] = future
        try:
            return await asyncio.shield(future)
        finally:
            self._inflight.pop(key, None)

    async def _evaluate_safely(self, url: str, context: Optional[PageContext]) -> Verdict:
        try:
            return await self._evaluate(url, context)
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("Evaluation failed for %s", url)
            return self._error_verdict()

    async def _evaluate(self, url: str, context: Optional[PageContext]) -> Verdict:
        if not url:
            return self._benign(url, Reason.INVALID_URL)
        try:
            scheme = urlsplit(url).scheme.lower()
        except ValueError:
            return self._benign(url, Reason.INVALID_URL)

        if not scheme:
            return self._benign(url, Reason.INVALID_URL)
        if scheme in ALLOWED_NON_HTTP_SCHEMES:
            return self._benign(url, Reason.ALLOWED_PROTOCOL)

        ctx = EvaluationContext(url)
        if scheme == "javascript":
            ctx.merge(self.dynamic.check_javascript_scheme(url, "", context))
            return self._finalize(ctx)
        if scheme not in ("http", "https"):
            return self._benign(url, Reason.UNSUPPORTED_PROTOCOL)

        host = normalize_host(url)
        if host is None:
            return self._benign(url, Reason.INVALID_URL)

        trusted_domains = await self.trusted_lists.trusted_domains()
        static = self.static.check(url, context, trusted_domains)
        if static.trusted:
            logger.debug("%s is on the trusted list", host)
            return self._benign(url, Reason.TRUSTED_DOMAIN)
        ctx.merge(static)
        ctx.advance(EvaluationStage.STATICALLY_SCORED)

        ctx.merge(await self.dynamic.check(url, context))
        ctx.advance(EvaluationStage.DYNAMICALLY_SCORED)

        if ctx.score > self.config.domain_age_min_risk or is_login_page(self.config, url, context):
            ctx.merge(await self.deep.validate(url, ctx.score, context))
            ctx.advance(EvaluationStage.DEEP_VALIDATED)

        return self._finalize(ctx)

    def _finalize(self, ctx: EvaluationContext) -> Verdict:
        risk = round(ctx.score, 1)
        ctx.advance(EvaluationStage.FINALIZED)
        verdict = Verdict(self.classify(risk), risk, ctx.reasons)
        logger.debug("Verdict for %s: %s (%.1f) %s", ctx.url, verdict.level, risk, list(verdict.reasons))
        self.caches.verdicts.set(ctx.url, verdict)
        return verdict

    # -- housekeeping -----------------------------------------------------

    def sweep_caches(self) -> int:
        removed = self.caches.sweep_all()
        if removed:
            logger.debug("Swept %d expired cache entries", removed)
        return removed

    async def run_sweeper(self, interval: float = 300.0) -> None:
        """Periodically evict expired cache entries until cancelled."""
        while True:
            await asyncio.sleep(interval)
            self.sweep_caches()

    def start_sweeper(self, interval: float = 300.0) -> asyncio.Task:
        """Schedule ``run_sweeper`` on the running loop; ``aclose`` stops it."""
        if self._sweeper is None or self._sweeper.done():
            self._sweeper = asyncio.create_task(self.run_sweeper(interval))
        return self._sweeper

    async def aclose(self) -> None:
        if self._sweeper is not None and not self._sweeper.done():
            self._sweeper.cancel()
            try:
                await self._sweeper
            except asyncio.CancelledError:
                pass
        self._sweeper = None
        await self.mail_queue.close()
        await self.fetcher.close()
        await self.resolver.close()
        await self.trusted_lists.close()
