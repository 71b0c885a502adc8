"""Deep validation: domain age and mail infrastructure.

Both checks cost network round trips, so the aggregator only calls in here
once a URL is already suspicious (domain age) or looks like a login page
(mail records).
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Callable, Optional
from urllib.parse import urlsplit

from ..cache import MISS, TTLCache
from ..config import EngineConfig
from ..constants import Reason
from ..lookups.mail_queue import MailLookupQueue
from ..lookups.rdap import RdapClient
from ..utils.domains import normalize_host, registered_domain
from .models import CheckResult, PageContext
from .static_checks import is_login_page

logger = logging.getLogger(__name__)

DOMAIN_AGE_REASON_PREFIX = "domainAge:"


def format_domain_age(days: int) -> str:
    return f"{DOMAIN_AGE_REASON_PREFIX}{days}d"


class DeepValidator:
    def __init__(
        self,
        config: EngineConfig,
        rdap: RdapClient,
        mail_queue: MailLookupQueue,
        age_cache: TTLCache,
        now: Optional[Callable[[], datetime]] = None,
    ):
        self.config = config
        self.rdap = rdap
        self.mail_queue = mail_queue
        self.age_cache = age_cache
        self._now = now or (lambda: datetime.now(timezone.utc))

    async def registration_date(self, domain: str) -> Optional[datetime]:
        """Registration date of ``domain``; failed lookups are not cached."""
        cached = self.age_cache.get(domain)
        if cached is not MISS:
            return cached
        result = await self.rdap.lookup(domain)
        if not result.ok:
            logger.debug("No registration date for %s: %s", domain, result.error)
            return None
        self.age_cache.set(domain, result.registered_at)
        return result.registered_at

    async def check_domain_age(self, host: str) -> CheckResult:
        result = CheckResult()
        domain = registered_domain(host)
        if not domain or "." not in domain:
            return result
        registered_at = await self.registration_date(domain)
        if registered_at is None:
            return result

        age_days = max(0, (self._now() - registered_at).days)
        logger.debug("Domain %s is %d days old", domain, age_days)
        if age_days < self.config.young_domain_threshold_days:
            result.add(Reason.YOUNG_DOMAIN, self.config.young_domain_risk)
            result.add(format_domain_age(age_days), 0)
        return result

    async def check_mail_records(self, host: str) -> CheckResult:
        result = CheckResult()
        hosts = await self.mail_queue.submit(host)
        if hosts is None:
            # Every provider failed; no evidence either way.
            return result
        if not hosts:
            logger.debug("Login page %s has no MX records", host)
            result.add(Reason.LOGIN_PAGE_NO_MX, self.config.weight(Reason.LOGIN_PAGE_NO_MX.value))
        return result

    def check_insecure_login(self, url: str, host: str, context: Optional[PageContext]) -> CheckResult:
        result = CheckResult()
        if urlsplit(url).scheme.lower() != "http":
            return result
        if context is not None and context.page_url:
            page_host = normalize_host(context.page_url)
            if page_host is not None and page_host != host:
                return result
        result.add(Reason.INSECURE_LOGIN_PAGE, self.config.weight(Reason.INSECURE_LOGIN_PAGE.value))
        return result

    async def validate(self, url: str, score: float, context: Optional[PageContext] = None) -> CheckResult:
        result = CheckResult()
        host = normalize_host(url)
        if host is None:
            return result

        if score > self.config.domain_age_min_risk:
            result.extend(await self.check_domain_age(host))

        if is_login_page(self.config, url, context):
            result.extend(await self.check_mail_records(host))
            result.extend(self.check_insecure_login(url, host, context))

        if result:
            logger.debug("Deep validation for %s: %s", host, result.reasons)
        return result
