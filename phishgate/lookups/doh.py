"""Mail-exchange (MX) lookups over DNS-over-HTTPS."""

from __future__ import annotations

import logging
import re
from typing import Optional

import aiohttp

from ..config import EngineConfig
from ..exceptions import LookupFailed
from .retry import with_retries

logger = logging.getLogger(__name__)

VALID_MX_HOST = re.compile(r"^[a-z0-9.-]+$", re.IGNORECASE)


def parse_mx_answers(data: object) -> list[str]:
    """Mail hosts from a JSON DoH response (``Answer[].data`` is ``"<prio> <host>."``)."""
    if not isinstance(data, dict) or data.get("Status") != 0:
        return []
    hosts: list[str] = []
    for ans in data.get("Answer") or []:
        if not isinstance(ans, dict):
            continue
        parts = str(ans.get("data", "")).split()
        if not parts:
            continue
        host = (parts[1] if len(parts) > 1 else parts[0]).rstrip(".").lower()
        if host and "." in host and VALID_MX_HOST.match(host):
            hosts.append(host)
    return hosts


def parent_domain(domain: str) -> Optional[str]:
    """Strip the leftmost label, as long as two labels remain."""
    labels = (domain or "").strip(".").split(".")
    if len(labels) <= 2:
        return None
    return ".".join(labels[1:])


class DohResolver:
    """Queries the configured DoH providers in order, then the parent domain."""

    def __init__(self, config: EngineConfig, session: Optional[aiohttp.ClientSession] = None):
        self.config = config
        self._session = session
        self._owns_session = session is None

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create aiohttp session."""
        if self._session is None or (self._owns_session and self._session.closed):
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.config.network_timeout)
            )
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        """Close the session if we created it."""
        if self._owns_session and self._session is not None and not self._session.closed:
            await self._session.close()

    async def _query(self, provider: str, domain: str) -> list[str]:
        session = await self._get_session()
        params = {"name": domain, "type": "MX"}
        headers = {"Accept": "application/dns-json"}
        async with session.get(provider, params=params, headers=headers) as resp:
            if resp.status != 200:
                raise LookupFailed(f"{provider} returned {resp.status}", url=provider, status_code=resp.status)
            data = await resp.json(content_type=None)
        return parse_mx_answers(data)

    async def lookup_mx(self, domain: str) -> Optional[list[str]]:
        """
        First non-empty answer across providers.

        Returns an empty list when a provider answered without MX records, and
        None when every provider failed.
        """
        answered = False
        for provider in self.config.doh_providers:
            try:
                hosts = await with_retries(
                    lambda: self._query(provider, domain),
                    attempts=self.config.network_attempts,
                    delay=self.config.retry_delay,
                    timeout=self.config.network_timeout,
                    label=f"MX lookup for {domain} via {provider}",
                )
            except LookupFailed as exc:
                logger.warning("%s", exc)
                continue
            answered = True
            if hosts:
                return hosts
            logger.debug("No MX records for %s from %s", domain, provider)
        return [] if answered else None

    async def lookup_mx_with_fallback(self, domain: str) -> Optional[list[str]]:
        hosts = await self.lookup_mx(domain)
        if hosts:
            return hosts
        parent = parent_domain(domain)
        if parent is None:
            return hosts
        logger.debug("Falling back to parent domain %s for MX lookup", parent)
        parent_hosts = await self.lookup_mx(parent)
        if parent_hosts is None:
            return hosts
        return parent_hosts
