"""Remote trusted-domain and trusted-script lists.

Each asset is a JSON array of domain strings. Lists are cached with a TTL and
fall back to the configured lists when unavailable or malformed.
"""

from __future__ import annotations

import logging
from typing import Optional

import aiohttp

from ..cache import TTLCache
from ..config import EngineConfig
from ..exceptions import LookupFailed
from .retry import with_retries

logger = logging.getLogger(__name__)


def parse_domain_list(data: object) -> Optional[tuple[str, ...]]:
    if not isinstance(data, list) or not all(isinstance(item, str) and item.strip() for item in data):
        return None
    return tuple(item.strip().lower() for item in data)


class TrustedListLoader:
    def __init__(
        self,
        config: EngineConfig,
        cache: TTLCache,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        self.config = config
        self.cache = cache
        self._session = session
        self._owns_session = session is None

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or (self._owns_session and self._session.closed):
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.config.network_timeout)
            )
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        if self._owns_session and self._session is not None and not self._session.closed:
            await self._session.close()

    async def _fetch_json(self, url: str) -> object:
        session = await self._get_session()
        async with session.get(url) as resp:
            if resp.status != 200:
                raise LookupFailed(f"{url} returned {resp.status}", url=url, status_code=resp.status)
            return await resp.json(content_type=None)

    async def _load(self, url: Optional[str], fallback: tuple[str, ...]) -> tuple[str, ...]:
        if not url:
            return fallback
        # Fallbacks are cached too: an unreachable host is retried once per TTL.
        return await self.cache.get_or_fetch(url, lambda: self._fetch_list(url, fallback))

    async def _fetch_list(self, url: str, fallback: tuple[str, ...]) -> tuple[str, ...]:
        try:
            data = await with_retries(
                lambda: self._fetch_json(url),
                attempts=self.config.network_attempts,
                delay=self.config.retry_delay,
                timeout=self.config.network_timeout,
                label=f"Trusted list {url}",
            )
        except LookupFailed as exc:
            logger.warning("Using built-in list: %s", exc)
            return fallback
        domains = parse_domain_list(data)
        if domains is None:
            logger.warning("Trusted list at %s is not an array of domains; using built-in list", url)
            return fallback
        return tuple(dict.fromkeys(fallback + domains))

    async def trusted_domains(self) -> tuple[str, ...]:
        return await self._load(self.config.trusted_domains_url, ())

    async def trusted_scripts(self) -> tuple[str, ...]:
        return await self._load(self.config.trusted_scripts_url, self.config.trusted_script_domains)
