"""HTTP fetches for script bodies and shortened-URL resolution."""

from __future__ import annotations

import logging
from typing import Optional

import httpx

from ..config import EngineConfig
from ..exceptions import LookupFailed
from .retry import with_retries

logger = logging.getLogger(__name__)

USER_AGENT = "Mozilla/5.0 (compatible; phishgate/1.0)"
# Shortener resolution retries more than other lookups; a failure is treated as suspicious.
SHORTENER_ATTEMPTS = 3
MAX_SCRIPT_BYTES = 2_000_000


class WebFetcher:
    def __init__(self, config: EngineConfig, client: Optional[httpx.AsyncClient] = None):
        self.config = config
        self._client = client
        self._owns_client = client is None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=self.config.network_timeout,
                follow_redirects=True,
                headers={"User-Agent": USER_AGENT},
            )
            self._owns_client = True
        return self._client

    async def close(self) -> None:
        if self._owns_client and self._client is not None and not self._client.is_closed:
            await self._client.aclose()

    async def fetch_text(self, url: str) -> str:
        """GET a text resource; raises ``LookupFailed`` after bounded retries."""

        async def _get() -> str:
            resp = await self._get_client().get(url)
            resp.raise_for_status()
            return resp.text[:MAX_SCRIPT_BYTES]

        return await with_retries(
            _get,
            attempts=self.config.network_attempts,
            delay=self.config.retry_delay,
            timeout=self.config.network_timeout,
            label=f"Fetch {url}",
        )

    async def resolve_redirect(self, url: str) -> str:
        """Final URL after following redirects with HEAD requests."""

        async def _head() -> str:
            resp = await self._get_client().head(url, follow_redirects=True)
            if resp.status_code >= 400:
                raise LookupFailed(f"HEAD {url} returned {resp.status_code}", url=url, status_code=resp.status_code)
            return str(resp.url)

        return await with_retries(
            _head,
            attempts=SHORTENER_ATTEMPTS,
            delay=self.config.retry_delay,
            timeout=self.config.network_timeout,
            label=f"Resolve {url}",
        )
