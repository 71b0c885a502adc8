"""RDAP helpers for domain registration-age lookups."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

import httpx

from ..config import EngineConfig
from ..exceptions import LookupFailed
from .retry import with_retries

logger = logging.getLogger(__name__)

USER_AGENT = "phishgate/1.0"


@dataclass(frozen=True)
class RdapLookupResult:
    domain: str
    registered_at: Optional[datetime]
    rdap_url: str
    error: Optional[str] = None
    status_code: Optional[int] = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.registered_at is not None

    def age_days(self, now: Optional[datetime] = None) -> Optional[int]:
        if self.registered_at is None:
            return None
        now = now or datetime.now(timezone.utc)
        return max(0, (now - self.registered_at).days)


def _parse_timestamp(value: str) -> Optional[datetime]:
    cleaned = value.strip()
    if cleaned.endswith("Z"):
        cleaned = cleaned[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(cleaned)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def parse_registration_date(data: object) -> Optional[datetime]:
    """Return the ``registration`` event date from RDAP JSON (best-effort)."""
    if not isinstance(data, dict):
        return None
    events = data.get("events") or []
    if not isinstance(events, list):
        return None
    for event in events:
        if not isinstance(event, dict):
            continue
        if str(event.get("eventAction", "")).lower() != "registration":
            continue
        raw = event.get("eventDate")
        if isinstance(raw, str):
            return _parse_timestamp(raw)
    return None


class _RetryableStatus(Exception):
    def __init__(self, status_code: int):
        super().__init__(f"RDAP returned {status_code}")
        self.status_code = status_code


class RdapClient:
    """Looks up registration dates via ``rdap.org`` (or a configured endpoint)."""

    def __init__(self, config: EngineConfig, client: Optional[httpx.AsyncClient] = None):
        self.config = config
        self._client = client

    async def _get_json(self, client: httpx.AsyncClient, url: str) -> tuple[int, object]:
        resp = await client.get(url, headers={"User-Agent": USER_AGENT, "Accept": "application/rdap+json"})
        if resp.status_code == 429 or resp.status_code >= 500:
            raise _RetryableStatus(resp.status_code)
        if resp.status_code != 200:
            return resp.status_code, None
        return 200, resp.json()

    async def lookup(self, domain: str) -> RdapLookupResult:
        url = self.config.rdap_url.format(domain=domain)

        async def _fetch(client: httpx.AsyncClient) -> tuple[int, object]:
            return await with_retries(
                lambda: self._get_json(client, url),
                attempts=self.config.network_attempts,
                delay=self.config.retry_delay,
                timeout=self.config.network_timeout,
                label=f"RDAP lookup for {domain}",
            )

        try:
            if self._client is not None:
                status, data = await _fetch(self._client)
            else:
                async with httpx.AsyncClient(timeout=self.config.network_timeout, follow_redirects=True) as client:
                    status, data = await _fetch(client)
        except LookupFailed as exc:
            logger.warning("%s", exc)
            return RdapLookupResult(domain, None, url, error=str(exc))

        if status != 200:
            return RdapLookupResult(domain, None, url, error=f"RDAP lookup failed ({status})", status_code=status)

        registered_at = parse_registration_date(data)
        if registered_at is None:
            return RdapLookupResult(domain, None, url, error="No registration event", status_code=status)
        return RdapLookupResult(domain, registered_at, url, status_code=status)
