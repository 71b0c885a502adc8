"""Single-worker FIFO queue for MX lookups.

DoH providers rate-limit aggressively, so lookups are drained one at a time in
submission order. Results are cached per domain.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from ..cache import MISS, TTLCache
from .doh import DohResolver

logger = logging.getLogger(__name__)


class MailLookupQueue:
    def __init__(self, resolver: DohResolver, cache: TTLCache):
        self.resolver = resolver
        self.cache = cache
        self._queue: Optional[asyncio.Queue] = None
        self._worker: Optional[asyncio.Task] = None
        self._pending: dict[str, asyncio.Future] = {}
        self.processed = 0

    @property
    def busy(self) -> bool:
        return self._worker is not None and not self._worker.done()

    def _enqueue(self, domain: str) -> None:
        if self._queue is None:
            self._queue = asyncio.Queue()
        self._queue.put_nowait(domain)
        if not self.busy:
            self._worker = asyncio.ensure_future(self._drain(self._queue))

    async def submit(self, domain: str) -> Optional[list[str]]:
        """Queue a lookup and wait for its mail hosts.

        Empty list: no mail records. None: the lookup itself failed.
        """
        cached = self.cache.get(domain)
        if cached is not MISS:
            return cached

        pending = self._pending.get(domain)
        if pending is None:
            pending = asyncio.get_running_loop().create_future()
            self._pending[domain] = pending
            self._enqueue(domain)
        return await asyncio.shield(pending)

    async def _drain(self, queue: asyncio.Queue) -> None:
        while not queue.empty():
            domain = queue.get_nowait()
            future = self._pending.get(domain)
            try:
                hosts = await self.resolver.lookup_mx_with_fallback(domain)
            except Exception as exc:
                logger.warning("MX lookup for %s failed: %s", domain, exc)
                hosts = None
            if hosts is not None:
                self.cache.set(domain, hosts)
            self.processed += 1
            self._pending.pop(domain, None)
            if future is not None and not future.done():
                future.set_result(hosts)
            queue.task_done()

    async def close(self) -> None:
        if self._worker is not None and not self._worker.done():
            self._worker.cancel()
            try:
                await self._worker
            except asyncio.CancelledError:
                pass
        for future in self._pending.values():
            if not future.done():
                future.set_result(None)
        self._pending.clear()
