"""Bounded retries with a fixed delay for network calls."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional

from ..exceptions import LookupFailed

logger = logging.getLogger(__name__)


async def with_retries(
    fetch: Callable[[], Awaitable[Any]],
    *,
    attempts: int = 2,
    delay: float = 1.0,
    timeout: float = 5.0,
    label: str = "request",
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> Any:
    """
    Await ``fetch()`` up to ``attempts`` times, each bounded by ``timeout``.

    Raises ``LookupFailed`` once every attempt has failed.
    """
    last_error: Optional[BaseException] = None
    for attempt in range(1, max(1, attempts) + 1):
        try:
            return await asyncio.wait_for(fetch(), timeout=timeout)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            last_error = exc
            logger.debug("%s failed (attempt %d/%d): %s", label, attempt, attempts, exc)
            if attempt < attempts:
                await sleep(delay)
    raise LookupFailed(f"{label} failed after {attempts} attempts: {last_error}") from last_error
