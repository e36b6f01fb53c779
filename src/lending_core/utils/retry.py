"""Async retry with exponential backoff."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import TypeVar

from lending_core.errors import ValidationError
from lending_core.logging import get_logger

log = get_logger(__name__)

T = TypeVar("T")


async def with_retry(
    fn: Callable[[], Awaitable[T]],
    max_attempts: int = 3,
    base_delay_s: float = 1.0,
    on_retry: Callable[[int, Exception], None] | None = None,
) -> T:
    """Await ``fn()`` up to *max_attempts* times, sleeping 1x, 2x, 4x *base_delay_s*.

    ValidationError is never retried. The last error is re-raised.
    """
    attempt = 1
    while True:
        try:
            return await fn()
        except ValidationError:
            raise
        except Exception as exc:
            if attempt >= max_attempts:
                raise
            delay = base_delay_s * 2 ** (attempt - 1)
            if on_retry is not None:
                on_retry(attempt, exc)
            log.warning("retrying", attempt=attempt, delay_s=delay, error=str(exc))
            await asyncio.sleep(delay)
            attempt += 1
