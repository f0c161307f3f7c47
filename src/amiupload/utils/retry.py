# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

import asyncio
from typing import Any, Awaitable, Callable


class RetryError(RuntimeError):
    pass


async def retry_async(
    fn: Callable[[], Awaitable[Any]],
    *,
    retries: int,
    delay: float,
    backoff: float = 1.0,
    max_delay: float | None = None,
    retry_on: tuple[type[Exception], ...] = (Exception,),
    should_retry: Callable[[Exception], bool] | None = None,
    on_retry: Callable[[int, Exception], None] | None = None,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> Any:
    """
    Retry an async callable.

    retries: number of attempts after the first one
    delay: seconds before the first retry, multiplied by backoff each time
    retry_on: exception types to retry
    should_retry: extra filter, exceptions it rejects propagate unchanged
    on_retry: callback(attempt, exception)
    """
    last_exc = None
    wait = delay
    for attempt in range(1, retries + 2):
        try:
            return await fn()
        except retry_on as exc:
            if should_retry is not None and not should_retry(exc):
                raise
            last_exc = exc
            if attempt > retries:
                break
            if on_retry:
                on_retry(attempt, exc)
            await sleep(wait)
            wait = wait * backoff
            if max_delay is not None:
                wait = min(wait, max_delay)
    name = getattr(fn, "__name__", repr(fn))
    raise RetryError(f"{name} failed after {retries} retries") from last_exc
