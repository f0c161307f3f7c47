# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/amiupload/publish/polling.py

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Generic, Optional, TypeVar

from amiupload.config.models import PollSettings
from amiupload.errors import ProviderError, PublishCancelled
from amiupload.utils.retry import RetryError, retry_async

log = logging.getLogger("amiupload")

T = TypeVar("T")


class CancelToken:
    """
    Top-level cancellation signal shared by every task of one publish.

    Cancelling only stops waiting; requests already sent to the provider
    are not rolled back.
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        self._event.set()

    async def sleep(self, delay: float) -> bool:
        """Sleep up to `delay` seconds. Returns True if cancelled meanwhile."""
        if self.cancelled:
            return True
        if delay <= 0:
            await asyncio.sleep(0)
            return self.cancelled
        try:
            await asyncio.wait_for(self._event.wait(), timeout=delay)
        except asyncio.TimeoutError:
            pass
        return self.cancelled

    def raise_if_cancelled(self, what: str = "publish") -> None:
        if self.cancelled:
            raise PublishCancelled(f"{what} cancelled")


class _DeadlinePassed(Exception):
    pass


class PollStatus(str, Enum):
    COMPLETED = "completed"
    FAILED = "failed"
    TIMEOUT = "timeout"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class PollOutcome(Generic[T]):
    status: PollStatus
    value: Optional[T]
    attempts: int
    elapsed: float


async def poll_until(
    describe: Callable[[], Awaitable[T]],
    *,
    is_done: Callable[[T], bool],
    is_failed: Callable[[T], bool],
    settings: PollSettings,
    cancel: Optional[CancelToken] = None,
    what: str = "resource",
) -> PollOutcome[T]:
    """
    Call `describe` until the value is done or failed, the timeout elapses
    or the publish is cancelled.

    Transient ProviderErrors are retried with the same backoff, at most
    `settings.transient_retries` times in a row; once that budget is spent
    a ProviderError is raised. Non-transient errors propagate immediately.
    Those retries share the poll deadline: if it passes between them the
    outcome is TIMEOUT.
    """
    cancel = cancel or CancelToken()
    loop = asyncio.get_running_loop()
    start = loop.time()
    deadline = start + settings.timeout_seconds
    delay = settings.interval_seconds
    attempts = 0
    value: Optional[T] = None

    async def _sleep(seconds: float) -> None:
        # transient retries share the poll deadline
        remaining = deadline - loop.time()
        if remaining <= 0:
            raise _DeadlinePassed()
        if await cancel.sleep(min(seconds, remaining)):
            raise PublishCancelled(f"waiting on {what} cancelled")

    def _on_retry(attempt: int, exc: Exception) -> None:
        log.warning("transient error describing %s (attempt %d): %s", what, attempt, exc)

    while True:
        if cancel.cancelled:
            return PollOutcome(PollStatus.CANCELLED, value, attempts, loop.time() - start)

        attempts += 1
        try:
            value = await retry_async(
                describe,
                retries=settings.transient_retries,
                delay=max(settings.interval_seconds, 0.0),
                backoff=settings.backoff_factor,
                max_delay=settings.max_interval_seconds,
                retry_on=(ProviderError,),
                should_retry=lambda exc: getattr(exc, "transient", False),
                on_retry=_on_retry,
                sleep=_sleep,
            )
        except PublishCancelled:
            return PollOutcome(PollStatus.CANCELLED, value, attempts, loop.time() - start)
        except _DeadlinePassed:
            log.warning("timed out after %.0fs waiting on %s (transient errors)", settings.timeout_seconds, what)
            return PollOutcome(PollStatus.TIMEOUT, value, attempts, loop.time() - start)
        except RetryError as exc:
            cause: Any = exc.__cause__
            raise ProviderError(
                f"{what}: giving up after {settings.transient_retries} transient errors: {cause}",
                code=getattr(cause, "code", None),
                transient=True,
            ) from cause

        if is_done(value):
            return PollOutcome(PollStatus.COMPLETED, value, attempts, loop.time() - start)
        if is_failed(value):
            return PollOutcome(PollStatus.FAILED, value, attempts, loop.time() - start)

        remaining = deadline - loop.time()
        if remaining <= 0:
            log.warning("timed out after %.0fs waiting on %s", settings.timeout_seconds, what)
            return PollOutcome(PollStatus.TIMEOUT, value, attempts, loop.time() - start)

        log.debug("%s not ready yet (attempt %d), next check in %.1fs", what, attempts, min(delay, remaining))
        if await cancel.sleep(min(delay, remaining)):
            return PollOutcome(PollStatus.CANCELLED, value, attempts, loop.time() - start)
        delay = min(delay * settings.backoff_factor, settings.max_interval_seconds)
