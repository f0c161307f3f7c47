# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/amiupload/temporal/activities.py

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, List, Optional

from temporalio import activity

from amiupload.observers.logger import LoggerObserver
from amiupload.publish.polling import CancelToken
from amiupload.publish.result import PublishResult
from amiupload.publish.steps import PublishJob, run_publish

from .models import PublishRequest

log = logging.getLogger("amiupload")

# seconds; the workflow's heartbeat_timeout must be comfortably larger
HEARTBEAT_INTERVAL = 10


def job_from_request(req: PublishRequest) -> PublishJob:
    return PublishJob(
        image_dir=req.image_dir,
        config_path=req.config_path,
        regions=req.regions,
        name=req.name,
        root_size_gib=req.root_size_gib,
        max_concurrency=req.max_concurrency,
    )


async def run_with_heartbeat(
    job: PublishJob,
    *,
    heartbeat: Callable[..., None],
    interval: float = HEARTBEAT_INTERVAL,
    observers: Optional[List] = None,
    run_id: Optional[str] = None,
    runner: Callable[..., Awaitable[PublishResult]] = run_publish,
) -> PublishResult:
    """
    Runs one publish while heartbeating every `interval` seconds.

    Temporal delivers activity cancellation only through heartbeats. When it
    arrives the publish's CancelToken is fired and the run is allowed to
    finish recording its cancelled regions, so the caller still gets a
    result with `cancelled` set rather than a bare error.
    """
    cancel = CancelToken()
    task = asyncio.ensure_future(runner(job, observers=observers, run_id=run_id, cancel=cancel))
    try:
        while not task.done():
            heartbeat()
            await asyncio.wait({task}, timeout=interval)
    except asyncio.CancelledError:
        log.warning("publish activity cancelled; stopping in-flight waits")
        cancel.cancel()
        return await task
    return task.result()


@activity.defn
async def activity_publish(req: PublishRequest) -> dict:
    """
    One whole publish run. Not retried by the workflow: uploads and
    registrations are not idempotent, so a second attempt would duplicate
    provider resources.
    """
    info = activity.info()
    log.info("publish activity %s (attempt %s) for %s", info.activity_id, info.attempt, req.image_dir)
    result = await run_with_heartbeat(
        job_from_request(req),
        heartbeat=activity.heartbeat,
        observers=[LoggerObserver(log)],
        run_id=info.workflow_run_id,
    )
    return result.to_dict()
