# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/amiupload/temporal/worker.py

from __future__ import annotations

import asyncio
import logging

from temporalio.worker import Worker

from .client import get_temporal_client
from .settings import load_temporal_settings
from .workflows import ImagePublishWorkflow
from .activities import activity_publish

log = logging.getLogger("amiupload")


async def main() -> None:
    settings = load_temporal_settings()
    client = await get_temporal_client(settings)

    # activity_publish is async, so no thread pool executor is needed
    worker = Worker(
        client,
        task_queue=settings.task_queue,
        workflows=[ImagePublishWorkflow],
        activities=[activity_publish],
    )

    log.info(
        "[amiupload-worker] starting. address=%s ns=%s tq=%s",
        settings.address,
        settings.namespace,
        settings.task_queue,
    )

    # Blocks until SIGINT / SIGTERM
    await worker.run()


if __name__ == "__main__":
    asyncio.run(main())
