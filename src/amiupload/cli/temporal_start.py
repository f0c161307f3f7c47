# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/amiupload/cli/temporal_start.py

from __future__ import annotations

from pathlib import Path

from amiupload.temporal.client import get_temporal_client
from amiupload.temporal.settings import load_temporal_settings
from amiupload.temporal.models import PublishRequest


def workflow_id_for(req: PublishRequest) -> str:
    return f"amiupload-publish:{Path(req.image_dir).resolve().name}"


async def start_publish_workflow(req: PublishRequest) -> str:
    from amiupload.temporal.workflows import ImagePublishWorkflow
    settings = load_temporal_settings()
    client = await get_temporal_client(settings)

    handle = await client.start_workflow(
        ImagePublishWorkflow.run,
        req,
        id=workflow_id_for(req),
        task_queue=settings.task_queue,
    )

    return f"{handle.id} / {handle.run_id}"
