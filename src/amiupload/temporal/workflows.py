# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/amiupload/temporal/workflows.py

from __future__ import annotations

import asyncio
from datetime import timedelta

from temporalio import workflow
from temporalio.common import RetryPolicy
from temporalio.workflow import ActivityCancellationType

from .models import PublishRequest, PublishStatus

# activities are imported via workflow.unsafe.imports_passed_through
# to avoid workflow sandbox issues
with workflow.unsafe.imports_passed_through():
    from .activities import activity_publish


def status_from_result(result: dict) -> PublishStatus:
    failed = sorted((result.get("failed") or {}).keys())
    phase = "SUCCEEDED" if result.get("status") == "ALL_SUCCEEDED" else "FAILED"
    if result.get("status") == "PARTIAL_SUCCESS":
        phase = "PARTIAL"
    if result.get("cancelled"):
        phase = "CANCELLED"
    return PublishStatus(
        phase=phase,
        message=f"publish finished: {result.get('status')}",
        result_status=result.get("status"),
        amis=dict(result.get("amis") or {}),
        failed_regions=failed,
        error=result.get("error"),
    )


@workflow.defn
class ImagePublishWorkflow:
    def __init__(self) -> None:
        self._status = PublishStatus(phase="PENDING", message="Waiting to start")

    @workflow.query
    def status(self) -> PublishStatus:
        return self._status

    @workflow.run
    async def run(self, req: PublishRequest) -> PublishStatus:
        self._status.phase = "RUNNING"
        self._status.message = f"Publishing {req.image_dir}"

        # a retried publish would upload and register a second image
        retry = RetryPolicy(maximum_attempts=1)

        try:
            result = await workflow.execute_activity(
                activity_publish,
                req,
                start_to_close_timeout=timedelta(hours=6),
                heartbeat_timeout=timedelta(seconds=60),
                retry_policy=retry,
                # let the activity record its cancelled regions before returning
                cancellation_type=ActivityCancellationType.WAIT_CANCELLATION_COMPLETED,
            )
        except asyncio.CancelledError:
            self._status.phase = "CANCELLED"
            self._status.message = "Publish cancelled"
            raise
        except Exception as e:
            self._status.phase = "FAILED"
            self._status.error = f"{e}"
            self._status.message = "Publish activity failed"
            raise

        self._status = status_from_result(result)
        return self._status
