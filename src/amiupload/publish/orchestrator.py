# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/amiupload/publish/orchestrator.py

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Iterable, List, Optional

from amiupload.config.models import PollingConfig
from amiupload.errors import (
    CleanupFailed,
    ConfigurationError,
    ProviderError,
    PublishCancelled,
    PublishError,
    UploadError,
)
from amiupload.image.models import ImageSpec, SnapshotHandle, SnapshotState
from amiupload.observers.dispatcher import EventBus
from amiupload.observers.events import (
    CleanupResult,
    CleanupStarted,
    PublishStarted,
    PublishSummary,
    SnapshotUploaded,
    SnapshotUploadFailed,
    SnapshotUploadStarted,
    new_ctx,
    new_run_id,
)
from amiupload.provider.interface import CloudProvider
from amiupload.upload.interface import SnapshotUploader
from .polling import CancelToken, PollStatus, poll_until
from .registrar import ImageRegistrar
from .replicator import RegionReplicator
from .result import CleanupRecord, Failed, Published, PublishResult, ResultCollector

log = logging.getLogger("amiupload")


@dataclass
class PublishOptions:
    max_concurrency: int = 4
    polling: PollingConfig = field(default_factory=PollingConfig)


@dataclass
class _UndoStep:
    resource: str
    action: Callable[[], Awaitable[None]]


def normalize_regions(home_region: str, replica_regions: Iterable[str]) -> List[str]:
    """Deduplicate replicas, keep their order and drop the home region."""
    if not home_region or not home_region.strip():
        raise ConfigurationError("a home region is required")
    replicas: List[str] = []
    for region in replica_regions:
        if not region or not region.strip():
            raise ConfigurationError("region names must not be empty")
        region = region.strip()
        if region == home_region.strip() or region in replicas:
            continue
        replicas.append(region)
    return replicas


class PublishOrchestrator:
    """
    Upload -> register (home region) -> replicate (replica regions).

    Home-region failures are fatal and replay the undo list; replica
    failures are recorded per region. Nothing is deleted on cancellation.
    """

    def __init__(
        self,
        provider: CloudProvider,
        uploader: SnapshotUploader,
        *,
        options: Optional[PublishOptions] = None,
        observers: Optional[List] = None,
        run_id: Optional[str] = None,
        cancel: Optional[CancelToken] = None,
    ):
        self.provider = provider
        self.uploader = uploader
        self.options = options or PublishOptions()
        self.bus = EventBus(observers or [])
        self.run_id = run_id or new_run_id()
        self.cancel = cancel or CancelToken()

        self.registrar = ImageRegistrar(
            provider,
            settings=self.options.polling.image,
            bus=self.bus,
            run_id=self.run_id,
            cancel=self.cancel,
        )
        self.replicator = RegionReplicator(
            provider,
            self.registrar,
            snapshot_settings=self.options.polling.snapshot,
            max_concurrency=self.options.max_concurrency,
            bus=self.bus,
            run_id=self.run_id,
            cancel=self.cancel,
        )

    def _ctx(self) -> dict:
        return new_ctx(self.run_id)

    def validate(self, spec: ImageSpec, home_region: str, replica_regions: Iterable[str]) -> List[str]:
        required = self.uploader.required_format
        if spec.disk_format != required:
            raise ConfigurationError(
                f"unsupported disk format '{spec.disk_format.value}'; the uploader requires '{required.value}'"
            )
        if not spec.source_path.is_file():
            raise ConfigurationError(f"image file not found: {spec.source_path}")
        return normalize_regions(home_region, replica_regions)

    async def publish(
        self, spec: ImageSpec, home_region: str, replica_regions: Iterable[str]
    ) -> PublishResult:
        replicas = self.validate(spec, home_region, replica_regions)
        home_region = home_region.strip()
        collector = ResultCollector()
        undo: List[_UndoStep] = []

        self.bus.emit(PublishStarted(
            image=str(spec.source_path), home_region=home_region, replica_regions=replicas, **self._ctx()
        ))

        # 1) upload: the only step that reads the local file
        try:
            snapshot = await self._upload(spec, home_region)
        except (UploadError, PublishCancelled) as exc:
            collector.record(home_region, Failed(home_region, exc.kind, str(exc), snapshot=exc.snapshot))
            return self._finish(collector, home_region, error=str(exc))

        undo.append(_UndoStep(
            resource=snapshot.snapshot_id,
            action=lambda: self.provider.delete_snapshot(snapshot),
        ))

        # 2) home-region snapshot completion and registration
        try:
            snapshot = await self._wait_for_upload(snapshot)
            image = await self.registrar.register(snapshot, spec, home_region)
        except PublishError as exc:
            failed = Failed(
                home_region,
                exc.kind,
                str(exc),
                snapshot=getattr(exc, "snapshot", None) or snapshot,
                image=getattr(exc, "image", None),
            )
            collector.record(home_region, failed)
            if isinstance(exc, PublishCancelled):
                log.warning("cancelled; leaving %s in place", snapshot)
                return self._finish(collector, home_region, error=str(exc))
            cleanup = await self._run_undo(undo)
            return self._finish(collector, home_region, error=str(exc), cleanup=cleanup)
        except Exception:
            log.exception("unexpected error in %s, cleaning up", home_region)
            await self._run_undo(undo)
            raise

        collector.record(home_region, Published(image=image, snapshot=snapshot))
        undo.clear()

        # 3) fan out; region failures stay in their own entries
        if replicas:
            outcomes = await self.replicator.replicate(
                snapshot, spec, home_region, replicas, source_image=image
            )
            collector.update(outcomes)

        return self._finish(collector, home_region)

    async def _upload(self, spec: ImageSpec, region: str) -> SnapshotHandle:
        self.cancel.raise_if_cancelled("upload")
        self.bus.emit(SnapshotUploadStarted(path=str(spec.source_path), region=region, **self._ctx()))
        log.info("uploading snapshot to region %s", region)
        t0 = time.monotonic()
        try:
            snapshot = await self.uploader.upload(
                spec.source_path, region, description=spec.description or spec.image_name(region)
            )
        except UploadError as exc:
            self.bus.emit(SnapshotUploadFailed(region=region, error=str(exc), **self._ctx()))
            log.error("snapshot upload to %s failed: %s", region, exc)
            raise
        self.bus.emit(SnapshotUploaded(
            snapshot_id=snapshot.snapshot_id,
            region=region,
            duration_ms=int((time.monotonic() - t0) * 1000),
            **self._ctx(),
        ))
        return snapshot

    async def _wait_for_upload(self, snapshot: SnapshotHandle) -> SnapshotHandle:
        if snapshot.state is SnapshotState.COMPLETED:
            return snapshot
        log.info("waiting for snapshot upload to finalize")
        try:
            outcome = await poll_until(
                lambda: self.provider.describe_snapshot(snapshot),
                is_done=lambda s: s is SnapshotState.COMPLETED,
                is_failed=lambda s: s is SnapshotState.FAILED,
                settings=self.options.polling.snapshot,
                cancel=self.cancel,
                what=f"snapshot {snapshot}",
            )
        except ProviderError as exc:
            raise UploadError(f"could not confirm snapshot {snapshot}: {exc}", snapshot=snapshot) from exc

        if outcome.status is PollStatus.COMPLETED:
            return snapshot.with_state(SnapshotState.COMPLETED)
        if outcome.status is PollStatus.CANCELLED:
            raise PublishCancelled(f"finalizing {snapshot} cancelled", snapshot=snapshot)
        if outcome.status is PollStatus.FAILED:
            raise UploadError(f"snapshot {snapshot} failed to finalize", snapshot=snapshot.with_state(SnapshotState.FAILED))
        raise UploadError(f"snapshot {snapshot} still pending after upload", snapshot=snapshot)

    async def _run_undo(self, undo: List[_UndoStep]) -> tuple:
        """Best effort, newest first. Failures are logged, never raised."""
        if not undo:
            return ()
        self.bus.emit(CleanupStarted(resources=[u.resource for u in undo], **self._ctx()))
        records = []
        for step in reversed(undo):
            try:
                await step.action()
            except Exception as exc:
                err = CleanupFailed(f"could not delete {step.resource}: {exc}", step.resource)
                log.error("%s", err)
                records.append(CleanupRecord(resource=step.resource, deleted=False, error=str(exc)))
                self.bus.emit(CleanupResult(resource=step.resource, status="FAILED", error=str(exc), **self._ctx()))
                continue
            log.info("deleted %s", step.resource)
            records.append(CleanupRecord(resource=step.resource, deleted=True))
            self.bus.emit(CleanupResult(resource=step.resource, status="DELETED", **self._ctx()))
        return tuple(records)

    def _finish(self, collector: ResultCollector, home_region: str, *, error=None, cleanup=()) -> PublishResult:
        result = collector.build(
            home_region, error=error, cancelled=self.cancel.cancelled, cleanup=cleanup
        )
        self.bus.emit(PublishSummary(
            status=result.status.value,
            published=len(result.published),
            failed=len(result.failed),
            cancelled=result.cancelled,
            error=error,
            **self._ctx(),
        ))
        log.info("publish finished: %s", result.status.value)
        if result.cancelled and result.indeterminate_regions():
            log.warning("regions left in an indeterminate state: %s", ", ".join(result.indeterminate_regions()))
        return result


async def publish(
    spec: ImageSpec,
    home_region: str,
    replica_regions: Iterable[str],
    *,
    provider: CloudProvider,
    uploader: SnapshotUploader,
    options: Optional[PublishOptions] = None,
    observers: Optional[List] = None,
    cancel: Optional[CancelToken] = None,
) -> PublishResult:
    return await PublishOrchestrator(
        provider, uploader, options=options, observers=observers, cancel=cancel
    ).publish(spec, home_region, replica_regions)
