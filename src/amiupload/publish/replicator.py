# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/amiupload/publish/replicator.py

from __future__ import annotations

import asyncio
import logging
import time
from typing import Dict, Iterable, Optional

from amiupload.config.models import PollSettings
from amiupload.errors import (
    ConfigurationError,
    CopyFailed,
    CopyTimeout,
    FailureKind,
    ProviderError,
    PublishCancelled,
    PublishError,
)
from amiupload.image.models import ImageHandle, ImageSpec, SnapshotHandle, SnapshotState
from amiupload.observers.dispatcher import EventBus
from amiupload.observers.events import (
    RegionFailed,
    RegionPublished,
    SnapshotCopied,
    SnapshotCopyStarted,
    new_ctx,
)
from amiupload.provider.interface import CloudProvider
from .polling import CancelToken, PollStatus, poll_until
from .registrar import ImageRegistrar
from .result import Failed, Published, RegionOutcome, ResultCollector

log = logging.getLogger("amiupload")


class RegionReplicator:
    """
    Copies a completed snapshot into each target region and registers an
    equivalent image there. One task per region, at most `max_concurrency`
    running at once; a region's failure is recorded, never propagated.
    """

    def __init__(
        self,
        provider: CloudProvider,
        registrar: ImageRegistrar,
        *,
        snapshot_settings: Optional[PollSettings] = None,
        max_concurrency: int = 4,
        bus: Optional[EventBus] = None,
        run_id: Optional[str] = None,
        cancel: Optional[CancelToken] = None,
    ):
        if max_concurrency < 1:
            raise ConfigurationError("max_concurrency must be at least 1")
        self.provider = provider
        self.registrar = registrar
        self.snapshot_settings = snapshot_settings or PollSettings(timeout_seconds=3600.0)
        self.max_concurrency = max_concurrency
        self.bus = bus or EventBus()
        self.run_id = run_id
        self.cancel = cancel or registrar.cancel

    def _ctx(self) -> dict:
        return new_ctx(self.run_id)

    async def replicate(
        self,
        source_snapshot: SnapshotHandle,
        source_image_spec: ImageSpec,
        source_region: str,
        target_regions: Iterable[str],
        *,
        source_image: Optional[ImageHandle] = None,
    ) -> Dict[str, RegionOutcome]:
        if source_snapshot.state is not SnapshotState.COMPLETED:
            raise ConfigurationError(f"source snapshot {source_snapshot} is not completed")

        regions = list(dict.fromkeys(target_regions))
        collector = ResultCollector()
        gate = asyncio.Semaphore(self.max_concurrency)

        async def _run(region: str) -> None:
            async with gate:
                outcome = await self._replicate_region(
                    source_snapshot, source_image_spec, source_region, region, source_image
                )
            collector.record(region, outcome)

        log.info("replicating %s to %d region(s): %s", source_snapshot, len(regions), ",".join(regions))
        # barrier: every region reports before we return
        await asyncio.gather(*(_run(r) for r in regions))

        outcomes = collector.outcomes()
        return {r: outcomes[r] for r in regions}

    async def _replicate_region(
        self,
        source_snapshot: SnapshotHandle,
        spec: ImageSpec,
        source_region: str,
        region: str,
        source_image: Optional[ImageHandle],
    ) -> RegionOutcome:
        if region == source_region:
            if source_image is None:
                return self._record_failure(
                    region, ConfigurationError(f"{region} is the source region and no source image was given")
                )
            log.debug("skipping copy to source region %s", region)
            return Published(image=source_image, snapshot=source_snapshot)

        snapshot: Optional[SnapshotHandle] = None
        try:
            self.cancel.raise_if_cancelled(f"replication to {region}")
            snapshot = await self._copy_snapshot(source_snapshot, source_region, region)
            image = await self.registrar.register(snapshot, spec, region)
        except PublishError as exc:
            return self._record_failure(
                region,
                exc,
                snapshot=getattr(exc, "snapshot", None) or snapshot,
                image=getattr(exc, "image", None),
            )
        except Exception as exc:
            log.exception("unexpected error replicating to %s", region)
            return self._record_failure(region, exc, snapshot=snapshot)

        self.bus.emit(RegionPublished(
            region=region, image_id=image.image_id, snapshot_id=snapshot.snapshot_id, **self._ctx()
        ))
        log.info("published %s in %s", image.image_id, region)
        return Published(image=image, snapshot=snapshot)

    async def _copy_snapshot(
        self, source: SnapshotHandle, source_region: str, region: str
    ) -> SnapshotHandle:
        self.bus.emit(SnapshotCopyStarted(
            source_snapshot_id=source.snapshot_id, source_region=source_region, region=region, **self._ctx()
        ))
        t0 = time.monotonic()
        try:
            copy = await self.provider.copy_snapshot(source, source_region, region)
        except ProviderError as exc:
            raise CopyFailed(f"copy_snapshot {source} -> {region} rejected: {exc}") from exc
        log.info("copying %s to %s as %s", source, region, copy.snapshot_id)

        try:
            outcome = await poll_until(
                lambda: self.provider.describe_snapshot(copy),
                is_done=lambda s: s is SnapshotState.COMPLETED,
                is_failed=lambda s: s is SnapshotState.FAILED,
                settings=self.snapshot_settings,
                cancel=self.cancel,
                what=f"snapshot {copy}",
            )
        except ProviderError as exc:
            raise CopyFailed(f"polling snapshot {copy} failed: {exc}", snapshot=copy) from exc

        if outcome.status is PollStatus.FAILED:
            raise CopyFailed(f"snapshot copy {copy} failed", snapshot=copy.with_state(SnapshotState.FAILED))
        if outcome.status is PollStatus.TIMEOUT:
            raise CopyTimeout(
                f"snapshot copy {copy} not completed after {self.snapshot_settings.timeout_seconds:.0f}s",
                snapshot=copy,
            )
        if outcome.status is PollStatus.CANCELLED:
            raise PublishCancelled(f"snapshot copy {copy} cancelled", snapshot=copy)

        completed = copy.with_state(SnapshotState.COMPLETED)
        self.bus.emit(SnapshotCopied(
            snapshot_id=completed.snapshot_id,
            region=region,
            duration_ms=int((time.monotonic() - t0) * 1000),
            **self._ctx(),
        ))
        return completed

    def _record_failure(
        self,
        region: str,
        exc: Exception,
        *,
        snapshot: Optional[SnapshotHandle] = None,
        image: Optional[ImageHandle] = None,
    ) -> Failed:
        kind = getattr(exc, "kind", FailureKind.PROVIDER_ERROR)
        self.bus.emit(RegionFailed(region=region, kind=kind.value, error=str(exc), **self._ctx()))
        log.error("region %s failed (%s): %s", region, kind.value, exc)
        return Failed(region=region, kind=kind, reason=str(exc), snapshot=snapshot, image=image)
