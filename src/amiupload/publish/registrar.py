# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/amiupload/publish/registrar.py

from __future__ import annotations

import logging
import time
from typing import Optional

from amiupload.config.models import PollSettings
from amiupload.errors import (
    ConfigurationError,
    ProviderError,
    PublishCancelled,
    PublishError,
    RegistrationFailed,
    RegistrationTimeout,
)
from amiupload.image.models import (
    ImageHandle,
    ImageSpec,
    ImageState,
    SnapshotHandle,
    SnapshotState,
)
from amiupload.observers.dispatcher import EventBus
from amiupload.observers.events import (
    ImageRegistered,
    ImageRegistrationFailed,
    ImageRegistrationStarted,
    new_ctx,
)
from amiupload.provider.interface import CloudProvider
from .polling import CancelToken, PollStatus, poll_until

log = logging.getLogger("amiupload")


class ImageRegistrar:
    """
    Registers a bootable image from a completed snapshot and waits for it.

    Requesting -> Registering -> Available | Failed, with Timeout reported
    separately because the image may still become available later.
    """

    def __init__(
        self,
        provider: CloudProvider,
        *,
        settings: Optional[PollSettings] = None,
        bus: Optional[EventBus] = None,
        run_id: Optional[str] = None,
        cancel: Optional[CancelToken] = None,
    ):
        self.provider = provider
        self.settings = settings or PollSettings()
        self.bus = bus or EventBus()
        self.run_id = run_id
        self.cancel = cancel or CancelToken()

    def _ctx(self) -> dict:
        return new_ctx(self.run_id)

    async def register(self, snapshot: SnapshotHandle, spec: ImageSpec, region: str) -> ImageHandle:
        if snapshot.region != region:
            raise ConfigurationError(
                f"snapshot {snapshot} lives in {snapshot.region}, cannot register in {region}"
            )
        if snapshot.state is not SnapshotState.COMPLETED:
            raise ConfigurationError(
                f"snapshot {snapshot} is {snapshot.state.value}, it must be completed before registering"
            )

        self.cancel.raise_if_cancelled(f"registration in {region}")
        name = spec.image_name(region)
        self.bus.emit(ImageRegistrationStarted(
            snapshot_id=snapshot.snapshot_id, region=region, name=name, **self._ctx()
        ))
        log.info("registering image %s from %s", name, snapshot)
        t0 = time.monotonic()

        # single request, never retried: a retry could register a second image
        try:
            image = await self.provider.register_image(snapshot, spec)
        except ProviderError as exc:
            raise self._failed(RegistrationFailed(f"register_image in {region} rejected: {exc}"), region) from exc

        try:
            outcome = await poll_until(
                lambda: self.provider.describe_image(image),
                is_done=lambda s: s is ImageState.AVAILABLE,
                is_failed=lambda s: s is ImageState.FAILED,
                settings=self.settings,
                cancel=self.cancel,
                what=f"image {image}",
            )
        except ProviderError as exc:
            raise self._failed(
                RegistrationFailed(f"polling image {image} failed: {exc}", image=image), region
            ) from exc

        if outcome.status is PollStatus.COMPLETED:
            duration_ms = int((time.monotonic() - t0) * 1000)
            available = image.with_state(ImageState.AVAILABLE)
            self.bus.emit(ImageRegistered(
                image_id=available.image_id, region=region, duration_ms=duration_ms, **self._ctx()
            ))
            log.info("registered image: region=%s,id=%s", region, available.image_id)
            return available
        if outcome.status is PollStatus.FAILED:
            raise self._failed(RegistrationFailed(
                f"image {image} entered state failed", image=image.with_state(ImageState.FAILED)
            ), region)
        if outcome.status is PollStatus.CANCELLED:
            raise self._failed(PublishCancelled(f"registration of {image} cancelled", image=image), region)
        raise self._failed(RegistrationTimeout(
            f"image {image} not available after {self.settings.timeout_seconds:.0f}s", image=image
        ), region)

    def _failed(self, exc: PublishError, region: str) -> PublishError:
        image = getattr(exc, "image", None)
        self.bus.emit(ImageRegistrationFailed(
            region=region,
            kind=exc.kind.value,
            error=str(exc),
            image_id=image.image_id if image else None,
            **self._ctx(),
        ))
        log.error("image registration in %s failed: %s", region, exc)
        return exc
