# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/amiupload/provider/interface.py

from __future__ import annotations
from typing import Protocol

from amiupload.image.models import (
    ImageHandle,
    ImageSpec,
    ImageState,
    SnapshotHandle,
    SnapshotState,
)


class CloudProvider(Protocol):
    """
    Contract for the compute/storage API a publish runs against.

    Handles carry their region, so one provider value serves every region
    of a publish. Implementations raise ProviderError, with transient=True
    for errors worth retrying.
    """

    async def copy_snapshot(
        self, snapshot: SnapshotHandle, src_region: str, dst_region: str
    ) -> SnapshotHandle:
        """Start a copy and return the new, usually PENDING, snapshot."""
        ...

    async def describe_snapshot(self, handle: SnapshotHandle) -> SnapshotState: ...

    async def register_image(self, snapshot: SnapshotHandle, spec: ImageSpec) -> ImageHandle:
        """Register an image in the snapshot's region. Not deduplicated."""
        ...

    async def describe_image(self, handle: ImageHandle) -> ImageState: ...

    async def delete_snapshot(self, handle: SnapshotHandle) -> None: ...
