# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

from __future__ import annotations
from pathlib import Path
from typing import Optional, Protocol

from amiupload.image.models import DiskFormat, SnapshotHandle


class SnapshotUploader(Protocol):
    """
    Turns a local disk image into a block-storage snapshot in one region.
    Implementations retry their own transport errors and raise UploadError
    when they give up.
    """

    required_format: DiskFormat

    async def upload(
        self, path: Path, region: str, *, description: Optional[str] = None
    ) -> SnapshotHandle: ...
