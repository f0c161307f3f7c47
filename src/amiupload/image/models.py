# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/amiupload/image/models.py

from __future__ import annotations

import math
from dataclasses import dataclass, field, replace
from enum import Enum
from pathlib import Path
from typing import Optional, Tuple

GIB = 1024 * 1024 * 1024


class DiskFormat(str, Enum):
    RAW = "raw"
    VHD = "vhd"
    VMDK = "vmdk"
    QCOW2 = "qcow2"


class Architecture(str, Enum):
    X86_64 = "x86_64"
    ARM64 = "arm64"

    @classmethod
    def parse(cls, value: str) -> "Architecture":
        """
        Accepts EC2 names (x86_64, arm64) and nix systems
        (x86_64-linux, aarch64-linux).
        """
        cpu = value.split("-", 1)[0].lower()
        if cpu in ("x86_64", "amd64"):
            return cls.X86_64
        if cpu in ("arm64", "aarch64"):
            return cls.ARM64
        raise ValueError(f"unsupported architecture '{value}'")


class BootMode(str, Enum):
    LEGACY_BIOS = "legacy-bios"
    UEFI = "uefi"
    UEFI_PREFERRED = "uefi-preferred"


@dataclass(frozen=True)
class ImageSpec:
    """
    Everything needed to publish one disk image. Built once from the
    image metadata and never mutated.
    """

    source_path: Path
    disk_format: DiskFormat
    virtual_size: int                      # bytes
    architecture: Architecture
    boot_mode: BootMode = BootMode.LEGACY_BIOS
    name_template: str = "{label}-{arch}"
    label: str = ""
    description: Optional[str] = None
    root_size_gib: Optional[int] = None
    tags: Tuple[Tuple[str, str], ...] = field(default_factory=tuple)

    @property
    def system(self) -> str:
        cpu = "aarch64" if self.architecture is Architecture.ARM64 else "x86_64"
        return f"{cpu}-linux"

    def image_name(self, region: Optional[str] = None) -> str:
        return self.name_template.format(
            label=self.label,
            arch=self.architecture.value,
            system=self.system,
            region=region or "",
        )

    @property
    def root_volume_gib(self) -> int:
        if self.root_size_gib is not None:
            return self.root_size_gib
        # bytes to GiB, rounded up
        return max(1, math.ceil(self.virtual_size / GIB))


class SnapshotState(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class ImageState(str, Enum):
    REGISTERING = "registering"
    AVAILABLE = "available"
    FAILED = "failed"


@dataclass(frozen=True)
class SnapshotHandle:
    snapshot_id: str
    region: str
    state: SnapshotState = SnapshotState.PENDING

    def with_state(self, state: SnapshotState) -> "SnapshotHandle":
        return replace(self, state=state)

    def __str__(self) -> str:
        return f"{self.snapshot_id}@{self.region}"


@dataclass(frozen=True)
class ImageHandle:
    image_id: str
    region: str
    snapshot: SnapshotHandle
    state: ImageState = ImageState.REGISTERING

    def with_state(self, state: ImageState) -> "ImageHandle":
        return replace(self, state=state)

    @property
    def is_valid(self) -> bool:
        # an image is only usable once its backing snapshot completed
        return (
            self.state is ImageState.AVAILABLE
            and self.snapshot.state is SnapshotState.COMPLETED
        )

    def __str__(self) -> str:
        return f"{self.image_id}@{self.region}"
