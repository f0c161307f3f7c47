# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/amiupload/observers/events.py

from __future__ import annotations
from dataclasses import dataclass, asdict
from typing import List, Dict, Any, Optional
from datetime import datetime, timezone
import uuid


# ---------------------------------------------------------------------
# Base context and helper
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class BaseEvent:
    ts: str           # ISO timestamp
    run_id: str       # correlates all events in a single publish invocation

    def dict(self) -> Dict[str, Any]:
        return asdict(self)


def new_run_id() -> str:
    return str(uuid.uuid4())


def new_ctx(run_id: Optional[str] = None) -> Dict[str, Any]:
    return {
        "ts": datetime.now(timezone.utc).isoformat(timespec="seconds").replace("+00:00", "Z"),
        "run_id": run_id or new_run_id(),
    }


# ---------------------------------------------------------------------
# Publish lifecycle
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class PublishStarted(BaseEvent):
    image: str
    home_region: str
    replica_regions: List[str]

@dataclass(frozen=True)
class PublishSummary(BaseEvent):
    status: str       # "ALL_SUCCEEDED" | "PARTIAL_SUCCESS" | "ALL_FAILED"
    published: int
    failed: int
    cancelled: bool = False
    error: Optional[str] = None


# ---------------------------------------------------------------------
# Home region: upload
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class SnapshotUploadStarted(BaseEvent):
    path: str
    region: str

@dataclass(frozen=True)
class SnapshotUploaded(BaseEvent):
    snapshot_id: str
    region: str
    duration_ms: int

@dataclass(frozen=True)
class SnapshotUploadFailed(BaseEvent):
    region: str
    error: str


# ---------------------------------------------------------------------
# Image registration
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class ImageRegistrationStarted(BaseEvent):
    snapshot_id: str
    region: str
    name: str

@dataclass(frozen=True)
class ImageRegistered(BaseEvent):
    image_id: str
    region: str
    duration_ms: int

@dataclass(frozen=True)
class ImageRegistrationFailed(BaseEvent):
    region: str
    kind: str
    error: str
    image_id: Optional[str] = None


# ---------------------------------------------------------------------
# Replication
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class SnapshotCopyStarted(BaseEvent):
    source_snapshot_id: str
    source_region: str
    region: str

@dataclass(frozen=True)
class SnapshotCopied(BaseEvent):
    snapshot_id: str
    region: str
    duration_ms: int

@dataclass(frozen=True)
class RegionPublished(BaseEvent):
    region: str
    image_id: str
    snapshot_id: str

@dataclass(frozen=True)
class RegionFailed(BaseEvent):
    region: str
    kind: str
    error: str


# ---------------------------------------------------------------------
# Cleanup
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class CleanupStarted(BaseEvent):
    resources: List[str]

@dataclass(frozen=True)
class CleanupResult(BaseEvent):
    resource: str
    status: str       # "DELETED" | "FAILED"
    error: Optional[str] = None
