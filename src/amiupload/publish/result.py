# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/amiupload/publish/result.py

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Dict, List, Mapping, Optional, Tuple, Union

from amiupload.errors import FailureKind
from amiupload.image.models import ImageHandle, SnapshotHandle


class OverallStatus(str, Enum):
    ALL_SUCCEEDED = "ALL_SUCCEEDED"
    PARTIAL_SUCCESS = "PARTIAL_SUCCESS"
    ALL_FAILED = "ALL_FAILED"


@dataclass(frozen=True)
class Published:
    image: ImageHandle
    snapshot: SnapshotHandle

    @property
    def region(self) -> str:
        return self.image.region

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class Failed:
    region: str
    kind: FailureKind
    reason: str
    # whatever was created before the failure, for manual cleanup
    snapshot: Optional[SnapshotHandle] = None
    image: Optional[ImageHandle] = None

    @property
    def ok(self) -> bool:
        return False

    @property
    def is_timeout(self) -> bool:
        return self.kind.is_timeout


RegionOutcome = Union[Published, Failed]


@dataclass(frozen=True)
class CleanupRecord:
    resource: str
    deleted: bool
    error: Optional[str] = None


@dataclass(frozen=True)
class PublishResult:
    home_region: str
    regions: Mapping[str, RegionOutcome]
    status: OverallStatus
    error: Optional[str] = None
    cancelled: bool = False
    cleanup: Tuple[CleanupRecord, ...] = ()

    @property
    def published(self) -> Dict[str, Published]:
        return {r: o for r, o in self.regions.items() if isinstance(o, Published)}

    @property
    def failed(self) -> Dict[str, Failed]:
        return {r: o for r, o in self.regions.items() if isinstance(o, Failed)}

    def image_ids(self) -> Dict[str, str]:
        return {r: o.image.image_id for r, o in self.published.items()}

    def orphaned_resources(self) -> List[str]:
        """Provider ids left behind by failed regions and not cleaned up."""
        deleted = {c.resource for c in self.cleanup if c.deleted}
        orphans: List[str] = []
        for outcome in self.failed.values():
            for handle in (outcome.image, outcome.snapshot):
                if handle is None:
                    continue
                rid = handle.image_id if isinstance(handle, ImageHandle) else handle.snapshot_id
                if rid not in deleted:
                    orphans.append(f"{outcome.region}:{rid}")
        return orphans

    def indeterminate_regions(self) -> List[str]:
        """Regions whose provider-side work may still be converging."""
        return sorted(
            r for r, o in self.failed.items()
            if o.kind.is_timeout or o.kind is FailureKind.CANCELLED
        )

    def to_dict(self) -> dict:
        return {
            "status": self.status.value,
            "home_region": self.home_region,
            "amis": self.image_ids(),
            "snapshots": {r: o.snapshot.snapshot_id for r, o in self.published.items()},
            "failed": {
                r: {"kind": o.kind.value, "reason": o.reason}
                for r, o in self.failed.items()
            },
            "orphaned": self.orphaned_resources(),
            "indeterminate": self.indeterminate_regions(),
            "cancelled": self.cancelled,
            "error": self.error,
        }


@dataclass
class ResultCollector:
    """
    Aggregation map written once per region by that region's own task.
    """

    _outcomes: Dict[str, RegionOutcome] = field(default_factory=dict)

    def record(self, region: str, outcome: RegionOutcome) -> None:
        if region in self._outcomes:
            raise RuntimeError(f"outcome for region {region} recorded twice")
        self._outcomes[region] = outcome

    def update(self, outcomes: Mapping[str, RegionOutcome]) -> None:
        for region, outcome in outcomes.items():
            self.record(region, outcome)

    def outcomes(self) -> Dict[str, RegionOutcome]:
        return dict(self._outcomes)

    def __contains__(self, region: str) -> bool:
        return region in self._outcomes

    def __len__(self) -> int:
        return len(self._outcomes)

    def build(
        self,
        home_region: str,
        *,
        error: Optional[str] = None,
        cancelled: bool = False,
        cleanup: Tuple[CleanupRecord, ...] = (),
    ) -> PublishResult:
        home = self._outcomes.get(home_region)
        if home is None or not home.ok:
            status = OverallStatus.ALL_FAILED
        elif all(o.ok for o in self._outcomes.values()):
            status = OverallStatus.ALL_SUCCEEDED
        else:
            status = OverallStatus.PARTIAL_SUCCESS
        return PublishResult(
            home_region=home_region,
            regions=MappingProxyType(dict(self._outcomes)),
            status=status,
            error=error,
            cancelled=cancelled,
            cleanup=tuple(cleanup),
        )
