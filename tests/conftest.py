import itertools
from pathlib import Path

import pytest

from amiupload.config.models import PollingConfig, PollSettings
from amiupload.errors import ProviderError
from amiupload.image.models import (
    GIB,
    Architecture,
    DiskFormat,
    ImageHandle,
    ImageSpec,
    ImageState,
    SnapshotHandle,
    SnapshotState,
)

FOREVER = -1


class FakeProvider:
    """
    In-memory provider that counts calls.

    Per-region knobs:
      snapshot_pending / image_pending: describes answering "pending" before
        the resource completes, FOREVER never completes
      snapshot_failed / image_failed: the resource ends up failed
      reject_copy / reject_register: the create request itself is rejected
      transient: (operation, region) -> number of transient errors first
    """

    def __init__(self):
        self.calls = []
        self.snapshot_pending = {}
        self.image_pending = {}
        self.snapshot_failed = set()
        self.image_failed = set()
        self.reject_copy = set()
        self.reject_register = set()
        self.transient = {}
        self.delete_error = None
        self.on_describe = None
        self._ids = itertools.count(1)
        self._seen = {}

    def count(self, op):
        return sum(1 for o, _ in self.calls if o == op)

    def regions_for(self, op):
        return [r for o, r in self.calls if o == op]

    def _record(self, op, region):
        self.calls.append((op, region))
        key = (op, region)
        if self.transient.get(key, 0) > 0:
            self.transient[key] -= 1
            raise ProviderError(f"{op} throttled", code="RequestLimitExceeded", transient=True)

    def _still_pending(self, pending, region, resource_id):
        limit = pending.get(region, 0)
        if limit == FOREVER:
            return True
        seen = self._seen.get(resource_id, 0)
        self._seen[resource_id] = seen + 1
        return seen < limit

    async def copy_snapshot(self, snapshot, src_region, dst_region):
        self._record("copy_snapshot", dst_region)
        if dst_region in self.reject_copy:
            raise ProviderError("copy rejected", code="InvalidParameterValue")
        return SnapshotHandle(f"snap-{next(self._ids):08x}", dst_region)

    async def describe_snapshot(self, handle):
        self._record("describe_snapshot", handle.region)
        if self.on_describe:
            self.on_describe(handle)
        if handle.region in self.snapshot_failed:
            return SnapshotState.FAILED
        if self._still_pending(self.snapshot_pending, handle.region, handle.snapshot_id):
            return SnapshotState.PENDING
        return SnapshotState.COMPLETED

    async def register_image(self, snapshot, spec):
        self._record("register_image", snapshot.region)
        if snapshot.region in self.reject_register:
            raise ProviderError("invalid snapshot", code="InvalidSnapshot.NotFound")
        return ImageHandle(f"ami-{next(self._ids):08x}", snapshot.region, snapshot)

    async def describe_image(self, handle):
        self._record("describe_image", handle.region)
        if self.on_describe:
            self.on_describe(handle)
        if handle.region in self.image_failed:
            return ImageState.FAILED
        if self._still_pending(self.image_pending, handle.region, handle.image_id):
            return ImageState.REGISTERING
        return ImageState.AVAILABLE

    async def delete_snapshot(self, handle):
        self._record("delete_snapshot", handle.region)
        if self.delete_error is not None:
            raise self.delete_error


class FakeUploader:
    required_format = DiskFormat.RAW

    def __init__(self):
        self.calls = []
        self.error = None
        self.state = SnapshotState.PENDING

    async def upload(self, path, region, *, description=None):
        self.calls.append((Path(path), region))
        if self.error is not None:
            raise self.error
        return SnapshotHandle("snap-00000000", region, state=self.state)


@pytest.fixture
def provider():
    return FakeProvider()


@pytest.fixture
def uploader():
    return FakeUploader()


@pytest.fixture
def fast_settings():
    return PollSettings(
        interval_seconds=0.01,
        max_interval_seconds=0.01,
        backoff_factor=1.0,
        timeout_seconds=0.2,
        transient_retries=3,
    )


@pytest.fixture
def fast_polling(fast_settings):
    return PollingConfig(snapshot=fast_settings, image=fast_settings)


@pytest.fixture
def image_spec(tmp_path):
    disk = tmp_path / "nixos.img"
    disk.write_bytes(b"\0" * 4096)
    return ImageSpec(
        source_path=disk,
        disk_format=DiskFormat.RAW,
        virtual_size=3 * GIB,
        architecture=Architecture.X86_64,
        name_template="NixOS-{label}-{system}",
        label="24.05.1234",
        description="NixOS 24.05.1234 x86_64-linux",
    )


@pytest.fixture
def pending_forever():
    return FOREVER
