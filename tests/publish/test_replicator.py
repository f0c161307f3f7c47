import asyncio

import pytest

from amiupload.errors import ConfigurationError, FailureKind
from amiupload.image.models import ImageHandle, ImageState, SnapshotHandle, SnapshotState
from amiupload.observers.dispatcher import EventBus
from amiupload.observers.events import RegionFailed, RegionPublished
from amiupload.publish.polling import CancelToken
from amiupload.publish.registrar import ImageRegistrar
from amiupload.publish.replicator import RegionReplicator
from amiupload.publish.result import Failed, Published

SOURCE = SnapshotHandle("snap-00000000", "us-west-2", SnapshotState.COMPLETED)


class Capture:
    def __init__(self): self.events = []
    def notify(self, ev): self.events.append(ev)


def _replicator(provider, settings, *, max_concurrency=4, bus=None, cancel=None):
    cancel = cancel or CancelToken()
    registrar = ImageRegistrar(provider, settings=settings, bus=bus, cancel=cancel)
    return RegionReplicator(
        provider,
        registrar,
        snapshot_settings=settings,
        max_concurrency=max_concurrency,
        bus=bus,
        cancel=cancel,
    )


def test_every_region_gets_its_own_snapshot_and_image(provider, image_spec, fast_settings):
    cap = Capture()
    rep = _replicator(provider, fast_settings, bus=EventBus([cap]))
    regions = ["us-west-1", "us-east-1", "eu-west-1"]

    outcomes = asyncio.run(rep.replicate(SOURCE, image_spec, "us-west-2", regions))

    assert list(outcomes) == regions
    assert all(isinstance(o, Published) for o in outcomes.values())
    for region, o in outcomes.items():
        assert o.image.region == region
        assert o.snapshot.region == region
        assert o.snapshot.state is SnapshotState.COMPLETED
        assert o.image.is_valid
    assert len({o.image.image_id for o in outcomes.values()}) == 3
    assert len({o.snapshot.snapshot_id for o in outcomes.values()}) == 3
    assert sorted(provider.regions_for("copy_snapshot")) == sorted(regions)
    assert len([e for e in cap.events if isinstance(e, RegionPublished)]) == 3


def test_copy_timeout_does_not_affect_siblings(provider, image_spec, fast_settings, pending_forever):
    provider.snapshot_pending["eu-west-1"] = pending_forever
    rep = _replicator(provider, fast_settings)

    outcomes = asyncio.run(rep.replicate(SOURCE, image_spec, "us-west-2", ["us-west-1", "eu-west-1", "us-east-1"]))

    timed_out = outcomes["eu-west-1"]
    assert isinstance(timed_out, Failed)
    assert timed_out.kind is FailureKind.COPY_TIMEOUT
    assert timed_out.is_timeout
    # the copy may still complete, so its handle is kept for the caller
    assert timed_out.snapshot is not None and timed_out.snapshot.region == "eu-west-1"
    assert isinstance(outcomes["us-west-1"], Published)
    assert isinstance(outcomes["us-east-1"], Published)
    assert "eu-west-1" not in provider.regions_for("register_image")


def test_rejected_copy_and_failed_registration_are_recorded(provider, image_spec, fast_settings):
    provider.reject_copy.add("ap-south-1")
    provider.image_failed.add("sa-east-1")
    cap = Capture()
    rep = _replicator(provider, fast_settings, bus=EventBus([cap]))

    outcomes = asyncio.run(rep.replicate(SOURCE, image_spec, "us-west-2", ["ap-south-1", "sa-east-1", "us-east-1"]))

    assert outcomes["ap-south-1"].kind is FailureKind.COPY_FAILED
    assert outcomes["ap-south-1"].snapshot is None
    reg = outcomes["sa-east-1"]
    assert reg.kind is FailureKind.REGISTRATION_FAILED
    assert reg.snapshot is not None and reg.image is not None
    assert reg.image.state is ImageState.FAILED
    assert isinstance(outcomes["us-east-1"], Published)
    assert {e.region for e in cap.events if isinstance(e, RegionFailed)} == {"ap-south-1", "sa-east-1"}


def test_failed_snapshot_copy(provider, image_spec, fast_settings):
    provider.snapshot_failed.add("us-east-1")
    rep = _replicator(provider, fast_settings)

    outcomes = asyncio.run(rep.replicate(SOURCE, image_spec, "us-west-2", ["us-east-1"]))

    failed = outcomes["us-east-1"]
    assert failed.kind is FailureKind.COPY_FAILED
    assert failed.snapshot.state is SnapshotState.FAILED
    assert provider.count("register_image") == 0


def test_source_region_is_reused_not_copied(provider, image_spec, fast_settings):
    source_image = ImageHandle("ami-source", "us-west-2", SOURCE, ImageState.AVAILABLE)
    rep = _replicator(provider, fast_settings)

    outcomes = asyncio.run(rep.replicate(
        SOURCE, image_spec, "us-west-2", ["us-west-2", "us-east-1"], source_image=source_image
    ))

    assert outcomes["us-west-2"].image is source_image
    assert outcomes["us-west-2"].snapshot is SOURCE
    assert provider.regions_for("copy_snapshot") == ["us-east-1"]


def test_source_region_without_source_image_is_a_failure(provider, image_spec, fast_settings):
    rep = _replicator(provider, fast_settings)

    outcomes = asyncio.run(rep.replicate(SOURCE, image_spec, "us-west-2", ["us-west-2"]))

    assert outcomes["us-west-2"].kind is FailureKind.CONFIGURATION
    assert provider.calls == []


def test_duplicate_targets_run_once(provider, image_spec, fast_settings):
    rep = _replicator(provider, fast_settings)

    outcomes = asyncio.run(rep.replicate(SOURCE, image_spec, "us-west-2", ["us-east-1", "us-east-1"]))

    assert list(outcomes) == ["us-east-1"]
    assert provider.count("copy_snapshot") == 1


def test_concurrency_is_bounded(image_spec, fast_settings, provider):
    running = {"now": 0, "peak": 0}
    original = provider.copy_snapshot

    async def slow_copy(snapshot, src, dst):
        running["now"] += 1
        running["peak"] = max(running["peak"], running["now"])
        await asyncio.sleep(0.02)
        running["now"] -= 1
        return await original(snapshot, src, dst)

    provider.copy_snapshot = slow_copy
    rep = _replicator(provider, fast_settings, max_concurrency=2)
    regions = [f"region-{i}" for i in range(6)]

    outcomes = asyncio.run(rep.replicate(SOURCE, image_spec, "us-west-2", regions))

    assert all(o.ok for o in outcomes.values())
    assert running["peak"] == 2


def test_source_snapshot_must_be_completed(provider, image_spec, fast_settings):
    rep = _replicator(provider, fast_settings)
    pending = SnapshotHandle("snap-00000000", "us-west-2")

    with pytest.raises(ConfigurationError):
        asyncio.run(rep.replicate(pending, image_spec, "us-west-2", ["us-east-1"]))


def test_max_concurrency_must_be_positive(provider, fast_settings):
    registrar = ImageRegistrar(provider, settings=fast_settings)
    with pytest.raises(ConfigurationError):
        RegionReplicator(provider, registrar, max_concurrency=0)
