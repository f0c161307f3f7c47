import asyncio
import json

import pytest

from amiupload.config.models import PublishConfig
from amiupload.errors import ConfigurationError
from amiupload.image.models import GIB
from amiupload.publish.result import OverallStatus
from amiupload.publish.steps import (
    PublishJob,
    build_options,
    resolve_regions,
    run_publish,
    split_regions,
)

ALL = ["ap-south-1", "eu-west-1", "us-east-1", "us-west-2"]


async def _all_regions():
    return list(ALL)


def _resolve(requested, cfg, **kw):
    kw.setdefault("list_regions", _all_regions)
    return asyncio.run(resolve_regions(requested, cfg, **kw))


def test_split_regions():
    assert split_regions(None) == []
    assert split_regions(" us-west-2, ,eu-west-1 ") == ["us-west-2", "eu-west-1"]


def test_explicit_regions_first_is_home():
    home, replicas = _resolve(["us-west-2", "eu-west-1"], PublishConfig())
    assert home == "us-west-2"
    assert replicas == ["eu-west-1"]


def test_config_regions_used_when_flag_missing():
    cfg = PublishConfig(regions=["eu-west-1", "us-east-1"])
    assert _resolve([], cfg) == ("eu-west-1", ["us-east-1"])


def test_all_regions_uses_configured_home():
    cfg = PublishConfig(home_region="eu-west-1")
    home, replicas = _resolve(["all"], cfg, default_region="us-west-2")
    assert home == "eu-west-1"
    assert replicas == ["ap-south-1", "us-east-1", "us-west-2"]


def test_all_regions_falls_back_to_session_region():
    home, replicas = _resolve([], PublishConfig(), default_region="us-west-2")
    assert home == "us-west-2"
    assert "us-west-2" not in replicas


def test_all_regions_without_any_home_region():
    with pytest.raises(ConfigurationError, match="home region"):
        _resolve(["all"], PublishConfig())


def test_all_regions_needs_a_region_listing():
    with pytest.raises(ConfigurationError, match="cannot list regions"):
        _resolve(["all"], PublishConfig(home_region="us-west-2"), list_regions=None)


def test_all_cannot_be_mixed():
    with pytest.raises(ConfigurationError):
        _resolve(["us-west-2", "all"], PublishConfig())


def test_build_options_prefers_job_values():
    cfg = PublishConfig(max_concurrency=3)
    assert build_options(PublishJob(image_dir="x"), cfg).max_concurrency == 3
    assert build_options(PublishJob(image_dir="x", max_concurrency=9), cfg).max_concurrency == 9


def test_run_publish_end_to_end(tmp_path, monkeypatch, provider, uploader):
    monkeypatch.delenv("AMIUPLOAD_OVERRIDES_FILE", raising=False)
    (tmp_path / "nix-support").mkdir()
    (tmp_path / "nix-support" / "image-info.json").write_text(json.dumps({
        "label": "24.05",
        "system": "aarch64-linux",
        "logical_bytes": str(GIB),
        "file": "disk.raw",
    }))
    (tmp_path / "disk.raw").write_bytes(b"\0")

    job = PublishJob(image_dir=str(tmp_path), regions="us-west-2,us-east-1", name="custom-{label}-{arch}")
    result = asyncio.run(run_publish(job, provider=provider, uploader=uploader))

    assert result.status is OverallStatus.ALL_SUCCEEDED
    assert uploader.calls == [(tmp_path / "disk.raw", "us-west-2")]
    assert sorted(result.image_ids()) == ["us-east-1", "us-west-2"]
