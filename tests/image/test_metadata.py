import json
from pathlib import Path

import pytest

from amiupload.errors import ConfigurationError
from amiupload.image.metadata import image_spec_from_info, load_image_info
from amiupload.image.models import GIB, Architecture, BootMode, DiskFormat, ImageSpec


def _image_dir(tmp_path: Path, **overrides) -> Path:
    info = {
        "label": "24.05.20240601.abcdef",
        "system": "x86_64-linux",
        "logical_bytes": str(2 * GIB + 1),
        "file": "nixos-amazon-image.raw",
    }
    info.update(overrides)
    (tmp_path / "nix-support").mkdir()
    (tmp_path / "nix-support" / "image-info.json").write_text(json.dumps(info))
    (tmp_path / "nixos-amazon-image.raw").write_bytes(b"\0")
    return tmp_path


def test_load_image_info_resolves_relative_file(tmp_path):
    info = load_image_info(_image_dir(tmp_path))
    assert info.logical_bytes == 2 * GIB + 1
    assert info.file == tmp_path / "nixos-amazon-image.raw"
    assert info.format is DiskFormat.RAW
    assert info.boot_mode is None


def test_absolute_file_is_kept(tmp_path):
    info = load_image_info(_image_dir(tmp_path, file="/nix/store/xyz/disk.raw"))
    assert info.file == Path("/nix/store/xyz/disk.raw")


def test_missing_metadata(tmp_path):
    with pytest.raises(ConfigurationError, match="malformed image directory"):
        load_image_info(tmp_path)


def test_bad_json_and_missing_fields(tmp_path):
    (tmp_path / "nix-support").mkdir()
    meta = tmp_path / "nix-support" / "image-info.json"
    meta.write_text("{not json")
    with pytest.raises(ConfigurationError):
        load_image_info(tmp_path)
    meta.write_text(json.dumps({"label": "x"}))
    with pytest.raises(ConfigurationError):
        load_image_info(tmp_path)


def test_spec_from_info(tmp_path):
    info = load_image_info(_image_dir(tmp_path))
    spec = image_spec_from_info(info, tags={"Team": "images"})

    assert spec.architecture is Architecture.X86_64
    assert spec.image_name() == "NixOS-24.05.20240601.abcdef-x86_64-linux"
    assert spec.description == "NixOS 24.05.20240601.abcdef x86_64-linux"
    # 2 GiB plus one byte rounds up
    assert spec.root_volume_gib == 3
    assert dict(spec.tags) == {
        "NixOSName": "NixOS-24.05.20240601.abcdef-x86_64-linux",
        "Team": "images",
    }


def test_spec_from_info_aarch64_uefi(tmp_path):
    info = load_image_info(_image_dir(tmp_path, system="aarch64-linux", boot_mode="uefi"))
    spec = image_spec_from_info(info, root_size_gib=20, name_template="{label}-{arch}-{region}")
    assert spec.architecture is Architecture.ARM64
    assert spec.boot_mode is BootMode.UEFI
    assert spec.root_volume_gib == 20
    assert spec.image_name("eu-west-1") == "24.05.20240601.abcdef-arm64-eu-west-1"


def test_unsupported_system(tmp_path):
    info = load_image_info(_image_dir(tmp_path, system="riscv64-linux"))
    with pytest.raises(ConfigurationError, match="riscv64"):
        image_spec_from_info(info)


def test_bad_name_template(tmp_path):
    info = load_image_info(_image_dir(tmp_path))
    with pytest.raises(ConfigurationError, match="template"):
        image_spec_from_info(info, name_template="NixOS-{version}")


def test_unbalanced_name_template(tmp_path):
    info = load_image_info(_image_dir(tmp_path))
    with pytest.raises(ConfigurationError, match="bad name template"):
        image_spec_from_info(info, name_template="NixOS-{label")


def test_small_images_get_at_least_one_gib():
    spec = ImageSpec(Path("x.raw"), DiskFormat.RAW, 10, Architecture.X86_64)
    assert spec.root_volume_gib == 1
    assert spec.system == "x86_64-linux"
