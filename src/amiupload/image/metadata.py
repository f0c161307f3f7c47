# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/amiupload/image/metadata.py

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Dict, Optional

from pydantic import BaseModel, ValidationError, field_validator

from amiupload.errors import ConfigurationError
from .models import Architecture, BootMode, DiskFormat, ImageSpec

log = logging.getLogger("amiupload")

IMAGE_INFO = Path("nix-support") / "image-info.json"


class ImageInfo(BaseModel):
    """
    Metadata written next to the image by the nix image build:
    nix-support/image-info.json
    """

    label: str
    system: str
    logical_bytes: int          # written as a string by the build scripts
    file: Path
    format: DiskFormat = DiskFormat.RAW
    boot_mode: Optional[BootMode] = None

    @field_validator("logical_bytes", mode="before")
    @classmethod
    def _parse_bytes(cls, value):
        if isinstance(value, str):
            return int(value.strip())
        return value


def load_image_info(image_dir: str | Path) -> ImageInfo:
    path = Path(image_dir) / IMAGE_INFO
    try:
        raw = json.loads(path.read_text())
    except FileNotFoundError as exc:
        raise ConfigurationError(f"malformed image directory, could not open {path}") from exc
    except json.JSONDecodeError as exc:
        raise ConfigurationError(f"error parsing {path}: {exc}") from exc
    try:
        info = ImageInfo.model_validate(raw)
    except ValidationError as exc:
        raise ConfigurationError(f"error parsing {path}: {exc}") from exc

    # relative paths are relative to the image directory
    if not info.file.is_absolute():
        info = info.model_copy(update={"file": Path(image_dir) / info.file})
    log.debug("read image info: %s", info)
    return info


def image_spec_from_info(
    info: ImageInfo,
    *,
    name_template: str = "NixOS-{label}-{system}",
    root_size_gib: Optional[int] = None,
    boot_mode: BootMode = BootMode.LEGACY_BIOS,
    tags: Optional[Dict[str, str]] = None,
) -> ImageSpec:
    try:
        arch = Architecture.parse(info.system)
    except ValueError as exc:
        raise ConfigurationError(f"unsupported system '{info.system}'") from exc

    all_tags = {"NixOSName": f"NixOS-{info.label}-{info.system}"}
    all_tags.update(tags or {})

    spec = ImageSpec(
        source_path=info.file,
        disk_format=info.format,
        virtual_size=info.logical_bytes,
        architecture=arch,
        boot_mode=info.boot_mode or boot_mode,
        name_template=name_template,
        label=info.label,
        description=f"NixOS {info.label} {info.system}",
        root_size_gib=root_size_gib,
        tags=tuple(sorted(all_tags.items())),
    )
    try:
        spec.image_name()
    except (KeyError, IndexError) as exc:
        raise ConfigurationError(f"bad name template '{name_template}': unknown field {exc}") from exc
    except ValueError as exc:
        raise ConfigurationError(f"bad name template '{name_template}': {exc}") from exc
    return spec
