# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/amiupload/config/models.py

from typing import Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

from amiupload.image.models import BootMode


class PollSettings(BaseModel):
    """How often and how long to wait on a provider-side resource."""

    interval_seconds: float = Field(5.0, ge=0)
    max_interval_seconds: float = Field(30.0, ge=0)
    backoff_factor: float = Field(1.5, ge=1.0)
    timeout_seconds: float = Field(1800.0, gt=0)
    transient_retries: int = Field(5, ge=0)


class PollingConfig(BaseModel):
    snapshot: PollSettings = PollSettings(timeout_seconds=3600.0)
    image: PollSettings = PollSettings()


class ColdsnapConfig(BaseModel):
    binary: str = "coldsnap"
    extra_args: List[str] = Field(default_factory=list)


class Ec2Config(BaseModel):
    profile: Optional[str] = None
    volume_type: str = "gp3"
    ena_support: bool = True


class PublishConfig(BaseModel):
    home_region: Optional[str] = None
    regions: List[str] = Field(default_factory=lambda: ["all"])
    name_template: str = "NixOS-{label}-{system}"
    root_size_gib: Optional[int] = Field(None, gt=0)
    boot_mode: BootMode = BootMode.LEGACY_BIOS
    max_concurrency: int = Field(4, ge=1)
    tags: Dict[str, str] = Field(default_factory=dict)
    polling: PollingConfig = PollingConfig()
    coldsnap: ColdsnapConfig = ColdsnapConfig()
    ec2: Ec2Config = Ec2Config()

    @field_validator("regions")
    @classmethod
    def _strip_regions(cls, value: List[str]) -> List[str]:
        regions = [r.strip() for r in value if r and r.strip()]
        if not regions:
            raise ValueError("at least one region (or 'all') is required")
        return regions

    @property
    def all_regions(self) -> bool:
        return self.regions[0] == "all"
