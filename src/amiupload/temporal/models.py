# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/amiupload/temporal/models.py

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Dict, List, Optional

@dataclass
class PublishRequest:
    # directory holding nix-support/image-info.json
    image_dir: str

    config_path: Optional[str] = None
    regions: Optional[str] = None          # same comma-separated format as --regions
    name: Optional[str] = None
    root_size_gib: Optional[int] = None
    max_concurrency: Optional[int] = None
    debug: bool = False

@dataclass
class PublishStatus:
    phase: str
    message: str = ""
    result_status: Optional[str] = None
    amis: Dict[str, str] = field(default_factory=dict)
    failed_regions: List[str] = field(default_factory=list)
    error: Optional[str] = None
