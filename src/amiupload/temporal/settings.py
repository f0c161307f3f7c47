# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/amiupload/temporal/settings.py

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping, Optional

DEFAULT_ADDRESS = "localhost:7233"
DEFAULT_NAMESPACE = "default"
DEFAULT_TASK_QUEUE = "amiupload.publish"


@dataclass(frozen=True)
class TemporalSettings:
    """Where publish workflows are started and which queue workers poll."""

    address: str = DEFAULT_ADDRESS
    namespace: str = DEFAULT_NAMESPACE
    task_queue: str = DEFAULT_TASK_QUEUE


def load_temporal_settings(env: Optional[Mapping[str, str]] = None) -> TemporalSettings:
    env = os.environ if env is None else env
    # empty values fall back to the local dev server
    return TemporalSettings(
        address=env.get("TEMPORAL_ADDRESS") or DEFAULT_ADDRESS,
        namespace=env.get("TEMPORAL_NAMESPACE") or DEFAULT_NAMESPACE,
        task_queue=env.get("AMIUPLOAD_TASK_QUEUE") or DEFAULT_TASK_QUEUE,
    )
