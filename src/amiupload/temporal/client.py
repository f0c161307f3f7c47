# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/amiupload/temporal/client.py

from __future__ import annotations

import logging
from typing import Optional

from temporalio.client import Client

from .settings import TemporalSettings, load_temporal_settings

log = logging.getLogger("amiupload")


async def get_temporal_client(settings: Optional[TemporalSettings] = None) -> Client:
    settings = settings or load_temporal_settings()
    log.debug("connecting to temporal at %s (namespace %s)", settings.address, settings.namespace)
    return await Client.connect(settings.address, namespace=settings.namespace)
