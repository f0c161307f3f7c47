# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/amiupload/observers/logger.py

from __future__ import annotations

import logging

from .events import BaseEvent

SKIPPED_FIELDS = ("ts", "run_id")


class LoggerObserver:
    """Writes events into the run log at DEBUG; the console never sees them."""

    def __init__(self, logger: logging.Logger):
        self.logger = logger

    def notify(self, event: BaseEvent) -> None:
        fields = ", ".join(f"{k}={v}" for k, v in event.dict().items() if k not in SKIPPED_FIELDS)
        self.logger.debug("[EVENT] %s: %s", type(event).__name__, fields)
