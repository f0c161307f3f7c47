# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/amiupload/observers/dispatcher.py

from __future__ import annotations

import logging
from typing import Iterable, List, Optional

from .events import BaseEvent
from .interface import Observer

log = logging.getLogger("amiupload")


class EventBus:
    """Fans events out to observers; an observer error never fails the publish."""

    def __init__(self, observers: Optional[Iterable[Observer]] = None):
        self._observers: List[Observer] = list(observers or [])

    def emit(self, event: BaseEvent) -> None:
        for observer in self._observers:
            try:
                observer.notify(event)
            except Exception:
                log.debug("observer %r failed on %s", observer, type(event).__name__, exc_info=True)
