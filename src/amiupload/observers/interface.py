# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/amiupload/observers/interface.py

from __future__ import annotations

from typing import Protocol, runtime_checkable

from .events import BaseEvent


@runtime_checkable
class Observer(Protocol):
    """
    Receives every lifecycle event of a publish run (upload, registration,
    copy, cleanup, summary) in emission order. Replica regions run
    concurrently, so their events interleave.
    """

    def notify(self, event: BaseEvent) -> None: ...
