# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/amiupload/observers/console.py

from __future__ import annotations

import sys

from .events import BaseEvent


class ConsoleObserver:
    """
    Human readable progress on stderr; stdout is reserved for the result.
    This is the only place lifecycle steps reach the terminal.
    """

    def __init__(self, stream=None):
        self.stream = stream or sys.stderr

    def notify(self, event: BaseEvent) -> None:
        fields = event.dict()
        ts = fields.pop("ts")
        fields.pop("run_id", None)
        detail = " ".join(f"{k}={v}" for k, v in fields.items() if v not in (None, [], ""))
        print(f"[{ts}] {type(event).__name__} {detail}".rstrip(), file=self.stream)
