# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/amiupload/observers/jsonfile.py

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict

from .events import BaseEvent


def event_record(event: BaseEvent) -> Dict[str, Any]:
    """One JSON-lines record: the event type first, then its fields."""
    return {"type": type(event).__name__, **event.dict()}


class JsonFileObserver:
    """Appends each event of a run to a `.jsonl` file next to the run log."""

    def __init__(self, path: str | Path):
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)

    def notify(self, event: BaseEvent) -> None:
        line = json.dumps(event_record(event), default=str, sort_keys=False)
        # reopened per event so a crashed run still leaves every line written
        with self.path.open("a", encoding="utf-8") as fh:
            fh.write(line + "\n")
