# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/amiupload/logging/log.py

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from pathlib import Path

FILE_FORMAT = "%(asctime)s | %(levelname)-7s | %(name)s | %(message)s"
CONSOLE_FORMAT = "%(levelname)s: %(message)s"


def _file_handler(path: Path) -> logging.Handler:
    handler = logging.FileHandler(path)
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(logging.Formatter(FILE_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
    return handler


def _console_handler(level: int) -> logging.Handler:
    # stderr; stdout carries the JSON result
    handler = logging.StreamHandler()
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(CONSOLE_FORMAT))
    return handler


def init_logging(
    *,
    base_dir: Path | None = None,
    name: str = "amiupload",
    verbose: bool = False,
    console_level: int = logging.WARNING,
) -> tuple[logging.Logger, str, Path]:
    """
    Sets up the run's logger and returns (logger, run_id, log_path).

    Every record goes to a per-run file. The console only shows warnings and
    errors unless `verbose` is set: during a publish the ConsoleObserver
    already prints each lifecycle step. The worker, which has no console
    observer, passes a lower `console_level`.
    """
    run_id = str(uuid.uuid4())
    log_dir = base_dir or Path.home() / ".amiupload" / "logs"
    log_dir.mkdir(parents=True, exist_ok=True)

    stamp = datetime.now(timezone.utc).strftime("%Y%m%d-%H%M%S")
    log_path = log_dir / f"{name}-{stamp}-{run_id}.log"

    logger = logging.getLogger(name)
    logger.setLevel(logging.DEBUG)
    logger.handlers.clear()
    logger.propagate = False
    logger.addHandler(_file_handler(log_path))
    logger.addHandler(_console_handler(logging.DEBUG if verbose else console_level))

    logger.debug("run %s logging to %s", run_id, log_path)
    return logger, run_id, log_path
