# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/amiupload/cli/app.py
from __future__ import annotations

import asyncio
import json
import logging
import signal
from pathlib import Path
from typing import Optional

import typer

from amiupload.errors import ConfigurationError, PublishError
from amiupload.logging.log import init_logging
from amiupload.observers.console import ConsoleObserver
from amiupload.observers.jsonfile import JsonFileObserver
from amiupload.observers.logger import LoggerObserver
from amiupload.publish.polling import CancelToken
from amiupload.publish.result import OverallStatus, PublishResult
from amiupload.publish.steps import PublishJob, run_publish

from amiupload.temporal.models import PublishRequest
from amiupload.cli.temporal_start import start_publish_workflow

# ------------------------------------------------------------------------------
# CLI setup
# ------------------------------------------------------------------------------

app = typer.Typer(help="Publish NixOS disk images as EC2 AMIs")

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_PARTIAL = 2
EXIT_CANCELLED = 130


def exit_code_for(result: PublishResult) -> int:
    if result.cancelled:
        return EXIT_CANCELLED
    if result.status is OverallStatus.ALL_SUCCEEDED:
        return EXIT_OK
    if result.status is OverallStatus.PARTIAL_SUCCESS:
        return EXIT_PARTIAL
    return EXIT_FAILED


async def _publish_with_signals(job: PublishJob, *, observers, run_id: str) -> PublishResult:
    cancel = CancelToken()
    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, cancel.cancel)
        loop.add_signal_handler(signal.SIGTERM, cancel.cancel)
        installed = True
    except (NotImplementedError, RuntimeError):
        # no signal support here (e.g. not the main thread); Ctrl-C then
        # interrupts the loop instead of cancelling cleanly
        installed = False
    try:
        return await run_publish(job, observers=observers, run_id=run_id, cancel=cancel)
    finally:
        if installed:
            loop.remove_signal_handler(signal.SIGINT)
            loop.remove_signal_handler(signal.SIGTERM)


# ------------------------------------------------------------------------------
# Commands
# ------------------------------------------------------------------------------

@app.command()
def publish(
    image_dir: Path = typer.Argument(..., help="Image build output (contains nix-support/image-info.json)"),
    regions: Optional[str] = typer.Option(
        None,
        "--regions",
        help="Comma separated regions, the first one is home; or 'all'",
    ),
    name: Optional[str] = typer.Option(
        None, "--name", help="Image name template, e.g. 'NixOS-{label}-{system}'"
    ),
    root_size: Optional[int] = typer.Option(None, "--root-size", help="Root volume size in GiB"),
    config: Optional[Path] = typer.Option(None, "--config", help="Publish config YAML"),
    max_concurrency: Optional[int] = typer.Option(
        None, "--max-concurrency", min=1, help="Regions replicated at once"
    ),
    progress: bool = typer.Option(False, "--progress", help="Show upload progress"),
    debug: bool = typer.Option(False, "--debug"),
    temporal: bool = typer.Option(
        False, "--temporal", help="Run the publish as a Temporal workflow"
    ),
):
    # ------------------------------------------------------------------
    # TEMPORAL PATH (early exit)
    # ------------------------------------------------------------------
    if temporal:
        req = PublishRequest(
            image_dir=str(image_dir),
            config_path=str(config) if config else None,
            regions=regions,
            name=name,
            root_size_gib=root_size,
            max_concurrency=max_concurrency,
            debug=debug,
        )
        workflow_id = asyncio.run(start_publish_workflow(req))
        typer.echo(f"[temporal] Publish workflow started: {workflow_id}", err=True)
        raise typer.Exit(EXIT_OK)

    logger, run_id, log_path = init_logging(verbose=debug)
    events_path = log_path.with_suffix(".jsonl")
    observers = [
        ConsoleObserver(),
        LoggerObserver(logger),
        JsonFileObserver(events_path),
    ]

    job = PublishJob(
        image_dir=str(image_dir),
        config_path=str(config) if config else None,
        regions=regions,
        name=name,
        root_size_gib=root_size,
        max_concurrency=max_concurrency,
        progress=progress,
    )

    try:
        result = asyncio.run(_publish_with_signals(job, observers=observers, run_id=run_id))
    except ConfigurationError as e:
        logger.error("configuration error: %s", e)
        raise typer.Exit(EXIT_FAILED)
    except PublishError as e:
        logger.error("publish failed: %s", e)
        raise typer.Exit(EXIT_FAILED)

    typer.echo(json.dumps(result.to_dict(), indent=2))
    logger.debug("events written to %s", events_path)
    raise typer.Exit(exit_code_for(result))


@app.command()
def worker(
    debug: bool = typer.Option(False, "--debug"),
):
    """Run a Temporal worker serving publish workflows."""
    from amiupload.temporal.worker import main as worker_main

    init_logging(name="amiupload", verbose=debug, console_level=logging.INFO)
    asyncio.run(worker_main())


if __name__ == "__main__":
    app()
