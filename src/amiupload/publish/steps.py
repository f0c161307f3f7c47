# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/amiupload/publish/steps.py

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, List, Optional, Tuple

from amiupload.config.loader import load_config
from amiupload.config.models import PublishConfig
from amiupload.errors import ConfigurationError
from amiupload.image.metadata import image_spec_from_info, load_image_info
from amiupload.image.models import ImageSpec
from amiupload.provider.interface import CloudProvider
from amiupload.upload.interface import SnapshotUploader
from .orchestrator import PublishOptions, PublishOrchestrator
from .polling import CancelToken
from .result import PublishResult

log = logging.getLogger("amiupload")


@dataclass
class PublishJob:
    """Everything one publish run needs, as plain values."""

    image_dir: str
    config_path: Optional[str] = None
    regions: Optional[str] = None          # comma separated, or "all"
    name: Optional[str] = None
    root_size_gib: Optional[int] = None
    max_concurrency: Optional[int] = None
    progress: bool = False


def split_regions(value: Optional[str]) -> List[str]:
    if not value:
        return []
    return [r.strip() for r in value.split(",") if r.strip()]


async def resolve_regions(
    requested: List[str],
    cfg: PublishConfig,
    *,
    list_regions: Optional[Callable[[], Awaitable[List[str]]]] = None,
    default_region: Optional[str] = None,
) -> Tuple[str, List[str]]:
    """
    Returns (home_region, replica_regions).

    With explicit regions the first one is the home region. With "all" the
    home region comes from the config, else the session default, and the
    replicas are every other region the provider knows about.
    """
    regions = requested or list(cfg.regions)
    if not regions:
        raise ConfigurationError("must specify one or more regions, or 'all'")

    if regions[0] == "all":
        home = cfg.home_region or default_region
        if not home:
            raise ConfigurationError(
                "no home region: set home_region in the config or configure a default AWS region"
            )
        if list_regions is None:
            raise ConfigurationError("this provider cannot list regions; name them explicitly")
        replicas = [r for r in await list_regions() if r != home]
        return home, replicas

    if "all" in regions:
        raise ConfigurationError("'all' cannot be combined with explicit regions")
    return regions[0], regions[1:]


def build_spec(job: PublishJob, cfg: PublishConfig) -> ImageSpec:
    info = load_image_info(job.image_dir)
    return image_spec_from_info(
        info,
        name_template=job.name or cfg.name_template,
        root_size_gib=job.root_size_gib or cfg.root_size_gib,
        boot_mode=cfg.boot_mode,
        tags=cfg.tags,
    )


def build_options(job: PublishJob, cfg: PublishConfig) -> PublishOptions:
    return PublishOptions(
        max_concurrency=job.max_concurrency or cfg.max_concurrency,
        polling=cfg.polling,
    )


def default_provider(cfg: PublishConfig):
    import boto3
    from botocore.exceptions import ProfileNotFound
    from amiupload.provider.ec2 import Ec2Provider

    try:
        session = boto3.session.Session(profile_name=cfg.ec2.profile)
    except ProfileNotFound as exc:
        raise ConfigurationError(str(exc)) from exc
    return Ec2Provider(
        session,
        volume_type=cfg.ec2.volume_type,
        ena_support=cfg.ec2.ena_support,
        snapshot_tags=cfg.tags,
    )


def default_uploader(job: PublishJob, cfg: PublishConfig):
    from amiupload.upload.coldsnap import ColdsnapUploader

    progress = (lambda line: log.info("[coldsnap] %s", line)) if job.progress else None
    return ColdsnapUploader(cfg.coldsnap.binary, progress=progress, extra_args=cfg.coldsnap.extra_args)


async def run_publish(
    job: PublishJob,
    *,
    provider: Optional[CloudProvider] = None,
    uploader: Optional[SnapshotUploader] = None,
    observers: Optional[List] = None,
    run_id: Optional[str] = None,
    cancel: Optional[CancelToken] = None,
) -> PublishResult:
    cfg = load_config(job.config_path)
    spec = build_spec(job, cfg)

    if provider is None:
        provider = default_provider(cfg)
    if uploader is None:
        uploader = default_uploader(job, cfg)

    home, replicas = await resolve_regions(
        split_regions(job.regions),
        cfg,
        list_regions=getattr(provider, "list_regions", None),
        default_region=getattr(getattr(provider, "session", None), "region_name", None),
    )
    log.debug("uploading to regions: home=%s replicas=%s", home, replicas)

    orchestrator = PublishOrchestrator(
        provider,
        uploader,
        options=build_options(job, cfg),
        observers=observers,
        run_id=run_id,
        cancel=cancel,
    )
    return await orchestrator.publish(spec, home, replicas)
