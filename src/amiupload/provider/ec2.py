# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/amiupload/provider/ec2.py

from __future__ import annotations

import asyncio
import functools
import logging
from typing import Any, Callable, Dict, List, Optional

import boto3
from botocore.exceptions import (
    BotoCoreError,
    ClientError,
    ConnectionClosedError,
    EndpointConnectionError,
    ReadTimeoutError,
)

from amiupload.errors import ProviderError
from amiupload.image.models import (
    ImageHandle,
    ImageSpec,
    ImageState,
    SnapshotHandle,
    SnapshotState,
)

log = logging.getLogger("amiupload")

REGIONS_PARAMETER_PATH = "/aws/service/global-infrastructure/services/ec2/regions"
ROOT_DEVICE = "/dev/xvda"

TRANSIENT_CODES = {
    "RequestLimitExceeded",
    "Throttling",
    "ThrottlingException",
    "TooManyRequestsException",
    "InternalError",
    "InternalFailure",
    "ServiceUnavailable",
    "Unavailable",
    "RequestTimeout",
}

# freshly created resources can take a moment to show up in describe calls
NOT_FOUND_CODES = {
    "InvalidSnapshot.NotFound",
    "InvalidAMIID.NotFound",
    "InvalidAMIID.Unavailable",
}

SNAPSHOT_STATES = {
    "pending": SnapshotState.PENDING,
    "completed": SnapshotState.COMPLETED,
    "error": SnapshotState.FAILED,
    "recoverable": SnapshotState.PENDING,
    "recovering": SnapshotState.PENDING,
}

IMAGE_STATES = {
    "pending": ImageState.REGISTERING,
    "available": ImageState.AVAILABLE,
    "invalid": ImageState.FAILED,
    "deregistered": ImageState.FAILED,
    "transient": ImageState.REGISTERING,
    "failed": ImageState.FAILED,
    "error": ImageState.FAILED,
    "disabled": ImageState.FAILED,
}


def _to_provider_error(exc: Exception, operation: str, *, describe: bool = False) -> ProviderError:
    if isinstance(exc, ClientError):
        err = exc.response.get("Error", {})
        code = err.get("Code", "Unknown")
        status = exc.response.get("ResponseMetadata", {}).get("HTTPStatusCode", 0)
        transient = (
            code in TRANSIENT_CODES
            or status >= 500
            or (describe and code in NOT_FOUND_CODES)
        )
        return ProviderError(f"{operation}: {code}: {err.get('Message', exc)}", code=code, transient=transient)
    if isinstance(exc, (EndpointConnectionError, ConnectionClosedError, ReadTimeoutError)):
        return ProviderError(f"{operation}: {exc}", code=type(exc).__name__, transient=True)
    return ProviderError(f"{operation}: {exc}", code=type(exc).__name__, transient=False)


def _tag_list(tags: Dict[str, str]) -> List[Dict[str, str]]:
    return [{"Key": k, "Value": v} for k, v in tags.items()]


class Ec2Provider:
    """
    CloudProvider backed by boto3 EC2 clients, one per region.

    boto3 is blocking, so every call runs in a worker thread. Clients are
    created on the event loop thread; boto3 sessions are not thread safe
    but clients are.
    """

    def __init__(
        self,
        session: Optional[boto3.session.Session] = None,
        *,
        client_factory: Optional[Callable[[str, str], Any]] = None,
        volume_type: str = "gp3",
        ena_support: bool = True,
        snapshot_tags: Optional[Dict[str, str]] = None,
    ):
        self.session = session or boto3.session.Session()
        self._client_factory = client_factory or (
            lambda service, region: self.session.client(service, region_name=region)
        )
        self.volume_type = volume_type
        self.ena_support = ena_support
        self.snapshot_tags = dict(snapshot_tags or {})
        self._clients: Dict[tuple, Any] = {}

    def client(self, region: str, service: str = "ec2") -> Any:
        key = (service, region)
        if key not in self._clients:
            self._clients[key] = self._client_factory(service, region)
        return self._clients[key]

    async def _call(self, region: str, operation: str, *, describe: bool = False, **kwargs) -> dict:
        client = self.client(region)
        fn = functools.partial(getattr(client, operation), **kwargs)
        try:
            return await asyncio.to_thread(fn)
        except (ClientError, BotoCoreError) as exc:
            raise _to_provider_error(exc, f"{operation} in {region}", describe=describe) from exc

    # ------------------------------------------------------------------
    # Snapshots
    # ------------------------------------------------------------------
    async def copy_snapshot(
        self, snapshot: SnapshotHandle, src_region: str, dst_region: str
    ) -> SnapshotHandle:
        # CopySnapshot is issued against the destination region
        kwargs = {}
        if self.snapshot_tags:
            kwargs["TagSpecifications"] = [
                {"ResourceType": "snapshot", "Tags": _tag_list(self.snapshot_tags)}
            ]
        resp = await self._call(
            dst_region,
            "copy_snapshot",
            SourceRegion=src_region,
            SourceSnapshotId=snapshot.snapshot_id,
            Description=f"Copied from {snapshot.snapshot_id} in {src_region}",
            **kwargs,
        )
        return SnapshotHandle(snapshot_id=resp["SnapshotId"], region=dst_region, state=SnapshotState.PENDING)

    async def describe_snapshot(self, handle: SnapshotHandle) -> SnapshotState:
        resp = await self._call(
            handle.region, "describe_snapshots", describe=True, SnapshotIds=[handle.snapshot_id]
        )
        snapshots = resp.get("Snapshots") or []
        if not snapshots:
            raise ProviderError(
                f"snapshot {handle} not visible yet", code="InvalidSnapshot.NotFound", transient=True
            )
        state = snapshots[0].get("State", "pending")
        return SNAPSHOT_STATES.get(state, SnapshotState.PENDING)

    async def delete_snapshot(self, handle: SnapshotHandle) -> None:
        await self._call(handle.region, "delete_snapshot", SnapshotId=handle.snapshot_id)

    # ------------------------------------------------------------------
    # Images
    # ------------------------------------------------------------------
    def register_request(self, snapshot: SnapshotHandle, spec: ImageSpec) -> dict:
        name = spec.image_name(snapshot.region)
        request = {
            "Name": name,
            "Architecture": spec.architecture.value,
            "BootMode": spec.boot_mode.value,
            "EnaSupport": self.ena_support,
            "VirtualizationType": "hvm",
            "Description": spec.description or name,
            "RootDeviceName": ROOT_DEVICE,
            "BlockDeviceMappings": [
                {
                    "DeviceName": ROOT_DEVICE,
                    "Ebs": {
                        "DeleteOnTermination": True,
                        "VolumeType": self.volume_type,
                        "SnapshotId": snapshot.snapshot_id,
                        "VolumeSize": spec.root_volume_gib,
                    },
                },
                {"DeviceName": "/dev/sdb", "VirtualName": "ephemeral0"},
                {"DeviceName": "/dev/sdc", "VirtualName": "ephemeral1"},
                {"DeviceName": "/dev/sdd", "VirtualName": "ephemeral2"},
                {"DeviceName": "/dev/sde", "VirtualName": "ephemeral3"},
            ],
        }
        tags = dict(spec.tags)
        if tags:
            request["TagSpecifications"] = [{"ResourceType": "image", "Tags": _tag_list(tags)}]
        return request

    async def register_image(self, snapshot: SnapshotHandle, spec: ImageSpec) -> ImageHandle:
        resp = await self._call(snapshot.region, "register_image", **self.register_request(snapshot, spec))
        image_id = resp["ImageId"]
        log.debug("register_image in %s returned %s", snapshot.region, image_id)
        return ImageHandle(image_id=image_id, region=snapshot.region, snapshot=snapshot)

    async def describe_image(self, handle: ImageHandle) -> ImageState:
        resp = await self._call(handle.region, "describe_images", describe=True, ImageIds=[handle.image_id])
        images = resp.get("Images") or []
        if not images:
            raise ProviderError(f"image {handle} not visible yet", code="InvalidAMIID.NotFound", transient=True)
        state = images[0].get("State", "pending")
        return IMAGE_STATES.get(state, ImageState.REGISTERING)

    # ------------------------------------------------------------------
    # Regions
    # ------------------------------------------------------------------
    async def list_regions(self, region: Optional[str] = None) -> List[str]:
        """Every EC2 region, from the public SSM global-infrastructure parameters."""
        ssm = self.client(region or self.session.region_name or "us-east-1", "ssm")
        return await asyncio.to_thread(self._list_regions, ssm)

    def _list_regions(self, ssm: Any) -> List[str]:
        regions: List[str] = []
        try:
            paginator = ssm.get_paginator("get_parameters_by_path")
            for page in paginator.paginate(Path=REGIONS_PARAMETER_PATH):
                regions.extend(p["Value"] for p in page.get("Parameters", []))
        except (ClientError, BotoCoreError) as exc:
            raise _to_provider_error(exc, "get_parameters_by_path") from exc
        return sorted(regions)
