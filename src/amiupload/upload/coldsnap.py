# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/amiupload/upload/coldsnap.py

from __future__ import annotations

import asyncio
import logging
import os
import re
import shutil
from collections import deque
from pathlib import Path
from typing import Callable, Optional, Sequence

from amiupload.errors import UploadError
from amiupload.image.models import DiskFormat, SnapshotHandle, SnapshotState

log = logging.getLogger("amiupload")

SNAPSHOT_ID_RE = re.compile(r"\bsnap-[0-9a-f]+\b")


def parse_snapshot_id(output: str) -> str:
    """Return the last snapshot id printed by `coldsnap upload`."""
    found = SNAPSHOT_ID_RE.findall(output)
    if not found:
        raise UploadError(f"could not find a snapshot id in coldsnap output: {output.strip()!r}")
    return found[-1]


class ColdsnapUploader:
    """
    Uploads a raw image with the `coldsnap` command line tool.

    coldsnap talks to the EBS direct APIs and retries its own block
    transfers; we only pick the region, stream its progress and parse the
    snapshot id it prints.
    """

    required_format = DiskFormat.RAW

    def __init__(
        self,
        binary: str = "coldsnap",
        *,
        progress: Optional[Callable[[str], None]] = None,
        extra_args: Sequence[str] = (),
        env: Optional[dict] = None,
    ):
        self.binary = binary
        self.progress = progress
        self.extra_args = list(extra_args)
        self.env = env

    def command(self, path: Path, description: Optional[str] = None) -> list[str]:
        cmd = [self.binary, "upload"]
        if description:
            cmd += ["--description", description]
        if self.progress is None:
            cmd.append("--no-progress")
        cmd += self.extra_args
        cmd.append(str(path))
        return cmd

    async def upload(
        self, path: Path, region: str, *, description: Optional[str] = None
    ) -> SnapshotHandle:
        path = Path(path)
        if not path.is_file():
            raise UploadError(f"image file not found: {path}")
        if shutil.which(self.binary) is None:
            raise UploadError(f"'{self.binary}' not found on PATH")

        env = dict(os.environ if self.env is None else self.env)
        env["AWS_REGION"] = region
        env["AWS_DEFAULT_REGION"] = region

        cmd = self.command(path, description)
        log.debug("running: %s (region=%s)", " ".join(cmd), region)
        try:
            proc = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=env,
            )
        except OSError as exc:
            raise UploadError(f"could not start {self.binary}: {exc}") from exc

        stderr_tail: deque[str] = deque(maxlen=20)

        async def _pump_stderr() -> None:
            assert proc.stderr is not None
            async for raw in proc.stderr:
                line = raw.decode(errors="replace").rstrip()
                if not line:
                    continue
                stderr_tail.append(line)
                if self.progress is not None:
                    self.progress(line)

        stdout_bytes, _ = await asyncio.gather(proc.stdout.read(), _pump_stderr())
        rc = await proc.wait()
        stdout = stdout_bytes.decode(errors="replace")

        if rc != 0:
            details = "\n".join(stderr_tail) or stdout.strip() or f"exit status {rc}"
            raise UploadError(f"coldsnap upload of {path} to {region} failed:\n{details}")

        snapshot_id = parse_snapshot_id(stdout)
        log.info("uploaded %s as %s in %s", path.name, snapshot_id, region)
        return SnapshotHandle(snapshot_id=snapshot_id, region=region, state=SnapshotState.PENDING)
