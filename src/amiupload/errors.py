# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/amiupload/errors.py

from __future__ import annotations

from enum import Enum
from typing import Optional

from amiupload.image.models import ImageHandle, SnapshotHandle


class FailureKind(str, Enum):
    CONFIGURATION = "configuration"
    UPLOAD = "upload"
    REGISTRATION_FAILED = "registration_failed"
    REGISTRATION_TIMEOUT = "registration_timeout"
    COPY_FAILED = "copy_failed"
    COPY_TIMEOUT = "copy_timeout"
    PROVIDER_ERROR = "provider_error"
    CANCELLED = "cancelled"

    @property
    def is_timeout(self) -> bool:
        return self in (FailureKind.REGISTRATION_TIMEOUT, FailureKind.COPY_TIMEOUT)


class PublishError(RuntimeError):
    """Base class for publish pipeline failures."""

    kind = FailureKind.PROVIDER_ERROR


class ConfigurationError(PublishError):
    """Bad input, detected before any remote call."""

    kind = FailureKind.CONFIGURATION


class UploadError(PublishError):
    """The local snapshot upload failed."""

    kind = FailureKind.UPLOAD

    def __init__(self, message: str, snapshot: Optional[SnapshotHandle] = None):
        super().__init__(message)
        self.snapshot = snapshot


class RegistrationFailed(PublishError):
    """The provider rejected the image."""

    kind = FailureKind.REGISTRATION_FAILED

    def __init__(self, message: str, image: Optional[ImageHandle] = None):
        super().__init__(message)
        self.image = image


class RegistrationTimeout(PublishError):
    """Gave up waiting for the image; it may still become available."""

    kind = FailureKind.REGISTRATION_TIMEOUT

    def __init__(self, message: str, image: Optional[ImageHandle] = None):
        super().__init__(message)
        self.image = image


class CopyFailed(PublishError):
    kind = FailureKind.COPY_FAILED

    def __init__(self, message: str, snapshot: Optional[SnapshotHandle] = None):
        super().__init__(message)
        self.snapshot = snapshot


class CopyTimeout(PublishError):
    kind = FailureKind.COPY_TIMEOUT

    def __init__(self, message: str, snapshot: Optional[SnapshotHandle] = None):
        super().__init__(message)
        self.snapshot = snapshot


class CleanupFailed(PublishError):
    """Best-effort deletion did not succeed. Logged, never raised over the original error."""

    def __init__(self, message: str, resource: str):
        super().__init__(message)
        self.resource = resource


class PublishCancelled(PublishError):
    kind = FailureKind.CANCELLED

    def __init__(
        self,
        message: str,
        snapshot: Optional[SnapshotHandle] = None,
        image: Optional[ImageHandle] = None,
    ):
        super().__init__(message)
        self.snapshot = snapshot
        self.image = image


class ProviderError(PublishError):
    """
    Raised by provider implementations.

    transient: throttling, server-side errors and "not visible yet" answers
    that are worth retrying. Everything else fails immediately.
    """

    def __init__(self, message: str, *, code: Optional[str] = None, transient: bool = False):
        super().__init__(message)
        self.code = code
        self.transient = transient
