# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Object storage interface for uploaded documents."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

from schoolportal.core.errors import ErrorKind, PortalError


class StorageError(PortalError):
    """Raised when the storage provider rejects or fails an operation."""

    kind = ErrorKind.UPSTREAM_FAILURE
    code = "UPLOAD_FAILED"


@dataclass(frozen=True)
class StoredObject:
    """Result of an upload."""

    public_id: str
    secure_url: str


class ObjectStorage(ABC):
    """Asynchronous object storage operations."""

    @abstractmethod
    async def upload_buffer(self, data: bytes, filename: str, folder: str | None = None) -> StoredObject:
        """Upload raw bytes.

        Raises:
            StorageError: If the upload failed.
        """

    @abstractmethod
    async def destroy(self, public_id: str, resource_type: str = "image") -> dict[str, Any]:
        """Delete an asset and return the provider's answer."""

    @abstractmethod
    def signed_upload_params(self) -> dict[str, Any]:
        """Parameters letting a browser upload directly to the provider."""
