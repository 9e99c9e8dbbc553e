# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Cloudinary object storage.

Documents are uploaded as ``raw`` resources (PDF, DOCX...) keeping their
original filename with a unique suffix. The Cloudinary SDK is synchronous,
calls run in the default executor.
"""

import asyncio
import functools
import io
import logging
import time
from typing import Any

import cloudinary
import cloudinary.exceptions
import cloudinary.uploader
import cloudinary.utils

from schoolportal.core.config.settings import CloudinarySettings
from schoolportal.infrastructure.storage.base import ObjectStorage, StorageError, StoredObject

logger = logging.getLogger(__name__)


class CloudinaryStorage(ObjectStorage):
    """Object storage backed by Cloudinary."""

    def __init__(self, settings: CloudinarySettings) -> None:
        """Configure the Cloudinary SDK.

        Args:
            settings: Cloudinary settings.
        """
        self._settings = settings
        cloudinary.config(
            cloud_name=settings.cloud_name,
            api_key=settings.api_key,
            api_secret=settings.api_secret.get_secret_value(),
            secure=True,
        )

    async def _run(self, func: Any, *args: Any, **kwargs: Any) -> Any:
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(None, functools.partial(func, *args, **kwargs))
        except cloudinary.exceptions.Error as e:
            logger.error("Cloudinary call %s failed: %s", func.__name__, str(e))
            raise StorageError(message=str(e)) from e

    async def upload_buffer(self, data: bytes, filename: str, folder: str | None = None) -> StoredObject:
        result = await self._run(
            cloudinary.uploader.upload,
            io.BytesIO(data),
            resource_type="raw",
            folder=folder or self._settings.upload_folder,
            use_filename=True,
            unique_filename=True,
            overwrite=False,
            filename_override=filename or None,
        )
        logger.info("Uploaded %s (%d bytes) as %s", filename, len(data), result["public_id"])
        return StoredObject(public_id=result["public_id"], secure_url=result["secure_url"])

    async def destroy(self, public_id: str, resource_type: str = "image") -> dict[str, Any]:
        result = await self._run(cloudinary.uploader.destroy, public_id, resource_type=resource_type)
        logger.info("Destroyed asset %s (%s): %s", public_id, resource_type, result.get("result"))
        return result

    def signed_upload_params(self) -> dict[str, Any]:
        timestamp = int(time.time())
        params = {
            "timestamp": timestamp,
            "folder": self._settings.upload_folder,
            "upload_preset": self._settings.upload_preset,
        }
        signature = cloudinary.utils.api_sign_request(
            params, self._settings.api_secret.get_secret_value()
        )
        return {
            "ok": True,
            "cloudName": self._settings.cloud_name,
            "apiKey": self._settings.api_key,
            "timestamp": timestamp,
            "signature": signature,
            "folder": self._settings.upload_folder,
            "upload_preset": self._settings.upload_preset,
        }
