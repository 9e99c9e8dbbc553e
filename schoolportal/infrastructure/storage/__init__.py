# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Object storage abstraction and its Cloudinary backend."""

from schoolportal.infrastructure.storage.base import ObjectStorage, StorageError, StoredObject

__all__ = ["ObjectStorage", "StorageError", "StoredObject"]
