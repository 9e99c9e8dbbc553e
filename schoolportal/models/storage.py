# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Object storage payloads."""

from typing import Literal

from pydantic import Field

from schoolportal.models.common import CamelModel


class DeleteAssetInput(CamelModel):
    public_id: str = Field(min_length=3, max_length=256)
    resource_type: Literal["image", "video", "raw"] = "image"
