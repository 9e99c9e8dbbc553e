# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Session payloads."""

from pydantic import Field

from schoolportal.models.common import CamelModel


class FcmTokenInput(CamelModel):
    token: str = Field(max_length=4096)


class SignInLogInput(CamelModel):
    """Client-side sign-in event."""

    provider: str = Field(default="password", max_length=50)
    device_info: str | None = Field(default=None, max_length=500)
