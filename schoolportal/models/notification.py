# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Notification feed payloads."""

from typing import Literal

from pydantic import Field

from schoolportal.models.common import CamelModel


class ListNotificationsQuery(CamelModel):
    """Feed parameters. Staff see their role feed unless scope is "mine"."""

    scope: Literal["", "admin", "personnel", "mine"] = ""
    limit: int | None = Field(default=None, ge=1)
