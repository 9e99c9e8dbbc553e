# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Parent domain package."""

from schoolportal.domains.parent.service import ParentNotFoundError, ParentService, child_preview

__all__ = ["ParentService", "ParentNotFoundError", "child_preview"]
