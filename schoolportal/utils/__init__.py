# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Shared utilities: datetime normalization and structured logging."""

from schoolportal.utils.datetime import ensure_utc, now_ms, to_instant, utc_now
from schoolportal.utils.logging import bind_context, clear_context, get_logger, setup_logging

__all__ = [
    "bind_context",
    "clear_context",
    "ensure_utc",
    "get_logger",
    "now_ms",
    "setup_logging",
    "to_instant",
    "utc_now",
]
