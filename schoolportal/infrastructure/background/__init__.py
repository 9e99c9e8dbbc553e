# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Background dispatch for best-effort side effects."""

from schoolportal.infrastructure.background.dispatcher import BackgroundDispatcher

__all__ = ["BackgroundDispatcher"]
