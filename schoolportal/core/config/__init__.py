# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Configuration package for SchoolPortal.

Example:
    >>> from schoolportal.core.config import get_settings
    >>> settings = get_settings()
    >>> print(settings.environment)
    'development'
"""

from schoolportal.core.config.settings import (
    APISettings,
    BackgroundSettings,
    CloudinarySettings,
    CORSSettings,
    FirebaseSettings,
    PortalSettings,
    RateLimitSettings,
    Settings,
    SMTPSettings,
    clear_settings_cache,
    get_settings,
)

__all__ = [
    # Settings
    "Settings",
    "get_settings",
    "clear_settings_cache",
    # Subsettings
    "FirebaseSettings",
    "CloudinarySettings",
    "SMTPSettings",
    "PortalSettings",
    "RateLimitSettings",
    "CORSSettings",
    "APISettings",
    "BackgroundSettings",
]
