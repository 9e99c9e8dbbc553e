# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""User administration domain package.

This package provides user management functionality including:
- Account creation with invite emails
- Profile updates and deletion
- Student picker and user listing
"""

from schoolportal.domains.user.service import (
    EmailAlreadyUsedError,
    FiliereRequiredError,
    InvalidNiveauError,
    InvalidRoleError,
    ParentOfOnlyForParentError,
    ParentOfRequiredError,
    PersistenceFailedError,
    TooManyChildrenError,
    UserNotFoundError,
    UserService,
    UserServiceError,
    build_display_name,
    changed_fields,
)

__all__ = [
    "UserService",
    "build_display_name",
    "changed_fields",
    "UserServiceError",
    "UserNotFoundError",
    "EmailAlreadyUsedError",
    "InvalidRoleError",
    "FiliereRequiredError",
    "InvalidNiveauError",
    "ParentOfRequiredError",
    "TooManyChildrenError",
    "ParentOfOnlyForParentError",
    "PersistenceFailedError",
]
