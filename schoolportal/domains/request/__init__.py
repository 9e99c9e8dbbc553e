# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Document request domain package.

This package provides the request lifecycle:
- Submission and personal / staff listings
- Approval, rejection and document delivery
- Download resolution
"""

from schoolportal.domains.request.errors import (
    ActorNotFoundError,
    DocumentFileNotFoundError,
    FileRequiredError,
    FileTooLargeError,
    InvalidStatusError,
    InvalidTransitionError,
    NotChildOfParentError,
    RequestNotFoundError,
    RequestServiceError,
    RequestStudentNotFoundError,
    StudentUidRequiredError,
)
from schoolportal.domains.request.service import RequestService, merge_by_id, resolve_download

__all__ = [
    "RequestService",
    "merge_by_id",
    "resolve_download",
    "RequestServiceError",
    "RequestNotFoundError",
    "InvalidStatusError",
    "InvalidTransitionError",
    "StudentUidRequiredError",
    "NotChildOfParentError",
    "RequestStudentNotFoundError",
    "ActorNotFoundError",
    "FileRequiredError",
    "FileTooLargeError",
    "DocumentFileNotFoundError",
]
