# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Request lifecycle errors."""

from schoolportal.core.errors import ErrorKind, PortalError


class RequestServiceError(PortalError):
    """Base exception for request lifecycle errors."""

    kind = ErrorKind.INVALID_INPUT
    code = "REQUEST_ERROR"


class RequestNotFoundError(RequestServiceError):
    """Raised when the request does not exist."""

    kind = ErrorKind.NOT_FOUND
    code = "REQUEST_NOT_FOUND"


class InvalidStatusError(RequestServiceError):
    """Raised when a decision is neither approved nor rejected."""

    code = "INVALID_STATUS"


class InvalidTransitionError(RequestServiceError):
    """Raised when the request's current status forbids the change."""

    kind = ErrorKind.CONFLICT
    code = "INVALID_TRANSITION"


class StudentUidRequiredError(RequestServiceError):
    """Raised when a parent submits without naming the student."""

    code = "STUDENT_UID_REQUIRED"


class NotChildOfParentError(RequestServiceError):
    """Raised when a parent submits for a student that is not theirs."""

    kind = ErrorKind.FORBIDDEN
    code = "NOT_CHILD_OF_PARENT"


class RequestStudentNotFoundError(RequestServiceError):
    """Raised when the request subject does not exist."""

    kind = ErrorKind.NOT_FOUND
    code = "STUDENT_NOT_FOUND"


class ActorNotFoundError(RequestServiceError):
    """Raised when the caller has no profile."""

    kind = ErrorKind.UNAUTHENTICATED
    code = "USER_NOT_FOUND"


class FileRequiredError(RequestServiceError):
    """Raised when an upload carries no bytes."""

    code = "FILE_REQUIRED"


class FileTooLargeError(RequestServiceError):
    """Raised when an upload exceeds the configured size."""

    code = "FILE_TOO_LARGE"


class DocumentFileNotFoundError(RequestServiceError):
    """Raised when a request has nothing to download."""

    kind = ErrorKind.NOT_FOUND
    code = "FILE_NOT_FOUND"
