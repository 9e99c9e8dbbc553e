# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Error taxonomy shared by every SchoolPortal component.

Each failure carries a stable machine-readable ``code`` (``REQUEST_NOT_FOUND``,
``ALREADY_ASSOCIATED``...) and an ``ErrorKind`` that decides the HTTP status
at the API boundary. Domain packages subclass ``PortalError`` to build their
own hierarchies, the API installs a single handler for the base class.

Example:
    >>> raise PortalError(ErrorKind.NOT_FOUND, "USER_NOT_FOUND")
"""

from enum import Enum


class ErrorKind(str, Enum):
    """Kinds of failure and their meaning."""

    NOT_FOUND = "not_found"
    FORBIDDEN = "forbidden"
    UNAUTHENTICATED = "unauthenticated"
    INVALID_INPUT = "invalid_input"
    CONFLICT = "conflict"
    PRECONDITION_REQUIRED = "precondition_required"
    RATE_LIMITED = "rate_limited"
    UPSTREAM_FAILURE = "upstream_failure"
    INTERNAL = "internal"

    @property
    def http_status(self) -> int:
        """HTTP status code used for this kind at the API boundary."""
        return _HTTP_STATUS[self]


_HTTP_STATUS = {
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.FORBIDDEN: 403,
    ErrorKind.UNAUTHENTICATED: 401,
    ErrorKind.INVALID_INPUT: 400,
    ErrorKind.CONFLICT: 409,
    ErrorKind.PRECONDITION_REQUIRED: 409,
    ErrorKind.RATE_LIMITED: 429,
    ErrorKind.UPSTREAM_FAILURE: 502,
    ErrorKind.INTERNAL: 500,
}


class PortalError(Exception):
    """Base exception for all SchoolPortal errors.

    Attributes:
        kind: Error kind, mapped to an HTTP status.
        code: Stable machine-readable code returned to clients.
        message: Human readable detail (logged, not always returned).
    """

    kind: ErrorKind = ErrorKind.INTERNAL
    code: str = "INTERNAL_ERROR"

    def __init__(
        self,
        kind: ErrorKind | None = None,
        code: str | None = None,
        message: str | None = None,
    ) -> None:
        if kind is not None:
            self.kind = kind
        if code is not None:
            self.code = code
        self.message = message or self.code
        super().__init__(self.message)

    @property
    def http_status(self) -> int:
        """HTTP status code for this error."""
        return self.kind.http_status

    def to_dict(self) -> dict[str, str]:
        """Body returned by the API for this error."""
        return {"error": self.code}


class ForbiddenError(PortalError):
    """Raised when a role or ownership check fails."""

    kind = ErrorKind.FORBIDDEN
    code = "FORBIDDEN"


class InvalidInputError(PortalError):
    """Raised when an input fails shape or range validation."""

    kind = ErrorKind.INVALID_INPUT
    code = "INVALID_INPUT"


class UpstreamError(PortalError):
    """Raised when an external provider (identity, storage, email) fails."""

    kind = ErrorKind.UPSTREAM_FAILURE
    code = "UPSTREAM_FAILURE"
