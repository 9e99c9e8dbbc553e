# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Password recovery domain package.

This package provides:
- Reset codes (issue, verify, consume)
- Admin reset links and password-set marks
"""

from schoolportal.domains.password.hashing import CodeHasher
from schoolportal.domains.password.service import (
    CodeAlreadyUsedError,
    CodeExpiredError,
    EmailNotFoundError,
    InvalidCodeError,
    MailSendFailedError,
    PasswordResetError,
    PasswordResetService,
    TooManyAttemptsError,
    UserNotFoundError,
    generate_code,
    normalize_email,
    reset_doc_id,
)

__all__ = [
    "PasswordResetService",
    "CodeHasher",
    "generate_code",
    "normalize_email",
    "reset_doc_id",
    "PasswordResetError",
    "EmailNotFoundError",
    "InvalidCodeError",
    "CodeAlreadyUsedError",
    "CodeExpiredError",
    "TooManyAttemptsError",
    "MailSendFailedError",
    "UserNotFoundError",
]
