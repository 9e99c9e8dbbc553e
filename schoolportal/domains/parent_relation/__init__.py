# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Parent-student relationship domain package.

This package keeps the parent ``parentOf`` sets and the student
``parentUid`` back-references consistent:
- Attaching students when a parent is created
- Replacing a parent's students
- Detaching students when a parent is deleted
"""

from schoolportal.domains.parent_relation.service import (
    AlreadyAssociatedError,
    DetachRequiredError,
    NotAParentError,
    NotAStudentError,
    ParentNotFoundError,
    RelationChange,
    RelationshipError,
    RelationshipManager,
    StudentNotFoundError,
    unique_uids,
)

__all__ = [
    "RelationshipManager",
    "RelationChange",
    "RelationshipError",
    "StudentNotFoundError",
    "NotAStudentError",
    "AlreadyAssociatedError",
    "ParentNotFoundError",
    "NotAParentError",
    "DetachRequiredError",
    "unique_uids",
]
