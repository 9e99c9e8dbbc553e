# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Parent-student relationship manager.

A student has at most one parent. The link is stored on both sides:
``parentOf`` on the parent (set of student uids) and ``parentUid`` on the
student. This module is the only writer of either field, and every change
runs as one read / validate / write transaction, so the two sides always
agree and two parents can never claim the same student:

- attach on creation: the parent document and all its students in one go
- replace children: ``parentOf`` replaced wholesale, students diffed
- delete parent: students detached, parent removed

If two transactions race for the same student, the store's read conflict
detection re-runs the loser, which then sees the student already attached.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from schoolportal.core.errors import ErrorKind, PortalError
from schoolportal.infrastructure.documents import (
    SERVER_TIMESTAMP,
    DocumentStore,
    Mutation,
    Snapshot,
    TransactionReader,
    TransactionWriter,
    run_mutation,
)
from schoolportal.models.common import Role

logger = logging.getLogger(__name__)

USERS_COLLECTION = "users"


class RelationshipError(PortalError):
    """Base exception for relationship errors."""

    kind = ErrorKind.INVALID_INPUT
    code = "RELATIONSHIP_ERROR"

    def __init__(self, uid: str | None = None, message: str | None = None) -> None:
        self.uid = uid
        super().__init__(message=message or (f"{self.code}: {uid}" if uid else None))


class StudentNotFoundError(RelationshipError):
    """Raised when a referenced student does not exist."""

    kind = ErrorKind.NOT_FOUND
    code = "STUDENT_NOT_FOUND"


class NotAStudentError(RelationshipError):
    """Raised when a referenced user is not a student."""

    code = "NOT_A_STUDENT"


class AlreadyAssociatedError(RelationshipError):
    """Raised when a student already belongs to another parent."""

    kind = ErrorKind.CONFLICT
    code = "ALREADY_ASSOCIATED"


class ParentNotFoundError(RelationshipError):
    """Raised when the parent document does not exist."""

    kind = ErrorKind.NOT_FOUND
    code = "PARENT_NOT_FOUND"


class NotAParentError(RelationshipError):
    """Raised when relationship changes target a non-parent user."""

    code = "NOT_A_PARENT"


class DetachRequiredError(RelationshipError):
    """Raised when deleting a student that is still attached to a parent."""

    kind = ErrorKind.PRECONDITION_REQUIRED
    code = "DETACH_REQUIRED"


def unique_uids(uids: list[str] | tuple[str, ...]) -> list[str]:
    """Deduplicate uids, keeping first occurrences and dropping blanks."""
    return list(dict.fromkeys(uid.strip() for uid in uids if uid and uid.strip()))


def _validate_attachable(snapshot: Snapshot, parent_uid: str) -> None:
    if not snapshot.exists:
        raise StudentNotFoundError(snapshot.id)
    if snapshot.get("role") != Role.ETUDIANT.value:
        raise NotAStudentError(snapshot.id)
    current = snapshot.get("parentUid")
    if current and current != parent_uid:
        raise AlreadyAssociatedError(snapshot.id)


@dataclass
class RelationChange:
    """Outcome of a relationship update.

    Attributes:
        parent_of: The parent's new set of students.
        attached: Students newly pointing at the parent.
        detached: Students whose link was removed.
        skipped: Removal targets that were missing, not students, or
            already pointing elsewhere.
    """

    parent_of: list[str]
    attached: list[str] = field(default_factory=list)
    detached: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)


# =============================================================================
# Mutations
# =============================================================================


@dataclass
class _AttachState:
    parent: Snapshot
    students: list[Snapshot]


class AttachOnCreate(Mutation[_AttachState, list[str]]):
    """Write a new parent document and attach its students atomically."""

    def __init__(self, parent_uid: str, profile: dict[str, Any], student_uids: list[str]) -> None:
        self.parent_uid = parent_uid
        self.profile = profile
        self.student_uids = unique_uids(student_uids)

    async def read(self, reader: TransactionReader) -> _AttachState:
        parent = await reader.get(USERS_COLLECTION, self.parent_uid)
        students = await reader.get_all(USERS_COLLECTION, self.student_uids)
        return _AttachState(parent=parent, students=students)

    def validate(self, state: _AttachState) -> None:
        if state.parent.exists and state.parent.get("role") != Role.PARENT.value:
            raise NotAParentError(self.parent_uid)
        for snapshot in state.students:
            _validate_attachable(snapshot, self.parent_uid)

    def write(self, writer: TransactionWriter, state: _AttachState) -> list[str]:
        for uid in self.student_uids:
            writer.update(
                USERS_COLLECTION,
                uid,
                {"parentUid": self.parent_uid, "updatedAt": SERVER_TIMESTAMP},
            )
        writer.set(
            USERS_COLLECTION,
            self.parent_uid,
            {
                **self.profile,
                "role": Role.PARENT.value,
                "parentOf": list(self.student_uids),
                "updatedAt": SERVER_TIMESTAMP,
            },
            merge=True,
        )
        return list(self.student_uids)


@dataclass
class _ReplaceState:
    parent: Snapshot
    to_add: list[Snapshot]
    to_remove: list[Snapshot]


class ReplaceChildren(Mutation[_ReplaceState, RelationChange]):
    """Replace a parent's ``parentOf`` and reconcile both sides."""

    def __init__(self, parent_uid: str, student_uids: list[str]) -> None:
        self.parent_uid = parent_uid
        self.next_uids = unique_uids(student_uids)

    async def read(self, reader: TransactionReader) -> _ReplaceState:
        parent = await reader.get(USERS_COLLECTION, self.parent_uid)
        previous = unique_uids(parent.get("parentOf") or [])
        to_add = [uid for uid in self.next_uids if uid not in previous]
        to_remove = [uid for uid in previous if uid not in self.next_uids]
        snapshots = await reader.get_all(USERS_COLLECTION, to_add + to_remove)
        return _ReplaceState(
            parent=parent,
            to_add=snapshots[: len(to_add)],
            to_remove=snapshots[len(to_add) :],
        )

    def validate(self, state: _ReplaceState) -> None:
        if not state.parent.exists:
            raise ParentNotFoundError(self.parent_uid)
        if state.parent.get("role") != Role.PARENT.value:
            raise NotAParentError(self.parent_uid)
        for snapshot in state.to_add:
            _validate_attachable(snapshot, self.parent_uid)
        # Removal targets are validated tolerantly in write().

    def write(self, writer: TransactionWriter, state: _ReplaceState) -> RelationChange:
        change = RelationChange(parent_of=list(self.next_uids))
        for snapshot in state.to_remove:
            if (
                snapshot.exists
                and snapshot.get("role") == Role.ETUDIANT.value
                and snapshot.get("parentUid") == self.parent_uid
            ):
                writer.update(
                    USERS_COLLECTION,
                    snapshot.id,
                    {"parentUid": None, "updatedAt": SERVER_TIMESTAMP},
                )
                change.detached.append(snapshot.id)
            else:
                change.skipped.append(snapshot.id)
        for snapshot in state.to_add:
            if snapshot.get("parentUid") != self.parent_uid:
                writer.update(
                    USERS_COLLECTION,
                    snapshot.id,
                    {"parentUid": self.parent_uid, "updatedAt": SERVER_TIMESTAMP},
                )
                change.attached.append(snapshot.id)
        writer.update(
            USERS_COLLECTION,
            self.parent_uid,
            {"parentOf": list(self.next_uids), "updatedAt": SERVER_TIMESTAMP},
        )
        return change


@dataclass
class _DeleteState:
    parent: Snapshot
    students: list[Snapshot]


class DeleteParent(Mutation[_DeleteState, list[str]]):
    """Detach every student still pointing at the parent, then delete it."""

    def __init__(self, parent_uid: str) -> None:
        self.parent_uid = parent_uid

    async def read(self, reader: TransactionReader) -> _DeleteState:
        parent = await reader.get(USERS_COLLECTION, self.parent_uid)
        children = unique_uids(parent.get("parentOf") or [])
        students = await reader.get_all(USERS_COLLECTION, children)
        return _DeleteState(parent=parent, students=students)

    def validate(self, state: _DeleteState) -> None:
        if not state.parent.exists:
            raise ParentNotFoundError(self.parent_uid)
        if state.parent.get("role") != Role.PARENT.value:
            raise NotAParentError(self.parent_uid)

    def write(self, writer: TransactionWriter, state: _DeleteState) -> list[str]:
        detached = []
        for snapshot in state.students:
            if (
                snapshot.exists
                and snapshot.get("role") == Role.ETUDIANT.value
                and snapshot.get("parentUid") == self.parent_uid
            ):
                writer.update(
                    USERS_COLLECTION,
                    snapshot.id,
                    {"parentUid": None, "updatedAt": SERVER_TIMESTAMP},
                )
                detached.append(snapshot.id)
        writer.delete(USERS_COLLECTION, self.parent_uid)
        return detached


# =============================================================================
# Manager
# =============================================================================


class RelationshipManager:
    """Maintains the one-parent-per-student invariant.

    Attributes:
        store: Document store holding the users collection.
    """

    def __init__(self, store: DocumentStore) -> None:
        """Initialize the relationship manager.

        Args:
            store: Document store.
        """
        self.store = store

    async def attach_on_create(
        self,
        parent_uid: str,
        profile: dict[str, Any],
        student_uids: list[str],
    ) -> list[str]:
        """Create a parent profile together with its student links.

        Either the parent document is written and every student points at it,
        or nothing changes.

        Args:
            parent_uid: Uid of the new parent.
            profile: Parent profile fields (email, names, timestamps...).
            student_uids: Students to attach.

        Returns:
            The attached student uids.

        Raises:
            StudentNotFoundError: If a student does not exist.
            NotAStudentError: If a uid is not a student.
            AlreadyAssociatedError: If a student has another parent.
        """
        attached = await run_mutation(
            self.store, AttachOnCreate(parent_uid, profile, student_uids)
        )
        logger.info("Parent %s created with %d students", parent_uid, len(attached))
        return attached

    async def replace_children(self, parent_uid: str, student_uids: list[str]) -> RelationChange:
        """Replace a parent's students.

        New students are validated strictly; students being removed are
        detached only if they still point at this parent.

        Args:
            parent_uid: Parent uid.
            student_uids: Complete new list of students.

        Returns:
            What was attached, detached and skipped.

        Raises:
            ParentNotFoundError: If the parent does not exist.
            NotAParentError: If the user is not a parent.
            StudentNotFoundError: If an added student does not exist.
            NotAStudentError: If an added uid is not a student.
            AlreadyAssociatedError: If an added student has another parent.
        """
        change = await run_mutation(self.store, ReplaceChildren(parent_uid, student_uids))
        logger.info(
            "Parent %s children updated: +%d -%d (skipped %d)",
            parent_uid,
            len(change.attached),
            len(change.detached),
            len(change.skipped),
        )
        return change

    async def delete_parent(self, parent_uid: str) -> list[str]:
        """Delete a parent, detaching its students in the same transaction.

        Returns:
            The detached student uids.

        Raises:
            ParentNotFoundError: If the parent does not exist.
        """
        detached = await run_mutation(self.store, DeleteParent(parent_uid))
        logger.info("Parent %s deleted, %d students detached", parent_uid, len(detached))
        return detached

    @staticmethod
    def ensure_student_deletable(student_uid: str, student: dict[str, Any]) -> None:
        """Refuse to delete a student that still has a parent.

        Raises:
            DetachRequiredError: If the student's parentUid is set.
        """
        if student.get("role") == Role.ETUDIANT.value and student.get("parentUid"):
            raise DetachRequiredError(
                student_uid,
                message="Student is attached to a parent; delete or detach the parent first",
            )
