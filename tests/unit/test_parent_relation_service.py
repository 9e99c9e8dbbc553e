# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Unit tests for RelationshipManager.

Every test checks both sides of the link: the parent's ``parentOf`` and
each student's ``parentUid``.
"""

import asyncio

import pytest

from fakes import seed_user
from schoolportal.domains.parent_relation import (
    AlreadyAssociatedError,
    DetachRequiredError,
    NotAParentError,
    NotAStudentError,
    ParentNotFoundError,
    RelationshipManager,
    StudentNotFoundError,
    unique_uids,
)
from schoolportal.infrastructure.documents import InMemoryDocumentStore
from schoolportal.models.common import Role


@pytest.fixture
def manager(store: InMemoryDocumentStore) -> RelationshipManager:
    """Create relationship manager over the in-memory store."""
    return RelationshipManager(store)


async def parent_uid_of(store: InMemoryDocumentStore, uid: str) -> str | None:
    return (await store.get("users", uid)).get("parentUid")


class TestUniqueUids:
    """Tests for uid list normalization."""

    def test_keeps_first_occurrence_and_drops_blanks(self) -> None:
        assert unique_uids(["s2", " s1 ", "", "s2", "  ", "s1"]) == ["s2", "s1"]


class TestAttachOnCreate:
    """Tests for creating a parent with its students."""

    @pytest.mark.asyncio
    async def test_attaches_every_student(
        self, store: InMemoryDocumentStore, manager: RelationshipManager
    ) -> None:
        """Test that both students point at the new parent."""
        await seed_user(store, "s1", Role.ETUDIANT)
        await seed_user(store, "s2", Role.ETUDIANT)

        attached = await manager.attach_on_create("p1", {"email": "p1@ecole.fr"}, ["s1", "s2", "s1"])

        assert attached == ["s1", "s2"]
        parent = await store.get("users", "p1")
        assert parent.get("role") == "parent"
        assert parent.get("parentOf") == ["s1", "s2"]
        assert parent.get("email") == "p1@ecole.fr"
        assert await parent_uid_of(store, "s1") == "p1"
        assert await parent_uid_of(store, "s2") == "p1"

    @pytest.mark.asyncio
    async def test_second_parent_conflicts_and_changes_nothing(
        self, store: InMemoryDocumentStore, manager: RelationshipManager
    ) -> None:
        """Test that a student already linked blocks a second parent."""
        await seed_user(store, "s1", Role.ETUDIANT)
        await seed_user(store, "s2", Role.ETUDIANT)
        await manager.attach_on_create("p1", {}, ["s1", "s2"])

        with pytest.raises(AlreadyAssociatedError) as exc_info:
            await manager.attach_on_create("p2", {}, ["s1"])

        assert exc_info.value.code == "ALREADY_ASSOCIATED"
        assert exc_info.value.http_status == 409
        assert await parent_uid_of(store, "s1") == "p1"
        assert not (await store.get("users", "p2")).exists

    @pytest.mark.asyncio
    async def test_one_bad_student_aborts_all(
        self, store: InMemoryDocumentStore, manager: RelationshipManager
    ) -> None:
        """Test that a missing student leaves every other student untouched."""
        await seed_user(store, "s1", Role.ETUDIANT)

        with pytest.raises(StudentNotFoundError):
            await manager.attach_on_create("p1", {}, ["s1", "ghost"])

        assert await parent_uid_of(store, "s1") is None
        assert not (await store.get("users", "p1")).exists

    @pytest.mark.asyncio
    async def test_non_student_rejected(
        self, store: InMemoryDocumentStore, manager: RelationshipManager
    ) -> None:
        """Test that only students can be attached."""
        await seed_user(store, "staff", Role.PERSONNEL)

        with pytest.raises(NotAStudentError):
            await manager.attach_on_create("p1", {}, ["staff"])

    @pytest.mark.asyncio
    async def test_concurrent_parents_one_wins(
        self, store: InMemoryDocumentStore, manager: RelationshipManager
    ) -> None:
        """Test that two parents racing for a student never both win."""
        await seed_user(store, "s1", Role.ETUDIANT)

        results = await asyncio.gather(
            manager.attach_on_create("p1", {}, ["s1"]),
            manager.attach_on_create("p2", {}, ["s1"]),
            return_exceptions=True,
        )

        failures = [r for r in results if isinstance(r, Exception)]
        assert len(failures) == 1
        assert isinstance(failures[0], AlreadyAssociatedError)
        winner = "p1" if not isinstance(results[0], Exception) else "p2"
        loser = "p2" if winner == "p1" else "p1"
        assert await parent_uid_of(store, "s1") == winner
        assert not (await store.get("users", loser)).exists


class TestReplaceChildren:
    """Tests for replacing a parent's students."""

    @pytest.mark.asyncio
    async def test_adds_and_removes(self, store: InMemoryDocumentStore, manager: RelationshipManager) -> None:
        """Test that removed students are detached and new ones attached."""
        await seed_user(store, "s1", Role.ETUDIANT)
        await seed_user(store, "s2", Role.ETUDIANT)
        await seed_user(store, "s3", Role.ETUDIANT)
        await manager.attach_on_create("p1", {}, ["s1", "s2"])

        change = await manager.replace_children("p1", ["s2", "s3"])

        assert change.parent_of == ["s2", "s3"]
        assert change.attached == ["s3"]
        assert change.detached == ["s1"]
        assert (await store.get("users", "p1")).get("parentOf") == ["s2", "s3"]
        assert await parent_uid_of(store, "s1") is None
        assert await parent_uid_of(store, "s2") == "p1"
        assert await parent_uid_of(store, "s3") == "p1"

    @pytest.mark.asyncio
    async def test_removal_targets_are_tolerated(
        self, store: InMemoryDocumentStore, manager: RelationshipManager
    ) -> None:
        """Test that a vanished or re-parented student is skipped, not an error."""
        await seed_user(store, "s1", Role.ETUDIANT)
        await seed_user(store, "s2", Role.ETUDIANT)
        await manager.attach_on_create("p1", {}, ["s1", "s2"])
        await store.delete("users", "s1")
        await store.update("users", "s2", {"parentUid": "someone-else"})

        change = await manager.replace_children("p1", [])

        assert change.detached == []
        assert sorted(change.skipped) == ["s1", "s2"]
        assert await parent_uid_of(store, "s2") == "someone-else"
        assert (await store.get("users", "p1")).get("parentOf") == []

    @pytest.mark.asyncio
    async def test_student_of_other_parent_conflicts(
        self, store: InMemoryDocumentStore, manager: RelationshipManager
    ) -> None:
        """Test that adding another parent's student fails atomically."""
        await seed_user(store, "s1", Role.ETUDIANT)
        await seed_user(store, "s2", Role.ETUDIANT)
        await manager.attach_on_create("p1", {}, ["s1"])
        await manager.attach_on_create("p2", {}, ["s2"])

        with pytest.raises(AlreadyAssociatedError):
            await manager.replace_children("p1", ["s2"])

        assert (await store.get("users", "p1")).get("parentOf") == ["s1"]
        assert await parent_uid_of(store, "s1") == "p1"

    @pytest.mark.asyncio
    async def test_unknown_parent(self, manager: RelationshipManager) -> None:
        with pytest.raises(ParentNotFoundError):
            await manager.replace_children("ghost", [])

    @pytest.mark.asyncio
    async def test_not_a_parent(self, store: InMemoryDocumentStore, manager: RelationshipManager) -> None:
        await seed_user(store, "s1", Role.ETUDIANT)

        with pytest.raises(NotAParentError):
            await manager.replace_children("s1", [])


class TestDeleteParent:
    """Tests for deleting a parent."""

    @pytest.mark.asyncio
    async def test_detaches_then_deletes(self, store: InMemoryDocumentStore, manager: RelationshipManager) -> None:
        """Test that children are detached in the same transaction."""
        await seed_user(store, "s1", Role.ETUDIANT)
        await seed_user(store, "s2", Role.ETUDIANT)
        await manager.attach_on_create("p1", {}, ["s1", "s2"])

        detached = await manager.delete_parent("p1")

        assert detached == ["s1", "s2"]
        assert not (await store.get("users", "p1")).exists
        assert await parent_uid_of(store, "s1") is None
        assert await parent_uid_of(store, "s2") is None

    @pytest.mark.asyncio
    async def test_student_pointing_elsewhere_is_left_alone(
        self, store: InMemoryDocumentStore, manager: RelationshipManager
    ) -> None:
        """Test that detaching is idempotent for students already moved."""
        await seed_user(store, "s1", Role.ETUDIANT, parentUid="p2")
        await seed_user(store, "p1", Role.PARENT, parentOf=["s1"])

        detached = await manager.delete_parent("p1")

        assert detached == []
        assert await parent_uid_of(store, "s1") == "p2"


class TestEnsureStudentDeletable:
    """Tests for the student deletion precondition."""

    def test_attached_student_requires_detach(self) -> None:
        with pytest.raises(DetachRequiredError) as exc_info:
            RelationshipManager.ensure_student_deletable("s1", {"role": "etudiant", "parentUid": "p1"})

        assert exc_info.value.http_status == 409

    def test_free_student_and_other_roles_pass(self) -> None:
        RelationshipManager.ensure_student_deletable("s1", {"role": "etudiant", "parentUid": None})
        RelationshipManager.ensure_student_deletable("p1", {"role": "parent", "parentOf": ["s1"]})
