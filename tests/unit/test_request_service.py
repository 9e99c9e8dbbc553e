# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Unit tests for the document request lifecycle."""

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, patch

import pytest
import pytest_asyncio

from fakes import FakeStorage, make_actor, seed_user
from schoolportal.api.container import Container
from schoolportal.core.config.settings import PortalSettings
from schoolportal.core.errors import ForbiddenError
from schoolportal.domains.request import (
    DocumentFileNotFoundError,
    FileRequiredError,
    FileTooLargeError,
    InvalidStatusError,
    InvalidTransitionError,
    NotChildOfParentError,
    RequestNotFoundError,
    RequestStudentNotFoundError,
    StudentUidRequiredError,
    merge_by_id,
    resolve_download,
)
from schoolportal.domains.request.mutations import events_collection
from schoolportal.infrastructure.documents import (
    InMemoryDocumentStore,
    InvalidCursorError,
    Snapshot,
    TransactionConflictError,
)
from schoolportal.models.common import Actor, Role
from schoolportal.models.request import (
    CreateRequestInput,
    ListRequestsQuery,
    UpdateStatusInput,
    UploadedFile,
)

STUDENT_TOKEN = "device-token-student-0001"


@pytest.fixture
def portal_settings() -> PortalSettings:
    """Portal rules with a small upload limit."""
    return PortalSettings(code_salt="test-salt", code_hash_rounds=4, max_upload_bytes=1024)  # type: ignore[arg-type]


@pytest.fixture
def student() -> Actor:
    return make_actor("s1", Role.ETUDIANT)


@pytest.fixture
def parent() -> Actor:
    return make_actor("p1", Role.PARENT)


@pytest_asyncio.fixture
async def seeded(store: InMemoryDocumentStore) -> InMemoryDocumentStore:
    """Staff, one parent with one student, one unrelated student."""
    await seed_user(store, "admin1", Role.ADMIN)
    await seed_user(store, "staff1", Role.PERSONNEL, fcmTokens=["device-token-staff-0001"])
    await seed_user(store, "s1", Role.ETUDIANT, parentUid="p1", fcmTokens=[STUDENT_TOKEN])
    await seed_user(store, "s2", Role.ETUDIANT)
    await seed_user(store, "p1", Role.PARENT, parentOf=["s1"])
    return store


def notifications_of_kind(store: InMemoryDocumentStore, kind: str) -> list[dict]:
    return [doc for doc in store.dump("notifications").values() if doc["kind"] == kind]


def events_of(store: InMemoryDocumentStore, request_id: str) -> list[str]:
    return [event["type"] for event in store.dump(events_collection(request_id)).values()]


class TestCreate:
    """Tests for request submission."""

    pytestmark = pytest.mark.usefixtures("seeded")

    @pytest.mark.asyncio
    async def test_student_submits_for_self(
        self, container: Container, store: InMemoryDocumentStore, student: Actor
    ) -> None:
        """Test that a student request is pending with a submitted event."""
        request_id = await container.requests.create(
            student, CreateRequestInput(type="Attestation", delivery_method="email")
        )

        request = (await store.get("requests", request_id)).to_dict()
        assert request["status"] == "pending"
        assert request["requestedByUid"] == "s1"
        assert request["requestedForUid"] == "s1"
        assert request["parentUid"] is None
        assert request["targetEmail"] == "s1@ecole.fr"
        assert request["requestedFor"]["filiere"] == "Informatique"
        assert events_of(store, request_id) == ["submitted"]

    @pytest.mark.asyncio
    async def test_staff_are_notified(
        self, container: Container, store: InMemoryDocumentStore, student: Actor, push_channel: AsyncMock
    ) -> None:
        """Test that staff get one feed entry and a push."""
        request_id = await container.requests.create(student, CreateRequestInput(type="Attestation"))
        await container.dispatcher.drain()

        submitted = notifications_of_kind(store, "request_submitted")
        assert len(submitted) == 1
        assert submitted[0]["requestId"] == request_id
        assert submitted[0]["recipients"] == ["role:admin", "role:personnel"]
        tokens = push_channel.send_multicast.await_args.args[0]
        assert tokens == ["device-token-staff-0001"]

    @pytest.mark.asyncio
    async def test_parent_submits_for_child(
        self, container: Container, store: InMemoryDocumentStore, parent: Actor
    ) -> None:
        request_id = await container.requests.create(
            parent, CreateRequestInput(type="Relevé", student_uid="s1")
        )

        request = (await store.get("requests", request_id)).to_dict()
        assert request["requestedByRole"] == "parent"
        assert request["requestedForUid"] == "s1"
        assert request["parentUid"] == "p1"

    @pytest.mark.asyncio
    async def test_parent_needs_student_uid(self, container: Container, parent: Actor) -> None:
        with pytest.raises(StudentUidRequiredError):
            await container.requests.create(parent, CreateRequestInput(type="Relevé"))

    @pytest.mark.asyncio
    async def test_parent_cannot_submit_for_other_student(
        self, container: Container, store: InMemoryDocumentStore, parent: Actor
    ) -> None:
        """Test that a parent can only file for their own children."""
        with pytest.raises(NotChildOfParentError):
            await container.requests.create(parent, CreateRequestInput(type="Relevé", student_uid="s2"))

        assert store.dump("requests") == {}

    @pytest.mark.asyncio
    async def test_missing_student(
        self, container: Container, store: InMemoryDocumentStore, parent: Actor
    ) -> None:
        await store.update("users", "p1", {"parentOf": ["s1", "gone"]})

        with pytest.raises(RequestStudentNotFoundError):
            await container.requests.create(parent, CreateRequestInput(student_uid="gone"))

    @pytest.mark.asyncio
    async def test_staff_cannot_submit(self, container: Container, personnel: Actor) -> None:
        with pytest.raises(ForbiddenError):
            await container.requests.create(personnel, CreateRequestInput(type="Attestation"))

    @pytest.mark.asyncio
    async def test_attachments_are_capped(
        self, container: Container, store: InMemoryDocumentStore, student: Actor
    ) -> None:
        files = [{"secureUrl": f"https://cdn/{i}"} for i in range(10)]

        request_id = await container.requests.create(student, CreateRequestInput(attachments=files))

        assert len((await store.get("requests", request_id)).get("attachments")) == 6


class TestUpdateStatus:
    """Tests for staff decisions."""

    pytestmark = pytest.mark.usefixtures("seeded")

    @pytest.mark.asyncio
    async def test_approve_notifies_requester_once(
        self,
        container: Container,
        store: InMemoryDocumentStore,
        student: Actor,
        personnel: Actor,
        push_channel: AsyncMock,
    ) -> None:
        """Test approval: status, event, one notification, status sync."""
        request_id = await container.requests.create(student, CreateRequestInput(type="Attestation"))
        await container.dispatcher.drain()
        push_channel.send_multicast.reset_mock()

        status = await container.requests.update_status(
            personnel, request_id, UpdateStatusInput(status="approved")
        )
        await container.dispatcher.drain()

        assert status.value == "approved"
        request = (await store.get("requests", request_id)).to_dict()
        assert request["status"] == "approved"
        assert isinstance(request["approvedAt"], datetime)
        approved = notifications_of_kind(store, "request_approved")
        assert len(approved) == 1
        assert approved[0]["recipients"] == ["uid:s1"]
        assert approved[0]["approvedAt"] is not None
        assert sorted(events_of(store, request_id)) == ["approved", "submitted"]
        assert notifications_of_kind(store, "request_submitted")[0]["status"] == "approved"
        push_channel.send_multicast.assert_awaited_once()
        assert push_channel.send_multicast.await_args.args[0] == [STUDENT_TOKEN]

    @pytest.mark.asyncio
    async def test_reject_by_parent_request_reaches_both(
        self, container: Container, store: InMemoryDocumentStore, parent: Actor, admin: Actor
    ) -> None:
        """Test that a rejection reaches the parent and the student."""
        request_id = await container.requests.create(parent, CreateRequestInput(student_uid="s1"))

        await container.requests.update_status(
            admin, request_id, UpdateStatusInput(status="rejected", rejection_reason="Incomplet")
        )

        request = (await store.get("requests", request_id)).to_dict()
        assert request["status"] == "rejected"
        assert request["rejectionReason"] == "Incomplet"
        rejected = notifications_of_kind(store, "request_rejected")
        assert len(rejected) == 1
        assert rejected[0]["recipients"] == ["uid:p1", "uid:s1"]
        assert rejected[0]["rejectionReason"] == "Incomplet"

    @pytest.mark.asyncio
    async def test_only_approve_or_reject(self, container: Container, student: Actor, personnel: Actor) -> None:
        request_id = await container.requests.create(student, CreateRequestInput())

        for value in ("sent", "pending", "archived"):
            with pytest.raises(InvalidStatusError):
                await container.requests.update_status(personnel, request_id, UpdateStatusInput(status=value))

    @pytest.mark.asyncio
    async def test_decided_request_cannot_be_decided_again(
        self, container: Container, student: Actor, personnel: Actor
    ) -> None:
        request_id = await container.requests.create(student, CreateRequestInput())
        await container.requests.update_status(personnel, request_id, UpdateStatusInput(status="rejected"))

        with pytest.raises(InvalidTransitionError):
            await container.requests.update_status(personnel, request_id, UpdateStatusInput(status="approved"))

    @pytest.mark.asyncio
    async def test_unknown_request(self, container: Container, personnel: Actor) -> None:
        with pytest.raises(RequestNotFoundError):
            await container.requests.update_status(personnel, "nope", UpdateStatusInput(status="approved"))

    @pytest.mark.asyncio
    async def test_students_cannot_decide(self, container: Container, student: Actor) -> None:
        request_id = await container.requests.create(student, CreateRequestInput())

        with pytest.raises(ForbiddenError):
            await container.requests.update_status(student, request_id, UpdateStatusInput(status="approved"))


class TestUpload:
    """Tests for document upload and delivery."""

    pytestmark = pytest.mark.usefixtures("seeded")

    @pytest.mark.asyncio
    async def test_upload_with_notify_sends(
        self, container: Container, store: InMemoryDocumentStore, student: Actor, personnel: Actor
    ) -> None:
        """Test delivery: status sent, one more attachment, one event, one notification."""
        request_id = await container.requests.create(student, CreateRequestInput(type="Attestation"))
        await container.requests.update_status(personnel, request_id, UpdateStatusInput(status="approved"))
        before = len((await store.get("requests", request_id)).get("attachments"))

        result = await container.requests.upload_document(
            personnel,
            request_id,
            UploadedFile(content=b"%PDF-1.4", filename="attestation.pdf", mime_type="application/pdf"),
            notes="Voici votre attestation",
            notify=True,
        )

        request = (await store.get("requests", request_id)).to_dict()
        assert result["status"] == "sent"
        assert request["status"] == "sent"
        assert isinstance(request["sentAt"], datetime)
        assert len(request["attachments"]) == before + 1
        assert request["documentUrl"] == result["attachment"]["secureUrl"]
        assert events_of(store, request_id).count("document_sent") == 1
        sent = notifications_of_kind(store, "document_sent")
        assert len(sent) == 1
        assert sent[0]["notes"] == "Voici votre attestation"
        assert sent[0]["recipients"] == ["uid:s1"]

    @pytest.mark.asyncio
    async def test_upload_without_notify_keeps_status(
        self, container: Container, store: InMemoryDocumentStore, student: Actor, personnel: Actor
    ) -> None:
        request_id = await container.requests.create(student, CreateRequestInput())

        result = await container.requests.upload_document(
            personnel, request_id, UploadedFile(content=b"data", filename="a.pdf"), notify=False
        )

        assert result["status"] == "pending"
        assert "document_uploaded" in events_of(store, request_id)
        assert notifications_of_kind(store, "document_sent") == []

    @pytest.mark.asyncio
    async def test_upload_delivers_by_default(
        self, container: Container, store: InMemoryDocumentStore, student: Actor, personnel: Actor
    ) -> None:
        """Test that an upload without an explicit notify flag delivers the document."""
        request_id = await container.requests.create(student, CreateRequestInput())

        result = await container.requests.upload_document(
            personnel, request_id, UploadedFile(content=b"data", filename="a.pdf")
        )

        assert result["status"] == "sent"
        assert events_of(store, request_id).count("document_sent") == 1
        assert len(notifications_of_kind(store, "document_sent")) == 1

    @pytest.mark.asyncio
    async def test_upload_after_rejection_sends(
        self, container: Container, store: InMemoryDocumentStore, student: Actor, personnel: Actor
    ) -> None:
        """Test that delivering a document overrides an earlier rejection."""
        request_id = await container.requests.create(student, CreateRequestInput())
        await container.requests.update_status(
            personnel, request_id, UpdateStatusInput(status="rejected", rejection_reason="Incomplet")
        )

        result = await container.requests.upload_document(
            personnel, request_id, UploadedFile(content=b"%PDF-1.4", filename="a.pdf"), notify=True
        )

        request = (await store.get("requests", request_id)).to_dict()
        assert result["status"] == "sent"
        assert request["status"] == "sent"
        assert isinstance(request["sentAt"], datetime)
        assert events_of(store, request_id).count("document_sent") == 1
        assert len(notifications_of_kind(store, "document_sent")) == 1

    @pytest.mark.asyncio
    async def test_file_checks(self, container: Container, student: Actor, personnel: Actor) -> None:
        """Test missing, empty and oversized files."""
        request_id = await container.requests.create(student, CreateRequestInput())

        with pytest.raises(FileRequiredError):
            await container.requests.upload_document(personnel, request_id, None)
        with pytest.raises(FileRequiredError):
            await container.requests.upload_document(personnel, request_id, UploadedFile(content=b""))
        with pytest.raises(FileTooLargeError):
            await container.requests.upload_document(
                personnel, request_id, UploadedFile(content=b"x" * 2048)
            )

    @pytest.mark.asyncio
    async def test_unknown_request_uploads_nothing(
        self, container: Container, storage: FakeStorage, personnel: Actor
    ) -> None:
        with pytest.raises(RequestNotFoundError):
            await container.requests.upload_document(personnel, "nope", UploadedFile(content=b"data"))

        assert storage.objects == {}

    @pytest.mark.asyncio
    async def test_failed_update_destroys_upload(
        self,
        container: Container,
        store: InMemoryDocumentStore,
        storage: FakeStorage,
        student: Actor,
        personnel: Actor,
    ) -> None:
        """Test that the stored file is removed when the request update fails."""
        request_id = await container.requests.create(student, CreateRequestInput())

        with patch.object(store, "run_transaction", AsyncMock(side_effect=TransactionConflictError())):
            with pytest.raises(TransactionConflictError):
                await container.requests.upload_document(personnel, request_id, UploadedFile(content=b"data"))
        await container.dispatcher.drain()

        assert len(storage.destroyed) == 1
        assert storage.destroyed[0][1] == "raw"
        assert storage.objects == {}

    @pytest.mark.asyncio
    async def test_notify_document_sent_keeps_status(
        self, container: Container, store: InMemoryDocumentStore, student: Actor, personnel: Actor
    ) -> None:
        """Test the out-of-band notice: event and notification only."""
        request_id = await container.requests.create(student, CreateRequestInput())

        status = await container.requests.notify_document_sent(personnel, request_id, "Au secrétariat")

        assert status == "pending"
        assert (await store.get("requests", request_id)).get("status") == "pending"
        assert events_of(store, request_id).count("document_sent") == 1
        assert len(notifications_of_kind(store, "document_sent")) == 1


class TestListing:
    """Tests for request listings."""

    pytestmark = pytest.mark.usefixtures("seeded")

    @pytest.mark.asyncio
    async def test_staff_see_processing_queue(
        self, container: Container, student: Actor, parent: Actor, personnel: Actor
    ) -> None:
        """Test that staff only see approved and sent requests."""
        pending = await container.requests.create(student, CreateRequestInput())
        approved = await container.requests.create(parent, CreateRequestInput(student_uid="s1"))
        await container.requests.update_status(personnel, approved, UpdateStatusInput(status="approved"))

        page = await container.requests.list_requests(personnel, ListRequestsQuery())

        assert [item["id"] for item in page["items"]] == [approved]
        assert pending not in [item["id"] for item in page["items"]]

    @pytest.mark.asyncio
    async def test_staff_asking_for_pending_get_nothing(self, container: Container, student: Actor, admin: Actor) -> None:
        await container.requests.create(student, CreateRequestInput())

        page = await container.requests.list_requests(admin, ListRequestsQuery(status="pending"))

        assert page == {"items": [], "nextCursor": None}

    @pytest.mark.asyncio
    async def test_student_sees_own_and_parent_filed(
        self, container: Container, student: Actor, parent: Actor
    ) -> None:
        """Test that a student sees requests by them and about them, once each."""
        own = await container.requests.create(student, CreateRequestInput())
        filed = await container.requests.create(parent, CreateRequestInput(student_uid="s1"))

        page = await container.requests.list_requests(student, ListRequestsQuery())

        ids = [item["id"] for item in page["items"]]
        assert sorted(ids) == sorted([own, filed])
        assert ids[0] == filed

    @pytest.mark.asyncio
    async def test_other_student_sees_nothing(self, container: Container, student: Actor) -> None:
        await container.requests.create(student, CreateRequestInput())

        page = await container.requests.list_requests(make_actor("s2", Role.ETUDIANT), ListRequestsQuery())

        assert page["items"] == []

    @pytest.mark.asyncio
    async def test_cursor_pagination(
        self, container: Container, store: InMemoryDocumentStore, student: Actor
    ) -> None:
        """Test that nextCursor walks newest to oldest without repeats."""
        base = datetime(2024, 9, 1, tzinfo=timezone.utc)
        for index in range(5):
            await store.set(
                "requests",
                f"r{index}",
                {"status": "pending", "requestedByUid": "s1", "createdAt": base + timedelta(hours=index)},
            )

        first = await container.requests.list_requests(student, ListRequestsQuery(limit=2))
        second = await container.requests.list_requests(
            student, ListRequestsQuery(limit=2, cursor=first["nextCursor"])
        )
        last = await container.requests.list_requests(
            student, ListRequestsQuery(limit=2, cursor=second["nextCursor"])
        )

        assert [i["id"] for i in first["items"]] == ["r4", "r3"]
        assert first["nextCursor"] == "1725159600000000:r3"
        assert [i["id"] for i in second["items"]] == ["r2", "r1"]
        assert [i["id"] for i in last["items"]] == ["r0"]
        assert last["nextCursor"] is None

    @pytest.mark.asyncio
    async def test_cursor_inside_same_instant(
        self, container: Container, store: InMemoryDocumentStore, student: Actor
    ) -> None:
        """Test that requests sharing a timestamp or a millisecond page without gaps."""
        base = datetime(2024, 9, 1, tzinfo=timezone.utc)
        created = {
            "x1": base + timedelta(microseconds=700),
            "x2": base + timedelta(microseconds=300),
            "y1": base,
            "y2": base,
            "z": base - timedelta(seconds=1),
        }
        for request_id, created_at in created.items():
            await store.set(
                "requests", request_id, {"status": "pending", "requestedByUid": "s1", "createdAt": created_at}
            )

        seen: list[str] = []
        cursor = None
        for _ in range(len(created) + 1):
            page = await container.requests.list_requests(student, ListRequestsQuery(limit=2, cursor=cursor))
            seen.extend(item["id"] for item in page["items"])
            cursor = page["nextCursor"]
            if cursor is None:
                break

        assert seen == ["x1", "x2", "y2", "y1", "z"]

    @pytest.mark.asyncio
    async def test_malformed_cursor(self, container: Container, student: Actor) -> None:
        with pytest.raises(InvalidCursorError):
            await container.requests.list_requests(student, ListRequestsQuery(cursor="1725159600000"))

    @pytest.mark.asyncio
    async def test_sent_documents_history(
        self, container: Container, student: Actor, personnel: Actor
    ) -> None:
        """Test the personal history of delivered documents."""
        request_id = await container.requests.create(student, CreateRequestInput())
        await container.requests.create(student, CreateRequestInput())
        await container.requests.upload_document(
            personnel, request_id, UploadedFile(content=b"data"), notify=True
        )

        page = await container.requests.list_sent_documents(student, limit=10, cursor=None)

        assert [item["id"] for item in page["items"]] == [request_id]


class TestMergeById:
    """Tests for merging listing result sets."""

    def test_mixed_representations_sort_together(self) -> None:
        """Test that newest-first holds across timestamp encodings."""
        base = datetime(2024, 1, 1, tzinfo=timezone.utc)
        by_me = [
            Snapshot("a", {"createdAt": base}),
            Snapshot("b", {"createdAt": int((base + timedelta(days=2)).timestamp() * 1000)}),
        ]
        about_me = [
            Snapshot("c", {"createdAt": (base + timedelta(days=1)).isoformat()}),
            Snapshot("a", {"createdAt": base}),
        ]

        items = merge_by_id([by_me, about_me], limit=10)

        assert [item["id"] for item in items] == ["b", "c", "a"]

    def test_limit_applies_after_merge(self) -> None:
        """Test that the limit cuts the merged, sorted list."""
        sets = [[Snapshot(f"r{i}", {"createdAt": i * 1000})] for i in range(5)]

        items = merge_by_id(sets, limit=2)

        assert [item["id"] for item in items] == ["r4", "r3"]

    def test_equal_timestamps_order_by_id(self) -> None:
        """Test that ties follow the id, descending, like the listing queries."""
        at = datetime(2024, 1, 1, tzinfo=timezone.utc)
        sets = [
            [Snapshot("r1", {"createdAt": at})],
            [Snapshot("r3", {"createdAt": at}), Snapshot("r2", {"createdAt": at})],
        ]

        items = merge_by_id(sets, limit=10)

        assert [item["id"] for item in items] == ["r3", "r2", "r1"]


class TestResolveDownload:
    """Tests for picking the downloadable file."""

    def test_prefers_last_delivered_attachment(self) -> None:
        target = resolve_download(
            {
                "type": "Attestation scolarité",
                "deliveredAttachments": [
                    {"secureUrl": "https://cdn/old"},
                    {"secureUrl": "https://cdn/new", "publicId": "docs/final-v2"},
                ],
                "documentUrl": "https://cdn/url",
            }
        )

        assert target.url == "https://cdn/new"
        assert target.filename == "final-v2"

    def test_falls_back_to_document_url_then_attachments(self) -> None:
        by_url = resolve_download({"type": "Relevé de notes", "documentUrl": "https://cdn/url"})
        by_attachment = resolve_download({"attachments": [{"url": "https://cdn/a", "originalFilename": "a.pdf"}]})

        assert (by_url.url, by_url.filename) == ("https://cdn/url", "Relevé_de_notes.pdf")
        assert (by_attachment.url, by_attachment.filename) == ("https://cdn/a", "a.pdf")

    def test_attachment_name_from_public_id(self) -> None:
        """Test that the first attachment falls back to its public id tail, then the type."""
        named = resolve_download({"attachments": [{"secureUrl": "https://cdn/a", "publicId": "myc-docs/bulletin"}]})
        unnamed = resolve_download({"type": "Certificat", "attachments": [{"secureUrl": "https://cdn/b"}]})

        assert named.filename == "bulletin"
        assert unnamed.filename == "Certificat.pdf"

    def test_nothing_to_download(self) -> None:
        with pytest.raises(DocumentFileNotFoundError):
            resolve_download({"attachments": []})


class TestDownload:
    """Tests for download permissions."""

    pytestmark = pytest.mark.usefixtures("seeded")

    @pytest.mark.asyncio
    async def test_permissions(
        self, container: Container, student: Actor, parent: Actor, personnel: Actor
    ) -> None:
        """Test that owners and staff download, strangers do not."""
        request_id = await container.requests.create(parent, CreateRequestInput(student_uid="s1"))
        await container.requests.upload_document(personnel, request_id, UploadedFile(content=b"data"), notify=True)

        for actor in (student, parent, personnel):
            target = await container.requests.download(actor, request_id)
            assert target.url.startswith("https://cdn.example.test/")

        with pytest.raises(ForbiddenError):
            await container.requests.download(make_actor("s2", Role.ETUDIANT), request_id)
        with pytest.raises(RequestNotFoundError):
            await container.requests.download(student, "nope")
