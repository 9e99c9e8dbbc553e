# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Integration tests for the document request API."""

import pytest
from fastapi.testclient import TestClient

from fakes import FakeStorage, bearer, seed_user_sync
from schoolportal.infrastructure.documents import InMemoryDocumentStore
from schoolportal.models.common import Role

pytestmark = pytest.mark.integration


@pytest.fixture
def people(store: InMemoryDocumentStore) -> None:
    """Staff, a parent with one student, and an unrelated student."""
    seed_user_sync(store, "admin1", Role.ADMIN)
    seed_user_sync(store, "staff1", Role.PERSONNEL)
    seed_user_sync(store, "s1", Role.ETUDIANT, parentUid="p1")
    seed_user_sync(store, "s2", Role.ETUDIANT)
    seed_user_sync(store, "p1", Role.PARENT, parentOf=["s1"])


def submit(client: TestClient, uid: str, **body) -> str:
    response = client.post("/api/requests", json={"type": "Attestation", **body}, headers=bearer(uid))
    assert response.status_code == 201, response.text
    return response.json()["id"]


@pytest.mark.usefixtures("people")
class TestRequestLifecycle:
    """Tests for submit, decide, deliver and download over HTTP."""

    def test_submit_returns_pending(self, client: TestClient) -> None:
        response = client.post(
            "/api/requests",
            json={"type": "Attestation", "studentUid": "s1", "deliveryMethod": "email"},
            headers=bearer("p1"),
        )

        assert response.status_code == 201
        body = response.json()
        assert body["ok"] is True
        assert body["status"] == "pending"

    def test_parent_for_other_student(self, client: TestClient) -> None:
        response = client.post(
            "/api/requests", json={"studentUid": "s2"}, headers=bearer("p1")
        )

        assert response.status_code == 403
        assert response.json() == {"error": "NOT_CHILD_OF_PARENT"}

    def test_staff_cannot_submit(self, client: TestClient) -> None:
        response = client.post("/api/requests", json={"type": "Attestation"}, headers=bearer("staff1"))

        assert response.status_code == 403

    def test_approve_flow(self, client: TestClient, store: InMemoryDocumentStore) -> None:
        """Test submit, approve, then the feeds and listings that follow."""
        request_id = submit(client, "s1")

        response = client.patch(
            f"/api/requests/{request_id}/status", json={"status": "approved"}, headers=bearer("staff1")
        )

        assert response.status_code == 200
        assert response.json()["status"] == "approved"
        staff_list = client.get("/api/requests", headers=bearer("staff1")).json()
        assert [item["id"] for item in staff_list["items"]] == [request_id]
        feed = client.get("/api/notifications", headers=bearer("s1")).json()["items"]
        assert [item["kind"] for item in feed] == ["request_approved"]

        again = client.patch(
            f"/api/requests/{request_id}/status", json={"status": "rejected"}, headers=bearer("admin1")
        )
        assert again.status_code == 409
        assert again.json() == {"error": "INVALID_TRANSITION"}

    def test_invalid_status(self, client: TestClient) -> None:
        request_id = submit(client, "s1")

        response = client.patch(
            f"/api/requests/{request_id}/status", json={"status": "sent"}, headers=bearer("staff1")
        )

        assert response.status_code == 400
        assert response.json() == {"error": "INVALID_STATUS"}

    def test_unknown_request(self, client: TestClient) -> None:
        response = client.patch(
            "/api/requests/nope/status", json={"status": "approved"}, headers=bearer("staff1")
        )

        assert response.status_code == 404
        assert response.json() == {"error": "REQUEST_NOT_FOUND"}

    def test_upload_and_download(self, client: TestClient, storage: FakeStorage) -> None:
        """Test a multipart upload with notify, then the requester's download."""
        request_id = submit(client, "s1")

        response = client.post(
            f"/api/requests/{request_id}/upload",
            files={"file": ("attestation.pdf", b"%PDF-1.4 test", "application/pdf")},
            data={"notes": "Bonne journée", "notify": "true"},
            headers=bearer("staff1"),
        )

        assert response.status_code == 200, response.text
        body = response.json()
        assert body["status"] == "sent"
        assert body["attachment"]["originalFilename"] == "attestation.pdf"
        assert body["attachment"]["mimeType"] == "application/pdf"
        assert list(storage.objects.values()) == [b"%PDF-1.4 test"]

        download = client.get(f"/api/requests/{request_id}/download", headers=bearer("s1"))
        assert download.status_code == 200
        assert download.json()["url"] == body["attachment"]["secureUrl"]
        assert download.json()["filename"] == "Attestation.pdf"

        sent = client.get("/api/my/sent-documents", headers=bearer("s1")).json()
        assert [item["id"] for item in sent["items"]] == [request_id]

        stranger = client.get(f"/api/requests/{request_id}/download", headers=bearer("s2"))
        assert stranger.status_code == 403

    def test_upload_delivers_unless_told_otherwise(self, client: TestClient) -> None:
        """Test that an upload without a notify field sends the document."""
        request_id = submit(client, "s1")

        response = client.post(
            f"/api/requests/{request_id}/upload",
            files={"file": ("attestation.pdf", b"%PDF-1.4 test", "application/pdf")},
            headers=bearer("staff1"),
        )

        assert response.status_code == 200, response.text
        assert response.json()["status"] == "sent"
        feed = client.get("/api/notifications", headers=bearer("s1")).json()["items"]
        assert [item["kind"] for item in feed] == ["document_sent"]

    def test_upload_without_file(self, client: TestClient) -> None:
        request_id = submit(client, "s1")

        response = client.post(
            f"/api/requests/{request_id}/upload", data={"notify": "false"}, headers=bearer("staff1")
        )

        assert response.status_code == 400
        assert response.json() == {"error": "FILE_REQUIRED"}

    def test_download_without_file(self, client: TestClient) -> None:
        request_id = submit(client, "s1")

        response = client.get(f"/api/requests/{request_id}/download", headers=bearer("s1"))

        assert response.status_code == 404
        assert response.json() == {"error": "FILE_NOT_FOUND"}

    def test_notify_document(self, client: TestClient) -> None:
        request_id = submit(client, "s1")

        response = client.patch(
            f"/api/requests/{request_id}/document", json={"notes": "Au guichet"}, headers=bearer("staff1")
        )

        assert response.status_code == 200
        assert response.json()["status"] == "pending"

    def test_staff_feed_and_read_mark(self, client: TestClient) -> None:
        """Test that staff see submissions in their role feed and can mark them read."""
        submit(client, "s1")

        feed = client.get("/api/notifications", headers=bearer("staff1")).json()["items"]
        assert [item["kind"] for item in feed] == ["request_submitted"]

        response = client.patch(f"/api/notifications/{feed[0]['id']}/read", headers=bearer("staff1"))
        assert response.status_code == 200
        feed = client.get("/api/notifications", headers=bearer("staff1")).json()["items"]
        assert "staff1" in feed[0]["reads"]

        missing = client.patch("/api/notifications/ghost/read", headers=bearer("staff1"))
        assert missing.status_code == 404
        assert missing.json() == {"error": "NOTIFICATION_NOT_FOUND"}

    def test_list_query_validation(self, client: TestClient) -> None:
        response = client.get("/api/requests?status=archived", headers=bearer("s1"))

        assert response.status_code == 400
        assert response.json()["fields"] == ["status"]

    def test_oversized_limit_is_clamped(self, client: TestClient) -> None:
        """Test that a page size above the maximum is capped rather than refused."""
        request_id = submit(client, "s1")

        response = client.get("/api/requests?limit=500", headers=bearer("s1"))

        assert response.status_code == 200
        assert [item["id"] for item in response.json()["items"]] == [request_id]

    def test_malformed_cursor(self, client: TestClient) -> None:
        response = client.get("/api/requests?cursor=yesterday", headers=bearer("s1"))

        assert response.status_code == 400
        assert response.json() == {"error": "INVALID_CURSOR"}

    def test_cursor_walks_pages(self, client: TestClient) -> None:
        """Test that nextCursor from one page fetches the next one."""
        ids = [submit(client, "s1") for _ in range(3)]

        first = client.get("/api/requests?limit=2", headers=bearer("s1")).json()
        second = client.get(
            "/api/requests", params={"limit": 2, "cursor": first["nextCursor"]}, headers=bearer("s1")
        ).json()

        listed = [item["id"] for item in first["items"] + second["items"]]
        assert sorted(listed) == sorted(ids)
        assert second["nextCursor"] is None
