# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Integration tests for account, password, session, storage and log endpoints."""

import asyncio
from datetime import UTC, datetime, timedelta
from unittest.mock import MagicMock, patch

import pytest
from fastapi.testclient import TestClient

from fakes import FakeIdentityProvider, FakeStorage, bearer, seed_user_sync
from schoolportal.api.container import Container
from schoolportal.infrastructure.documents import InMemoryDocumentStore
from schoolportal.models.common import Role

pytestmark = pytest.mark.integration

FCM_TOKEN = "fcm-token-device-a"


@pytest.fixture
def admin_user(store: InMemoryDocumentStore, identity: FakeIdentityProvider) -> None:
    seed_user_sync(store, "admin1", Role.ADMIN)
    identity.add("admin1", "admin1@ecole.fr")


class TestUsersApi:
    """Tests for user administration over HTTP."""

    @pytest.mark.usefixtures("admin_user")
    def test_create_student(
        self, client: TestClient, store: InMemoryDocumentStore, identity: FakeIdentityProvider
    ) -> None:
        """Test that an admin creates a student with an invite link."""
        response = client.post(
            "/api/users",
            json={
                "email": "amina@ecole.fr",
                "role": "etudiant",
                "prenom": "Amina",
                "nom": "Diallo",
                "filiere": "Informatique",
                "niveau": "Licence",
            },
            headers=bearer("admin1"),
        )

        assert response.status_code == 201, response.text
        body = response.json()
        assert body["role"] == "etudiant"
        assert body["email"] == "amina@ecole.fr"
        assert "/new-user?" in body["inviteLink"]
        uid = body["uid"]
        assert identity.users[uid].email == "amina@ecole.fr"
        assert store.dump("users")[uid]["filiere"] == "Informatique"

    @pytest.mark.usefixtures("admin_user")
    def test_create_student_without_filiere(self, client: TestClient) -> None:
        response = client.post(
            "/api/users", json={"email": "amina@ecole.fr", "role": "etudiant"}, headers=bearer("admin1")
        )

        assert response.status_code == 400
        assert response.json() == {"error": "FILIERE_REQUIRED"}

    @pytest.mark.usefixtures("admin_user")
    def test_create_with_used_email(self, client: TestClient) -> None:
        response = client.post(
            "/api/users", json={"email": "admin1@ecole.fr", "role": "personnel"}, headers=bearer("admin1")
        )

        assert response.status_code == 409

    @pytest.mark.usefixtures("admin_user")
    def test_update_and_delete(self, client: TestClient, store: InMemoryDocumentStore) -> None:
        seed_user_sync(store, "staff1", Role.PERSONNEL)

        updated = client.patch("/api/users/staff1", json={"prenom": "Moussa"}, headers=bearer("admin1"))
        assert updated.status_code == 200
        assert updated.json()["user"]["prenom"] == "Moussa"

        deleted = client.delete("/api/users/staff1", headers=bearer("admin1"))
        assert deleted.status_code == 200
        assert "staff1" not in store.dump("users")

    @pytest.mark.usefixtures("admin_user")
    def test_delete_attached_student(self, client: TestClient, store: InMemoryDocumentStore) -> None:
        seed_user_sync(store, "s1", Role.ETUDIANT, parentUid="p1")

        response = client.delete("/api/users/s1", headers=bearer("admin1"))

        assert response.status_code == 409
        assert response.json() == {"error": "DETACH_REQUIRED"}

    @pytest.mark.usefixtures("admin_user")
    def test_listings(self, client: TestClient, store: InMemoryDocumentStore) -> None:
        """Test the student picker and the full listing."""
        seed_user_sync(store, "s1", Role.ETUDIANT, parentUid="p1")
        seed_user_sync(store, "s2", Role.ETUDIANT)
        seed_user_sync(store, "p1", Role.PARENT, parentOf=["s1"])

        picker = client.get("/api/users/etudiants/min", headers=bearer("admin1")).json()
        assert [item["id"] for item in picker["items"]] == ["s2"]

        everyone = client.get(
            "/api/users/etudiants/min", params={"availableOnly": "false"}, headers=bearer("admin1")
        ).json()
        assert sorted(item["id"] for item in everyone["items"]) == ["s1", "s2"]

        parents = client.get("/api/users/full", params={"role": "parent"}, headers=bearer("admin1")).json()
        assert [item["id"] for item in parents["items"]] == ["p1"]


class TestPasswordApi:
    """Tests for the anonymous recovery flow and admin password actions."""

    @pytest.fixture(autouse=True)
    def _student(self, store: InMemoryDocumentStore, identity: FakeIdentityProvider) -> None:
        seed_user_sync(store, "s1", Role.ETUDIANT)
        identity.add("s1", "s1@ecole.fr")

    def test_forgot_verify_reset(
        self, client: TestClient, identity: FakeIdentityProvider, email_channel: MagicMock
    ) -> None:
        """Test the full code flow without a bearer token."""
        with patch("schoolportal.domains.password.service.generate_code", return_value="123456"):
            forgot = client.post("/api/password/forgot", json={"email": "S1@ecole.fr"})

        assert forgot.status_code == 200
        assert email_channel.send_email.await_args.args[0] == "s1@ecole.fr"

        verify = client.post("/api/password/verify", json={"email": "s1@ecole.fr", "code": "123456"})
        assert verify.status_code == 200

        reset = client.post(
            "/api/password/reset",
            json={"email": "s1@ecole.fr", "code": "123456", "newPassword": "nouveau-secret"},
        )
        assert reset.status_code == 200
        assert identity.passwords["s1"] == "nouveau-secret"

        replay = client.post(
            "/api/password/reset",
            json={"email": "s1@ecole.fr", "code": "123456", "newPassword": "encore-secret"},
        )
        assert replay.status_code == 400

    def test_unknown_email(self, client: TestClient) -> None:
        response = client.post("/api/password/forgot", json={"email": "nobody@ecole.fr"})

        assert response.status_code == 404
        assert response.json() == {"error": "EMAIL_NOT_FOUND"}

    @pytest.mark.parametrize(
        "path,body,field",
        [
            ("/api/password/forgot", {"email": "nope"}, "email"),
            ("/api/password/verify", {"email": "s1@ecole.fr", "code": "12ab56"}, "code"),
            (
                "/api/password/reset",
                {"email": "s1@ecole.fr", "code": "123456", "newPassword": "short"},
                "newPassword",
            ),
        ],
    )
    def test_input_validation(self, client: TestClient, path: str, body: dict, field: str) -> None:
        response = client.post(path, json=body)

        assert response.status_code == 400
        assert response.json()["fields"] == [field]

    def test_send_link_is_admin_only(self, client: TestClient, store: InMemoryDocumentStore) -> None:
        seed_user_sync(store, "admin1", Role.ADMIN)

        denied = client.post("/api/password/send-link", json={"uid": "s1"}, headers=bearer("s1"))
        allowed = client.post("/api/password/send-link", json={"uid": "s1"}, headers=bearer("admin1"))

        assert denied.status_code == 403
        assert allowed.status_code == 200
        assert "email=s1@ecole.fr" in allowed.json()["link"]

    def test_mark_set(self, client: TestClient, store: InMemoryDocumentStore) -> None:
        response = client.post("/api/password/mark-set", json={}, headers=bearer("s1"))

        assert response.status_code == 200
        assert "passwordSetAt" in store.dump("users")["s1"]

    def test_initial_password(
        self, client: TestClient, api_container: Container, identity: FakeIdentityProvider
    ) -> None:
        """Test that an invite token sets the first password once."""
        token = asyncio.run(api_container.invites.create_token("s1", "s1@ecole.fr"))
        body = {"token": token, "email": "s1@ecole.fr", "password": "premier-secret"}

        first = client.post("/api/auth/initial-password", json=body)
        second = client.post("/api/auth/initial-password", json=body)

        assert first.status_code == 200
        assert identity.passwords["s1"] == "premier-secret"
        assert second.status_code == 409
        assert second.json() == {"error": "TOKEN_ALREADY_USED"}

    def test_initial_password_unknown_token(self, client: TestClient) -> None:
        response = client.post(
            "/api/auth/initial-password", json={"token": "f" * 32, "password": "premier-secret"}
        )

        assert response.status_code == 404
        assert response.json() == {"error": "TOKEN_NOT_FOUND"}


class TestSessionApi:
    """Tests for /api/me, device tokens and the parent portal."""

    def test_register_and_unregister_token(self, client: TestClient, store: InMemoryDocumentStore) -> None:
        seed_user_sync(store, "s1", Role.ETUDIANT)

        registered = client.post("/api/fcm/register", json={"token": FCM_TOKEN}, headers=bearer("s1"))
        assert registered.status_code == 200
        assert client.get("/api/me", headers=bearer("s1")).json()["fcmTokens"] == [FCM_TOKEN]

        client.post("/api/fcm/unregister", json={"token": FCM_TOKEN}, headers=bearer("s1"))
        assert store.dump("users")["s1"]["fcmTokens"] == []

    def test_log_sign_in(self, client: TestClient, store: InMemoryDocumentStore) -> None:
        seed_user_sync(store, "s1", Role.ETUDIANT)

        response = client.post(
            "/api/session/log-signin", json={"provider": "password"}, headers=bearer("s1")
        )

        assert response.status_code == 200
        assert response.json()["ok"] is True

    def test_parent_children(self, client: TestClient, store: InMemoryDocumentStore) -> None:
        """Test that a parent lists and searches their students."""
        seed_user_sync(store, "p1", Role.PARENT, parentOf=["s1", "s2"])
        seed_user_sync(store, "s1", Role.ETUDIANT, prenom="Amina", parentUid="p1")
        seed_user_sync(store, "s2", Role.ETUDIANT, prenom="Karim", parentUid="p1")

        everyone = client.get("/api/parent/children", headers=bearer("p1")).json()
        found = client.get("/api/parent/children", params={"search": "kar"}, headers=bearer("p1")).json()

        assert sorted(child["uid"] for child in everyone["items"]) == ["s1", "s2"]
        assert [child["uid"] for child in found["items"]] == ["s2"]


class TestStorageApi:
    """Tests for upload signatures and asset deletion."""

    def test_signature_for_any_user(self, client: TestClient, store: InMemoryDocumentStore) -> None:
        seed_user_sync(store, "s1", Role.ETUDIANT)

        response = client.post("/api/storage/signature", headers=bearer("s1"))

        assert response.status_code == 200
        assert response.json()["folder"] == "myc-docs"

    def test_delete_asset(self, client: TestClient, store: InMemoryDocumentStore, storage: FakeStorage) -> None:
        """Test that staff delete an asset and students cannot."""
        seed_user_sync(store, "staff1", Role.PERSONNEL)
        seed_user_sync(store, "s1", Role.ETUDIANT)
        storage.objects["myc-docs/doc-1"] = b"%PDF"
        body = {"publicId": "myc-docs/doc-1", "resourceType": "raw"}

        denied = client.request("DELETE", "/api/storage/asset", json=body, headers=bearer("s1"))
        allowed = client.request("DELETE", "/api/storage/asset", json=body, headers=bearer("staff1"))

        assert denied.status_code == 403
        assert allowed.status_code == 200
        assert allowed.json()["result"] == {"result": "ok"}
        assert storage.destroyed == [("myc-docs/doc-1", "raw")]

    def test_delete_asset_bad_resource_type(self, client: TestClient, store: InMemoryDocumentStore) -> None:
        seed_user_sync(store, "staff1", Role.PERSONNEL)

        response = client.request(
            "DELETE",
            "/api/storage/asset",
            json={"publicId": "myc-docs/doc-1", "resourceType": "audio"},
            headers=bearer("staff1"),
        )

        assert response.status_code == 400
        assert response.json()["fields"] == ["resourceType"]


class TestLogsApi:
    """Tests for the audit log listing."""

    @pytest.fixture(autouse=True)
    def _entries(self, store: InMemoryDocumentStore) -> None:
        seed_user_sync(store, "admin1", Role.ADMIN)
        base = datetime(2025, 3, 1, 12, 0, tzinfo=UTC)
        entries = [
            ("USER_CREATE", "admin1", base),
            ("REQUEST_STATUS", "staff1", base + timedelta(hours=1)),
            ("USER_DELETE", "admin1", base + timedelta(hours=2)),
        ]
        for action, uid, at in entries:
            asyncio.run(store.add("logs", {"action": action, "actor": {"uid": uid}, "at": at}))

    def test_newest_first_with_paging(self, client: TestClient) -> None:
        """Test that nextBefore pages through older entries."""
        first = client.get("/api/logs", params={"limit": 2}, headers=bearer("admin1")).json()

        assert [item["action"] for item in first["items"]] == ["USER_DELETE", "REQUEST_STATUS"]
        assert first["count"] == 2

        second = client.get(
            "/api/logs", params={"limit": 2, "before": first["nextBefore"]}, headers=bearer("admin1")
        ).json()
        assert [item["action"] for item in second["items"]] == ["USER_CREATE"]

    def test_filters(self, client: TestClient) -> None:
        by_actor = client.get("/api/logs", params={"actorUid": "admin1"}, headers=bearer("admin1")).json()
        by_action = client.get("/api/logs", params={"action": "USER_CREATE"}, headers=bearer("admin1")).json()

        assert [item["action"] for item in by_actor["items"]] == ["USER_DELETE", "USER_CREATE"]
        assert by_action["count"] == 1

    def test_admin_only(self, client: TestClient, store: InMemoryDocumentStore) -> None:
        seed_user_sync(store, "staff1", Role.PERSONNEL)

        assert client.get("/api/logs", headers=bearer("staff1")).status_code == 403
