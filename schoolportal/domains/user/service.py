# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""User administration service.

This module provides the UserService class for:
- Account creation (identity account, claims, profile, invite email)
- Profile updates, including a parent's students
- Account deletion with parent cascade
- Student picker and full user listing

Roles never change after creation: delete and recreate instead. Every
change to ``parentOf`` / ``parentUid`` goes through the RelationshipManager.
"""

from __future__ import annotations

import logging
from typing import Any

from schoolportal.core.config import PortalSettings
from schoolportal.core.errors import ErrorKind, ForbiddenError, PortalError
from schoolportal.domains.invite import InviteService
from schoolportal.domains.parent_relation import RelationshipManager, unique_uids
from schoolportal.infrastructure.audit import AuditActor, AuditTrail, HttpContext
from schoolportal.infrastructure.background import BackgroundDispatcher
from schoolportal.infrastructure.documents import (
    DOCUMENT_ID,
    SERVER_TIMESTAMP,
    Direction,
    DocumentStore,
    Filter,
    OrderBy,
    decode_cursor,
    encode_cursor,
)
from schoolportal.infrastructure.identity import IdentityProvider, IdentityUserNotFoundError
from schoolportal.infrastructure.notifications import EmailChannel
from schoolportal.infrastructure.notifications.templates import (
    EmailContent,
    access_email,
    login_email_changed_notice,
    notify_email_changed_notice,
)
from schoolportal.models.common import Actor, Role
from schoolportal.models.user import (
    CreateUserInput,
    ListUsersQuery,
    StudentPickerQuery,
    UpdateUserInput,
)

logger = logging.getLogger(__name__)

USERS_COLLECTION = "users"
MANAGED_ROLES = (Role.ETUDIANT, Role.PARENT, Role.PERSONNEL)
AUDITED_FIELDS = ("email", "notifyEmail", "prenom", "nom", "filiere", "niveau", "parentOf")
DEFAULT_PAGE_SIZE = 20


class UserServiceError(PortalError):
    """Base exception for user administration errors."""

    kind = ErrorKind.INVALID_INPUT
    code = "USER_ERROR"


class UserNotFoundError(UserServiceError):
    kind = ErrorKind.NOT_FOUND
    code = "USER_NOT_FOUND"


class EmailAlreadyUsedError(UserServiceError):
    kind = ErrorKind.CONFLICT
    code = "EMAIL_ALREADY_USED"


class InvalidRoleError(UserServiceError):
    code = "INVALID_ROLE"


class FiliereRequiredError(UserServiceError):
    code = "FILIERE_REQUIRED"


class InvalidNiveauError(UserServiceError):
    code = "INVALID_NIVEAU"


class ParentOfRequiredError(UserServiceError):
    code = "PARENT_OF_REQUIRED"


class TooManyChildrenError(UserServiceError):
    code = "TOO_MANY_CHILDREN"


class ParentOfOnlyForParentError(UserServiceError):
    code = "PARENT_OF_ONLY_FOR_PARENT_ROLE"


class PersistenceFailedError(UserServiceError):
    kind = ErrorKind.INTERNAL
    code = "PERSISTENCE_FAILED"


def build_display_name(prenom: str | None, nom: str | None) -> str | None:
    name = " ".join(part.strip() for part in (prenom or "", nom or "") if part and part.strip())
    return name or None


def changed_fields(before: dict[str, Any], after: dict[str, Any], keys: tuple[str, ...]) -> dict[str, Any]:
    """New values of the keys whose value changed; lists compare as sets."""

    def normalize(value: Any) -> Any:
        return sorted(value) if isinstance(value, list) else value

    return {key: after.get(key) for key in keys if normalize(before.get(key)) != normalize(after.get(key))}


def student_preview(uid: str, data: dict[str, Any]) -> dict[str, Any]:
    return {
        "id": uid,
        "prenom": data.get("prenom"),
        "nom": data.get("nom"),
        "displayName": data.get("displayName")
        or build_display_name(data.get("prenom"), data.get("nom"))
        or data.get("email"),
    }


class UserService:
    """Service for user administration.

    Attributes:
        store: Document store.
        identity: Identity provider.
        relationships: Parent-student relationship manager.
    """

    def __init__(
        self,
        store: DocumentStore,
        identity: IdentityProvider,
        relationships: RelationshipManager,
        invites: InviteService,
        email: EmailChannel,
        dispatcher: BackgroundDispatcher,
        audit: AuditTrail,
        settings: PortalSettings,
    ) -> None:
        """Initialize the user service.

        Args:
            store: Document store.
            identity: Identity provider.
            relationships: Relationship manager.
            invites: Invite token service.
            email: Email channel for access and security emails.
            dispatcher: Background dispatcher for emails and cleanups.
            audit: Audit trail.
            settings: Portal settings.
        """
        self.store = store
        self.identity = identity
        self.relationships = relationships
        self.invites = invites
        self.email = email
        self._dispatcher = dispatcher
        self._audit = audit
        self._settings = settings

    @staticmethod
    def _require_admin(actor: Actor) -> None:
        if actor.role is not Role.ADMIN:
            raise ForbiddenError()

    async def _ensure_email_free(self, email: str, uid: str | None = None) -> None:
        try:
            existing = await self.identity.get_user_by_email(email)
        except IdentityUserNotFoundError:
            return
        if existing.uid != uid:
            raise EmailAlreadyUsedError()

    def _validate_student_fields(self, filiere: str | None, niveau: str | None) -> None:
        if not filiere:
            raise FiliereRequiredError()
        if niveau not in self._settings.allowed_niveaux:
            raise InvalidNiveauError(
                message=f"niveau must be one of {', '.join(self._settings.allowed_niveaux)}"
            )

    def _validate_children(self, parent_of: list[str]) -> list[str]:
        children = unique_uids(parent_of)
        if not children:
            raise ParentOfRequiredError()
        if len(children) > self._settings.max_children:
            raise TooManyChildrenError()
        return children

    def _send_later(self, to: str, content: EmailContent, kind: str, uid: str) -> None:
        self._dispatcher.dispatch(f"email:{kind}:{uid}", self._send_email, to, content, kind, uid)

    async def _send_email(self, to: str, content: EmailContent, kind: str, uid: str) -> None:
        result = await self.email.send_email(to, content.subject, content.text, content.html)
        if not result.ok:
            logger.warning("Email %s to %s not sent: %s", kind, to, result.error_message)
            return
        self._audit.record(
            None,
            "EMAIL_SEND",
            target={"collection": USERS_COLLECTION, "id": uid},
            meta={"to": to, "type": kind},
        )

    # =========================================================================
    # Create
    # =========================================================================

    async def create_user(
        self, actor: Actor, request: CreateUserInput, http: HttpContext | None = None
    ) -> dict[str, Any]:
        """Create an account and send its access email.

        Steps: identity account, custom claims, profile (parents attach
        their students in the same transaction), invite token. If claims or
        profile fail, the identity account is deleted again.

        Returns:
            ``{"uid", "role", "email", "notifyEmail", "inviteLink"}``.

        Raises:
            ForbiddenError: If the actor is not an admin.
            InvalidRoleError: If the role cannot be created here (admin).
            FiliereRequiredError: Student without filiere.
            InvalidNiveauError: Student niveau outside the allowed set.
            ParentOfRequiredError: Parent without students.
            TooManyChildrenError: Parent with too many students.
            ParentOfOnlyForParentError: parentOf given for another role.
            EmailAlreadyUsedError: Login email already taken.
            RelationshipError: A student cannot be attached.
        """
        self._require_admin(actor)
        role = request.role
        if role not in MANAGED_ROLES:
            raise InvalidRoleError()
        children: list[str] = []
        if role is Role.ETUDIANT:
            self._validate_student_fields(request.filiere, request.niveau)
        if role is Role.PARENT:
            children = self._validate_children(request.parent_of or [])
        elif request.parent_of:
            raise ParentOfOnlyForParentError()

        email = request.email.lower()
        notify_email = request.notify_email.lower() if request.notify_email else None
        await self._ensure_email_free(email)

        display_name = build_display_name(request.prenom, request.nom)
        created = await self.identity.create_user(email, display_name=display_name)
        uid = created.uid

        claims: dict[str, Any] = {"role": role.value}
        if role is Role.PARENT:
            claims["parentOf"] = children
        profile: dict[str, Any] = {
            "role": role.value,
            "email": email,
            "notifyEmail": notify_email,
            "prenom": request.prenom or None,
            "nom": request.nom or None,
            "displayName": display_name,
            "displayNameLower": display_name.lower() if display_name else None,
            "fcmTokens": [],
            "createdAt": SERVER_TIMESTAMP,
            "updatedAt": SERVER_TIMESTAMP,
        }
        try:
            await self.identity.set_custom_claims(uid, claims)
            if role is Role.PARENT:
                await self.relationships.attach_on_create(uid, profile, children)
            else:
                if role is Role.ETUDIANT:
                    profile.update(filiere=request.filiere, niveau=request.niveau, parentUid=None)
                await self.store.set(USERS_COLLECTION, uid, profile, merge=True)
        except Exception as e:
            logger.warning("Creating profile %s failed, removing identity account: %s", uid, str(e))
            await self._compensate(uid)
            if isinstance(e, PortalError):
                raise
            raise PersistenceFailedError(message=str(e)) from e

        invite_link = await self._issue_invite(uid, email)
        if invite_link:
            self._send_later(
                notify_email or email,
                access_email(self._settings.project_name, email, invite_link),
                "welcome",
                uid,
            )

        meta: dict[str, Any] = {"role": role.value, "email": email, "notifyEmail": notify_email}
        if role is Role.ETUDIANT:
            meta.update(filiere=request.filiere, niveau=request.niveau)
        if role is Role.PARENT:
            meta["parentOf"] = children
        self._audit.record(
            AuditActor(actor.uid, actor.role.value),
            "USER_CREATE",
            target={"collection": USERS_COLLECTION, "id": uid},
            meta=meta,
            http=http,
        )
        logger.info("User %s created with role %s", uid, role.value)
        return {
            "uid": uid,
            "role": role.value,
            "email": email,
            "notifyEmail": notify_email,
            "inviteLink": invite_link,
        }

    async def _compensate(self, uid: str) -> None:
        try:
            await self.identity.delete_user(uid)
        except Exception as e:
            logger.error("Could not delete orphan identity account %s: %s", uid, str(e))

    async def _issue_invite(self, uid: str, email: str) -> str | None:
        """Invite link for a new account; the account exists even if this fails."""
        try:
            token = await self.invites.create_token(uid, email)
        except PortalError as e:
            logger.error("Invite token for %s not stored: %s", uid, e.message)
            return None
        return self.invites.invite_link(token, email)

    # =========================================================================
    # Update
    # =========================================================================

    async def update_user(
        self,
        actor: Actor,
        uid: str,
        request: UpdateUserInput,
        http: HttpContext | None = None,
    ) -> dict[str, Any]:
        """Update an account. Only fields present in the payload change.

        Returns:
            The profile after the update.

        Raises:
            ForbiddenError: If the actor is not an admin.
            UserNotFoundError: Unknown uid.
            ParentOfOnlyForParentError: parentOf sent for a non-parent.
            EmailAlreadyUsedError: New login email already taken.
            RelationshipError: A student cannot be attached.
        """
        self._require_admin(actor)
        snapshot = await self.store.get(USERS_COLLECTION, uid)
        if not snapshot.exists:
            raise UserNotFoundError()
        before = snapshot.to_dict()
        role = before.get("role")
        sent = request.model_fields_set

        children: list[str] | None = None
        if "parent_of" in sent and request.parent_of is not None:
            if role != Role.PARENT.value:
                raise ParentOfOnlyForParentError()
            children = unique_uids(request.parent_of)
            if len(children) > self._settings.max_children:
                raise TooManyChildrenError()

        if (
            role == Role.ETUDIANT.value
            and "niveau" in sent
            and request.niveau
            and request.niveau not in self._settings.allowed_niveaux
        ):
            raise InvalidNiveauError()

        new_email = request.email.lower() if "email" in sent and request.email else None
        email_changed = bool(new_email) and new_email != before.get("email")
        if email_changed:
            await self._ensure_email_free(new_email, uid)

        prenom = request.prenom if "prenom" in sent else before.get("prenom")
        nom = request.nom if "nom" in sent else before.get("nom")
        display_name = build_display_name(prenom, nom)

        identity_updates: dict[str, Any] = {}
        if email_changed:
            identity_updates["email"] = new_email
        if display_name != before.get("displayName"):
            identity_updates["display_name"] = display_name
        if identity_updates:
            await self.identity.update_user(uid, **identity_updates)

        if children is not None:
            await self.relationships.replace_children(uid, children)

        patch: dict[str, Any] = {"updatedAt": SERVER_TIMESTAMP}
        if "prenom" in sent:
            patch["prenom"] = request.prenom or None
        if "nom" in sent:
            patch["nom"] = request.nom or None
        if display_name != before.get("displayName"):
            patch["displayName"] = display_name
            patch["displayNameLower"] = display_name.lower() if display_name else None
        if "notify_email" in sent:
            patch["notifyEmail"] = request.notify_email.lower() if request.notify_email else None
        if new_email:
            patch["email"] = new_email
        if role == Role.ETUDIANT.value:
            if "filiere" in sent:
                patch["filiere"] = request.filiere or None
            if "niveau" in sent:
                patch["niveau"] = request.niveau or None
        if len(patch) > 1:
            await self.store.set(USERS_COLLECTION, uid, patch, merge=True)

        after = (await self.store.get(USERS_COLLECTION, uid)).to_dict()
        self._send_security_notices(uid, before, after)
        self._audit.record(
            AuditActor(actor.uid, actor.role.value),
            "USER_UPDATE",
            target={"collection": USERS_COLLECTION, "id": uid},
            meta=changed_fields(before, after, AUDITED_FIELDS),
            http=http,
        )
        return {"id": uid, **after}

    def _send_security_notices(self, uid: str, before: dict[str, Any], after: dict[str, Any]) -> None:
        project = self._settings.project_name
        old_login, new_login = before.get("email"), after.get("email")
        old_notify, new_notify = before.get("notifyEmail"), after.get("notifyEmail")
        name = after.get("displayName") or new_login or ""

        if old_login and new_login and old_login != new_login:
            content = login_email_changed_notice(project, name, old_login, new_login)
            recipients = [old_notify or new_notify]
            if new_notify and new_notify != old_notify:
                recipients.append(new_notify)
            for to in dict.fromkeys(r for r in recipients if r):
                self._send_later(to, content, "login_email_changed", uid)

        if new_notify and new_notify != old_notify:
            self._send_later(
                new_notify,
                notify_email_changed_notice(project, name, new_notify),
                "notify_email_changed",
                uid,
            )

    # =========================================================================
    # Delete
    # =========================================================================

    async def delete_user(self, actor: Actor, uid: str, http: HttpContext | None = None) -> None:
        """Delete an account.

        Parents detach their students in the same transaction. A student
        still attached to a parent cannot be deleted. The identity account
        is removed afterwards, best effort.

        Raises:
            ForbiddenError: If the actor is not an admin.
            UserNotFoundError: Unknown uid.
            DetachRequiredError: Student still attached to a parent.
        """
        self._require_admin(actor)
        snapshot = await self.store.get(USERS_COLLECTION, uid)
        if not snapshot.exists:
            raise UserNotFoundError()
        user = snapshot.to_dict()
        role = user.get("role")

        self.relationships.ensure_student_deletable(uid, user)
        if role == Role.PARENT.value:
            await self.relationships.delete_parent(uid)
        else:
            await self.store.delete(USERS_COLLECTION, uid)

        self._dispatcher.dispatch(f"identity-delete:{uid}", self.identity.delete_user, uid)
        self._audit.record(
            AuditActor(actor.uid, actor.role.value),
            "USER_DELETE",
            target={"collection": USERS_COLLECTION, "id": uid},
            meta={"role": role, "email": user.get("email")},
            http=http,
        )
        logger.info("User %s (%s) deleted", uid, role)

    # =========================================================================
    # Queries
    # =========================================================================

    def _clamp(self, limit: int | None) -> int:
        return max(1, min(limit or DEFAULT_PAGE_SIZE, self._settings.users_max_limit))

    async def list_students(self, actor: Actor, query: StudentPickerQuery) -> dict[str, Any]:
        """Short student list for pickers, ordered by name.

        ``q`` filters the page by name prefix; the cursor is the last
        ``displayNameLower`` seen.
        """
        if not actor.is_staff:
            raise ForbiddenError()
        limit = self._clamp(query.limit)
        filters = [Filter("role", "==", Role.ETUDIANT.value)]
        if query.only_unassigned:
            filters.append(Filter("parentUid", "==", None))
        snapshots = await self.store.query(
            USERS_COLLECTION,
            filters,
            order_by=[OrderBy("displayNameLower", Direction.ASCENDING)],
            limit=limit,
            start_after={"displayNameLower": query.cursor} if query.cursor else None,
        )
        items = [student_preview(snapshot.id, snapshot.to_dict()) for snapshot in snapshots]

        prefix = query.q.strip().lower()
        if prefix:
            items = [
                item
                for item in items
                if any((item.get(key) or "").lower().startswith(prefix) for key in ("displayName", "nom", "prenom"))
            ]

        next_cursor = None
        if snapshots:
            last = snapshots[-1]
            next_cursor = (last.get("displayNameLower") or last.get("displayName") or "").lower() or None
        return {
            "items": items,
            "nextCursor": next_cursor,
            "availableOnly": query.only_unassigned,
            "hasMore": len(snapshots) == limit and next_cursor is not None,
        }

    async def list_users(self, actor: Actor, query: ListUsersQuery) -> dict[str, Any]:
        """All non-admin users, newest first, paged by createdAt then id."""
        self._require_admin(actor)
        limit = self._clamp(query.limit)
        if query.role in MANAGED_ROLES:
            role_filter = Filter("role", "==", query.role.value)
        else:
            role_filter = Filter("role", "in", [role.value for role in MANAGED_ROLES])
        snapshots = await self.store.query(
            USERS_COLLECTION,
            [role_filter],
            order_by=[OrderBy("createdAt", Direction.DESCENDING), OrderBy(DOCUMENT_ID, Direction.DESCENDING)],
            limit=limit,
            start_after=decode_cursor(query.cursor, "createdAt") if query.cursor else None,
        )
        items = [{"id": snapshot.id, **snapshot.to_dict()} for snapshot in snapshots]
        next_cursor = encode_cursor(items[-1].get("createdAt"), items[-1]["id"]) if items else None
        return {
            "items": items,
            "nextCursor": next_cursor,
            "hasMore": len(items) == limit and bool(next_cursor),
        }
