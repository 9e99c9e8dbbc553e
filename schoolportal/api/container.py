# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Service container.

Builds every collaborator once per application and hands them to the
domain services through their constructors. The API reads the container
from ``app.state.container``; tests assemble one around the in-memory
document store and fake providers.

Example:
    >>> container = build_container(get_settings())
    >>> app = create_app(container)
"""

import logging
from dataclasses import dataclass

from schoolportal.core.config import Settings
from schoolportal.domains.invite import InviteService
from schoolportal.domains.parent import ParentService
from schoolportal.domains.parent_relation import RelationshipManager
from schoolportal.domains.password import PasswordResetService
from schoolportal.domains.request import RequestService
from schoolportal.domains.session import SessionService
from schoolportal.domains.user import UserService
from schoolportal.infrastructure.audit import AuditTrail
from schoolportal.infrastructure.background import BackgroundDispatcher
from schoolportal.infrastructure.documents import DocumentStore, InMemoryDocumentStore
from schoolportal.infrastructure.identity import IdentityProvider
from schoolportal.infrastructure.notifications import EmailChannel, NotificationService, PushChannel
from schoolportal.infrastructure.storage import ObjectStorage

logger = logging.getLogger(__name__)


@dataclass
class Container:
    """Application-wide collaborators and services."""

    settings: Settings
    store: DocumentStore
    dispatcher: BackgroundDispatcher
    identity: IdentityProvider
    storage: ObjectStorage
    email: EmailChannel
    push: PushChannel
    notifications: NotificationService
    audit: AuditTrail
    relationships: RelationshipManager
    requests: RequestService
    users: UserService
    invites: InviteService
    passwords: PasswordResetService
    sessions: SessionService
    parents: ParentService

    @classmethod
    def assemble(
        cls,
        settings: Settings,
        store: DocumentStore,
        identity: IdentityProvider,
        storage: ObjectStorage,
        email: EmailChannel,
        push: PushChannel,
        dispatcher: BackgroundDispatcher | None = None,
    ) -> "Container":
        """Wire the domain services around the given providers."""
        portal = settings.portal
        dispatcher = dispatcher or BackgroundDispatcher(
            max_pending=settings.background.max_pending,
            workers=settings.background.workers,
        )
        audit = AuditTrail(store, dispatcher, max_limit=portal.list_max_limit)
        notifications = NotificationService(store, push, dispatcher, max_limit=portal.list_max_limit)
        relationships = RelationshipManager(store)
        invites = InviteService(store, identity, audit, portal)
        return cls(
            settings=settings,
            store=store,
            dispatcher=dispatcher,
            identity=identity,
            storage=storage,
            email=email,
            push=push,
            notifications=notifications,
            audit=audit,
            relationships=relationships,
            requests=RequestService(
                store,
                notifications,
                storage,
                dispatcher,
                audit,
                portal,
                upload_folder=settings.cloudinary.upload_folder,
            ),
            users=UserService(
                store, identity, relationships, invites, email, dispatcher, audit, portal
            ),
            invites=invites,
            passwords=PasswordResetService(store, identity, email, audit, portal),
            sessions=SessionService(store, audit),
            parents=ParentService(store, audit),
        )

    def start(self) -> None:
        """Start background workers. Requires a running event loop."""
        self.dispatcher.start()

    async def close(self) -> None:
        """Flush pending side effects and release backend resources."""
        await self.dispatcher.stop()
        await self.store.close()


def build_container(settings: Settings) -> Container:
    """Build the production container from settings.

    Firebase backs identity, push and (unless ``document_store`` is
    ``memory``) the document store; Cloudinary backs uploads.
    """
    from schoolportal.infrastructure.documents.firestore import FirestoreDocumentStore
    from schoolportal.infrastructure.firebase import (
        get_firestore_client,
        initialize_firebase,
        load_service_account_info,
    )
    from schoolportal.infrastructure.identity.firebase import FirebaseIdentityProvider
    from schoolportal.infrastructure.storage.cloudinary_storage import CloudinaryStorage

    app = initialize_firebase(settings.firebase)
    if settings.document_store == "memory":
        logger.warning("Using the in-memory document store, data is lost on restart")
        store: DocumentStore = InMemoryDocumentStore()
    else:
        store = FirestoreDocumentStore(get_firestore_client(app))

    push = PushChannel(
        service_account_info=load_service_account_info(settings.firebase),
        project_id=settings.firebase.project_id,
    )
    return Container.assemble(
        settings,
        store=store,
        identity=FirebaseIdentityProvider(app),
        storage=CloudinaryStorage(settings.cloudinary),
        email=EmailChannel(settings.smtp),
        push=push,
    )
