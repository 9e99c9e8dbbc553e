# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Firebase Admin SDK initialization.

Credentials come from ``FIREBASE_CREDENTIALS_JSON``, which may hold either
the service account JSON itself or a path to it. When it is empty the
``GOOGLE_APPLICATION_CREDENTIALS`` file is used instead.

Example:
    >>> from schoolportal.infrastructure.firebase import initialize_firebase
    >>> app = initialize_firebase(get_settings().firebase)
"""

import json
import logging
import os
from typing import Any

import firebase_admin
from firebase_admin import credentials, firestore_async

from schoolportal.core.config.settings import FirebaseSettings

logger = logging.getLogger(__name__)


class FirebaseConfigError(ValueError):
    """Raised when Firebase credentials are missing or malformed."""


def _parse_service_account(raw: str) -> dict[str, Any]:
    try:
        info = json.loads(raw)
    except json.JSONDecodeError as e:
        raise FirebaseConfigError(f"FIREBASE_CREDENTIALS_JSON does not contain valid JSON: {e}") from e
    if info.get("type") != "service_account":
        raise FirebaseConfigError("Invalid service account: 'type' must be 'service_account'")
    return info


def load_service_account_info(settings: FirebaseSettings) -> dict[str, Any] | None:
    """Resolve the service account as a dict.

    Args:
        settings: Firebase settings.

    Returns:
        Service account info, or None when nothing is configured.

    Raises:
        FirebaseConfigError: If a value is configured but unusable.
    """
    raw = settings.credentials_json.get_secret_value().strip() if settings.credentials_json else ""
    if raw:
        if raw.startswith("{"):
            return _parse_service_account(raw)
        path = os.path.expanduser(raw)
        if not os.path.isfile(path):
            raise FirebaseConfigError(
                f"FIREBASE_CREDENTIALS_JSON is neither JSON nor an existing file: {path}"
            )
        with open(path, encoding="utf-8") as handle:
            return _parse_service_account(handle.read())

    gac = os.environ.get("GOOGLE_APPLICATION_CREDENTIALS")
    if gac:
        path = os.path.expanduser(gac)
        if not os.path.isfile(path):
            raise FirebaseConfigError(f"GOOGLE_APPLICATION_CREDENTIALS file not found: {path}")
        with open(path, encoding="utf-8") as handle:
            return _parse_service_account(handle.read())
    return None


def initialize_firebase(settings: FirebaseSettings) -> firebase_admin.App:
    """Initialize (once) and return the default Firebase app.

    Args:
        settings: Firebase settings.

    Returns:
        The default firebase_admin App.
    """
    try:
        return firebase_admin.get_app()
    except ValueError:
        pass

    info = load_service_account_info(settings)
    options = {"projectId": settings.project_id} if settings.project_id else None
    if info is not None:
        app = firebase_admin.initialize_app(credentials.Certificate(info), options)
    else:
        # Application default credentials (Cloud Run, GCE...)
        app = firebase_admin.initialize_app(options=options)
    logger.info("Firebase Admin SDK initialized for project %s", app.project_id)
    return app


def get_firestore_client(app: firebase_admin.App | None = None) -> Any:
    """Async Firestore client bound to the given (or default) app."""
    return firestore_async.client(app=app)
