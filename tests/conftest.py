# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Pytest configuration and shared fixtures.

This module provides fixtures used across all test types:
- Unit tests (services over the in-memory document store)
- Integration tests (the FastAPI app through TestClient)
"""

from collections.abc import AsyncGenerator, Generator
from typing import Any

import pytest
import pytest_asyncio
from fastapi.testclient import TestClient

from fakes import (
    FakeIdentityProvider,
    FakeStorage,
    make_actor,
    make_email_channel,
    make_push_channel,
)
from schoolportal.api.app import create_app
from schoolportal.api.container import Container
from schoolportal.api.middleware.rate_limit import limiter
from schoolportal.core.config import Settings
from schoolportal.core.config.settings import PortalSettings, RateLimitSettings
from schoolportal.infrastructure.background import BackgroundDispatcher
from schoolportal.infrastructure.documents import InMemoryDocumentStore
from schoolportal.models.common import Actor, Role


# =============================================================================
# Marker Configuration
# =============================================================================


def pytest_configure(config: pytest.Config) -> None:
    """Configure custom pytest markers."""
    config.addinivalue_line(
        "markers", "unit: mark test as a unit test"
    )
    config.addinivalue_line(
        "markers", "integration: mark test as an integration test (in-process app)"
    )
    config.addinivalue_line(
        "markers", "slow: mark test as slow running"
    )


# =============================================================================
# Settings Fixtures
# =============================================================================


@pytest.fixture
def portal_settings() -> PortalSettings:
    """Portal rules with the cheapest bcrypt cost."""
    return PortalSettings(code_salt="test-salt", code_hash_rounds=4)  # type: ignore[arg-type]


@pytest.fixture
def settings(portal_settings: PortalSettings) -> Settings:
    """Test settings over the in-memory document store."""
    return Settings(
        environment="test",
        debug=False,
        log_level="WARNING",
        document_store="memory",
        portal=portal_settings,
        rate_limit=RateLimitSettings(enabled=False),
    )


# =============================================================================
# Collaborator Fixtures
# =============================================================================


@pytest.fixture
def store() -> InMemoryDocumentStore:
    """Empty in-memory document store."""
    return InMemoryDocumentStore()


@pytest.fixture
def identity() -> FakeIdentityProvider:
    return FakeIdentityProvider()


@pytest.fixture
def storage() -> FakeStorage:
    return FakeStorage()


@pytest.fixture
def email_channel() -> Any:
    """Email channel mock reporting every send as delivered."""
    return make_email_channel()


@pytest.fixture
def push_channel() -> Any:
    """Push channel mock accepting every token."""
    return make_push_channel()


@pytest_asyncio.fixture
async def dispatcher() -> AsyncGenerator[BackgroundDispatcher, None]:
    """Started background dispatcher, stopped after the test."""
    background = BackgroundDispatcher(max_pending=100, workers=2)
    background.start()
    yield background
    await background.stop(drain=False)


@pytest_asyncio.fixture
async def container(
    settings: Settings,
    store: InMemoryDocumentStore,
    identity: FakeIdentityProvider,
    storage: FakeStorage,
    email_channel: Any,
    push_channel: Any,
    dispatcher: BackgroundDispatcher,
) -> Container:
    """Every service wired around the in-memory store and fakes."""
    return Container.assemble(
        settings,
        store=store,
        identity=identity,
        storage=storage,
        email=email_channel,
        push=push_channel,
        dispatcher=dispatcher,
    )


# =============================================================================
# API Fixtures
# =============================================================================


@pytest.fixture
def api_container(
    settings: Settings,
    store: InMemoryDocumentStore,
    identity: FakeIdentityProvider,
    storage: FakeStorage,
    email_channel: Any,
    push_channel: Any,
) -> Container:
    """Container for the app; its dispatcher starts with the app lifespan."""
    return Container.assemble(
        settings,
        store=store,
        identity=identity,
        storage=storage,
        email=email_channel,
        push=push_channel,
    )


@pytest.fixture
def client(api_container: Container) -> Generator[TestClient, None, None]:
    """TestClient over the full app, rate limits off."""
    limiter.enabled = False
    with TestClient(create_app(api_container)) as test_client:
        yield test_client
    limiter.enabled = True


# =============================================================================
# Helper Fixtures
# =============================================================================


@pytest.fixture
def admin() -> Actor:
    return make_actor("admin1", Role.ADMIN)


@pytest.fixture
def personnel() -> Actor:
    return make_actor("staff1", Role.PERSONNEL)
