"""
Shared fixtures: an embedded in-memory Qdrant document store, a
fault-injecting wrapper around it, a signed-in identity and projects.
"""

import uuid

import pytest

from core.identity import SessionIdentityProvider, User
from core.models.config import StoreSettings
from core.models.entities import Project
from core.storage.client import QdrantDocumentStore
from tests.fixtures.documents import OWNER_ID, FaultInjectingStore, build_project


@pytest.fixture
def store_settings() -> StoreSettings:
    """Embedded, isolated store settings with fast polling and no retries"""
    return StoreSettings.in_memory(
        collection_name=f"test-{uuid.uuid4().hex[:8]}",
        max_retries=0,
        poll_interval=0.05,
        timeout=10.0
    )


@pytest.fixture
def store(store_settings) -> QdrantDocumentStore:
    return QdrantDocumentStore(store_settings)


@pytest.fixture
def faulty_store(store) -> FaultInjectingStore:
    return FaultInjectingStore(store)


@pytest.fixture
def identity() -> SessionIdentityProvider:
    return SessionIdentityProvider(user=User(uid=OWNER_ID, email="writer@example.com"))


@pytest.fixture
def anonymous() -> SessionIdentityProvider:
    return SessionIdentityProvider()


@pytest.fixture
def make_project():
    return build_project


@pytest.fixture
def project() -> Project:
    return build_project()
