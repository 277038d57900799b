"""
Shared fixtures.

Every test runs against the in-memory identity provider, document store
and page storage; nothing here touches the network. Timing knobs are
zeroed so flows run as fast as the event loop allows.
"""

import pytest

from src.core.navigation import Display, PageLoader, Router, RouteTable, build_default_registry
from src.core.session import AuthManager, Role
from src.core.session.models import USERS
from src.core.training import TrainingRepository
from src.infrastructure.identity import MockIdentityProvider
from src.infrastructure.snowflake.documents import MockDocumentStore
from src.infrastructure.storage.client import MockPageStorageClient


@pytest.fixture
def anyio_backend():
    """Async tests run on asyncio only."""
    return "asyncio"


@pytest.fixture
def identity() -> MockIdentityProvider:
    return MockIdentityProvider()


@pytest.fixture
def store() -> MockDocumentStore:
    return MockDocumentStore()


@pytest.fixture
def routes() -> RouteTable:
    return RouteTable()


@pytest.fixture
def pages(routes) -> MockPageStorageClient:
    return MockPageStorageClient(seed_resources=set(routes.routes.values()))


@pytest.fixture
def auth(identity, store) -> AuthManager:
    return AuthManager(
        identity,
        store,
        reinitialize_settle_seconds=0,
        logout_settle_seconds=0,
    )


@pytest.fixture
def training(store, auth) -> TrainingRepository:
    return TrainingRepository(store, auth)


@pytest.fixture
def display() -> Display:
    return Display()


@pytest.fixture
def loader(routes, pages, display, auth, training) -> PageLoader:
    return PageLoader(
        routes,
        pages,
        display,
        build_default_registry(),
        auth=auth,
        training=training,
        clear_settle_seconds=0,
        mount_settle_seconds=0,
        initializer_pause_seconds=0,
    )


@pytest.fixture
def router(auth, loader) -> Router:
    return Router(auth, loader, auth_ready_timeout_seconds=0.5)


@pytest.fixture
def make_trainer(identity, store):
    """Seed a trainer account plus its active profile record; returns the uid."""
    def make(email: str = "coach@example.com", password: str = "secret1") -> str:
        account = identity.add_account(email, password)
        store.seed(USERS, account.uid, {
            "uid": account.uid,
            "name": "Coach",
            "email": email,
            "userType": Role.PERSONAL.value,
            "status": "active",
            "students": [],
        })
        return account.uid

    return make


@pytest.fixture
def make_student(identity, store):
    """Seed an activated student account; returns the uid."""
    def make(
        email: str = "ana@example.com",
        password: str = "secret1",
        personal_id: str = "trainer-1",
        status: str = "active",
    ) -> str:
        account = identity.add_account(email, password)
        store.seed(USERS, account.uid, {
            "uid": account.uid,
            "name": "Ana",
            "email": email,
            "userType": Role.STUDENT.value,
            "status": status,
            "personalId": personal_id,
            "assignedWorkouts": [],
        })
        return account.uid

    return make
