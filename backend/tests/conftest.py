"""Shared test fixtures and configuration for backend tests."""
import time
from typing import Iterable, Optional

import jwt
import pytest
from fastapi.testclient import TestClient

from app.chat.manager import manager
from app.config import AppConfig, JWTSecrets, Secrets, set_config
from app.dependencies import set_store
from app.main import app
from app.store import InMemoryDocumentStore
from app.store.schemas import GroupRecord, UserRecord, UserRole

TEST_SECRET = "test-secret"


def make_token(user_id: str, secret: str = TEST_SECRET, expires_in: int = 3600) -> str:
    """Mint a JWT the way the (external) auth service does."""
    payload = {
        "user": {"id": user_id, "role": "user"},
        "exp": int(time.time()) + expires_in,
    }
    return jwt.encode(payload, secret, algorithm="HS256")


def auth_headers(user: UserRecord) -> dict:
    return {"Authorization": f"Bearer {make_token(user.id)}"}


@pytest.fixture
def store():
    """Fresh in-memory store wired into the app for one test.

    Also installs a config with a known JWT secret and clears every live
    connection left over from earlier tests.
    """
    set_config(AppConfig(secrets=Secrets(jwt=JWTSecrets(secret_key=TEST_SECRET))))
    manager.clear()
    memory_store = InMemoryDocumentStore()
    set_store(memory_store)
    yield memory_store
    manager.clear()
    set_store(None)
    set_config(None)


@pytest.fixture
def make_user(store):
    """Factory seeding a user directly into the in-memory store."""
    def _make_user(
        username: str,
        role: UserRole = UserRole.USER,
        friends: Iterable[str] = (),
    ) -> UserRecord:
        user = UserRecord(username=username, role=role, friends=list(friends))
        store.users[user.id] = user.model_copy(deep=True)
        return user
    return _make_user


@pytest.fixture
def befriend(store):
    """Make two seeded users mutual friends."""
    def _befriend(a: UserRecord, b: UserRecord) -> None:
        store.users[a.id].friends.append(b.id)
        store.users[b.id].friends.append(a.id)
    return _befriend


@pytest.fixture
def make_group(store):
    """Factory seeding a group directly into the in-memory store."""
    def _make_group(
        name: str,
        admin: UserRecord,
        members: Iterable[UserRecord] = (),
        is_private: bool = False,
    ) -> GroupRecord:
        group = GroupRecord(
            name=name,
            admin=admin.id,
            members=[admin.id] + [m.id for m in members],
            isPrivate=is_private,
        )
        store.groups[group.id] = group.model_copy(deep=True)
        return group
    return _make_group


@pytest.fixture
def api_client():
    """Provide a TestClient for the main FastAPI app.

    Named api_client (not client) to avoid shadowing the module-level
    `client = TestClient(app)` pattern used in existing test files.
    """
    return TestClient(app)
