"""Shared test fixtures for ProjectHub tests."""

import sys
from pathlib import Path

import pytest

# Ensure the project root (pkg/, hub_server.py) and the bots directory are importable
ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(ROOT))
sys.path.insert(0, str(ROOT / "bots"))

from pkg.projecthub import auth
from pkg.projecthub.auth import AuthGrant, AuthSession, AuthState, LocalAuthProvider, User
from pkg.projecthub.schema import ProjectInsert
from pkg.projecthub.store import SqliteDataService


@pytest.fixture(autouse=True)
def fast_password_hashing(monkeypatch):
    """Cheap PBKDF2 for tests."""
    monkeypatch.setattr(auth, "PBKDF2_ROUNDS", 1_000)


@pytest.fixture
def db_path(tmp_path) -> str:
    return str(tmp_path / "projecthub.db")


@pytest.fixture
def store(db_path) -> SqliteDataService:
    """Unscoped store (sees every owner's rows)."""
    return SqliteDataService(db_path)


@pytest.fixture
def alice_store(store) -> SqliteDataService:
    return store.scoped("alice")


@pytest.fixture
def project(alice_store) -> dict:
    return alice_store.insert("projects", ProjectInsert(user_id="alice", title="Apollo").to_dict())


@pytest.fixture
def alice_session() -> AuthSession:
    """Auth session already signed in as alice (provider is never called)."""
    session = AuthSession(provider=LocalAuthProvider.__new__(LocalAuthProvider))
    session._set(
        AuthState.AUTHENTICATED,
        AuthGrant(user=User(id="alice", email="alice@example.com"), access_token="tok-alice"),
    )
    return session
