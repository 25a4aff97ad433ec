"""
Pytest configuration for mastobridge. In-memory SQLite so tests don't touch the filesystem;
route tests swap the store and the upstream client for doubles.
"""
import os

# In-memory SQLite; database.py uses StaticPool so all connections share the same DB
os.environ["MASTOBRIDGE_DATABASE_URL"] = "sqlite:///:memory:"
for _name in list(os.environ):
    if _name.startswith("MASTOBRIDGE_SEED_"):
        del os.environ[_name]

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from fakes import APP_NAME, REDIRECT_URI, FakeUpstream, MemoryCredentialStore  # noqa: E402
from mastobridge.keys import generate_signing_key_pem  # noqa: E402
from mastobridge.main import app  # noqa: E402
from mastobridge.mastodon import get_upstream  # noqa: E402
from mastobridge.store import get_store  # noqa: E402


@pytest.fixture(scope="session")
def signing_key_pem():
    return generate_signing_key_pem()


@pytest.fixture
def store(signing_key_pem):
    return MemoryCredentialStore(
        {
            "app_name": APP_NAME,
            "website": "https://bridge.example",
            "redirect_uri": REDIRECT_URI,
            "scopes": " read:accounts, READ:lists ,",
            "jwt_signing_key": signing_key_pem,
        }
    )


@pytest.fixture
def upstream():
    return FakeUpstream()


@pytest.fixture
def client(store, upstream):
    app.dependency_overrides[get_store] = lambda: store
    app.dependency_overrides[get_upstream] = lambda: upstream
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
