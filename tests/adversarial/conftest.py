"""
Shared fixtures for adversarial tests.

Provides an HTTP client over the real application wiring, backed by the
in-memory store, plus a helper for seeding donors at a given stage.
"""

from collections.abc import Generator

import pytest
from fastapi.testclient import TestClient

from donorauth.adapters.repository.memory import InMemoryDonorStore
from donorauth.api.dependencies import get_clock, get_store
from donorauth.api.main import app
from donorauth.config.settings import Settings, get_settings
from donorauth.domain.identity import (
    DonorAttributes,
    derive_identity,
    derive_password_hash,
    generate_salt,
)
from donorauth.domain.ports import DonorRecord

# Module-level marker for all adversarial tests
pytestmark = pytest.mark.adversarial


@pytest.fixture
def client(store: InMemoryDonorStore, clock) -> Generator[TestClient, None, None]:
    """Create test client over the in-memory store."""
    app.dependency_overrides[get_store] = lambda: store
    app.dependency_overrides[get_clock] = lambda: clock
    app.dependency_overrides[get_settings] = lambda: Settings(cookie_secure=False)
    yield TestClient(app)
    app.dependency_overrides.clear()


def seed_donor(
    store: InMemoryDonorStore,
    attributes: DonorAttributes,
    email: str,
    password: str | None = None,
    **flags: bool,
) -> str:
    """Insert a donor record directly, returning its identity token."""
    token = derive_identity(attributes)
    salt = generate_salt() if password else None
    store.insert(
        DonorRecord(
            identity_token=token,
            donor_id="A1B2C",
            email=email,
            salt=salt,
            password_hash=derive_password_hash(password, salt) if password else None,
            **flags,
        )
    )
    return token


@pytest.fixture
def seed():
    """Expose seed_donor to tests without importing conftest."""
    return seed_donor
