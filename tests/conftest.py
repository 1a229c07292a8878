"""
Shared test fixtures and configuration.

This module provides pytest fixtures for:
- A controllable clock
- In-memory donor store and client storage
- A fully wired AuthService for a single client
- A PostgreSQL pool for integration tests (skipped when unreachable)
"""

from datetime import datetime, timedelta, timezone

import pytest
from psycopg_pool import ConnectionPool, PoolTimeout

from donorauth.adapters.repository.memory import InMemoryDonorStore
from donorauth.adapters.repository.postgres import run_migrations
from donorauth.adapters.storage.memory import InMemoryStorage
from donorauth.config.settings import get_settings
from donorauth.domain.auth import AuthService
from donorauth.domain.credentials import CredentialCache
from donorauth.domain.device import DeviceRegistry
from donorauth.domain.identity import DonorAttributes
from donorauth.domain.ports import DeviceSignals
from donorauth.domain.sessions import SessionStore
from donorauth.domain.throttle import LoginThrottle

T0 = datetime(2026, 3, 1, 9, 0, 0, tzinfo=timezone.utc)

CHROME_ON_WINDOWS = DeviceSignals(
    user_agent=(
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36"
    ),
    screen_resolution="1920x1080",
    timezone="Europe/Rome",
    language="it-IT",
    platform="Windows",
)


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime = T0) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store() -> InMemoryDonorStore:
    return InMemoryDonorStore()


@pytest.fixture
def storage(clock: FakeClock) -> InMemoryStorage:
    return InMemoryStorage(clock=clock)


@pytest.fixture
def maria() -> DonorAttributes:
    return DonorAttributes("Maria", "Rossi", "1990-05-01", "A1B2C")


@pytest.fixture
def service(
    store: InMemoryDonorStore, storage: InMemoryStorage, clock: FakeClock
) -> AuthService:
    return AuthService(
        store=store,
        session_store=SessionStore(storage, clock=clock),
        credential_cache=CredentialCache(storage, clock=clock),
        device_registry=DeviceRegistry(storage, CHROME_ON_WINDOWS, clock=clock),
        clock=clock,
        throttle=LoginThrottle(store, clock=clock),
    )


@pytest.fixture
def chrome_signals() -> DeviceSignals:
    return CHROME_ON_WINDOWS


def verify_email(store: InMemoryDonorStore, identity_token: str) -> None:
    """Simulate the donor clicking the email verification link."""
    store.update(identity_token, {"email_verified": True})


def activate(store: InMemoryDonorStore, identity_token: str) -> None:
    """Simulate staff activating the account."""
    store.update(identity_token, {"account_activated": True})


@pytest.fixture
def lifecycle():
    """Helpers flipping donor flags the way external events do."""

    class Lifecycle:
        verify_email = staticmethod(verify_email)
        activate = staticmethod(activate)

    return Lifecycle


@pytest.fixture(scope="session")
def pool():
    """
    Connection pool for tests that need PostgreSQL.

    Skips the requesting test when the database cannot be reached.
    Migrations are applied once per session.
    """
    settings = get_settings()
    pool = ConnectionPool(conninfo=settings.database_url, min_size=1, max_size=10, open=True)
    try:
        pool.wait(timeout=3.0)
    except PoolTimeout:
        pool.close()
        pytest.skip("PostgreSQL not reachable")
    run_migrations(pool)
    yield pool
    pool.close()


@pytest.fixture
def clean_database(pool: ConnectionPool) -> None:
    """Empty the donor and audit tables before the test."""
    with pool.connection() as conn:
        conn.execute("DELETE FROM audit_logs")
        conn.execute("DELETE FROM failed_logins")
        conn.execute("DELETE FROM donors")
        conn.commit()
    yield
