"""
Integration tests for PostgresDonorStore.

Tests store operations against a real PostgreSQL database.
Requires PostgreSQL to be running (via docker-compose); skipped otherwise.
"""

from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta, timezone

import pytest
from psycopg_pool import ConnectionPool

from donorauth.adapters.repository.postgres import PostgresDonorStore
from donorauth.domain.identity import derive_password_hash, generate_salt
from donorauth.domain.ports import (
    AuditEntry,
    DonorRecord,
    InsertOutcome,
    LookupStatus,
    UpdateOutcome,
)

pytestmark = [pytest.mark.integration, pytest.mark.usefixtures("clean_database")]

TOKEN = "a" * 64
OTHER_TOKEN = "b" * 64


@pytest.fixture
def store(pool: ConnectionPool) -> PostgresDonorStore:
    """Create store instance for each test."""
    return PostgresDonorStore(pool)


def donor(token: str = TOKEN, email: str = "maria@example.it") -> DonorRecord:
    return DonorRecord(identity_token=token, donor_id="A1B2C", email=email)


class TestInsert:
    """Tests for insert method."""

    def test_created(self, store: PostgresDonorStore) -> None:
        assert store.insert(donor()) is InsertOutcome.CREATED

    def test_duplicate_identity_mapped_from_primary_key(
        self, store: PostgresDonorStore
    ) -> None:
        store.insert(donor())
        outcome = store.insert(donor(email="other@example.it"))
        assert outcome is InsertOutcome.DUPLICATE_IDENTITY

    def test_duplicate_email_mapped_from_unique_key(self, store: PostgresDonorStore) -> None:
        store.insert(donor())
        assert store.insert(donor(token=OTHER_TOKEN)) is InsertOutcome.DUPLICATE_EMAIL

    def test_concurrent_inserts_single_winner(self, pool: ConnectionPool) -> None:
        """The unique constraint arbitrates concurrent registrations."""

        def attempt(_: int) -> InsertOutcome:
            return PostgresDonorStore(pool).insert(donor())

        with ThreadPoolExecutor(max_workers=5) as executor:
            outcomes = list(executor.map(attempt, range(5)))

        assert outcomes.count(InsertOutcome.CREATED) == 1
        assert outcomes.count(InsertOutcome.DUPLICATE_IDENTITY) == 4


class TestLookup:
    """Tests for find_by_identity and find_by_email."""

    def test_round_trip_defaults(self, store: PostgresDonorStore) -> None:
        store.insert(donor())

        record = store.find_by_identity(TOKEN).record

        assert record.identity_token == TOKEN
        assert record.email_verified is False
        assert record.account_activated is False
        assert record.is_active is True
        assert record.has_password is False
        assert record.preferred_language == "it"
        assert record.created_at is not None

    def test_find_by_email(self, store: PostgresDonorStore) -> None:
        store.insert(donor())
        assert store.find_by_email("maria@example.it").record.identity_token == TOKEN

    def test_not_found(self, store: PostgresDonorStore) -> None:
        assert store.find_by_identity(TOKEN).status is LookupStatus.NOT_FOUND


class TestUpdate:
    """Tests for update method."""

    def test_sets_password_material(self, store: PostgresDonorStore) -> None:
        store.insert(donor())
        salt = generate_salt()
        digest = derive_password_hash("Valid123", salt)

        outcome = store.update(TOKEN, {"salt": salt, "password_hash": digest})

        assert outcome is UpdateOutcome.UPDATED
        record = store.find_by_identity(TOKEN).record
        assert record.salt == salt
        assert record.password_hash == digest

    def test_flags(self, store: PostgresDonorStore) -> None:
        store.insert(donor())

        store.update(TOKEN, {"email_verified": True, "account_activated": True})

        record = store.find_by_identity(TOKEN).record
        assert record.email_verified is True
        assert record.account_activated is True

    def test_unknown_donor(self, store: PostgresDonorStore) -> None:
        assert store.update(TOKEN, {"email_verified": True}) is UpdateOutcome.NOT_FOUND

    def test_rejects_unknown_columns(self, store: PostgresDonorStore) -> None:
        with pytest.raises(ValueError):
            store.update(TOKEN, {"donor_hash_id": OTHER_TOKEN})


class TestAuditLog:
    def test_append(self, store: PostgresDonorStore, pool: ConnectionPool) -> None:
        store.append_audit_log(
            AuditEntry(actor_id=TOKEN, action="registration", details="x", status="success")
        )

        with pool.connection() as conn, conn.cursor() as cursor:
            cursor.execute("SELECT user_id, user_type, action, status FROM audit_logs")
            rows = cursor.fetchall()

        assert rows == [(TOKEN, "donor", "registration", "success")]


class TestFailedLogins:
    def test_count_respects_window_and_identity(self, store: PostgresDonorStore) -> None:
        now = datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc)
        store.record_failed_login(TOKEN, now - timedelta(minutes=40))
        store.record_failed_login(TOKEN, now - timedelta(minutes=10))
        store.record_failed_login(TOKEN, now)
        store.record_failed_login(OTHER_TOKEN, now)

        assert store.count_failed_logins(TOKEN, now - timedelta(minutes=30)) == 2
        assert store.count_failed_logins(OTHER_TOKEN, now - timedelta(minutes=30)) == 1

    def test_clear_is_per_identity(self, store: PostgresDonorStore) -> None:
        now = datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc)
        store.record_failed_login(TOKEN, now)
        store.record_failed_login(OTHER_TOKEN, now)

        store.clear_failed_logins(TOKEN)

        since = now - timedelta(minutes=30)
        assert store.count_failed_logins(TOKEN, since) == 0
        assert store.count_failed_logins(OTHER_TOKEN, since) == 1
