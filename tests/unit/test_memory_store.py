"""
Unit tests for InMemoryDonorStore adapter.

Tests verify the in-memory store honors the DonorStore contract,
including uniqueness under concurrent inserts.
"""

from concurrent.futures import ThreadPoolExecutor
from datetime import timedelta

from donorauth.adapters.repository.memory import InMemoryDonorStore
from donorauth.domain.ports import (
    AuditEntry,
    DonorRecord,
    InsertOutcome,
    LookupStatus,
    UpdateOutcome,
)

TOKEN = "a" * 64


def donor(token: str = TOKEN, email: str = "m@x.it") -> DonorRecord:
    return DonorRecord(identity_token=token, donor_id="A1B2C", email=email)


class TestLookup:
    def test_not_found(self, store: InMemoryDonorStore) -> None:
        assert store.find_by_identity(TOKEN).status is LookupStatus.NOT_FOUND
        assert store.find_by_email("m@x.it").status is LookupStatus.NOT_FOUND

    def test_found_by_identity_and_email(self, store: InMemoryDonorStore) -> None:
        store.insert(donor())

        assert store.find_by_identity(TOKEN).record.email == "m@x.it"
        assert store.find_by_email("m@x.it").record.identity_token == TOKEN

    def test_returned_record_is_a_copy(self, store: InMemoryDonorStore) -> None:
        store.insert(donor())

        store.find_by_identity(TOKEN).record.email_verified = True

        assert store.find_by_identity(TOKEN).record.email_verified is False


class TestInsert:
    def test_created(self, store: InMemoryDonorStore) -> None:
        assert store.insert(donor()) is InsertOutcome.CREATED

    def test_duplicate_identity(self, store: InMemoryDonorStore) -> None:
        store.insert(donor())
        assert store.insert(donor(email="other@x.it")) is InsertOutcome.DUPLICATE_IDENTITY

    def test_duplicate_email(self, store: InMemoryDonorStore) -> None:
        store.insert(donor())
        assert store.insert(donor(token="b" * 64)) is InsertOutcome.DUPLICATE_EMAIL

    def test_concurrent_inserts_single_winner(self, store: InMemoryDonorStore) -> None:
        with ThreadPoolExecutor(max_workers=10) as executor:
            outcomes = list(executor.map(lambda _: store.insert(donor()), range(10)))

        assert outcomes.count(InsertOutcome.CREATED) == 1
        assert outcomes.count(InsertOutcome.DUPLICATE_IDENTITY) == 9


class TestUpdate:
    def test_updates_fields(self, store: InMemoryDonorStore) -> None:
        store.insert(donor())

        assert store.update(TOKEN, {"email_verified": True}) is UpdateOutcome.UPDATED
        assert store.find_by_identity(TOKEN).record.email_verified is True

    def test_unknown_donor(self, store: InMemoryDonorStore) -> None:
        assert store.update(TOKEN, {"email_verified": True}) is UpdateOutcome.NOT_FOUND


class TestAuditLog:
    def test_appends(self, store: InMemoryDonorStore) -> None:
        entry = AuditEntry(actor_id=TOKEN, action="logout", details="", status="success")
        store.append_audit_log(entry)
        assert store.audit_log == [entry]


class TestFailedLogins:
    def test_counts_only_after_since(self, store: InMemoryDonorStore, clock) -> None:
        store.record_failed_login(TOKEN, clock())
        clock.advance(minutes=5)
        store.record_failed_login(TOKEN, clock())

        assert store.count_failed_logins(TOKEN, since=clock() - timedelta(minutes=1)) == 1
        assert store.count_failed_logins(TOKEN, since=clock() - timedelta(hours=1)) == 2

    def test_clear_is_per_identity(self, store: InMemoryDonorStore, clock) -> None:
        store.record_failed_login(TOKEN, clock())
        store.record_failed_login("b" * 64, clock())

        store.clear_failed_logins(TOKEN)
        store.clear_failed_logins(TOKEN)

        since = clock() - timedelta(hours=1)
        assert store.count_failed_logins(TOKEN, since) == 0
        assert store.count_failed_logins("b" * 64, since) == 1
