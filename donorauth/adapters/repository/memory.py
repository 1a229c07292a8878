"""
In-memory repository adapter - Implements DonorStore and FailedLoginLog protocols.

Process-local store for development and tests. A single lock serializes
writes so the identity-token and email uniqueness rules hold under
concurrent registrations, mirroring the database constraints.
"""

import logging
import threading
from dataclasses import replace
from datetime import datetime
from typing import Any

from donorauth.domain.ports import (
    AuditEntry,
    DonorRecord,
    InsertOutcome,
    LookupResult,
    UpdateOutcome,
)

logger = logging.getLogger(__name__)


class InMemoryDonorStore:
    """
    Implements DonorStore protocol with dictionaries.

    Uses structural subtyping - no explicit inheritance from Protocol.
    Records are copied on the way in and out so callers never share state
    with the store.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._records: dict[str, DonorRecord] = {}
        self._emails: dict[str, str] = {}
        self.audit_log: list[AuditEntry] = []
        self._failed_logins: dict[str, list[datetime]] = {}

    def find_by_identity(self, identity_token: str) -> LookupResult:
        with self._lock:
            record = self._records.get(identity_token)
            if record is None:
                return LookupResult.not_found()
            return LookupResult.found(replace(record))

    def find_by_email(self, email: str) -> LookupResult:
        with self._lock:
            token = self._emails.get(email)
            if token is None:
                return LookupResult.not_found()
            return LookupResult.found(replace(self._records[token]))

    def insert(self, record: DonorRecord) -> InsertOutcome:
        with self._lock:
            if record.identity_token in self._records:
                return InsertOutcome.DUPLICATE_IDENTITY
            if record.email in self._emails:
                return InsertOutcome.DUPLICATE_EMAIL
            self._records[record.identity_token] = replace(record)
            self._emails[record.email] = record.identity_token
        return InsertOutcome.CREATED

    def update(self, identity_token: str, fields: dict[str, Any]) -> UpdateOutcome:
        with self._lock:
            record = self._records.get(identity_token)
            if record is None:
                return UpdateOutcome.NOT_FOUND
            self._records[identity_token] = replace(record, **fields)
        return UpdateOutcome.UPDATED

    def append_audit_log(self, entry: AuditEntry) -> None:
        with self._lock:
            self.audit_log.append(entry)

    def record_failed_login(self, identity_token: str, at: datetime) -> None:
        with self._lock:
            self._failed_logins.setdefault(identity_token, []).append(at)

    def count_failed_logins(self, identity_token: str, since: datetime) -> int:
        with self._lock:
            return sum(1 for at in self._failed_logins.get(identity_token, []) if at > since)

    def clear_failed_logins(self, identity_token: str) -> None:
        with self._lock:
            self._failed_logins.pop(identity_token, None)
