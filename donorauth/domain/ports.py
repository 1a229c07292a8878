"""
Port interfaces - Protocol definitions for infrastructure abstraction.

This module defines the interfaces (ports) that the domain requires
from infrastructure, plus the typed values that cross them. Adapters
implement these protocols.
"""

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, Protocol

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    """Default clock: timezone-aware UTC now."""
    return datetime.now(timezone.utc)


def parse_timestamp(value: str) -> datetime:
    """Parse an ISO-8601 timestamp read back from storage. Naive values are rejected."""
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        raise ValueError(f"Timestamp without timezone: {value!r}")
    return parsed


@dataclass
class DonorRecord:
    """
    Donor row as held by the external store.

    The core consumes this record but never owns it: flags are flipped by
    the email verification step and by staff, and are re-read on every
    authorization decision.
    """

    identity_token: str
    donor_id: str
    email: str
    email_verified: bool = False
    account_activated: bool = False
    is_active: bool = True
    password_hash: str | None = None
    salt: str | None = None
    donation_center: str | None = None
    preferred_language: str = "it"
    preferred_communication_channel: str = "email"
    total_donations_this_year: int = 0
    last_donation_date: date | None = None
    created_at: datetime | None = None

    @property
    def has_password(self) -> bool:
        return bool(self.password_hash) and bool(self.salt)


@dataclass(frozen=True)
class AuditEntry:
    """Audit trail row. Written best-effort after the primary operation."""

    actor_id: str
    action: str
    details: str
    status: str
    actor_type: str = "donor"


class LookupStatus(Enum):
    """Outcome of a store lookup."""

    FOUND = "found"
    NOT_FOUND = "not_found"
    UNAVAILABLE = "unavailable"


@dataclass(frozen=True)
class LookupResult:
    """Typed lookup result: FOUND carries the record, UNAVAILABLE a cause."""

    status: LookupStatus
    record: DonorRecord | None = None
    cause: str | None = None

    @classmethod
    def found(cls, record: DonorRecord) -> "LookupResult":
        return cls(LookupStatus.FOUND, record=record)

    @classmethod
    def not_found(cls) -> "LookupResult":
        return cls(LookupStatus.NOT_FOUND)

    @classmethod
    def unavailable(cls, cause: str) -> "LookupResult":
        return cls(LookupStatus.UNAVAILABLE, cause=cause)


class InsertOutcome(Enum):
    """Result of inserting a donor record."""

    CREATED = "created"
    DUPLICATE_IDENTITY = "duplicate_identity"
    DUPLICATE_EMAIL = "duplicate_email"
    UNAVAILABLE = "unavailable"


class UpdateOutcome(Enum):
    """Result of updating a donor record."""

    UPDATED = "updated"
    NOT_FOUND = "not_found"
    UNAVAILABLE = "unavailable"


class DonorStore(Protocol):
    """Port interface for the external donor store."""

    def find_by_identity(self, identity_token: str) -> LookupResult:
        """
        Fetch the donor record keyed by its identity token.

        Timeouts and connection failures must return UNAVAILABLE,
        never NOT_FOUND.
        """
        ...

    def find_by_email(self, email: str) -> LookupResult:
        """Fetch the donor record owning an email address."""
        ...

    def insert(self, record: DonorRecord) -> InsertOutcome:
        """
        Insert a new donor record.

        The store enforces uniqueness on identity token and on email; a
        violation is reported as DUPLICATE_IDENTITY / DUPLICATE_EMAIL so
        that concurrent registrations cannot both succeed.
        """
        ...

    def update(self, identity_token: str, fields: dict[str, Any]) -> UpdateOutcome:
        """Apply column updates to the donor record for the identity token."""
        ...

    def append_audit_log(self, entry: AuditEntry) -> None:
        """Append an audit entry. May raise; callers treat it as best-effort."""
        ...


class FailedLoginLog(Protocol):
    """
    Port interface for failed password attempts, kept per identity token.

    Reads that cannot reach the backing store return None so the caller
    can refuse rather than guess; writes that fail are logged by the
    adapter and dropped.
    """

    def record_failed_login(self, identity_token: str, at: datetime) -> None: ...

    def count_failed_logins(self, identity_token: str, since: datetime) -> int | None: ...

    def clear_failed_logins(self, identity_token: str) -> None: ...


class LocalStorage(Protocol):
    """Port interface for client-side persistence (cookie-equivalent)."""

    def set_item(self, name: str, value: str, ttl_seconds: int) -> None: ...

    def get_item(self, name: str) -> str | None: ...

    def remove_item(self, name: str) -> None: ...


class EmailSender(Protocol):
    """Port interface for email delivery."""

    def send_registration_notice(self, email: str, donor_id: str) -> None:
        """
        Notify a donor that the registration was received.

        Args:
            email: Recipient email address
            donor_id: Donor-assigned ID quoted in the message
        """
        ...


@dataclass(frozen=True)
class DeviceSignals:
    """Environment signals describing the requesting browser/device."""

    user_agent: str = ""
    screen_resolution: str = ""
    timezone: str = ""
    language: str = ""
    platform: str = ""

    def components(self) -> list[str]:
        return [
            self.user_agent,
            self.screen_resolution,
            self.timezone,
            self.language,
            self.platform,
        ]


@dataclass(frozen=True)
class DeviceInfo:
    """Derived device descriptor. Non-secret."""

    fingerprint: str
    display_info: str
    signals: DeviceSignals = field(default_factory=DeviceSignals)
