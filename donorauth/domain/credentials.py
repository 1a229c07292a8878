"""
Credential cache - short-lived client-side copy of registration attributes.

Bridges registration -> email verification -> password setup without
asking the donor to re-enter personal data. Entries live for a fixed TTL
(7 days by default) measured from the original registration timestamp;
updates never extend it.

The cache is a convenience only. It is never consulted for authorization
decisions, and any storage or decoding failure is logged and treated as
"no entry".
"""

import json
import logging
import re
from dataclasses import asdict, dataclass, field, replace
from datetime import date, datetime, timezone

from .identity import DonorAttributes
from .ports import Clock, LocalStorage, utc_now

logger = logging.getLogger(__name__)

CREDENTIALS_ITEM_NAME = "vitalita_donor_credentials"
DEFAULT_TTL_SECONDS = 7 * 24 * 60 * 60

DONOR_ID_PATTERN = re.compile(r"^[A-Za-z0-9]{5}$")
# Only the extended form; date.fromisoformat alone also takes 19900501 and week dates.
BIRTH_DATE_PATTERN = re.compile(r"^[0-9]{4}-[0-9]{2}-[0-9]{2}$")

# Anything a tampered or truncated entry can raise while being decoded.
_UNREADABLE_ENTRY = (ValueError, KeyError, TypeError, AttributeError, OverflowError, OSError)


def parse_birth_date(value: str) -> date:
    """Parse a YYYY-MM-DD date of birth. Raises ValueError for any other form."""
    if not BIRTH_DATE_PATTERN.match(value):
        raise ValueError(f"Date of birth must be YYYY-MM-DD: {value!r}")
    return date.fromisoformat(value)


def _text(data: dict, key: str) -> str:
    value = data[key]
    if not isinstance(value, str):
        raise ValueError(f"{key} is not a string")
    return value


def _optional_text(data: dict, key: str) -> str | None:
    value = data.get(key)
    if value is not None and not isinstance(value, str):
        raise ValueError(f"{key} is not a string")
    return value


@dataclass(frozen=True)
class CredentialEntry:
    """Registration attributes cached for the follow-up steps."""

    first_name: str
    last_name: str
    date_of_birth: str
    donor_id: str
    email: str | None = None
    # Set only when the identity was derived from the donation center
    # rather than from the donor ID.
    donation_center: str | None = None
    created_at: datetime | None = None

    def attributes(self) -> DonorAttributes:
        return DonorAttributes(
            first_name=self.first_name,
            last_name=self.last_name,
            date_of_birth=self.date_of_birth,
            center_or_donor_id=self.donation_center or self.donor_id,
        )

    def is_complete(self) -> bool:
        return all((self.first_name, self.last_name, self.date_of_birth, self.donor_id))

    def to_json(self) -> str:
        data = asdict(self)
        data["created_at"] = (
            int(self.created_at.timestamp() * 1000) if self.created_at else None
        )
        return json.dumps(data)

    @classmethod
    def from_json(cls, raw: str) -> "CredentialEntry":
        data = json.loads(raw)
        if not isinstance(data, dict):
            raise ValueError("Credentials entry is not a JSON object")
        created_ms = data.get("created_at")
        if created_ms is not None and (
            isinstance(created_ms, bool) or not isinstance(created_ms, (int, float))
        ):
            raise ValueError("created_at is not a millisecond timestamp")
        return cls(
            first_name=_text(data, "first_name"),
            last_name=_text(data, "last_name"),
            date_of_birth=_text(data, "date_of_birth"),
            donor_id=_text(data, "donor_id"),
            email=_optional_text(data, "email"),
            donation_center=_optional_text(data, "donation_center"),
            created_at=(
                datetime.fromtimestamp(created_ms / 1000, tz=timezone.utc)
                if created_ms is not None
                else None
            ),
        )


@dataclass(frozen=True)
class CredentialValidation:
    valid: bool
    errors: list[str] = field(default_factory=list)


def validate_credentials(entry: CredentialEntry) -> CredentialValidation:
    """
    Check required fields and the donor ID format.

    Every violation is collected, not just the first one.
    """
    errors: list[str] = []

    if not (entry.first_name or "").strip():
        errors.append("First name is required")
    if not (entry.last_name or "").strip():
        errors.append("Last name is required")

    if not entry.date_of_birth:
        errors.append("Date of birth is required")
    else:
        try:
            parse_birth_date(entry.date_of_birth)
        except ValueError:
            errors.append("Invalid date of birth format")

    if not (entry.donor_id or "").strip():
        errors.append("Donor ID is required")
    elif not DONOR_ID_PATTERN.match(entry.donor_id):
        errors.append("Donor ID must be exactly 5 alphanumeric characters")

    return CredentialValidation(valid=not errors, errors=errors)


class CredentialCache:
    """
    Expiring registration-credential cache over a LocalStorage port.

    One instance belongs to one client context (one donor's browser).
    """

    def __init__(
        self,
        storage: LocalStorage,
        ttl_seconds: int = DEFAULT_TTL_SECONDS,
        clock: Clock = utc_now,
    ) -> None:
        self._storage = storage
        self._ttl_seconds = ttl_seconds
        self._clock = clock

    def store(self, entry: CredentialEntry) -> None:
        """Persist the entry stamped with the current time, replacing any prior entry."""
        self._persist(replace(entry, created_at=self._clock()), self._ttl_seconds)
        logger.info("Donor credentials stored")

    def read(self) -> CredentialEntry | None:
        """Return the cached entry, or None when absent, unreadable or expired."""
        try:
            raw = self._storage.get_item(CREDENTIALS_ITEM_NAME)
        except Exception:
            logger.exception("Failed to read donor credentials")
            return None
        if raw is None:
            return None

        try:
            entry = CredentialEntry.from_json(raw)
        except _UNREADABLE_ENTRY:
            logger.warning("Discarding unreadable donor credentials entry")
            self.clear()
            return None

        if entry.created_at is not None and self._age_seconds(entry) > self._ttl_seconds:
            logger.info("Donor credentials entry has expired")
            self.clear()
            return None
        return entry

    def update(self, **changes: str | None) -> bool:
        """
        Merge changes into the existing entry.

        The original creation time is preserved, so the entry expires when
        it would have anyway.

        Returns:
            False if there is no live entry to update
        """
        existing = self.read()
        if existing is None:
            return False
        changes.pop("created_at", None)
        updated = replace(existing, **changes)
        remaining = self._ttl_seconds
        if existing.created_at is not None:
            remaining = max(1, int(self._ttl_seconds - self._age_seconds(existing)))
        return self._persist(updated, remaining)

    def clear(self) -> None:
        try:
            self._storage.remove_item(CREDENTIALS_ITEM_NAME)
        except Exception:
            logger.exception("Failed to clear donor credentials")

    def validate(self, entry: CredentialEntry) -> CredentialValidation:
        return validate_credentials(entry)

    def has_valid(self) -> bool:
        entry = self.read()
        return entry is not None and entry.is_complete()

    def for_password_setup(self) -> CredentialEntry | None:
        """The cached entry, only if it carries every field the identity needs."""
        entry = self.read()
        if entry is None:
            return None
        if not entry.is_complete():
            logger.info("Incomplete credentials for password setup")
            return None
        return entry

    def _age_seconds(self, entry: CredentialEntry) -> float:
        return (self._clock() - entry.created_at).total_seconds()

    def _persist(self, entry: CredentialEntry, ttl_seconds: int) -> bool:
        try:
            self._storage.set_item(CREDENTIALS_ITEM_NAME, entry.to_json(), ttl_seconds)
        except Exception:
            logger.exception("Failed to store donor credentials")
            return False
        return True
