"""
Verification lifecycle - donor state machine derived from stored flags.

States
======

- UNREGISTERED: no donor record for the identity token
- PENDING_EMAIL_VERIFICATION: record created at registration
- EMAIL_VERIFIED: email confirmed, waiting for staff activation
- ACTIVATED: staff activated the account

Transitions (all driven by external events, read fresh on every check):
    UNREGISTERED -> PENDING_EMAIL_VERIFICATION   (registration)
    PENDING_EMAIL_VERIFICATION -> EMAIL_VERIFIED (email_verified set)
    EMAIL_VERIFIED -> ACTIVATED                  (account_activated set)

Password setup is allowed as soon as the email is verified, before staff
activation. Login additionally requires activation and an active record.
The stage is never cached between calls.
"""

import logging
from dataclasses import dataclass
from enum import Enum

from .credentials import CredentialCache
from .exceptions import InvalidAttributeError
from .identity import derive_identity, short_token
from .ports import DonorRecord, DonorStore, LookupStatus

logger = logging.getLogger(__name__)

NOT_VERIFIED_MESSAGE = (
    "Staff will notify you by email after 45 days regarding your verification status. "
    "Once you are verified you will be able to set up your password."
)
NEEDS_SETUP_MESSAGE = (
    "Your account is verified! Please set up your password to complete the registration process."
)
READY_MESSAGE = "Your account is verified and ready to use."


class VerificationStage(str, Enum):
    """Donor lifecycle stages, in forward order."""

    UNREGISTERED = "UNREGISTERED"
    PENDING_EMAIL_VERIFICATION = "PENDING_EMAIL_VERIFICATION"
    EMAIL_VERIFIED = "EMAIL_VERIFIED"
    ACTIVATED = "ACTIVATED"


@dataclass(frozen=True)
class VerificationStatus:
    is_verified: bool
    needs_password_setup: bool
    is_fully_activated: bool = False
    stage: VerificationStage = VerificationStage.UNREGISTERED
    donor_id: str | None = None
    error: str | None = None

    @classmethod
    def failed(cls, error: str) -> "VerificationStatus":
        return cls(is_verified=False, needs_password_setup=False, error=error)


def stage_of(record: DonorRecord | None) -> VerificationStage:
    if record is None:
        return VerificationStage.UNREGISTERED
    if record.email_verified and record.account_activated:
        return VerificationStage.ACTIVATED
    if record.email_verified:
        return VerificationStage.EMAIL_VERIFIED
    return VerificationStage.PENDING_EMAIL_VERIFICATION


def can_set_password(record: DonorRecord) -> bool:
    return record.email_verified and not record.account_activated


def can_login(record: DonorRecord) -> bool:
    return record.email_verified and record.account_activated and record.is_active


def status_from_record(record: DonorRecord) -> VerificationStatus:
    fully_activated = record.account_activated and record.is_active
    return VerificationStatus(
        is_verified=record.email_verified,
        needs_password_setup=record.email_verified and not fully_activated,
        is_fully_activated=fully_activated,
        stage=stage_of(record),
        donor_id=record.donor_id,
    )


def status_message(status: VerificationStatus) -> str:
    """Donor-facing explanation, by priority: error, not verified, needs setup, ready."""
    if status.error:
        return f"Error: {status.error}"
    if not status.is_verified:
        return NOT_VERIFIED_MESSAGE
    if status.needs_password_setup:
        return NEEDS_SETUP_MESSAGE
    return READY_MESSAGE


def should_redirect_to_password_setup(status: VerificationStatus) -> tuple[bool, str]:
    if status.error:
        return False, status.error
    if status.is_verified and status.needs_password_setup:
        return True, "Donor is verified and needs password setup"
    if status.is_verified:
        return False, "Already set up"
    return False, "Not verified yet"


class VerificationService:
    """Computes verification status by re-reading the donor record."""

    def __init__(self, store: DonorStore) -> None:
        self._store = store

    def check(self, identity_token: str) -> VerificationStatus:
        """
        Verification status for an identity token.

        Lookup failures never read as "ready": they produce an unverified
        status with an explicit error.
        """
        result = self._store.find_by_identity(identity_token)
        if result.status is LookupStatus.UNAVAILABLE:
            logger.error(
                "Verification status lookup failed for %s: %s",
                short_token(identity_token),
                result.cause,
            )
            return VerificationStatus.failed("Failed to check verification status")
        if result.status is LookupStatus.NOT_FOUND:
            return VerificationStatus.failed("Donor not found")
        return status_from_record(result.record)

    def check_cached(self, credential_cache: CredentialCache) -> VerificationStatus:
        """Verification status for the donor whose credentials are cached locally."""
        entry = credential_cache.read()
        if entry is None:
            return VerificationStatus.failed("No registration credentials found")
        try:
            identity_token = derive_identity(entry.attributes())
        except InvalidAttributeError:
            return VerificationStatus.failed("Incomplete registration credentials")
        return self.check(identity_token)
