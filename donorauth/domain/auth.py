"""
Donor authentication domain service.

Orchestrates identity derivation, donor lookup, password setup and
verification, session issuance and audit logging. It is the only domain
component that talks to the external store.

Authentication order (never reordered, never skipped):
    1. derive identity token
    2. look up the donor record
    3. flag checks (is_active, verification lifecycle)
    4. failed-attempt lockout (password login only)
    5. credential comparison

Every authorization decision re-reads the donor record. Local caches
(sessions, credentials, remembered devices) are written here but never
trusted for authorization.

Audit entries are appended after the primary operation has committed.
Audit failures are logged at WARNING and never change the outcome.
"""

import logging
import re
from dataclasses import dataclass
from datetime import date, timedelta

from . import sessions as session_tokens
from .credentials import DONOR_ID_PATTERN, CredentialCache, CredentialEntry, parse_birth_date
from .device import DeviceRegistry
from .exceptions import (
    AccountLocked,
    DonorInactive,
    DonorNotFound,
    DuplicateEmail,
    DuplicateIdentity,
    InvalidCredentials,
    NotEligible,
    PasswordNotSet,
    PolicyViolation,
    RegistrationInvalid,
    StoreUnavailable,
)
from .identity import (
    DEFAULT_SALT_BYTES,
    DonorAttributes,
    derive_identity,
    derive_password_hash,
    generate_salt,
    hashes_match,
    short_token,
)
from .ports import (
    AuditEntry,
    Clock,
    DeviceInfo,
    DonorRecord,
    DonorStore,
    EmailSender,
    InsertOutcome,
    LookupStatus,
    UpdateOutcome,
    utc_now,
)
from .sessions import Session, SessionStore
from .throttle import LoginThrottle
from .verification import (
    VerificationService,
    VerificationStage,
    VerificationStatus,
    can_login,
    can_set_password,
    stage_of,
)

logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r"^[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}$")

# Device used when the caller supplies no device context.
_ANONYMOUS_DEVICE = DeviceInfo(fingerprint="unknown", display_info="Unknown Browser on Unknown")


@dataclass(frozen=True)
class PasswordPolicy:
    """Minimum length plus at least one lowercase, uppercase and digit."""

    min_length: int = 8

    def violations(self, password: str) -> list[str]:
        reasons: list[str] = []
        if len(password) < self.min_length:
            reasons.append(f"Password must be at least {self.min_length} characters long")
        if not re.search(r"[a-z]", password):
            reasons.append("Password must contain at least one lowercase letter")
        if not re.search(r"[A-Z]", password):
            reasons.append("Password must contain at least one uppercase letter")
        if not re.search(r"\d", password):
            reasons.append("Password must contain at least one number")
        return reasons


@dataclass(frozen=True)
class DonorSession:
    """Successful authentication: the issued session plus donor profile basics."""

    session: Session
    donor_id: str
    preferred_language: str
    preferred_communication_channel: str
    remembered_device: bool = False


@dataclass(frozen=True)
class DonorRecordRef:
    """Reference to a freshly registered donor."""

    identity_token: str
    donor_id: str
    email: str
    stage: VerificationStage


@dataclass
class AuthService:
    """
    Domain service for donor authentication.

    The store and email sender are shared infrastructure. The session
    store, credential cache and device registry belong to the calling
    client and are optional: without them the service still authenticates
    but persists nothing client-side.
    """

    store: DonorStore
    email_sender: EmailSender | None = None
    session_store: SessionStore | None = None
    credential_cache: CredentialCache | None = None
    device_registry: DeviceRegistry | None = None
    clock: Clock = utc_now
    session_lifetime: timedelta = session_tokens.DEFAULT_LIFETIME
    password_policy: PasswordPolicy = PasswordPolicy()
    salt_bytes: int = DEFAULT_SALT_BYTES
    minimum_age: int = 18
    throttle: LoginThrottle | None = None

    # -- registration -----------------------------------------------------

    def register(
        self, attributes: DonorAttributes, donor_id: str, email: str
    ) -> DonorRecordRef:
        """
        Register a new donor in PENDING_EMAIL_VERIFICATION.

        Args:
            attributes: Personal attributes the identity token is derived from
            donor_id: Donor-assigned ID (exactly 5 alphanumerics)
            email: Contact email (normalized: stripped + lowercased)

        Returns:
            Reference to the created record

        Raises:
            RegistrationInvalid: Missing or malformed fields (all listed)
            DuplicateIdentity: A record already exists for the identity token
            DuplicateEmail: The email is already in use
            StoreUnavailable: Store unreachable; safe to retry
        """
        normalized_email = self._normalize_email(email)
        errors = self._registration_errors(attributes, donor_id, normalized_email)
        if errors:
            raise RegistrationInvalid(errors)

        identity_token = derive_identity(attributes)

        existing = self.store.find_by_identity(identity_token)
        self._raise_if_unavailable(existing.status, existing.cause)
        if existing.status is LookupStatus.FOUND:
            logger.info("Registration rejected, identity exists: %s", short_token(identity_token))
            raise DuplicateIdentity(identity_token)

        by_email = self.store.find_by_email(normalized_email)
        self._raise_if_unavailable(by_email.status, by_email.cause)
        if by_email.status is LookupStatus.FOUND:
            logger.info("Registration rejected, email in use")
            raise DuplicateEmail(normalized_email)

        record = DonorRecord(
            identity_token=identity_token,
            donor_id=donor_id,
            email=normalized_email,
            email_verified=False,
            account_activated=False,
            is_active=True,
            donation_center=(
                attributes.center_or_donor_id
                if attributes.center_or_donor_id != donor_id
                else None
            ),
            created_at=self.clock(),
        )

        # The unique constraints decide concurrent registrations.
        outcome = self.store.insert(record)
        if outcome is InsertOutcome.DUPLICATE_IDENTITY:
            raise DuplicateIdentity(identity_token)
        if outcome is InsertOutcome.DUPLICATE_EMAIL:
            raise DuplicateEmail(normalized_email)
        if outcome is InsertOutcome.UNAVAILABLE:
            raise StoreUnavailable("insert")

        logger.info("Donor registered: %s", short_token(identity_token))
        self._audit(
            identity_token,
            "registration",
            "New donor registration submitted for verification",
            "success",
        )
        self._send_registration_notice(normalized_email, donor_id)

        if self.credential_cache is not None:
            self.credential_cache.store(
                CredentialEntry(
                    first_name=attributes.first_name,
                    last_name=attributes.last_name,
                    date_of_birth=attributes.date_of_birth,
                    donor_id=donor_id,
                    email=normalized_email,
                    donation_center=record.donation_center,
                )
            )

        return DonorRecordRef(
            identity_token=identity_token,
            donor_id=donor_id,
            email=normalized_email,
            stage=stage_of(record),
        )

    # -- authentication ---------------------------------------------------

    def authenticate_by_identity(self, attributes: DonorAttributes) -> DonorSession:
        """
        Authenticate with personal attributes alone.

        The derived token is the credential; password material is not read.

        Raises:
            InvalidAttributeError: Blank attribute
            DonorNotFound, DonorInactive, NotEligible, StoreUnavailable
        """
        identity_token = derive_identity(attributes)
        record = self._require_record(identity_token, action="login_identity")

        if not record.is_active:
            self._reject(identity_token, "login_identity", DonorInactive(identity_token))
        if not can_login(record):
            self._reject(identity_token, "login_identity", NotEligible(identity_token))

        return self._start_session(record, "login_identity", remember_device=False)

    def authenticate_by_password(self, identity_token: str, password: str) -> DonorSession:
        """
        Authenticate with identity token and password.

        Raises:
            DonorNotFound: Unknown identity (same caller message as a bad password)
            DonorInactive: Record deactivated
            PasswordNotSet: No password material; route to setup
            NotEligible: Verification lifecycle incomplete
            AccountLocked: Too many recent failures (same caller message as a bad password)
            InvalidCredentials: Password mismatch
            StoreUnavailable: Store unreachable; safe to retry
        """
        record = self._require_record(identity_token, action="login_password")

        if not record.is_active:
            self._reject(identity_token, "login_password", DonorInactive(identity_token))
        if not record.has_password:
            raise PasswordNotSet(identity_token)
        if not can_login(record):
            self._reject(identity_token, "login_password", NotEligible(identity_token))

        if self.throttle is not None and self.throttle.is_locked(identity_token):
            self._reject(identity_token, "login_password", AccountLocked(identity_token))

        candidate = derive_password_hash(password, record.salt)
        if not hashes_match(record.password_hash, candidate):
            if self.throttle is not None:
                self.throttle.record_failure(identity_token)
            self._reject(identity_token, "login_password", InvalidCredentials(identity_token))

        if self.throttle is not None:
            self.throttle.reset(identity_token)
        return self._start_session(record, "login_password", remember_device=True)

    # -- password setup ---------------------------------------------------

    def set_password(self, identity_token: str, password: str) -> None:
        """
        Create or replace the donor's password.

        Raises:
            PolicyViolation: Every broken policy rule is listed
            DonorNotFound, DonorInactive, StoreUnavailable
            NotEligible: Email not verified yet, or account already activated
        """
        reasons = self.password_policy.violations(password)
        if reasons:
            raise PolicyViolation(reasons)

        record = self._require_record(identity_token, action="password_set")
        if not record.is_active:
            raise DonorInactive(identity_token)
        if not can_set_password(record):
            logger.info(
                "Password setup refused for %s at stage %s",
                short_token(identity_token),
                stage_of(record).value,
            )
            raise NotEligible(identity_token)

        salt = generate_salt(self.salt_bytes)
        outcome = self.store.update(
            identity_token,
            {"salt": salt, "password_hash": derive_password_hash(password, salt)},
        )
        if outcome is UpdateOutcome.UNAVAILABLE:
            raise StoreUnavailable("update")
        if outcome is UpdateOutcome.NOT_FOUND:
            raise DonorNotFound(identity_token)

        logger.info("Password set for %s", short_token(identity_token))
        self._audit(identity_token, "password_set", "Donor password created", "success")

    # -- status and sessions ----------------------------------------------

    def verification_status(self, identity_token: str) -> VerificationStatus:
        return VerificationService(self.store).check(identity_token)

    def verification_status_from_cache(self) -> VerificationStatus:
        if self.credential_cache is None:
            return VerificationStatus.failed("No registration credentials found")
        return VerificationService(self.store).check_cached(self.credential_cache)

    def current_session(self) -> Session | None:
        if self.session_store is None:
            return None
        return self.session_store.get()

    def logout(self, session: Session | None = None) -> None:
        """
        End the session on this client. Logging out twice is not an error.

        Clears the stored session, the cached registration credentials and
        the remembered-device marker.
        """
        if self.session_store is not None:
            self.session_store.clear()
        if self.credential_cache is not None:
            self.credential_cache.clear()
        if self.device_registry is not None:
            self.device_registry.forget()

        if session is not None:
            logger.info("Donor logged out: %s", short_token(session.donor_identity))
            self._audit(session.donor_identity, "logout", "Donor logged out", "success")

    # -- internals --------------------------------------------------------

    def _require_record(self, identity_token: str, action: str) -> DonorRecord:
        result = self.store.find_by_identity(identity_token)
        self._raise_if_unavailable(result.status, result.cause)
        if result.status is LookupStatus.NOT_FOUND:
            self._reject(identity_token, action, DonorNotFound(identity_token))
        return result.record

    def _start_session(
        self, record: DonorRecord, action: str, remember_device: bool
    ) -> DonorSession:
        device = self._device()
        session = session_tokens.issue(
            record.identity_token, device, self.clock(), self.session_lifetime
        )
        remembered = False
        if self.device_registry is not None:
            remembered = self.device_registry.is_remembered(record.identity_token)
            if remember_device:
                self.device_registry.remember(record.identity_token, session.expires_at)
        if self.session_store is not None:
            self.session_store.put(session)

        logger.info(
            "Donor authenticated: %s via %s on %s",
            short_token(record.identity_token),
            action,
            device.display_info,
        )
        self._audit(
            record.identity_token,
            action,
            f"Donor login from {device.display_info}",
            "success",
        )
        return DonorSession(
            session=session,
            donor_id=record.donor_id,
            preferred_language=record.preferred_language,
            preferred_communication_channel=record.preferred_communication_channel,
            remembered_device=remembered,
        )

    def _device(self) -> DeviceInfo:
        if self.device_registry is None:
            return _ANONYMOUS_DEVICE
        return self.device_registry.device

    def _reject(self, identity_token: str, action: str, error: Exception) -> None:
        logger.info(
            "Authentication rejected for %s: %s",
            short_token(identity_token),
            type(error).__name__,
        )
        self._audit(identity_token, action, type(error).__name__, "failure")
        raise error

    def _raise_if_unavailable(self, status: LookupStatus, cause: str | None) -> None:
        if status is LookupStatus.UNAVAILABLE:
            logger.error("Donor store unavailable: %s", cause)
            raise StoreUnavailable(cause or "lookup")

    def _audit(self, actor_id: str, action: str, details: str, status: str) -> None:
        entry = AuditEntry(actor_id=actor_id, action=action, details=details, status=status)
        try:
            self.store.append_audit_log(entry)
        except Exception as e:
            logger.warning("Failed to create audit log (non-critical): %s", e)

    def _send_registration_notice(self, email: str, donor_id: str) -> None:
        if self.email_sender is None:
            return
        try:
            self.email_sender.send_registration_notice(email, donor_id)
        except Exception as e:
            logger.warning("Failed to send registration notice: %s", e)

    def _registration_errors(
        self, attributes: DonorAttributes, donor_id: str, email: str
    ) -> list[str]:
        errors: list[str] = []
        if not (attributes.first_name or "").strip():
            errors.append("First name is required")
        if not (attributes.last_name or "").strip():
            errors.append("Last name is required")

        if not attributes.date_of_birth:
            errors.append("Date of birth is required")
        else:
            try:
                birth_date = parse_birth_date(attributes.date_of_birth)
            except ValueError:
                errors.append("Invalid date of birth format")
            else:
                if self._age_on(birth_date, self.clock().date()) < self.minimum_age:
                    errors.append(
                        f"You must be at least {self.minimum_age} years old to register"
                    )

        if not (attributes.center_or_donor_id or "").strip():
            errors.append("Donation center or donor ID is required")

        if not (donor_id or "").strip():
            errors.append("Donor ID is required")
        elif not DONOR_ID_PATTERN.match(donor_id):
            errors.append("Donor ID must be exactly 5 alphanumeric characters")

        if not email:
            errors.append("Email address is required")
        elif not EMAIL_PATTERN.match(email):
            errors.append("Please enter a valid email address")
        return errors

    @staticmethod
    def _age_on(birth_date: date, today: date) -> int:
        years = today.year - birth_date.year
        if (today.month, today.day) < (birth_date.month, birth_date.day):
            years -= 1
        return years

    @staticmethod
    def _normalize_email(email: str) -> str:
        """Applies: strip whitespace + lowercase."""
        return (email or "").strip().lower()
