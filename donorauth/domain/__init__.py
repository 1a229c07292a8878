"""
Domain layer - Pure business logic with zero framework imports.

This package contains the donor identity and authentication core: identity
derivation, credential and session caches, device fingerprinting, the
verification lifecycle and the authentication service. It defines its own
port interfaces for infrastructure abstraction.
"""

from .auth import AuthService, DonorRecordRef, DonorSession, PasswordPolicy
from .credentials import CredentialCache, CredentialEntry, CredentialValidation
from .device import DeviceRegistry
from .exceptions import (
    AccountLocked,
    AuthError,
    DonorInactive,
    DonorNotFound,
    DuplicateEmail,
    DuplicateIdentity,
    InvalidAttributeError,
    InvalidCredentials,
    NotEligible,
    PasswordNotSet,
    PolicyViolation,
    RegistrationInvalid,
    StoreUnavailable,
)
from .identity import DonorAttributes, derive_identity, derive_password_hash, generate_salt
from .ports import (
    AuditEntry,
    DeviceInfo,
    DeviceSignals,
    DonorRecord,
    DonorStore,
    EmailSender,
    FailedLoginLog,
    InsertOutcome,
    LocalStorage,
    LookupResult,
    LookupStatus,
    UpdateOutcome,
)
from .sessions import Session, SessionStore
from .throttle import LoginThrottle
from .verification import VerificationService, VerificationStage, VerificationStatus

__all__ = [
    "AccountLocked",
    "AuditEntry",
    "AuthError",
    "AuthService",
    "CredentialCache",
    "CredentialEntry",
    "CredentialValidation",
    "DeviceInfo",
    "DeviceRegistry",
    "DeviceSignals",
    "DonorAttributes",
    "DonorInactive",
    "DonorNotFound",
    "DonorRecord",
    "DonorRecordRef",
    "DonorSession",
    "DonorStore",
    "DuplicateEmail",
    "DuplicateIdentity",
    "EmailSender",
    "FailedLoginLog",
    "InsertOutcome",
    "InvalidAttributeError",
    "InvalidCredentials",
    "LocalStorage",
    "LookupResult",
    "LoginThrottle",
    "LookupStatus",
    "NotEligible",
    "PasswordNotSet",
    "PasswordPolicy",
    "PolicyViolation",
    "RegistrationInvalid",
    "Session",
    "SessionStore",
    "StoreUnavailable",
    "UpdateOutcome",
    "VerificationService",
    "VerificationStage",
    "VerificationStatus",
    "derive_identity",
    "derive_password_hash",
    "generate_salt",
]
