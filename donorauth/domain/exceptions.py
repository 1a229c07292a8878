"""
Domain exceptions - Semantic error types for donor identity and authentication.

This module defines domain-specific exceptions that communicate
business rule violations without leaking infrastructure details.

Every exception carries a ``user_message`` safe to show to the donor.
Security-sensitive failures (unknown donor, inactive donor, wrong password)
share one generic message so callers cannot enumerate accounts; the
concrete class is still available for logging and audit.
"""

AUTHENTICATION_FAILED = "Authentication failed"


class AuthError(Exception):
    """Base class for donor authentication domain errors."""

    user_message = "The request could not be completed"
    retryable = False


class InvalidAttributeError(AuthError, ValueError):
    """Empty or missing attribute supplied to identity or password hashing."""

    def __init__(self, fields: list[str]) -> None:
        self.fields = list(fields)
        super().__init__(f"Missing or empty attribute(s): {', '.join(self.fields)}")
        self.user_message = str(self)


class RegistrationInvalid(AuthError):
    """Registration submission is missing fields or has malformed values."""

    def __init__(self, errors: list[str]) -> None:
        self.errors = list(errors)
        super().__init__("; ".join(self.errors))
        self.user_message = str(self)


class DuplicateIdentity(AuthError):
    """A donor record already exists for the derived identity token."""

    user_message = (
        "A donor account already exists with these details. "
        "Please contact your donation center for assistance."
    )


class DuplicateEmail(AuthError):
    """The email address is already used by another donor record."""

    user_message = (
        "An account with this email address already exists. "
        "Please use a different email or contact your donation center."
    )


class DonorNotFound(AuthError):
    """No donor record matches the identity token."""

    user_message = AUTHENTICATION_FAILED


class DonorInactive(AuthError):
    """Donor record exists but has been deactivated."""

    user_message = AUTHENTICATION_FAILED


class InvalidCredentials(AuthError):
    """Password does not match the stored hash."""

    user_message = AUTHENTICATION_FAILED


class AccountLocked(AuthError):
    """Password login refused after too many recent failed attempts."""

    user_message = AUTHENTICATION_FAILED


class PasswordNotSet(AuthError):
    """Donor has no password material yet and must complete setup."""

    user_message = "No password has been set for this account. Please set up your password."


class PolicyViolation(AuthError):
    """Password does not satisfy the password policy."""

    def __init__(self, reasons: list[str]) -> None:
        self.reasons = list(reasons)
        super().__init__("; ".join(self.reasons))
        self.user_message = str(self)


class NotEligible(AuthError):
    """Verification lifecycle does not allow the requested action yet."""

    user_message = (
        "Your account is not ready for this action yet. "
        "Please complete email verification and wait for staff activation."
    )


class StoreUnavailable(AuthError):
    """External store unreachable or timed out. Safe to retry."""

    user_message = "The service is temporarily unavailable. Please try again shortly."
    retryable = True
