"""
API request and response models.

Pydantic models for FastAPI endpoint validation and OpenAPI schema generation.
Registration fields are deliberately permissive strings: missing or
malformed values are reported together by the domain layer.
"""

from datetime import datetime

from pydantic import BaseModel, Field

from donorauth.domain.verification import VerificationStage

IDENTITY_TOKEN_PATTERN = r"^[0-9a-f]{64}$"


class RegisterRequest(BaseModel):
    """Request model for donor registration."""

    first_name: str = ""
    last_name: str = ""
    date_of_birth: str = Field("", description="ISO date, YYYY-MM-DD")
    donor_id: str = Field("", description="Donor ID (exactly 5 alphanumeric characters)")
    donation_center: str | None = Field(
        None,
        description="Donation center the identity is derived from; defaults to the donor ID",
    )
    email: str = Field("", description="Contact email", json_schema_extra={"format": "email"})


class RegisterResponse(BaseModel):
    """Response model for successful registration."""

    message: str
    identity_token: str
    donor_id: str
    email: str
    stage: VerificationStage


class IdentityLoginRequest(BaseModel):
    """Request model for hash-based login with personal attributes."""

    first_name: str = ""
    last_name: str = ""
    date_of_birth: str = ""
    center_or_donor_id: str = ""


class PasswordLoginRequest(BaseModel):
    """Request model for password login."""

    identity_token: str = Field(..., pattern=IDENTITY_TOKEN_PATTERN)
    password: str = Field(..., min_length=1)


class SetPasswordRequest(BaseModel):
    """Request model for password setup. Policy is enforced by the domain."""

    identity_token: str = Field(..., pattern=IDENTITY_TOKEN_PATTERN)
    password: str


class SessionResponse(BaseModel):
    """Active donor session (the token itself travels in a cookie)."""

    identity_token: str
    issued_at: datetime
    expires_at: datetime
    device: str
    remaining_minutes: int


class LoginResponse(BaseModel):
    """Response model for successful login."""

    message: str
    donor_id: str
    preferred_language: str
    preferred_communication_channel: str
    remembered_device: bool
    session: SessionResponse


class VerificationStatusResponse(BaseModel):
    """Verification lifecycle status, recomputed from the donor record."""

    is_verified: bool
    needs_password_setup: bool
    is_fully_activated: bool
    stage: VerificationStage
    donor_id: str | None = None
    error: str | None = None
    message: str


class ErrorResponse(BaseModel):
    """Standard error response model."""

    detail: str


class ErrorDetail(BaseModel):
    message: str
    errors: list[str]


class ValidationErrorResponse(BaseModel):
    """Error response listing every violated rule."""

    detail: ErrorDetail
