"""
API v1 routes.

Defines REST endpoints for donor registration, login, password setup,
verification status and logout. Each endpoint maps 1:1 to an AuthService
operation.
"""

import logging
from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Query, status

from donorauth.api.dependencies import get_auth_service, get_clock
from donorauth.api.models import (
    IDENTITY_TOKEN_PATTERN,
    ErrorResponse,
    IdentityLoginRequest,
    LoginResponse,
    PasswordLoginRequest,
    RegisterRequest,
    RegisterResponse,
    SessionResponse,
    SetPasswordRequest,
    ValidationErrorResponse,
    VerificationStatusResponse,
)
from donorauth.domain.auth import AuthService, DonorSession
from donorauth.domain.exceptions import (
    AUTHENTICATION_FAILED,
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
from donorauth.domain.identity import DonorAttributes
from donorauth.domain.ports import Clock
from donorauth.domain.sessions import Session, remaining_minutes
from donorauth.domain.verification import status_message

logger = logging.getLogger(__name__)

router = APIRouter(tags=["v1"])

RETRY_AFTER_SECONDS = "5"
UNPROCESSABLE = 422

_STATUS_CODES: dict[type[AuthError], int] = {
    InvalidAttributeError: UNPROCESSABLE,
    RegistrationInvalid: UNPROCESSABLE,
    PolicyViolation: UNPROCESSABLE,
    DuplicateIdentity: status.HTTP_409_CONFLICT,
    DuplicateEmail: status.HTTP_409_CONFLICT,
    PasswordNotSet: status.HTTP_409_CONFLICT,
    DonorNotFound: status.HTTP_401_UNAUTHORIZED,
    DonorInactive: status.HTTP_401_UNAUTHORIZED,
    InvalidCredentials: status.HTTP_401_UNAUTHORIZED,
    AccountLocked: status.HTTP_401_UNAUTHORIZED,
    NotEligible: status.HTTP_403_FORBIDDEN,
    StoreUnavailable: status.HTTP_503_SERVICE_UNAVAILABLE,
}


def to_http_exception(error: AuthError) -> HTTPException:
    """
    Translate a domain error to an HTTP error.

    Unknown donor, inactive donor and wrong password all become the same
    401 "Authentication failed"; the concrete class is only logged.
    """
    status_code = _STATUS_CODES.get(type(error), status.HTTP_400_BAD_REQUEST)
    headers = None
    if isinstance(error, StoreUnavailable):
        headers = {"Retry-After": RETRY_AFTER_SECONDS}
    if status_code == status.HTTP_401_UNAUTHORIZED:
        logger.info("Authentication failed: %s", type(error).__name__)
        return HTTPException(status_code=status_code, detail=AUTHENTICATION_FAILED)

    errors = getattr(error, "reasons", None) or getattr(error, "errors", None)
    if errors:
        return HTTPException(
            status_code=status_code,
            detail={"message": error.user_message, "errors": errors},
            headers=headers,
        )
    return HTTPException(status_code=status_code, detail=error.user_message, headers=headers)


def session_response(session: Session, now: datetime) -> SessionResponse:
    return SessionResponse(
        identity_token=session.donor_identity,
        issued_at=session.issued_at,
        expires_at=session.expires_at,
        device=session.device_display,
        remaining_minutes=remaining_minutes(session, now),
    )


def login_response(result: DonorSession, message: str, now: datetime) -> LoginResponse:
    return LoginResponse(
        message=message,
        donor_id=result.donor_id,
        preferred_language=result.preferred_language,
        preferred_communication_channel=result.preferred_communication_channel,
        remembered_device=result.remembered_device,
        session=session_response(result.session, now),
    )


@router.post(
    "/register",
    response_model=RegisterResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        409: {"model": ErrorResponse, "description": "Donor or email already registered"},
        422: {"model": ValidationErrorResponse, "description": "Itemized validation errors"},
        503: {"model": ErrorResponse, "description": "Store unavailable, retry"},
    },
    summary="Register a new donor",
    description="Submit personal details to create a donor record pending email "
    "verification. Registration details are cached in a cookie for the follow-up steps.",
)
async def register(
    request_data: RegisterRequest,
    service: AuthService = Depends(get_auth_service),
) -> RegisterResponse:
    """
    Register a new donor.

    - **first_name**, **last_name**, **date_of_birth**: personal details
    - **donor_id**: 5 alphanumeric characters
    - **donation_center**: optional; the identity uses the donor ID when omitted
    - **email**: contact address for the verification link
    """
    attributes = DonorAttributes(
        first_name=request_data.first_name,
        last_name=request_data.last_name,
        date_of_birth=request_data.date_of_birth,
        center_or_donor_id=request_data.donation_center or request_data.donor_id,
    )
    try:
        ref = service.register(attributes, request_data.donor_id, request_data.email)
    except AuthError as e:
        raise to_http_exception(e) from None
    return RegisterResponse(
        message="Registration submitted. Check your email for a verification link.",
        identity_token=ref.identity_token,
        donor_id=ref.donor_id,
        email=ref.email,
        stage=ref.stage,
    )


@router.post(
    "/login/identity",
    response_model=LoginResponse,
    responses={
        401: {"model": ErrorResponse, "description": "Authentication failed"},
        403: {"model": ErrorResponse, "description": "Verification incomplete"},
        503: {"model": ErrorResponse, "description": "Store unavailable, retry"},
    },
    summary="Log in with personal details",
)
async def login_identity(
    request_data: IdentityLoginRequest,
    service: AuthService = Depends(get_auth_service),
    clock: Clock = Depends(get_clock),
) -> LoginResponse:
    attributes = DonorAttributes(
        first_name=request_data.first_name,
        last_name=request_data.last_name,
        date_of_birth=request_data.date_of_birth,
        center_or_donor_id=request_data.center_or_donor_id,
    )
    try:
        result = service.authenticate_by_identity(attributes)
    except AuthError as e:
        raise to_http_exception(e) from None
    return login_response(result, "Authentication successful", clock())


@router.post(
    "/login/password",
    response_model=LoginResponse,
    responses={
        401: {"model": ErrorResponse, "description": "Authentication failed"},
        403: {"model": ErrorResponse, "description": "Verification incomplete"},
        409: {"model": ErrorResponse, "description": "Password not set up yet"},
        503: {"model": ErrorResponse, "description": "Store unavailable, retry"},
    },
    summary="Log in with identity token and password",
)
async def login_password(
    request_data: PasswordLoginRequest,
    service: AuthService = Depends(get_auth_service),
    clock: Clock = Depends(get_clock),
) -> LoginResponse:
    try:
        result = service.authenticate_by_password(
            request_data.identity_token, request_data.password
        )
    except AuthError as e:
        raise to_http_exception(e) from None
    return login_response(result, "Password authentication successful", clock())


@router.post(
    "/password",
    status_code=status.HTTP_204_NO_CONTENT,
    responses={
        401: {"model": ErrorResponse, "description": "Authentication failed"},
        403: {"model": ErrorResponse, "description": "Password setup not allowed yet"},
        422: {"model": ValidationErrorResponse, "description": "Password policy violation"},
        503: {"model": ErrorResponse, "description": "Store unavailable, retry"},
    },
    summary="Set up the donor password",
    description="Allowed once the email is verified and before staff activation.",
)
async def set_password(
    request_data: SetPasswordRequest,
    service: AuthService = Depends(get_auth_service),
) -> None:
    try:
        service.set_password(request_data.identity_token, request_data.password)
    except AuthError as e:
        raise to_http_exception(e) from None


@router.get(
    "/verification-status",
    response_model=VerificationStatusResponse,
    summary="Check the donor verification lifecycle",
    description="Uses the identity token when given, otherwise the registration "
    "details cached in the credentials cookie. Always re-reads the donor record.",
)
async def verification_status(
    identity_token: str | None = Query(None, pattern=IDENTITY_TOKEN_PATTERN),
    service: AuthService = Depends(get_auth_service),
) -> VerificationStatusResponse:
    if identity_token:
        result = service.verification_status(identity_token)
    else:
        result = service.verification_status_from_cache()
    return VerificationStatusResponse(
        is_verified=result.is_verified,
        needs_password_setup=result.needs_password_setup,
        is_fully_activated=result.is_fully_activated,
        stage=result.stage,
        donor_id=result.donor_id,
        error=result.error,
        message=status_message(result),
    )


@router.get(
    "/session",
    response_model=SessionResponse,
    responses={401: {"model": ErrorResponse, "description": "No active session"}},
    summary="Current session",
)
async def current_session(
    service: AuthService = Depends(get_auth_service),
    clock: Clock = Depends(get_clock),
) -> SessionResponse:
    session = service.current_session()
    if session is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="No active session found",
        )
    return session_response(session, clock())


@router.post(
    "/logout",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Log out",
    description="Clears the session, cached credentials and remembered device. Idempotent.",
)
async def logout(service: AuthService = Depends(get_auth_service)) -> None:
    service.logout(service.current_session())
