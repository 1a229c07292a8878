"""
FastAPI dependencies - Dependency injection factories.

This module provides Depends() factories for injecting
domain services and infrastructure adapters into routes.

The donor store is shared; session, credential and device caches are
built per request over the caller's cookies.
"""

from datetime import timedelta

from fastapi import Depends, Request, Response
from psycopg_pool import ConnectionPool

from donorauth.adapters.repository.postgres import PostgresDonorStore
from donorauth.adapters.smtp.console import ConsoleEmailSender
from donorauth.adapters.storage.cookies import CookieStorage
from donorauth.config.settings import Settings, get_settings
from donorauth.domain.auth import AuthService, PasswordPolicy
from donorauth.domain.credentials import CredentialCache
from donorauth.domain.device import DeviceRegistry
from donorauth.domain.ports import Clock, DeviceSignals, DonorStore, LocalStorage, utc_now
from donorauth.domain.sessions import SessionStore
from donorauth.domain.throttle import LoginThrottle

# Module-level singleton - ConsoleEmailSender is stateless
_email_sender = ConsoleEmailSender()


def get_pool(request: Request) -> ConnectionPool:
    """
    Get connection pool from app state.

    The pool is created during app lifespan startup and stored in app.state.
    """
    return request.app.state.pool


def get_store(
    request: Request, settings: Settings = Depends(get_settings)
) -> DonorStore:
    """Create donor store with connection pool from app state."""
    return PostgresDonorStore(get_pool(request), timeout_seconds=settings.store_timeout_seconds)


def get_email_sender() -> ConsoleEmailSender:
    """Get console email sender (singleton)."""
    return _email_sender


def get_clock() -> Clock:
    return utc_now


def get_local_storage(
    request: Request,
    response: Response,
    settings: Settings = Depends(get_settings),
) -> LocalStorage:
    """Cookie storage bound to this request and its response."""
    return CookieStorage(request, response, secure=settings.cookie_secure)


def get_device_signals(request: Request) -> DeviceSignals:
    """
    Collect device signals from request headers.

    Screen resolution and timezone are not sent by browsers on their own;
    the front end forwards them as X-Screen-Resolution and X-Timezone.
    """
    headers = request.headers
    return DeviceSignals(
        user_agent=headers.get("user-agent", ""),
        screen_resolution=headers.get("x-screen-resolution", ""),
        timezone=headers.get("x-timezone", ""),
        language=headers.get("accept-language", "").split(",")[0].strip(),
        platform=headers.get("sec-ch-ua-platform", "").strip('"'),
    )


def get_session_store(
    storage: LocalStorage = Depends(get_local_storage),
    clock: Clock = Depends(get_clock),
) -> SessionStore:
    return SessionStore(storage, clock=clock)


def get_auth_service(
    store: DonorStore = Depends(get_store),
    storage: LocalStorage = Depends(get_local_storage),
    signals: DeviceSignals = Depends(get_device_signals),
    session_store: SessionStore = Depends(get_session_store),
    clock: Clock = Depends(get_clock),
    settings: Settings = Depends(get_settings),
) -> AuthService:
    """
    Create auth service with injected dependencies.

    Wires the donor store (which also keeps the failed-login log), the
    email sender and this client's cookie-backed caches into the domain
    service.
    """
    return AuthService(
        store=store,
        email_sender=get_email_sender(),
        session_store=session_store,
        credential_cache=CredentialCache(
            storage, ttl_seconds=settings.credential_ttl_seconds, clock=clock
        ),
        device_registry=DeviceRegistry(storage, signals, clock=clock),
        clock=clock,
        session_lifetime=timedelta(seconds=settings.session_lifetime_seconds),
        password_policy=PasswordPolicy(min_length=settings.password_min_length),
        salt_bytes=settings.salt_bytes,
        minimum_age=settings.minimum_donor_age,
        throttle=LoginThrottle(
            store,
            max_attempts=settings.login_max_attempts,
            window=timedelta(minutes=settings.login_lockout_minutes),
            clock=clock,
        ),
    )
