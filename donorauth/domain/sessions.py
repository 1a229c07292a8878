"""
Donor sessions - issuance and client-side persistence.

A session is an immutable value: re-authentication issues a new one
rather than extending the old. ``expires_at`` is always ``issued_at``
plus the fixed lifetime.
"""

import json
import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta

from .identity import short_token
from .ports import Clock, DeviceInfo, LocalStorage, parse_timestamp, utc_now

logger = logging.getLogger(__name__)

SESSION_ITEM_NAME = "vitalita_session"
DEFAULT_LIFETIME = timedelta(hours=24)
EXPIRING_SOON_WINDOW = timedelta(minutes=5)

# Anything a tampered or truncated entry can raise while being decoded.
_UNREADABLE_ENTRY = (ValueError, KeyError, TypeError, AttributeError)


@dataclass(frozen=True)
class Session:
    session_token: str
    donor_identity: str
    issued_at: datetime
    expires_at: datetime
    device_fingerprint: str
    device_display: str = ""

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expires_at

    def to_json(self) -> str:
        return json.dumps(
            {
                "session_token": self.session_token,
                "donor_identity": self.donor_identity,
                "issued_at": self.issued_at.isoformat(),
                "expires_at": self.expires_at.isoformat(),
                "device_fingerprint": self.device_fingerprint,
                "device_display": self.device_display,
            }
        )

    @classmethod
    def from_json(cls, raw: str) -> "Session":
        data = json.loads(raw)
        if not isinstance(data, dict):
            raise ValueError("Session entry is not a JSON object")
        text_fields = ("session_token", "donor_identity", "device_fingerprint")
        if not all(isinstance(data[name], str) for name in text_fields):
            raise ValueError("Session entry has non-string fields")
        return cls(
            session_token=data["session_token"],
            donor_identity=data["donor_identity"],
            issued_at=parse_timestamp(data["issued_at"]),
            expires_at=parse_timestamp(data["expires_at"]),
            device_fingerprint=data["device_fingerprint"],
            device_display=str(data.get("device_display") or ""),
        )


def issue(
    identity_token: str,
    device: DeviceInfo,
    now: datetime,
    lifetime: timedelta = DEFAULT_LIFETIME,
) -> Session:
    """Create a new session bound to the identity and device."""
    return Session(
        session_token=secrets.token_urlsafe(32),
        donor_identity=identity_token,
        issued_at=now,
        expires_at=now + lifetime,
        device_fingerprint=device.fingerprint,
        device_display=device.display_info,
    )


def remaining_minutes(session: Session, now: datetime) -> int:
    """Whole minutes left, rounded up; 0 once expired."""
    seconds = (session.expires_at - now).total_seconds()
    if seconds <= 0:
        return 0
    return int(-(-seconds // 60))


def is_expiring_soon(
    session: Session, now: datetime, window: timedelta = EXPIRING_SOON_WINDOW
) -> bool:
    return session.expires_at - now <= window


class SessionStore:
    """Persists the active session in the client's LocalStorage."""

    def __init__(self, storage: LocalStorage, clock: Clock = utc_now) -> None:
        self._storage = storage
        self._clock = clock

    def put(self, session: Session) -> None:
        """Persist the session. A storage failure is logged; the session stays valid."""
        ttl = max(1, int((session.expires_at - self._clock()).total_seconds()))
        try:
            self._storage.set_item(SESSION_ITEM_NAME, session.to_json(), ttl)
        except Exception:
            logger.exception("Failed to store session for %s", short_token(session.donor_identity))
            return
        logger.info(
            "Session stored for %s until %s",
            short_token(session.donor_identity),
            session.expires_at.isoformat(),
        )

    def get(self) -> Session | None:
        try:
            raw = self._storage.get_item(SESSION_ITEM_NAME)
        except Exception:
            logger.exception("Failed to read session")
            return None
        if raw is None:
            return None

        try:
            session = Session.from_json(raw)
        except _UNREADABLE_ENTRY:
            logger.warning("Discarding unreadable session entry")
            self.clear()
            return None

        if session.is_expired(self._clock()):
            logger.info("Session expired for %s", short_token(session.donor_identity))
            self.clear()
            return None
        return session

    def clear(self) -> None:
        try:
            self._storage.remove_item(SESSION_ITEM_NAME)
        except Exception:
            logger.exception("Failed to clear session")
