"""
Device fingerprinting and remembered-device tracking.

The fingerprint is a usability signal used to bind sessions and to tell
a donor "this device already knows you". It is built from signals any
browser sends without asking for permission and is not a security
boundary.
"""

import hashlib
import json
import logging
from datetime import datetime

from .identity import short_token
from .ports import Clock, DeviceInfo, DeviceSignals, LocalStorage, parse_timestamp, utc_now

logger = logging.getLogger(__name__)

REMEMBERED_ITEM_PREFIX = "vitalita_password_cache_"
FINGERPRINT_LENGTH = 16

# Order matters: Edge and Opera user agents also contain "Chrome",
# and Chrome user agents contain "Safari".
_BROWSERS = (
    ("Edg", "Edge"),
    ("OPR", "Opera"),
    ("Opera", "Opera"),
    ("Chrome", "Chrome"),
    ("Firefox", "Firefox"),
    ("Safari", "Safari"),
)


def browser_name(user_agent: str) -> str:
    for marker, name in _BROWSERS:
        if marker in user_agent:
            return name
    return "Unknown Browser"


def generate(signals: DeviceSignals) -> DeviceInfo:
    """Derive the device fingerprint and display descriptor from request signals."""
    combined = "|".join(signals.components())
    fingerprint = hashlib.sha256(combined.encode("utf-8")).hexdigest()[:FINGERPRINT_LENGTH]
    platform = signals.platform.strip().strip('"') or "Unknown"
    return DeviceInfo(
        fingerprint=fingerprint,
        display_info=f"{browser_name(signals.user_agent)} on {platform}",
        signals=signals,
    )


class DeviceRegistry:
    """
    Remembers which identity last approved a password on this device.

    Backed by the client's LocalStorage, keyed by fingerprint.
    """

    def __init__(
        self,
        storage: LocalStorage,
        signals: DeviceSignals,
        clock: Clock = utc_now,
    ) -> None:
        self._storage = storage
        self._clock = clock
        self.device = generate(signals)

    @property
    def item_name(self) -> str:
        return f"{REMEMBERED_ITEM_PREFIX}{self.device.fingerprint}"

    def remember(self, identity_token: str, expires_at: datetime) -> None:
        now = self._clock()
        payload = {
            "identity_token": identity_token,
            "device_id": self.device.fingerprint,
            "cached_at": now.isoformat(),
            "expires_at": expires_at.isoformat(),
        }
        ttl = max(1, int((expires_at - now).total_seconds()))
        try:
            self._storage.set_item(self.item_name, json.dumps(payload), ttl)
        except Exception:
            logger.exception("Failed to remember device %s", self.device.fingerprint)

    def is_remembered(self, identity_token: str) -> bool:
        try:
            raw = self._storage.get_item(self.item_name)
        except Exception:
            logger.exception("Failed to read remembered device")
            return False
        if raw is None:
            return False

        try:
            cached = json.loads(raw)
            if not isinstance(cached, dict):
                raise ValueError("Remembered-device entry is not a JSON object")
            same_identity = cached["identity_token"] == identity_token
            expires_at = parse_timestamp(cached["expires_at"])
        except (ValueError, KeyError, TypeError, AttributeError):
            logger.warning("Discarding unreadable remembered-device entry")
            self.forget()
            return False

        if same_identity and expires_at > self._clock():
            return True

        logger.info(
            "Remembered device entry stale or for another donor (%s)",
            short_token(identity_token),
        )
        self.forget()
        return False

    def forget(self) -> None:
        try:
            self._storage.remove_item(self.item_name)
        except Exception:
            logger.exception("Failed to forget device %s", self.device.fingerprint)
