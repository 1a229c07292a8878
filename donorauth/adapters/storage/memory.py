"""
In-memory local storage - Implements LocalStorage protocol.

Stands in for a single browser's cookie jar. Items expire after their
TTL according to the injected clock.
"""

from datetime import datetime, timedelta

from donorauth.domain.ports import Clock, utc_now


class InMemoryStorage:
    """Implements LocalStorage protocol with a dictionary of (value, expiry)."""

    def __init__(self, clock: Clock = utc_now) -> None:
        self._clock = clock
        self._items: dict[str, tuple[str, datetime]] = {}

    def set_item(self, name: str, value: str, ttl_seconds: int) -> None:
        self._items[name] = (value, self._clock() + timedelta(seconds=ttl_seconds))

    def get_item(self, name: str) -> str | None:
        item = self._items.get(name)
        if item is None:
            return None
        value, expires_at = item
        if self._clock() >= expires_at:
            del self._items[name]
            return None
        return value

    def remove_item(self, name: str) -> None:
        self._items.pop(name, None)

    def __contains__(self, name: str) -> bool:
        return name in self._items
