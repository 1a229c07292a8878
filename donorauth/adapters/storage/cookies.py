"""
Cookie-backed local storage - Implements LocalStorage protocol.

Reads come from the incoming request's cookies; writes and removals are
applied to the outgoing response. Writes made earlier in the same
request are visible to later reads, so one request can store and then
read back a session.

Values are percent-encoded, and every cookie is set ``httponly`` and
``samesite=strict`` (``secure`` unless disabled for local development).
"""

from urllib.parse import quote, unquote

from fastapi import Request, Response


class CookieStorage:
    """Implements LocalStorage protocol over a FastAPI request/response pair."""

    def __init__(self, request: Request, response: Response, secure: bool = True) -> None:
        self._request = request
        self._response = response
        self._secure = secure
        # name -> value written during this request, None when removed
        self._pending: dict[str, str | None] = {}

    def set_item(self, name: str, value: str, ttl_seconds: int) -> None:
        self._response.set_cookie(
            key=name,
            value=quote(value, safe=""),
            max_age=ttl_seconds,
            path="/",
            secure=self._secure,
            httponly=True,
            samesite="strict",
        )
        self._pending[name] = value

    def get_item(self, name: str) -> str | None:
        if name in self._pending:
            return self._pending[name]
        raw = self._request.cookies.get(name)
        if raw is None:
            return None
        return unquote(raw)

    def remove_item(self, name: str) -> None:
        self._response.delete_cookie(
            key=name,
            path="/",
            secure=self._secure,
            httponly=True,
            samesite="strict",
        )
        self._pending[name] = None
