"""Local storage adapters - client-side persistence implementations."""

from .cookies import CookieStorage
from .memory import InMemoryStorage

__all__ = ["CookieStorage", "InMemoryStorage"]
