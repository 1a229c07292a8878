"""
API v1 package.

Contains versioned API routes for the donor identity and authentication API.
"""

from donorauth.api.v1.routes import router

__all__ = ["router"]
