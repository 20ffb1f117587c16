"""
Cupid Discovery — Error taxonomy

Every business-rule or availability failure raised by the services derives
from ``DiscoveryError``.  The FastAPI exception handler in ``cupid.main``
renders them as ``{"detail": ..., "code": ..., **public_context}`` using the
class-level ``status_code``.

``CacheDegraded`` is the one member that never reaches a caller: the cache
layer raises it internally and swallows it at its own boundary.
"""

from __future__ import annotations

from typing import Any


class DiscoveryError(Exception):
    """Base class for all errors raised by the discovery core."""

    status_code: int = 500
    code: str = "internal_error"

    def __init__(self, message: str, **context: Any) -> None:
        super().__init__(message)
        self.message = message
        self.context = context

    def public_context(self) -> dict[str, Any]:
        """Fields that are safe to echo back to the client."""
        return {}


class NotFound(DiscoveryError):
    status_code = 404
    code = "not_found"


class Forbidden(DiscoveryError):
    status_code = 403
    code = "forbidden"


class Conflict(DiscoveryError):
    status_code = 409
    code = "conflict"


class RateLimited(DiscoveryError):
    """Daily quota exhausted.  ``limit`` is returned so the client can render
    "come back tomorrow or upgrade"."""

    status_code = 429
    code = "rate_limited"

    def __init__(self, message: str, limit: int, **context: Any) -> None:
        super().__init__(message, limit=limit, **context)
        self.limit = limit

    def public_context(self) -> dict[str, Any]:
        return {"limit": self.limit}


class InvalidInput(DiscoveryError):
    status_code = 422
    code = "invalid_input"


class Unavailable(DiscoveryError):
    """Persistence timeout or outage.  Fatal to the request."""

    status_code = 503
    code = "unavailable"


class CacheDegraded(DiscoveryError):
    """Cache backend failure.  Logged and treated as a miss / no-op."""

    status_code = 200
    code = "cache_degraded"
