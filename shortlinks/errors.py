"""Typed error taxonomy for the short-link engine.

Every failure the engine reports derives from ``LinkError``. Each class states
two things the callers need:

- ``fatal``: whether the error ends the current operation. Non-fatal errors
  (cache trouble, the idempotent duplicate case) are logged and absorbed by
  the component that sees them.
- ``status_code``: how the HTTP boundary translates it.

::

    LinkError
    ├─ IdentityMismatch      fatal  500
    ├─ AliasTaken            fatal  500
    ├─ AllocationExhausted   fatal  500
    ├─ DuplicateDestination  -      (idempotent return, never raised to callers)
    ├─ NotFound              fatal  404
    │  ├─ Expired            fatal  404
    │  └─ Inactive           fatal  404
    ├─ Forbidden             fatal  403
    ├─ Unauthorized          fatal  401
    ├─ StoreError            fatal  500
    └─ CacheError            -      (degrade to a store read)
"""

__all__ = [
    "LinkError",
    "IdentityMismatch",
    "AliasTaken",
    "AllocationExhausted",
    "DuplicateDestination",
    "NotFound",
    "Expired",
    "Inactive",
    "Forbidden",
    "Unauthorized",
    "StoreError",
    "CacheError",
]


class LinkError(Exception):
    """Base class for every error raised by the engine."""

    fatal: bool = True
    status_code: int = 500
    default_detail: str = "Internal server error"

    def __init__(self, detail: str | None = None, *, short_code: str | None = None) -> None:
        self.detail = detail or self.default_detail
        self.short_code = short_code
        super().__init__(self.detail)


class IdentityMismatch(LinkError):
    default_detail = "Owner does not match the verified identity"


class AliasTaken(LinkError):
    default_detail = "Alias already taken"


class AllocationExhausted(LinkError):
    default_detail = "Could not allocate a unique short code"


class DuplicateDestination(LinkError):
    fatal = False
    default_detail = "URL already shortened"


class NotFound(LinkError):
    status_code = 404
    default_detail = "Short URL not found"


class Expired(NotFound):
    default_detail = "Short URL has expired"


class Inactive(NotFound):
    default_detail = "Short URL is inactive"


class Forbidden(LinkError):
    status_code = 403
    default_detail = "Not allowed to access this short URL"


class Unauthorized(LinkError):
    status_code = 401
    default_detail = "Invalid or expired token"


class StoreError(LinkError):
    default_detail = "Link store unavailable"


class CacheError(LinkError):
    fatal = False
    default_detail = "Cache unavailable"
