"""Error taxonomy raised by the core and translated to HTTP responses in app.main."""

from typing import Optional


class ShareLinkError(Exception):
    """Base class: each subclass carries the HTTP status it maps to."""

    status_code = 500
    default_detail = "Internal server error"

    def __init__(self, detail: Optional[str] = None) -> None:
        self.detail = detail or self.default_detail
        super().__init__(self.detail)


class Unauthenticated(ShareLinkError):
    """Missing, invalid or expired token."""

    status_code = 401
    default_detail = "Not authenticated"


class Forbidden(ShareLinkError):
    """Authenticated, but the permission engine denied the operation."""

    status_code = 403
    default_detail = "Access denied"


class NotFound(ShareLinkError):
    status_code = 404
    default_detail = "Not found"


class Conflict(ShareLinkError):
    status_code = 409
    default_detail = "Already exists"


class TooLarge(ShareLinkError):
    status_code = 413
    default_detail = "Content too large"


class InvalidRequest(ShareLinkError):
    status_code = 400
    default_detail = "Malformed request"


class Internal(ShareLinkError):
    """Unexpected fault. Detail is never sent to the caller."""

    status_code = 500
