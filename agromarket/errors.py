"""Domain errors raised by the store and the route handlers.

Each error carries the HTTP status it is reported with; ``main`` installs
a single exception handler that turns them into responses.
"""

from typing import Optional


class MarketError(Exception):
    status_code = 400
    default_detail = "Bad request"

    def __init__(self, detail: Optional[str] = None):
        self.detail = detail or self.default_detail
        super().__init__(self.detail)


class UnauthenticatedError(MarketError):
    """No session, or the session expired.  Reported with an empty body."""

    status_code = 401
    default_detail = "Not authenticated"


class ForbiddenError(MarketError):
    status_code = 403
    default_detail = "Insufficient permissions"


class NotFoundError(MarketError):
    status_code = 404
    default_detail = "Not found"


class InvalidStateError(MarketError):
    """The entity is not in a status that allows the operation."""

    status_code = 400
    default_detail = "Invalid state"


class BadRequestError(MarketError):
    status_code = 400


class DuplicateUsernameError(MarketError):
    status_code = 400
    default_detail = "Username already exists"


class InvalidCredentialsError(MarketError):
    status_code = 401
    default_detail = "Invalid username or password"
