"""
Error taxonomy shared by routes, services and the auth layer.

Every error carries the HTTP status it maps to. The handlers registered in
app.main turn them into the JSON envelope:

    {"success": false, "message": "...", "details": {...}}
"""

from typing import Any, Optional


class AppError(Exception):
    status_code: int = 500
    default_message: str = "Internal server error"

    def __init__(self, message: Optional[str] = None, details: Any = None):
        self.message = message or self.default_message
        self.details = details
        super().__init__(self.message)

    def to_dict(self) -> dict:
        body = {"success": False, "message": self.message}
        if self.details is not None:
            body["details"] = self.details
        return body


class BadRequestError(AppError):
    status_code = 400
    default_message = "Invalid input"


class UnauthorizedError(AppError):
    status_code = 401
    default_message = "Authentication required"


class InvalidTokenError(UnauthorizedError):
    default_message = "Invalid or malformed token"


class TokenExpiredError(UnauthorizedError):
    default_message = "Token has expired"


class ForbiddenError(AppError):
    status_code = 403
    default_message = "Access denied"


class NotFoundError(AppError):
    status_code = 404
    default_message = "Resource not found"


class ConflictError(AppError):
    status_code = 409
    default_message = "Resource already exists"


def format_validation_errors(errors: list) -> dict:
    """Collapse pydantic error entries into a field -> reason mapping."""
    details = {}
    for error in errors:
        # drop the leading "body"/"query"/"path" location marker
        loc = [str(part) for part in error.get("loc", ()) if part not in ("body", "query", "path")]
        field = ".".join(loc) or "body"
        details.setdefault(field, error.get("msg", "Invalid value"))
    return details
