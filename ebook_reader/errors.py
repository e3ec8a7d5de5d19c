"""
Typed application errors.

Every component raises one of these; the handlers registered in main turn
them into ``{"success": false, "message": ...}`` with the matching status.
"""


class AppError(Exception):
    """Base class: carries the HTTP status and a stable, user-visible message."""

    status_code = 500
    default_message = "Internal server error"

    def __init__(self, msg: str | None = None):
        self.msg = msg or self.default_message
        super().__init__(self.msg)


class ValidationError(AppError):
    status_code = 400
    default_message = "Invalid request"


class InvalidPhoneFormat(ValidationError):
    default_message = "Invalid phone number format. Must be E.164 (e.g., +12345678901)"


class InvalidCodeFormat(ValidationError):
    default_message = "Invalid OTP format. Must be 6 digits"


class Unauthorized(AppError):
    status_code = 401
    default_message = "Authentication required"


class TokenInvalid(Unauthorized):
    default_message = "Invalid token"


class TokenExpired(Unauthorized):
    default_message = "Token expired"


class Forbidden(AppError):
    status_code = 403
    default_message = "Forbidden"


class NotFound(AppError):
    status_code = 404
    default_message = "Not found"


class UserNotFound(NotFound):
    default_message = "User not found"


class BookNotFound(NotFound):
    default_message = "Book not found or not published"


class ChapterNotFound(NotFound):
    default_message = "Chapter not found"


class ProgressNotFound(NotFound):
    default_message = "Progress not found"


class AuthorNotFound(NotFound):
    default_message = "Author not found"


class CategoryNotFound(NotFound):
    default_message = "Category not found"


class Conflict(AppError):
    status_code = 409
    default_message = "Duplicate field value entered"


class ProviderError(AppError):
    status_code = 502
    default_message = "Upstream provider error"


class InternalError(AppError):
    status_code = 500
