"""Domain error taxonomy mapped onto HTTP responses by the API layer."""


class FrishtaError(Exception):
    """Base class for errors that are safe to show to the caller."""

    status_code: int = 400
    code: str = "error"

    def __init__(self, message: str, *, code: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code


class ValidationError(FrishtaError):
    """Malformed or out-of-range input, identified by field."""

    status_code = 400
    code = "validation_error"

    def __init__(self, field: str, message: str, *, code: str | None = None) -> None:
        super().__init__(message, code=code)
        self.field = field


class ConflictError(FrishtaError):
    """Email is already registered and verified."""

    status_code = 409
    code = "already_registered"


class NotFoundError(FrishtaError):
    """Unknown identity or OTP target."""

    status_code = 404
    code = "not_found"


class AuthError(FrishtaError):
    """Bad credentials or a missing/invalid/expired session."""

    status_code = 401
    code = "unauthenticated"


class EmailNotVerifiedError(AuthError):
    """Login attempted before the email address was verified."""

    status_code = 403
    code = "email_not_verified"


class RateLimitError(FrishtaError):
    """OTP attempt ceiling reached; only a fresh OTP helps."""

    status_code = 429
    code = "too_many_attempts"


class DependencyError(FrishtaError):
    """Record store or mail transport failure."""

    status_code = 500
    code = "server_error"

    def __init__(self, message: str = "Server error", *, code: str | None = None) -> None:
        super().__init__(message, code=code)
