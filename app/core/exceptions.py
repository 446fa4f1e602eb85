"""
Error taxonomy shared by the services and the HTTP layer.

Services raise these; app.main translates them into
{"success": false, "message": ...} responses with the status below.
"""


class AppError(Exception):
    status_code = 500
    default_message = "Internal server error"

    def __init__(self, message: str = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(AppError):
    status_code = 400
    default_message = "Invalid input"


class Unauthenticated(AppError):
    status_code = 401
    default_message = "Not authorized"

    def __init__(self, message: str = None, reason: str = "invalid"):
        super().__init__(message)
        # missing | expired | invalid | unknown_user | inactive | credentials
        self.reason = reason


class PlanRequired(AppError):
    status_code = 403
    default_message = "This feature requires a higher plan"


class QuotaExceeded(AppError):
    status_code = 403
    default_message = "Chain limit reached for your plan"


class CapacityExceeded(AppError):
    status_code = 403
    default_message = "Maximum number of participants reached"


class NotFound(AppError):
    status_code = 404
    default_message = "Resource not found"


class Conflict(AppError):
    # Surfaced like a validation failure
    status_code = 400
    default_message = "Resource already exists"


class Internal(AppError):
    status_code = 500


class ConfigurationError(Internal):
    default_message = "Server misconfiguration"


class TokenError(Exception):
    """Raised by the token service; never leaves the auth gate."""


class TokenExpired(TokenError):
    pass


class TokenInvalid(TokenError):
    pass
