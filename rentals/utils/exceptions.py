# ═══════════════════════════════════════════════════════════════════════════════
# ERROR CODES: machine-readable constants for API clients
# ═══════════════════════════════════════════════════════════════════════════════
class ErrorCode:
    VALIDATION_ERROR         = "VALIDATION_ERROR"
    INVALID_INPUT            = "INVALID_INPUT"
    UNAUTHORIZED             = "UNAUTHORIZED"
    TOKEN_EXPIRED            = "TOKEN_EXPIRED"
    NOT_FOUND                = "NOT_FOUND"
    DUPLICATE_ENTRY          = "DUPLICATE_ENTRY"
    INVALID_STATE_TRANSITION = "INVALID_STATE_TRANSITION"
    VEHICLE_UNAVAILABLE      = "VEHICLE_UNAVAILABLE"
    CONCURRENCY_CONFLICT     = "CONCURRENCY_CONFLICT"
    PAYMENT_FAILED           = "PAYMENT_FAILED"
    INTERNAL_SERVER_ERROR    = "INTERNAL_SERVER_ERROR"


# ═══════════════════════════════════════════════════════════════════════════════
# BASE EXCEPTION
# ═══════════════════════════════════════════════════════════════════════════════
class AppException(Exception):
    """
    Base exception for all application-level errors.
    Carries a machine-readable error_code; the HTTP status is chosen by the
    error handler middleware, so the domain layer stays transport-agnostic.
    """
    def __init__(
        self,
        message: str,
        error_code: str,
        details: list | None = None,
        field: str | None = None,
    ):
        super().__init__(message)
        self.message    = message
        self.error_code = error_code
        self.details    = details
        self.field      = field

    def to_dict(self) -> dict:
        return {
            "message": self.message,
            "error": {
                "code":    self.error_code,
                "details": self.details,
                "field":   self.field,
            },
        }


# ═══════════════════════════════════════════════════════════════════════════════
# CORE ERROR KINDS
# ═══════════════════════════════════════════════════════════════════════════════

class InvalidInput(AppException):
    def __init__(self, message: str = "Invalid input", field: str | None = None):
        super().__init__(message, ErrorCode.INVALID_INPUT, field=field)


class NotFound(AppException):
    def __init__(self, resource: str = "Resource"):
        super().__init__(f"{resource} not found", ErrorCode.NOT_FOUND)
        self.resource = resource


class InvalidStateTransition(AppException):
    def __init__(self, operation: str, current_status: str):
        super().__init__(
            f"Cannot {operation} a rental in {current_status} status",
            ErrorCode.INVALID_STATE_TRANSITION,
        )
        self.operation      = operation
        self.current_status = current_status


class VehicleUnavailable(AppException):
    def __init__(self, reason: str):
        super().__init__(f"Vehicle not available: {reason}", ErrorCode.VEHICLE_UNAVAILABLE)
        self.reason = reason


class ConcurrencyConflict(AppException):
    """Lost a race on a versioned record or timed out waiting for a lock. Retryable."""
    def __init__(self, message: str = "Concurrent update detected, please retry"):
        super().__init__(message, ErrorCode.CONCURRENCY_CONFLICT)


# ═══════════════════════════════════════════════════════════════════════════════
# BOUNDARY ERRORS
# ═══════════════════════════════════════════════════════════════════════════════

class UnauthorizedException(AppException):
    def __init__(self, message: str = "Authentication required"):
        super().__init__(message, ErrorCode.UNAUTHORIZED)


class TokenExpiredException(AppException):
    def __init__(self):
        super().__init__("Access token has expired", ErrorCode.TOKEN_EXPIRED)


class DuplicateEntryException(AppException):
    def __init__(self, message: str = "Record already exists", field: str | None = None):
        super().__init__(message, ErrorCode.DUPLICATE_ENTRY, field=field)


class PaymentFailed(AppException):
    def __init__(self, message: str = "Payment could not be processed"):
        super().__init__(message, ErrorCode.PAYMENT_FAILED)
