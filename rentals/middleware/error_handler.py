import logging
import traceback
from fastapi import Request, status
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from sqlalchemy.exc import IntegrityError
from rentals.utils.exceptions import AppException, ErrorCode

logger = logging.getLogger(__name__)

STATUS_BY_CODE = {
    ErrorCode.INVALID_INPUT:            status.HTTP_400_BAD_REQUEST,
    ErrorCode.UNAUTHORIZED:             status.HTTP_401_UNAUTHORIZED,
    ErrorCode.TOKEN_EXPIRED:            status.HTTP_401_UNAUTHORIZED,
    ErrorCode.NOT_FOUND:                status.HTTP_404_NOT_FOUND,
    ErrorCode.DUPLICATE_ENTRY:          status.HTTP_409_CONFLICT,
    ErrorCode.INVALID_STATE_TRANSITION: status.HTTP_409_CONFLICT,
    ErrorCode.VEHICLE_UNAVAILABLE:      status.HTTP_409_CONFLICT,
    ErrorCode.CONCURRENCY_CONFLICT:     status.HTTP_409_CONFLICT,
    ErrorCode.PAYMENT_FAILED:           status.HTTP_402_PAYMENT_REQUIRED,
}


def _error_body(message: str, code: str, details=None, field=None) -> dict:
    return {
        "success": False,
        "message": message,
        "error": {"code": code, "details": details, "field": field},
    }


async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """Handle all AppException subclasses (our custom exceptions)."""
    status_code = STATUS_BY_CODE.get(exc.error_code, status.HTTP_500_INTERNAL_SERVER_ERROR)
    if status_code == status.HTTP_409_CONFLICT:
        logger.info(f"{request.method} {request.url.path} -> {exc.error_code}: {exc.message}")
    headers = {"WWW-Authenticate": "Bearer"} if status_code == status.HTTP_401_UNAUTHORIZED else None
    return JSONResponse(
        status_code=status_code,
        content=_error_body(exc.message, exc.error_code, exc.details, exc.field),
        headers=headers,
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """
    Handle Pydantic validation errors (422).
    Converts FastAPI's default validation error format into our standardized format.
    """
    details = []
    for error in exc.errors():
        # loc is a tuple like ("body", "startAt")
        loc = error.get("loc", [])
        field = ".".join(str(l) for l in loc if l != "body") if loc else "unknown"
        details.append({
            "field": field,
            "message": error.get("msg", "Invalid value"),
        })

    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content=_error_body("Validation error. Please check your input.", ErrorCode.VALIDATION_ERROR, details),
    )


async def integrity_error_handler(request: Request, exc: IntegrityError) -> JSONResponse:
    """Keep raw constraint violations (duplicate plate, broken FK) away from the client."""
    logger.warning(f"IntegrityError on {request.method} {request.url}: {exc.orig}")
    return JSONResponse(
        status_code=status.HTTP_409_CONFLICT,
        content=_error_body("A record with this data already exists.", ErrorCode.DUPLICATE_ENTRY),
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Catch-all handler for unexpected exceptions.
    Logs the full traceback, returns a safe 500 response.
    """
    logger.error(
        f"Unhandled exception on {request.method} {request.url}\n"
        f"{traceback.format_exc()}"
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=_error_body("An unexpected error occurred. Please try again later.",
                            ErrorCode.INTERNAL_SERVER_ERROR),
    )
