from typing import Any, Generic, TypeVar

from pydantic import BaseModel

T = TypeVar("T")


# ─── Pagination Meta ───────────────────────────────────────────────────────────
class PaginationMeta(BaseModel):
    page: int
    limit: int
    total: int
    totalPages: int
    hasNext: bool
    hasPrev: bool


# ─── Error Body ───────────────────────────────────────────────────────────────
class ErrorDetail(BaseModel):
    field: str
    message: str


class ErrorBody(BaseModel):
    code: str
    details: list[ErrorDetail] | None = None
    field: str | None = None


# ─── Envelopes ────────────────────────────────────────────────────────────────
class SuccessResponse(BaseModel, Generic[T]):
    success: bool = True
    message: str
    data: T | None = None


class PaginatedResponse(BaseModel, Generic[T]):
    success: bool = True
    message: str
    data: list[T]
    meta: PaginationMeta


class ErrorResponse(BaseModel):
    success: bool = False
    message: str
    error: ErrorBody


# ─── Helper Functions ─────────────────────────────────────────────────────────
def success_response(message: str, data: Any = None) -> dict:
    """Return a standardized success dict (used in route handlers)."""
    return {"success": True, "message": message, "data": data}


def paginated_response(message: str, data: list, total: int, page: int, limit: int) -> dict:
    total_pages = (total + limit - 1) // limit if limit > 0 else 0
    return {
        "success": True,
        "message": message,
        "data": data,
        "meta": {
            "page": page,
            "limit": limit,
            "total": total,
            "totalPages": total_pages,
            "hasNext": page < total_pages,
            "hasPrev": page > 1,
        }
    }


# Documented on every router; the envelope comes from middleware/error_handler.py
ERROR_RESPONSES = {
    code: {"model": ErrorResponse}
    for code in (400, 401, 402, 404, 409, 422, 500)
}
