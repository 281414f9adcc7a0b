"""Error taxonomy shared by the API and its clients.

Every failure leaves the service as ``{"code", "message", "errors"}``. Clients
switch on ``code`` (a stable :class:`ErrorCode` value) rather than on the
human-readable message.
"""
import enum
import logging
from typing import List, Optional

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

logger = logging.getLogger(__name__)


class ErrorCode(str, enum.Enum):
    VALIDATION_ERROR = "VALIDATION_ERROR"
    UNAUTHORIZED = "UNAUTHORIZED"
    FORBIDDEN = "FORBIDDEN"
    NOT_FOUND = "NOT_FOUND"
    CONFLICT = "CONFLICT"
    INVALID_STATUS = "INVALID_STATUS"
    INVALID_TRANSITION = "INVALID_TRANSITION"
    INSUFFICIENT_STOCK = "INSUFFICIENT_STOCK"
    TOTAL_MISMATCH = "TOTAL_MISMATCH"
    ORDER_CREATION_FAILED = "ORDER_CREATION_FAILED"
    SERVER_ERROR = "SERVER_ERROR"


class AppError(HTTPException):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    code = ErrorCode.SERVER_ERROR

    def __init__(self, message: str, errors: Optional[List[dict]] = None, headers: Optional[dict] = None):
        super().__init__(status_code=self.status_code, detail=message, headers=headers)
        self.message = message
        self.errors = errors or []


class ValidationFailed(AppError):
    status_code = status.HTTP_400_BAD_REQUEST
    code = ErrorCode.VALIDATION_ERROR

    @classmethod
    def for_field(cls, field: str, message: str):
        return cls(message, errors=[{"field": field, "message": message}])


class Unauthorized(AppError):
    status_code = status.HTTP_401_UNAUTHORIZED
    code = ErrorCode.UNAUTHORIZED


class Forbidden(AppError):
    status_code = status.HTTP_403_FORBIDDEN
    code = ErrorCode.FORBIDDEN


class NotFound(AppError):
    status_code = status.HTTP_404_NOT_FOUND
    code = ErrorCode.NOT_FOUND


class Conflict(AppError):
    status_code = status.HTTP_409_CONFLICT
    code = ErrorCode.CONFLICT


class InvalidStatus(AppError):
    status_code = status.HTTP_400_BAD_REQUEST
    code = ErrorCode.INVALID_STATUS


class InvalidTransition(AppError):
    status_code = status.HTTP_409_CONFLICT
    code = ErrorCode.INVALID_TRANSITION


class InsufficientStock(AppError):
    status_code = status.HTTP_409_CONFLICT
    code = ErrorCode.INSUFFICIENT_STOCK


class TotalMismatch(AppError):
    status_code = status.HTTP_400_BAD_REQUEST
    code = ErrorCode.TOTAL_MISMATCH


class OrderCreationFailed(AppError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    code = ErrorCode.ORDER_CREATION_FAILED


def error_body(code: ErrorCode, message: str, errors: Optional[List[dict]] = None) -> dict:
    return {"code": code.value, "message": message, "errors": errors or []}


def _field_path(loc) -> str:
    # ("body", "items", 0, "unitPrice") -> "items.0.unitPrice"
    parts = [str(p) for p in loc if p not in ("body", "query", "path")]
    return ".".join(parts) or "body"


async def app_error_handler(request: Request, exc: AppError):
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(exc.code, exc.message, exc.errors),
        headers=exc.headers,
    )


async def validation_error_handler(request: Request, exc: RequestValidationError):
    errors = [{"field": _field_path(e.get("loc", ())), "message": e.get("msg", "Invalid value")} for e in exc.errors()]
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=error_body(ErrorCode.VALIDATION_ERROR, "Invalid request data", errors),
    )


async def store_error_handler(request: Request, exc: SQLAlchemyError):
    logger.exception("Store error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=error_body(ErrorCode.SERVER_ERROR, "Server error"),
    )


def install_error_handlers(app: FastAPI):
    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(SQLAlchemyError, store_error_handler)
