# app/responses.py
"""
Єдиний формат відповідей API (конверт).

Успіх:   {"success": true, "data": ..., "meta": {...}}
Помилка: {"success": false, "error": {"code": ..., "message": ..., "details": ...}}

Кожен обробник маршруту обгортається у `with_error_handling`, тож жоден виняток
не доходить до транспортного рівня без конверта.
"""
import inspect
import logging
from enum import Enum
from functools import wraps
from typing import Any, Callable, Dict, Optional

from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from sqlalchemy.exc import SQLAlchemyError

logger = logging.getLogger(__name__)


class ErrorCode(str, Enum):
    """Закритий перелік кодів помилок API."""
    INTERNAL_ERROR = "INTERNAL_ERROR"
    DATABASE_ERROR = "DATABASE_ERROR"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    NOT_FOUND = "NOT_FOUND"
    UNAUTHORIZED = "UNAUTHORIZED"
    FORBIDDEN = "FORBIDDEN"
    BAD_REQUEST = "BAD_REQUEST"
    UPLOAD_ERROR = "UPLOAD_ERROR"
    STORAGE_ERROR = "STORAGE_ERROR"
    MISSING_PARAMETER = "MISSING_PARAMETER"
    UNKNOWN_ERROR = "UNKNOWN_ERROR"


STATUS_BY_CODE = {
    ErrorCode.UNAUTHORIZED: 401,
    ErrorCode.FORBIDDEN: 403,
    ErrorCode.VALIDATION_ERROR: 400,
    ErrorCode.BAD_REQUEST: 400,
    ErrorCode.MISSING_PARAMETER: 400,
    ErrorCode.NOT_FOUND: 404,
}


def status_for(code: ErrorCode) -> int:
    """Повертає HTTP статус для коду помилки (все, що не перелічено, - 500)."""
    return STATUS_BY_CODE.get(ErrorCode(code), 500)


# --- Схеми конверта (для OpenAPI) ---

class ApiErrorBody(BaseModel):
    code: ErrorCode
    message: str
    details: Optional[Any] = None


class ApiSuccess(BaseModel):
    success: bool = Field(default=True, description="Завжди true")
    data: Any = Field(default=None, description="Корисне навантаження")
    meta: Optional[Dict[str, Any]] = None


class ApiFailure(BaseModel):
    success: bool = Field(default=False, description="Завжди false")
    error: ApiErrorBody


ERROR_RESPONSES = {
    400: {"model": ApiFailure},
    401: {"model": ApiFailure},
    404: {"model": ApiFailure},
    500: {"model": ApiFailure},
}


def api_success(data: Any, meta: Optional[Dict[str, Any]] = None, status_code: int = 200) -> JSONResponse:
    """
    Створює успішну відповідь у стандартному форматі.

    Args:
        data (Any): Дані відповіді.
        meta (dict, optional): Додаткові метадані (попередження, лічильники тощо).
        status_code (int): HTTP статус (200, або 201 для створення).

    Returns:
        JSONResponse: Відповідь з конвертом {"success": true, "data": ...}.
    """
    payload: Dict[str, Any] = {"success": True, "data": data}
    if meta:
        payload["meta"] = meta
    return JSONResponse(content=jsonable_encoder(payload), status_code=status_code)


def api_error(
    message: str,
    code: ErrorCode = ErrorCode.UNKNOWN_ERROR,
    status_code: Optional[int] = None,
    details: Any = None,
) -> JSONResponse:
    """
    Створює відповідь з помилкою у стандартному форматі.

    Args:
        message (str): Повідомлення для користувача.
        code (ErrorCode): Код помилки.
        status_code (int, optional): HTTP статус; за замовчуванням визначається кодом.
        details (Any, optional): Діагностичні деталі.

    Returns:
        JSONResponse: Відповідь з конвертом {"success": false, "error": {...}}.
    """
    code = ErrorCode(code)
    error: Dict[str, Any] = {"code": code.value, "message": message}
    if details is not None:
        error["details"] = details
    return JSONResponse(
        content=jsonable_encoder({"success": False, "error": error}),
        status_code=status_code or status_for(code),
    )


class ApiErrors:
    """Готові відповіді для типових помилок."""

    @staticmethod
    def unauthorized(message: str = "Unauthorized", details: Any = None) -> JSONResponse:
        return api_error(message, ErrorCode.UNAUTHORIZED, 401, details)

    @staticmethod
    def forbidden(message: str = "Forbidden", details: Any = None) -> JSONResponse:
        return api_error(message, ErrorCode.FORBIDDEN, 403, details)

    @staticmethod
    def bad_request(message: str = "Bad request", details: Any = None) -> JSONResponse:
        return api_error(message, ErrorCode.BAD_REQUEST, 400, details)

    @staticmethod
    def validation_error(message: str = "Validation failed", details: Any = None) -> JSONResponse:
        return api_error(message, ErrorCode.VALIDATION_ERROR, 400, details)

    @staticmethod
    def not_found(message: str = "Resource not found", details: Any = None) -> JSONResponse:
        return api_error(message, ErrorCode.NOT_FOUND, 404, details)

    @staticmethod
    def internal_error(message: str = "Internal server error", details: Any = None) -> JSONResponse:
        return api_error(message, ErrorCode.INTERNAL_ERROR, 500, details)

    @staticmethod
    def database_error(message: str = "Database error", details: Any = None) -> JSONResponse:
        return api_error(message, ErrorCode.DATABASE_ERROR, 500, details)


# --- Винятки ---

class ApiException(Exception):
    """
    Базовий виняток API. Атрибут `name` є дискримінатором, за яким
    `with_error_handling` визначає код і статус відповіді.
    """
    name = "ApiException"
    default_message = "An unexpected error occurred"

    def __init__(self, message: Optional[str] = None, details: Any = None):
        self.message = message or self.default_message
        self.details = details
        super().__init__(self.message)


class ValidationError(ApiException):
    name = "ValidationError"
    default_message = "Validation failed"


class BadRequestError(ApiException):
    name = "BadRequestError"
    default_message = "Bad request"


class DatabaseError(ApiException):
    name = "DatabaseError"
    default_message = "Database error"


class AuthorizationError(ApiException):
    name = "AuthorizationError"
    default_message = "Unauthorized"


class ForbiddenError(ApiException):
    name = "ForbiddenError"
    default_message = "Forbidden"


class NotFoundError(ApiException):
    name = "NotFoundError"
    default_message = "Resource not found"


class UploadError(ApiException):
    name = "UploadError"
    default_message = "Upload failed"


class StorageError(ApiException):
    name = "StorageError"
    default_message = "Storage error"


ERROR_CODE_BY_NAME = {
    "ValidationError": ErrorCode.VALIDATION_ERROR,
    "BadRequestError": ErrorCode.BAD_REQUEST,
    "DatabaseError": ErrorCode.DATABASE_ERROR,
    "AuthorizationError": ErrorCode.UNAUTHORIZED,
    "ForbiddenError": ErrorCode.FORBIDDEN,
    "NotFoundError": ErrorCode.NOT_FOUND,
    "UploadError": ErrorCode.UPLOAD_ERROR,
    "StorageError": ErrorCode.STORAGE_ERROR,
}


def error_response(exc: BaseException) -> JSONResponse:
    """
    Перетворює довільний виняток на відповідь-конверт.

    Args:
        exc (BaseException): Виняток, що виник в обробнику.

    Returns:
        JSONResponse: Відповідь з відповідним кодом і статусом.
    """
    if isinstance(exc, ApiException):
        code = ERROR_CODE_BY_NAME.get(exc.name, ErrorCode.INTERNAL_ERROR)
        return api_error(exc.message, code, status_for(code), exc.details)
    if isinstance(exc, SQLAlchemyError):
        return api_error("Database error", ErrorCode.DATABASE_ERROR, 500, str(exc.__class__.__name__))
    return api_error(str(exc) or "An unexpected error occurred", ErrorCode.INTERNAL_ERROR, 500)


def _log_exception(handler_name: str, exc: BaseException) -> None:
    if isinstance(exc, ApiException) and not isinstance(exc, DatabaseError):
        logger.warning(f"[API] {handler_name}: {exc.name}: {exc.message}")
    else:
        logger.error(f"[API] Unhandled exception in {handler_name}: {exc}", exc_info=exc)


def with_error_handling(handler: Callable) -> Callable:
    """
    Декоратор, що гарантує формат конверта для будь-якого результату обробника.

    Відомі винятки (ValidationError, DatabaseError, AuthorizationError,
    ForbiddenError, NotFoundError тощо) перетворюються на відповідний код і статус,
    будь-який інший виняток - на INTERNAL_ERROR/500.

    Args:
        handler (Callable): Синхронний або асинхронний обробник маршруту.

    Returns:
        Callable: Обгорнутий обробник з тією ж сигнатурою.
    """
    if inspect.iscoroutinefunction(handler):
        @wraps(handler)
        async def async_wrapper(*args, **kwargs):
            try:
                return await handler(*args, **kwargs)
            except Exception as exc:
                _log_exception(handler.__name__, exc)
                return error_response(exc)
        return async_wrapper

    @wraps(handler)
    def wrapper(*args, **kwargs):
        try:
            return handler(*args, **kwargs)
        except Exception as exc:
            _log_exception(handler.__name__, exc)
            return error_response(exc)
    return wrapper
