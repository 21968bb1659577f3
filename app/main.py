# app/main.py
import logging
import os

import cloudinary
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException

from app import config, models
from app.database import engine
from app.responses import ApiException, ErrorCode, api_error, error_response
from app.routers import auth, contacts, events, notes, profile, tasks
from app.session import create_middleware_client

# Налаштування логування
logging.basicConfig(
    level=config.LOG_LEVEL.upper(),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)

# Налаштування Cloudinary
cloudinary.config(
  cloud_name=os.getenv("CLOUDINARY_CLOUD_NAME"),
  api_key=os.getenv("CLOUDINARY_API_KEY"),
  api_secret=os.getenv("CLOUDINARY_API_SECRET")
)

# Створення таблиць у базі даних
models.Base.metadata.create_all(bind=engine)

app = FastAPI(
    title="Networking CRM API",
    description="REST API для подій, контактів, нотаток і завдань персональної мережі знайомств",
    version="1.0.0"
)

# Увімкнення CORS (не забудьте обмежити доступ у production)
app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Вхід, вихід і реєстрація самі керують cookies сесії
SESSION_REFRESH_EXCLUDED = ("/api/auth/",)

HTTP_ERROR_CODES = {
    400: ErrorCode.BAD_REQUEST,
    401: ErrorCode.UNAUTHORIZED,
    403: ErrorCode.FORBIDDEN,
    404: ErrorCode.NOT_FOUND,
}


@app.middleware("http")
async def refresh_session(request: Request, call_next):
    """
    Оновлює сесію перед обробкою запиту і переносить зміни cookies у відповідь.

    Args:
        request (Request): Вхідний запит.
        call_next: Наступний обробник у ланцюжку.

    Returns:
        Response: Відповідь маршруту з оновленими cookies.
    """
    if request.url.path.startswith(SESSION_REFRESH_EXCLUDED):
        return await call_next(request)
    middleware_client = create_middleware_client(request)
    middleware_client.refresh()
    response = await call_next(request)
    return middleware_client.finalize(response)


# --- Обробники помилок рівня застосунку ---

@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    details = [
        {"field": ".".join(str(part) for part in error["loc"]), "message": error["msg"]}
        for error in exc.errors()
    ]
    return api_error("Validation failed", ErrorCode.VALIDATION_ERROR, 400, details)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    code = HTTP_ERROR_CODES.get(exc.status_code, ErrorCode.UNKNOWN_ERROR)
    return api_error(str(exc.detail), code, exc.status_code)


@app.exception_handler(ApiException)
async def api_exception_handler(request: Request, exc: ApiException):
    return error_response(exc)


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled exception on {request.method} {request.url.path}: {exc}", exc_info=exc)
    return error_response(exc)


app.include_router(auth.router)
app.include_router(events.router)
app.include_router(contacts.router)
app.include_router(notes.router)
app.include_router(tasks.router)
app.include_router(profile.router)
