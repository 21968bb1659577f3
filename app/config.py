# app/config.py
import os
import re

from dotenv import load_dotenv

# Завантаження змінних середовища
load_dotenv()


def _env_bool(name: str, default: bool = False) -> bool:
    """
    Читає булеву змінну середовища ("1", "true", "yes", "on" вважаються істиною).

    Args:
        name (str): Назва змінної середовища.
        default (bool): Значення за замовчуванням.

    Returns:
        bool: Значення змінної.
    """
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


DATABASE_URL = os.getenv("DATABASE_URL", "postgresql+psycopg2://postgres:12345@db:5432/postgres")

# --- Токени сесії ---
SECRET_KEY = os.getenv("SECRET_KEY", "your_secret_key")
ALGORITHM = os.getenv("ALGORITHM", "HS256")
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "60"))
REFRESH_TOKEN_EXPIRE_DAYS = int(os.getenv("REFRESH_TOKEN_EXPIRE_DAYS", "30"))
CONFIRMATION_TOKEN_EXPIRE_HOURS = int(os.getenv("CONFIRMATION_TOKEN_EXPIRE_HOURS", "24"))
REQUIRE_EMAIL_CONFIRMATION = _env_bool("REQUIRE_EMAIL_CONFIRMATION", False)

# --- Сервіс даних/аутентифікації ---
CRM_SERVICE_URL = os.getenv("CRM_SERVICE_URL", "https://localdev.crm.local")
CRM_SERVICE_KEY = os.getenv("CRM_SERVICE_KEY", "local-anon-key")
SITE_URL = os.getenv("SITE_URL", "http://localhost:8000").rstrip("/")
AUTH_TIMEOUT_SECONDS = float(os.getenv("AUTH_TIMEOUT_SECONDS", "5"))


def project_ref(service_url: str) -> str:
    """
    Виділяє ідентифікатор проєкту з URL сервісу (перший сегмент хоста).

    Args:
        service_url (str): Базовий URL сервісу, напр. "https://abcd.crm.io".

    Returns:
        str: Ідентифікатор проєкту або "local", якщо його не вдалося виділити.
    """
    match = re.match(r"^https?://([^./:]+)", service_url or "")
    return match.group(1) if match else "local"


AUTH_COOKIE_NAME = os.getenv("AUTH_COOKIE_NAME") or f"sb-{project_ref(CRM_SERVICE_URL)}-auth-token"

# --- Cookies ---
COOKIE_MAX_CHUNK_SIZE = int(os.getenv("COOKIE_MAX_CHUNK_SIZE", "4000"))
COOKIE_MAX_CHUNKS = int(os.getenv("COOKIE_MAX_CHUNKS", "5"))
COOKIE_SECURE = _env_bool("COOKIE_SECURE", False)
COOKIE_MAX_AGE = int(os.getenv("COOKIE_MAX_AGE", str(60 * 60 * 24 * 7)))  # тиждень

# --- Інфраструктура ---
REDIS_URL = os.getenv("REDIS_URL")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
CORS_ORIGINS = [origin.strip() for origin in os.getenv("CORS_ORIGINS", "*").split(",") if origin.strip()]
