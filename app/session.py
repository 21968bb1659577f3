# app/session.py
"""
Фабрика сесійних клієнтів.

Сесійний клієнт прив'язаний до одного запиту та до стратегії доступу до cookies:

* read-only    - рендеринг/читання: запис cookies ігнорується з попередженням;
* action       - обробка форм і API: зміни cookies буферизуються і записуються
                 у відповідь через `commit_cookies`;
* middleware   - пара запит/відповідь: оновлена сесія стає видимою для
                 маршрутів через `request.state`, а зміни потрапляють у відповідь.

Cookies токена аутентифікації завжди читаються та пишуться через кодек
фрагментованих cookies, усі інші - як звичайні одиночні cookies.
"""
import base64
import binascii
import json
import logging
import time
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FuturesTimeout
from datetime import timedelta
from typing import Callable, Dict, Mapping, Optional

from fastapi import Request, Response
from sqlalchemy.orm import Session

from . import cache, config, crud
from .cookies import CookieFragmentCodec, is_auth_cookie, split_fragment_name
from .database import SessionLocal
from .responses import AuthorizationError

logger = logging.getLogger(__name__)

SESSION_PREFIX = "base64-"
REFRESH_MARGIN_SECONDS = 60

DEFAULT_COOKIE_OPTIONS = {
    "path": "/",
    "max_age": config.COOKIE_MAX_AGE,
    "secure": config.COOKIE_SECURE,
    "httponly": True,
    "samesite": "lax",
}

_auth_executor = ThreadPoolExecutor(max_workers=4, thread_name_prefix="auth-lookup")


# --- Сховища cookies ---

class ReadOnlyCookieStore:
    """Cookies запиту без права запису (контекст рендерингу)."""

    def __init__(self, cookies: Mapping[str, str]):
        self._cookies = dict(cookies)

    def get(self, name: str) -> Optional[str]:
        return self._cookies.get(name)

    def names(self):
        return list(self._cookies)

    def set(self, name: str, value: str, **options) -> None:
        logger.warning(f"Cannot set cookie '{name}' in a read-only context")

    def delete(self, name: str, **options) -> None:
        logger.warning(f"Cannot remove cookie '{name}' in a read-only context")


class ResponseCookieStore:
    """
    Cookies запиту з буфером змін.

    Зміни одразу видно при наступних читаннях (read-after-write), а у відповідь
    вони записуються методом `apply`.
    """

    def __init__(self, cookies: Mapping[str, str]):
        self._cookies = dict(cookies)
        self.pending: Dict[str, Optional[str]] = {}
        self._options: Dict[str, dict] = {}

    def get(self, name: str) -> Optional[str]:
        if name in self.pending:
            return self.pending[name]
        return self._cookies.get(name)

    def names(self):
        names = set(self._cookies) | set(self.pending)
        return [name for name in names if self.get(name) is not None]

    def set(self, name: str, value: str, **options) -> None:
        self.pending[name] = value
        self._options[name] = options

    def delete(self, name: str, **options) -> None:
        if name in self._cookies:
            self.pending[name] = None
            self._options[name] = options
        else:
            # у браузері такої cookie немає - достатньо скасувати незаписане значення
            self.pending.pop(name, None)
            self._options.pop(name, None)

    def apply(self, response: Response) -> Response:
        """
        Записує буферизовані зміни у відповідь.

        Args:
            response (Response): Відповідь, що буде відправлена клієнту.

        Returns:
            Response: Та сама відповідь.
        """
        for name, value in self.pending.items():
            options = self._options.get(name, {})
            if value is None:
                response.delete_cookie(name, path=options.get("path", "/"), domain=options.get("domain"))
            else:
                response.set_cookie(name, value, **options)
        return response


def session_cookies(request: Request) -> Dict[str, str]:
    """
    Cookies запиту з урахуванням змін, які вже зробив middleware.

    Args:
        request (Request): Поточний запит.

    Returns:
        dict: Назва cookie -> значення.
    """
    cookies = dict(request.cookies)
    for name, value in getattr(request.state, "cookie_overlay", {}).items():
        if value is None:
            cookies.pop(name, None)
        else:
            cookies[name] = value
    return cookies


# --- Завантаження користувача ---

def load_user(user_id: str) -> Optional[dict]:
    """
    Завантажує користувача (спершу з кешу Redis, потім з бази даних).

    Args:
        user_id (str): Ідентифікатор користувача з токена.

    Returns:
        dict або None: Дані користувача або None, якщо його не знайдено.
    """
    cached = cache.get_cached_user(user_id)
    if cached:
        return cached
    db = SessionLocal()
    try:
        user = crud.get_user(db, user_id)
        if user is None:
            return None
        user_dict = crud.user_to_dict(user)
    finally:
        db.close()
    cache.cache_user(user_dict)
    return user_dict


def encode_session(session: dict) -> str:
    raw = json.dumps(session, separators=(",", ":")).encode("utf-8")
    # base64url без "=" - значення cookie не потребує лапок
    return SESSION_PREFIX + base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")


def decode_session(value: str) -> Optional[dict]:
    """
    Розбирає значення cookie сесії.

    Returns:
        dict або None: Сесія або None, якщо значення пошкоджене.
    """
    if not value:
        return None
    try:
        if value.startswith(SESSION_PREFIX):
            payload = value[len(SESSION_PREFIX):]
            payload += "=" * (-len(payload) % 4)
            value = base64.urlsafe_b64decode(payload.encode("ascii")).decode("utf-8")
        session = json.loads(value)
    except (ValueError, binascii.Error) as e:
        logger.warning(f"Malformed session cookie: {e}")
        return None
    return session if isinstance(session, dict) else None


def build_session(user: dict) -> dict:
    """
    Видає нову пару токенів для користувача.

    Args:
        user (dict): Щонайменше id та email.

    Returns:
        dict: access_token, refresh_token, token_type, expires_in, expires_at, user.
    """
    claims = {
        "sub": user["id"],
        "email": user.get("email"),
        "user_metadata": {"full_name": user.get("full_name")},
    }
    expires_in = config.ACCESS_TOKEN_EXPIRE_MINUTES * 60
    return {
        "access_token": crud.create_token(claims, crud.ACCESS_TOKEN, timedelta(seconds=expires_in)),
        "refresh_token": crud.create_token(claims, crud.REFRESH_TOKEN, timedelta(days=config.REFRESH_TOKEN_EXPIRE_DAYS)),
        "token_type": "bearer",
        "expires_in": expires_in,
        "expires_at": int(time.time()) + expires_in,
        "user": {"id": user["id"], "email": user.get("email"), "user_metadata": claims["user_metadata"]},
    }


# --- Сесійний клієнт ---

class SessionClient:
    """
    Клієнт, через який маршрут автентифікує користувача та звертається до даних.

    Args:
        cookies: Сховище cookies (ReadOnlyCookieStore або ResponseCookieStore).
        db (Session, optional): Сесія бази даних для CRUD.
        cookie_name (str): Базова назва cookie сесії.
        codec (CookieFragmentCodec, optional): Кодек фрагментованих cookies.
        auth_timeout (float): Ліміт часу на перевірку користувача, секунд.
        user_loader (Callable): Функція завантаження користувача за id.
    """

    def __init__(
        self,
        cookies,
        db: Optional[Session] = None,
        cookie_name: str = config.AUTH_COOKIE_NAME,
        codec: Optional[CookieFragmentCodec] = None,
        auth_timeout: float = config.AUTH_TIMEOUT_SECONDS,
        user_loader: Callable[[str], Optional[dict]] = load_user,
    ):
        self.cookies = cookies
        self.db = db
        self.cookie_name = cookie_name
        self.codec = codec or CookieFragmentCodec()
        self.auth_timeout = auth_timeout
        self.cookie_options = dict(DEFAULT_COOKIE_OPTIONS)
        self._user_loader = user_loader
        self._user: Optional[dict] = None

    # --- cookies ---

    def get_cookie(self, name: str) -> Optional[str]:
        if is_auth_cookie(name):
            return self.codec.decode(name, self.cookies) or None
        try:
            return self.cookies.get(name)
        except Exception as e:
            logger.error(f"[Cookie Error] Failed to read cookie '{name}': {e}")
            return None

    def set_cookie(self, name: str, value: str) -> None:
        if is_auth_cookie(name):
            self.codec.encode(name, value, self.cookies, **self.cookie_options)
        else:
            self.cookies.set(name, value, **self.cookie_options)

    def remove_cookie(self, name: str) -> None:
        if is_auth_cookie(name):
            self.codec.clear(name, self.cookies, path=self.cookie_options["path"])
        else:
            self.cookies.delete(name, path=self.cookie_options["path"])

    def commit_cookies(self, response: Response) -> Response:
        """Записує зміни cookies у відповідь (для read-only клієнта нічого не робить)."""
        if isinstance(self.cookies, ResponseCookieStore):
            self.cookies.apply(response)
        return response

    # --- сесія ---

    def get_session(self) -> Optional[dict]:
        return decode_session(self.get_cookie(self.cookie_name))

    def set_session(self, user: dict) -> dict:
        session = build_session(user)
        self.set_cookie(self.cookie_name, encode_session(session))
        self._user = None
        return session

    def clear_session(self) -> None:
        self.remove_cookie(self.cookie_name)
        self._user = None

    def clear_all_auth_cookies(self) -> list:
        """
        Видаляє всі cookies, схожі на cookies аутентифікації.

        Returns:
            list: Базові назви очищених cookies.
        """
        bases = sorted({split_fragment_name(name)[0] for name in self.cookies.names() if is_auth_cookie(name)})
        for base in bases:
            self.remove_cookie(base)
        return bases

    def refresh_session(self) -> bool:
        """
        Оновлює сесію, якщо access токен прострочений або скоро сплине.

        Якщо недійсний і refresh токен, cookies сесії видаляються.

        Returns:
            bool: True, якщо було видано нову сесію.
        """
        raw = self.get_cookie(self.cookie_name)
        if not raw:
            return False
        session = decode_session(raw) or {}
        claims = crud.decode_token(session.get("access_token"), crud.ACCESS_TOKEN)
        if claims and claims["exp"] - time.time() > REFRESH_MARGIN_SECONDS:
            return False

        refresh = crud.decode_token(session.get("refresh_token"), crud.REFRESH_TOKEN)
        if not refresh:
            logger.info("Session expired and cannot be refreshed; clearing auth cookies")
            self.clear_session()
            return False

        metadata = refresh.get("user_metadata") or {}
        self.set_session({"id": refresh["sub"], "email": refresh.get("email"), "full_name": metadata.get("full_name")})
        logger.info(f"Session refreshed for user {refresh['sub']}")
        return True

    def get_current_user(self) -> Optional[dict]:
        """
        Повертає поточного користувача або None, якщо дійсної сесії немає.

        Перевірка користувача обмежена `auth_timeout`; перевищення ліміту
        логується і трактується як відсутність сесії.

        Returns:
            dict або None: {id, email, full_name, is_active, is_verified}.
        """
        if self._user is not None:
            return self._user
        session = self.get_session()
        if not session:
            return None
        claims = crud.decode_token(session.get("access_token"), crud.ACCESS_TOKEN)
        if not claims:
            return None

        future = _auth_executor.submit(self._user_loader, claims["sub"])
        try:
            user = future.result(timeout=self.auth_timeout)
        except FuturesTimeout:
            future.cancel()
            logger.error(f"User lookup timed out after {self.auth_timeout}s")
            return None
        except Exception as e:
            logger.error(f"User lookup failed: {e}", exc_info=e)
            return None

        if not user or not user.get("is_active", True):
            return None
        self._user = user
        return user

    def require_user(self) -> dict:
        user = self.get_current_user()
        if user is None:
            raise AuthorizationError("Authentication required")
        return user

    def resource(self, table: str) -> crud.OwnedResource:
        """
        CRUD над таблицею в межах рядків поточного користувача.

        Raises:
            AuthorizationError: Якщо користувач не автентифікований.
        """
        user = self.require_user()
        return crud.OwnedResource(self.db, table, user["id"])


# --- Фабрики ---

def create_server_component_client(request: Request, db: Optional[Session] = None) -> SessionClient:
    """Клієнт для контексту рендерингу: читає cookies, але не змінює їх."""
    return SessionClient(ReadOnlyCookieStore(session_cookies(request)), db)


def create_server_action_client(request: Request, db: Optional[Session] = None) -> SessionClient:
    """Клієнт для обробки дій: зміни cookies записуються через `commit_cookies`."""
    return SessionClient(ResponseCookieStore(session_cookies(request)), db)


class MiddlewareSession:
    """
    Сесійний клієнт для middleware над парою запит/відповідь.

    Args:
        request (Request): Вхідний запит.
    """

    def __init__(self, request: Request):
        self.request = request
        self.store = ResponseCookieStore(request.cookies)
        self.client = SessionClient(self.store)

    def refresh(self) -> bool:
        """Оновлює сесію і робить нові cookies видимими для маршрутів цього запиту."""
        try:
            refreshed = self.client.refresh_session()
        except Exception as e:
            logger.error(f"Session refresh failed: {e}", exc_info=e)
            return False
        self.request.state.cookie_overlay = dict(self.store.pending)
        return refreshed

    def finalize(self, response: Response) -> Response:
        return self.store.apply(response)


def create_middleware_client(request: Request) -> MiddlewareSession:
    return MiddlewareSession(request)
