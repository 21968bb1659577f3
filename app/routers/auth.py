# app/routers/auth.py
import logging
from datetime import timedelta
from typing import Any

from fastapi import APIRouter, Body, Depends

from app import cache, config, crud, schemas
from app.auth import get_action_client, get_read_only_client
from app.responses import (
    ERROR_RESPONSES,
    ApiSuccess,
    AuthorizationError,
    BadRequestError,
    ForbiddenError,
    NotFoundError,
    api_success,
    with_error_handling,
)
from app.session import SessionClient

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"], responses=ERROR_RESPONSES)


def confirmation_url(user) -> str:
    """
    Будує посилання для підтвердження email на основі SITE_URL.

    Args:
        user (models.User): Користувач, якому надсилається посилання.

    Returns:
        str: Абсолютне посилання з токеном підтвердження.
    """
    token = crud.create_token(
        {"sub": user.id, "email": user.email},
        crud.CONFIRMATION_TOKEN,
        timedelta(hours=config.CONFIRMATION_TOKEN_EXPIRE_HOURS),
    )
    return f"{config.SITE_URL}/api/auth/confirm?token={token}"


def _user_out(user) -> dict:
    return schemas.UserOut(**crud.user_to_dict(user)).model_dump(mode="json")


@router.get("", response_model=ApiSuccess)
@with_error_handling
def read_current_user(client: SessionClient = Depends(get_read_only_client)):
    """
    Повертає поточного користувача.

    Raises:
        AuthorizationError: Якщо дійсної сесії немає.
    """
    user = client.require_user()
    return api_success(schemas.UserOut(**user).model_dump(mode="json"))


@router.post("/signup", response_model=ApiSuccess, status_code=201)
@with_error_handling
def signup(payload: Any = Body(...), client: SessionClient = Depends(get_action_client)):
    """
    Реєструє нового користувача.

    Якщо підтвердження email не обов'язкове, користувач одразу входить
    у систему (cookies сесії записуються у відповідь).

    Args:
        payload (Any): email, password, full_name.
        client (SessionClient): Сесійний клієнт запиту.

    Returns:
        JSONResponse: user, confirmation_url, session_created.

    Raises:
        BadRequestError: Якщо користувач з таким email вже існує.
    """
    data = schemas.normalize(schemas.SignupRequest, payload)
    if crud.get_user_by_email(client.db, data["email"]):
        raise BadRequestError("User with this email already exists")
    user = crud.create_user(client.db, data["email"], data["password"], data.get("full_name"))
    logger.info(f"User {user.id} signed up")

    session_created = not config.REQUIRE_EMAIL_CONFIRMATION
    if session_created:
        client.set_session(crud.user_to_dict(user))
    response = api_success(
        {"user": _user_out(user), "confirmation_url": confirmation_url(user), "session_created": session_created},
        status_code=201,
    )
    return client.commit_cookies(response)


@router.get("/confirm", response_model=ApiSuccess)
@with_error_handling
def confirm_email(token: str = "", client: SessionClient = Depends(get_action_client)):
    """
    Підтверджує email користувача за токеном з посилання.

    Raises:
        BadRequestError: Якщо токен недійсний або прострочений.
        NotFoundError: Якщо користувача вже не існує.
    """
    claims = crud.decode_token(token, crud.CONFIRMATION_TOKEN)
    if not claims:
        raise BadRequestError("Invalid or expired confirmation token")
    user = crud.get_user(client.db, claims["sub"])
    if user is None:
        raise NotFoundError("User not found")
    crud.mark_verified(client.db, user)
    cache.forget_user(user.id)
    return api_success({"message": "Email confirmed successfully"})


@router.post("/resend-confirmation", response_model=ApiSuccess)
@with_error_handling
def resend_confirmation(payload: Any = Body(...), client: SessionClient = Depends(get_action_client)):
    """
    Видає нове посилання для підтвердження email.

    Raises:
        NotFoundError: Якщо користувача з таким email немає.
        BadRequestError: Якщо email вже підтверджено.
    """
    data = schemas.normalize(schemas.ResendConfirmationRequest, payload)
    user = crud.get_user_by_email(client.db, data["email"])
    if user is None:
        raise NotFoundError("User not found")
    if user.is_verified:
        raise BadRequestError("Email already confirmed")
    return api_success({"message": "Confirmation link issued", "confirmation_url": confirmation_url(user)})


@router.post("/login", response_model=ApiSuccess)
@with_error_handling
def login(payload: Any = Body(...), client: SessionClient = Depends(get_action_client)):
    """
    Авторизує користувача та записує cookies сесії.

    Args:
        payload (Any): email і password.
        client (SessionClient): Сесійний клієнт запиту.

    Returns:
        JSONResponse: user та expires_at; токени передаються лише в cookies.

    Raises:
        AuthorizationError: Якщо email або пароль невірні.
        ForbiddenError: Якщо акаунт вимкнено або email не підтверджено.
    """
    data = schemas.normalize(schemas.LoginRequest, payload)
    user = crud.authenticate_user(client.db, data["email"], data["password"])
    if not user:
        raise AuthorizationError("Incorrect email or password")
    if not user.is_active:
        raise ForbiddenError("Account is disabled")
    if config.REQUIRE_EMAIL_CONFIRMATION and not user.is_verified:
        raise ForbiddenError("Email not confirmed")

    user_dict = crud.user_to_dict(user)
    session = client.set_session(user_dict)
    cache.cache_user(user_dict)
    response = api_success({"user": _user_out(user), "expires_at": session["expires_at"]})
    return client.commit_cookies(response)


@router.post("/logout", response_model=ApiSuccess)
@with_error_handling
def logout(client: SessionClient = Depends(get_action_client)):
    """Завершує сесію: видаляє cookies токена (усі фрагменти)."""
    user = client.get_current_user()
    if user:
        cache.forget_user(user["id"])
    client.clear_session()
    return client.commit_cookies(api_success({"message": "Logged out successfully"}))


@router.post("/clearall", response_model=ApiSuccess)
@with_error_handling
def clear_all(client: SessionClient = Depends(get_action_client)):
    """
    Видаляє всі cookies, схожі на cookies аутентифікації (зокрема від інших проєктів).

    Returns:
        JSONResponse: message і список очищених базових назв.
    """
    cleared = client.clear_all_auth_cookies()
    logger.info(f"Cleared auth cookies: {cleared}")
    return client.commit_cookies(api_success({"message": "Auth cookies cleared", "cleared": cleared}))
