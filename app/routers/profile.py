# app/routers/profile.py
import logging
from typing import Any, Optional

import cloudinary.exceptions
import cloudinary.uploader
from fastapi import APIRouter, Body, Depends, File, UploadFile

from app import crud, schemas
from app.auth import get_action_client, get_read_only_client
from app.responses import (
    ERROR_RESPONSES,
    ApiSuccess,
    DatabaseError,
    UploadError,
    ValidationError,
    api_success,
    with_error_handling,
)
from app.session import SessionClient

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/profile", tags=["profile"], responses=ERROR_RESPONSES)

AVATAR_FOLDER = "avatars"


@router.get("", response_model=ApiSuccess)
@with_error_handling
def read_profile(client: SessionClient = Depends(get_read_only_client)):
    """
    Повертає профіль поточного користувача.

    Returns:
        JSONResponse: Профіль або `data: null`, якщо профіль ще не створено.
    """
    user = client.require_user()
    profile = crud.get_profile(client.db, user["id"])
    return api_success(schemas.dump(schemas.ProfileOut, profile) if profile else None)


def _save_profile(payload: Any, client: SessionClient):
    user = client.require_user()
    data = schemas.normalize(schemas.ProfileUpdate, payload, partial=True)
    profile = crud.upsert_profile(client.db, user["id"], data)
    return api_success(schemas.dump(schemas.ProfileOut, profile))


@router.put("", response_model=ApiSuccess)
@with_error_handling
def update_profile(payload: Any = Body(...), client: SessionClient = Depends(get_action_client)):
    """
    Оновлює профіль користувача (створює його при першому збереженні).

    Args:
        payload (Any): Поля профілю.
        client (SessionClient): Сесійний клієнт запиту.

    Returns:
        JSONResponse: Збережений профіль.
    """
    return _save_profile(payload, client)


@router.post("", response_model=ApiSuccess)
@with_error_handling
def setup_profile(payload: Any = Body(...), client: SessionClient = Depends(get_action_client)):
    """Перше заповнення профілю; поводиться так само, як PUT."""
    return _save_profile(payload, client)


@router.post("/avatar", response_model=ApiSuccess)
@with_error_handling
def upload_avatar(
    file: Optional[UploadFile] = File(None),
    client: SessionClient = Depends(get_action_client),
):
    """
    Завантажує новий аватар до Cloudinary та зберігає посилання в профілі.

    Якщо профіль не вдалося оновити, завантажений файл видаляється з Cloudinary.

    Args:
        file (UploadFile): Файл зображення.
        client (SessionClient): Сесійний клієнт запиту.

    Returns:
        JSONResponse: Профіль з новим avatar_url.

    Raises:
        ValidationError: Якщо файл не передано.
        UploadError: Якщо Cloudinary відхилив завантаження.
        DatabaseError: Якщо профіль не вдалося зберегти.
    """
    user = client.require_user()
    if file is None or not file.filename:
        raise ValidationError("No file provided", [{"field": "file", "message": "File is required"}])

    try:
        result = cloudinary.uploader.upload(file.file, folder=f"{AVATAR_FOLDER}/{user['id']}", overwrite=True)
    except cloudinary.exceptions.Error as e:
        raise UploadError(f"Avatar upload failed: {e}") from e

    try:
        profile = crud.upsert_profile(client.db, user["id"], {"avatar_url": result.get("secure_url")})
    except DatabaseError:
        logger.warning(f"Rolling back avatar upload {result.get('public_id')} for user {user['id']}")
        cloudinary.uploader.destroy(result.get("public_id"))
        raise
    return api_success(schemas.dump(schemas.ProfileOut, profile))
