# app/routers/events.py
import logging
from typing import Any, Optional

from fastapi import APIRouter, Body, Depends, Query

from app import crud, models, schemas
from app.auth import get_action_client, get_read_only_client
from app.responses import ERROR_RESPONSES, ApiSuccess, NotFoundError, api_success, with_error_handling
from app.routers import split_ids
from app.session import SessionClient

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/events", tags=["events"], responses=ERROR_RESPONSES)

EVENT_ORDERING = (models.Event.date.desc(), models.Event.created_at.desc())


@router.get("", response_model=ApiSuccess)
@with_error_handling
def list_events(client: SessionClient = Depends(get_read_only_client)):
    """
    Повертає події поточного користувача, новіші спочатку.

    Args:
        client (SessionClient): Сесійний клієнт запиту.

    Returns:
        JSONResponse: {"success": true, "data": [Event, ...]}.
    """
    rows = client.resource("events").list(order_by=EVENT_ORDERING)
    return api_success([schemas.dump(schemas.EventOut, row) for row in rows])


@router.post("", response_model=ApiSuccess, status_code=201)
@with_error_handling
def create_event(payload: Any = Body(...), client: SessionClient = Depends(get_action_client)):
    """
    Створює нову подію для поточного користувача.

    Args:
        payload (Any): JSON тіло запиту (title і date обов'язкові).
        client (SessionClient): Сесійний клієнт запиту.

    Returns:
        JSONResponse: Створена подія зі статусом 201.
    """
    events = client.resource("events")
    data = schemas.normalize(schemas.EventCreate, payload)
    row = events.insert(data)
    logger.info(f"User {events.owner_id} created event {row.id}")
    return api_success(schemas.dump(schemas.EventOut, row), status_code=201)


@router.get("/{event_id}", response_model=ApiSuccess)
@with_error_handling
def read_event(event_id: str, client: SessionClient = Depends(get_read_only_client)):
    """
    Повертає подію за її ID.

    Raises:
        NotFoundError: Якщо подію не знайдено або вона належить іншому користувачу.
    """
    row = client.resource("events").get_or_404(event_id, "Event")
    return api_success(schemas.dump(schemas.EventOut, row))


@router.put("/{event_id}", response_model=ApiSuccess)
@with_error_handling
def update_event(event_id: str, payload: Any = Body(...), client: SessionClient = Depends(get_action_client)):
    """
    Частково оновлює подію. Порожнє тіло запиту відхиляється як BAD_REQUEST.

    Args:
        event_id (str): Ідентифікатор події.
        payload (Any): Поля для оновлення.
        client (SessionClient): Сесійний клієнт запиту.

    Returns:
        JSONResponse: Оновлена подія.
    """
    events = client.resource("events")
    data = schemas.normalize(schemas.EventUpdate, payload, partial=True)
    row = events.update(event_id, data)
    if row is None:
        raise NotFoundError("Event not found")
    return api_success(schemas.dump(schemas.EventOut, row))


@router.delete("/{event_id}", response_model=ApiSuccess)
@with_error_handling
def delete_event(
    event_id: str,
    contact_ids: Optional[str] = Query(None, alias="contactIds"),
    client: SessionClient = Depends(get_action_client),
):
    """
    Видаляє подію, за потреби разом з обраними контактами.

    Контакти видаляються першими і без гарантій: невдалі видалення повертаються
    як попередження в `meta.warnings`, але подія все одно видаляється.

    Args:
        event_id (str): Ідентифікатор події.
        contact_ids (str, optional): Контакти через кому ("?contactIds=a,b").
        client (SessionClient): Сесійний клієнт запиту.

    Returns:
        JSONResponse: message, deleted_contact_ids, failed_contact_ids.
    """
    owner = client.require_user()
    result = crud.delete_event_with_contacts(client.db, owner["id"], event_id, split_ids(contact_ids))
    warnings = result.pop("warnings")
    data = {"message": "Event deleted successfully", **result}
    return api_success(data, meta={"warnings": warnings} if warnings else None)
