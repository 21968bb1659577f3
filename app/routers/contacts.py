# app/routers/contacts.py
import logging
from typing import Any, Optional

from fastapi import APIRouter, Body, Depends, Query

from app import crud, models, schemas
from app.auth import get_action_client, get_read_only_client
from app.responses import (
    ERROR_RESPONSES,
    ApiSuccess,
    ErrorCode,
    NotFoundError,
    api_error,
    api_success,
    with_error_handling,
)
from app.routers import split_ids
from app.session import SessionClient

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/contacts", tags=["contacts"], responses=ERROR_RESPONSES)

CONTACT_ORDERING = (models.Contact.created_at.desc(),)


@router.get("", response_model=ApiSuccess)
@with_error_handling
def list_contacts(
    event_id: Optional[str] = Query(None, alias="eventId"),
    client: SessionClient = Depends(get_read_only_client),
):
    """
    Повертає контакти користувача, за потреби лише контакти однієї події.

    Args:
        event_id (str, optional): Фільтр за подією ("?eventId=...").
        client (SessionClient): Сесійний клієнт запиту.

    Returns:
        JSONResponse: {"success": true, "data": [Contact, ...]}.
    """
    rows = client.resource("contacts").list({"event_id": event_id}, order_by=CONTACT_ORDERING)
    return api_success([schemas.dump(schemas.ContactOut, row) for row in rows])


@router.post("", response_model=ApiSuccess, status_code=201)
@with_error_handling
def create_contact(payload: Any = Body(...), client: SessionClient = Depends(get_action_client)):
    """
    Створює контакт. Якщо передано event_id, подія має належати тому ж користувачу.

    Returns:
        JSONResponse: Створений контакт зі статусом 201.
    """
    contacts = client.resource("contacts")
    data = schemas.normalize(schemas.ContactCreate, payload)
    crud.assert_owned_relations(client.db, contacts.owner_id, event_id=data.get("event_id"))
    row = contacts.insert(data)
    logger.info(f"User {contacts.owner_id} created contact {row.id}")
    return api_success(schemas.dump(schemas.ContactOut, row), status_code=201)


@router.delete("", response_model=ApiSuccess)
@with_error_handling
def delete_contacts(
    ids: Optional[str] = Query(None, description="Ідентифікатори через кому"),
    client: SessionClient = Depends(get_action_client),
):
    """
    Масово видаляє контакти ("?ids=a,b,c").

    Якщо хоча б один контакт не знайдено або він чужий, нічого не видаляється.

    Returns:
        JSONResponse: message і deleted_count.
    """
    contact_ids = split_ids(ids)
    if not contact_ids:
        return api_error("Query parameter 'ids' is required", ErrorCode.MISSING_PARAMETER)
    contacts = client.resource("contacts")
    if contacts.count_owned(contact_ids) != len(contact_ids):
        raise NotFoundError("One or more contacts not found")
    count = contacts.delete_many(contact_ids)
    return api_success({"message": "Contacts deleted successfully", "deleted_count": count})


@router.get("/{contact_id}", response_model=ApiSuccess)
@with_error_handling
def read_contact(contact_id: str, client: SessionClient = Depends(get_read_only_client)):
    row = client.resource("contacts").get_or_404(contact_id, "Contact")
    return api_success(schemas.dump(schemas.ContactOut, row))


@router.put("/{contact_id}", response_model=ApiSuccess)
@with_error_handling
def update_contact(contact_id: str, payload: Any = Body(...), client: SessionClient = Depends(get_action_client)):
    """
    Частково оновлює контакт.

    Args:
        contact_id (str): Ідентифікатор контакту.
        payload (Any): Поля для оновлення; event_id = null від'єднує контакт від події.
        client (SessionClient): Сесійний клієнт запиту.

    Returns:
        JSONResponse: Оновлений контакт.
    """
    contacts = client.resource("contacts")
    data = schemas.normalize(schemas.ContactUpdate, payload, partial=True)
    crud.assert_owned_relations(client.db, contacts.owner_id, event_id=data.get("event_id"))
    row = contacts.update(contact_id, data)
    if row is None:
        raise NotFoundError("Contact not found")
    return api_success(schemas.dump(schemas.ContactOut, row))


@router.delete("/{contact_id}", response_model=ApiSuccess)
@with_error_handling
def delete_contact(contact_id: str, client: SessionClient = Depends(get_action_client)):
    """
    Видаляє контакт разом з його нотатками.

    Raises:
        NotFoundError: Якщо контакт не знайдено або він чужий.
    """
    if client.resource("contacts").delete(contact_id) == 0:
        raise NotFoundError("Contact not found")
    return api_success({"message": "Contact deleted successfully"})
