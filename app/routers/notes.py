# app/routers/notes.py
from typing import Any, Optional

from fastapi import APIRouter, Body, Depends, Query

from app import crud, models, schemas
from app.auth import get_action_client, get_read_only_client
from app.responses import ERROR_RESPONSES, ApiSuccess, NotFoundError, api_success, with_error_handling
from app.session import SessionClient

router = APIRouter(prefix="/api/notes", tags=["notes"], responses=ERROR_RESPONSES)

NOTE_ORDERING = (models.Note.created_at.desc(),)


@router.get("", response_model=ApiSuccess)
@with_error_handling
def list_notes(
    contact_id: Optional[str] = Query(None, alias="contactId"),
    client: SessionClient = Depends(get_read_only_client),
):
    """
    Повертає нотатки користувача, за потреби лише нотатки одного контакту.

    Args:
        contact_id (str, optional): Фільтр за контактом ("?contactId=...").
        client (SessionClient): Сесійний клієнт запиту.

    Returns:
        JSONResponse: {"success": true, "data": [Note, ...]}.
    """
    rows = client.resource("notes").list({"contact_id": contact_id}, order_by=NOTE_ORDERING)
    return api_success([schemas.dump(schemas.NoteOut, row) for row in rows])


@router.post("", response_model=ApiSuccess, status_code=201)
@with_error_handling
def create_note(payload: Any = Body(...), client: SessionClient = Depends(get_action_client)):
    """
    Створює нотатку до контакту поточного користувача.

    Returns:
        JSONResponse: Створена нотатка зі статусом 201.
    """
    notes = client.resource("notes")
    data = schemas.normalize(schemas.NoteCreate, payload)
    crud.assert_owned_relations(client.db, notes.owner_id, contact_id=data["contact_id"])
    row = notes.insert(data)
    return api_success(schemas.dump(schemas.NoteOut, row), status_code=201)


@router.get("/{note_id}", response_model=ApiSuccess)
@with_error_handling
def read_note(note_id: str, client: SessionClient = Depends(get_read_only_client)):
    row = client.resource("notes").get_or_404(note_id, "Note")
    return api_success(schemas.dump(schemas.NoteOut, row))


@router.put("/{note_id}", response_model=ApiSuccess)
@with_error_handling
def update_note(note_id: str, payload: Any = Body(...), client: SessionClient = Depends(get_action_client)):
    notes = client.resource("notes")
    data = schemas.normalize(schemas.NoteUpdate, payload, partial=True)
    row = notes.update(note_id, data)
    if row is None:
        raise NotFoundError("Note not found")
    return api_success(schemas.dump(schemas.NoteOut, row))


@router.delete("/{note_id}", response_model=ApiSuccess)
@with_error_handling
def delete_note(note_id: str, client: SessionClient = Depends(get_action_client)):
    if client.resource("notes").delete(note_id) == 0:
        raise NotFoundError("Note not found")
    return api_success({"message": "Note deleted successfully"})
