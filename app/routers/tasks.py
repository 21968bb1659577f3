# app/routers/tasks.py
import logging
from typing import Any, Optional

from fastapi import APIRouter, Body, Depends, Query

from app import crud, models, schemas
from app.auth import get_action_client, get_read_only_client
from app.responses import ERROR_RESPONSES, ApiSuccess, NotFoundError, api_success, with_error_handling
from app.session import SessionClient

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/tasks", tags=["tasks"], responses=ERROR_RESPONSES)

# Завдання без терміну - в кінці списку
TASK_ORDERING = (models.ActionItem.due_date.asc().nulls_last(), models.ActionItem.created_at.asc())


@router.get("", response_model=ApiSuccess)
@with_error_handling
def list_tasks(
    contact_id: Optional[str] = Query(None, alias="contactId"),
    event_id: Optional[str] = Query(None, alias="eventId"),
    client: SessionClient = Depends(get_read_only_client),
):
    """
    Повертає завдання користувача, впорядковані за терміном виконання.

    Args:
        contact_id (str, optional): Фільтр за контактом ("?contactId=...").
        event_id (str, optional): Фільтр за подією ("?eventId=...").
        client (SessionClient): Сесійний клієнт запиту.

    Returns:
        JSONResponse: {"success": true, "data": [Task, ...]}.
    """
    filters = {"contact_id": contact_id, "event_id": event_id}
    rows = client.resource("action_items").list(filters, order_by=TASK_ORDERING)
    return api_success([schemas.dump(schemas.TaskOut, row) for row in rows])


@router.post("", response_model=ApiSuccess, status_code=201)
@with_error_handling
def create_task(payload: Any = Body(...), client: SessionClient = Depends(get_action_client)):
    """
    Створює завдання. Контакт і подія, якщо передані, мають належати користувачу.

    Returns:
        JSONResponse: Створене завдання зі статусом 201.
    """
    tasks = client.resource("action_items")
    data = schemas.normalize(schemas.TaskCreate, payload)
    crud.assert_owned_relations(
        client.db, tasks.owner_id, event_id=data.get("event_id"), contact_id=data.get("contact_id")
    )
    row = tasks.insert(data)
    return api_success(schemas.dump(schemas.TaskOut, row), status_code=201)


@router.get("/{task_id}", response_model=ApiSuccess)
@with_error_handling
def read_task(task_id: str, client: SessionClient = Depends(get_read_only_client)):
    row = client.resource("action_items").get_or_404(task_id, "Task")
    return api_success(schemas.dump(schemas.TaskOut, row))


@router.put("/{task_id}", response_model=ApiSuccess)
@with_error_handling
def update_task(task_id: str, payload: Any = Body(...), client: SessionClient = Depends(get_action_client)):
    """
    Частково оновлює завдання.

    Args:
        task_id (str): Ідентифікатор завдання.
        payload (Any): Поля для оновлення.
        client (SessionClient): Сесійний клієнт запиту.

    Returns:
        JSONResponse: Оновлене завдання.
    """
    tasks = client.resource("action_items")
    data = schemas.normalize(schemas.TaskUpdate, payload, partial=True)
    crud.assert_owned_relations(
        client.db, tasks.owner_id, event_id=data.get("event_id"), contact_id=data.get("contact_id")
    )
    row = tasks.update(task_id, data)
    if row is None:
        raise NotFoundError("Task not found")
    return api_success(schemas.dump(schemas.TaskOut, row))


@router.patch("/{task_id}/completed", response_model=ApiSuccess)
@with_error_handling
def set_task_completed(task_id: str, payload: Any = Body(...), client: SessionClient = Depends(get_action_client)):
    """
    Позначає завдання виконаним або невиконаним.

    Приймається лише {"completed": true|false}; рядки, числа та додаткові
    поля відхиляються як VALIDATION_ERROR.

    Returns:
        JSONResponse: Оновлене завдання.
    """
    tasks = client.resource("action_items")
    data = schemas.normalize(schemas.TaskCompletion, payload)
    row = tasks.update(task_id, data)
    if row is None:
        raise NotFoundError("Task not found")
    logger.info(f"Task {task_id} marked completed={data['completed']}")
    return api_success(schemas.dump(schemas.TaskOut, row))


@router.delete("/{task_id}", response_model=ApiSuccess)
@with_error_handling
def delete_task(task_id: str, client: SessionClient = Depends(get_action_client)):
    if client.resource("action_items").delete(task_id) == 0:
        raise NotFoundError("Task not found")
    return api_success({"message": "Task deleted successfully"})
