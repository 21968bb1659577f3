# app/auth.py
from fastapi import Depends, Request
from sqlalchemy.orm import Session

from .database import get_db
from .session import SessionClient, create_server_action_client, create_server_component_client


def get_read_only_client(request: Request, db: Session = Depends(get_db)) -> SessionClient:
    """
    Сесійний клієнт, що лише читає cookies.

    Args:
        request (Request): Поточний запит.
        db (Session): Сесія бази даних.

    Returns:
        SessionClient: Клієнт у режимі read-only.
    """
    return create_server_component_client(request, db)


def get_action_client(request: Request, db: Session = Depends(get_db)) -> SessionClient:
    """
    Сесійний клієнт з правом запису cookies.

    Зміни cookies потрібно перенести у відповідь викликом `client.commit_cookies(response)`.

    Args:
        request (Request): Поточний запит.
        db (Session): Сесія бази даних.

    Returns:
        SessionClient: Клієнт у режимі action.
    """
    return create_server_action_client(request, db)
