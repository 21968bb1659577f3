# app/client.py
"""
HTTP клієнт до API, яким користуються панель (dashboard) і скрипти.

Будь-яка відповідь поза конвертом успіху (не-2xx статус або `success: false`)
перетворюється на `ApiRequestError` з повідомленням з `error.message`;
повний конверт логується для діагностики.

Разом з `app.viewmodels` це клієнтська частина пакета: сервер їх не імпортує,
ними користуються панель і скрипти поверх HTTP API.
"""
import logging
from typing import Any, Dict, Iterable, Optional, Tuple

import httpx

from .responses import ErrorCode

logger = logging.getLogger(__name__)


class ApiRequestError(Exception):
    """
    Невдалий запит до API.

    Attributes:
        message (str): Повідомлення для користувача.
        code (str): Код помилки з конверта (або UNKNOWN_ERROR).
        status_code (int, optional): HTTP статус відповіді.
        envelope (dict, optional): Повний конверт відповіді.
    """

    def __init__(self, message: str, code: str = ErrorCode.UNKNOWN_ERROR.value,
                 status_code: Optional[int] = None, envelope: Optional[dict] = None):
        self.message = message
        self.code = code
        self.status_code = status_code
        self.envelope = envelope
        super().__init__(message)


class CrmApiClient:
    """
    Обгортка над httpx.Client, що розгортає конверт відповіді.

    Args:
        http (httpx.Client): Клієнт з base_url сервера; cookies сесії
            зберігаються в ньому між запитами.
    """

    def __init__(self, http: httpx.Client):
        self.http = http

    def request_envelope(self, method: str, path: str, **kwargs) -> Dict[str, Any]:
        """
        Виконує запит і повертає весь конверт успіху.

        Raises:
            ApiRequestError: Мережева помилка, не-2xx статус або `success: false`.
        """
        try:
            response = self.http.request(method, path, **kwargs)
        except httpx.HTTPError as e:
            logger.error(f"{method} {path} failed: {e}")
            raise ApiRequestError(f"Network error: {e}") from e

        try:
            envelope = response.json()
        except ValueError:
            envelope = None

        if response.is_success and isinstance(envelope, dict) and envelope.get("success") is True:
            return envelope

        logger.error(f"{method} {path} returned {response.status_code}: {envelope}")
        error = envelope.get("error") if isinstance(envelope, dict) else None
        if isinstance(error, dict):
            raise ApiRequestError(
                error.get("message") or "Request failed",
                error.get("code") or ErrorCode.UNKNOWN_ERROR.value,
                response.status_code,
                envelope,
            )
        raise ApiRequestError(f"Request failed with status {response.status_code}", status_code=response.status_code,
                              envelope=envelope)

    def request(self, method: str, path: str, **kwargs) -> Any:
        return self.request_envelope(method, path, **kwargs).get("data")

    # --- Аутентифікація ---

    def signup(self, email: str, password: str, full_name: Optional[str] = None) -> dict:
        return self.request("POST", "/api/auth/signup", json={"email": email, "password": password, "full_name": full_name})

    def login(self, email: str, password: str) -> dict:
        return self.request("POST", "/api/auth/login", json={"email": email, "password": password})

    def logout(self) -> dict:
        return self.request("POST", "/api/auth/logout")

    def current_user(self) -> dict:
        return self.request("GET", "/api/auth")

    # --- Події ---

    def list_events(self) -> list:
        return self.request("GET", "/api/events")

    def create_event(self, values: dict) -> dict:
        return self.request("POST", "/api/events", json=values)

    def update_event(self, event_id: str, changes: dict) -> dict:
        return self.request("PUT", f"/api/events/{event_id}", json=changes)

    def delete_event(self, event_id: str, contact_ids: Iterable[str] = ()) -> Tuple[dict, dict]:
        """
        Видаляє подію разом з обраними контактами.

        Returns:
            tuple: (data, meta) - meta містить `warnings`, якщо частину контактів не видалено.
        """
        params = {"contactIds": ",".join(contact_ids)} if contact_ids else None
        envelope = self.request_envelope("DELETE", f"/api/events/{event_id}", params=params)
        return envelope["data"], envelope.get("meta") or {}

    # --- Контакти ---

    def list_contacts(self, event_id: Optional[str] = None) -> list:
        params = {"eventId": event_id} if event_id else None
        return self.request("GET", "/api/contacts", params=params)

    def create_contact(self, values: dict) -> dict:
        return self.request("POST", "/api/contacts", json=values)

    def update_contact(self, contact_id: str, changes: dict) -> dict:
        return self.request("PUT", f"/api/contacts/{contact_id}", json=changes)

    def delete_contact(self, contact_id: str) -> dict:
        return self.request("DELETE", f"/api/contacts/{contact_id}")

    # --- Нотатки ---

    def list_notes(self, contact_id: Optional[str] = None) -> list:
        params = {"contactId": contact_id} if contact_id else None
        return self.request("GET", "/api/notes", params=params)

    def create_note(self, contact_id: str, content: str) -> dict:
        return self.request("POST", "/api/notes", json={"contact_id": contact_id, "content": content})

    # --- Завдання ---

    def list_tasks(self, contact_id: Optional[str] = None, event_id: Optional[str] = None) -> list:
        params = {key: value for key, value in (("contactId", contact_id), ("eventId", event_id)) if value}
        return self.request("GET", "/api/tasks", params=params or None)

    def create_task(self, values: dict) -> dict:
        return self.request("POST", "/api/tasks", json=values)

    def update_task(self, task_id: str, changes: dict) -> dict:
        return self.request("PUT", f"/api/tasks/{task_id}", json=changes)

    def set_task_completed(self, task_id: str, completed: bool) -> dict:
        return self.request("PATCH", f"/api/tasks/{task_id}/completed", json={"completed": completed})

    # --- Профіль ---

    def get_profile(self) -> Optional[dict]:
        return self.request("GET", "/api/profile")

    def update_profile(self, changes: dict) -> dict:
        return self.request("PUT", "/api/profile", json=changes)
