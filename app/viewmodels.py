# app/viewmodels.py
"""
Стан панелі (dashboard) на боці клієнта.

* `derive_task_views` / `derive_contact_views` - left join незалежно
  завантажених колекцій у денормалізовані об'єкти для відображення;
* `DashboardStore` - явне сховище з життєвим циклом init/teardown, підписками
  та оптимістичними оновленнями з гарантованим відкатом.

Разом з `app.client` це клієнтська частина пакета: сервер модуль не імпортує.
"""
import logging
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from .client import ApiRequestError, CrmApiClient

logger = logging.getLogger(__name__)


def _index(rows: Iterable[dict]) -> Dict[str, dict]:
    return {row["id"]: row for row in rows if row.get("id")}


def _color_index(event: dict) -> Optional[str]:
    color_index = event.get("color_index")
    return str(color_index) if color_index is not None else None


def derive_task_views(tasks: List[dict], contacts: List[dict], events: List[dict]) -> List[dict]:
    """
    Доповнює завдання даними контакту та події.

    Відсутні пов'язані рядки не є помилкою: назви стають порожніми рядками,
    а індекс кольору - None.

    Args:
        tasks (list): Завдання з API.
        contacts (list): Контакти з API.
        events (list): Події з API.

    Returns:
        list: Копії завдань з полями contact_name, event_title, event_color_index.
    """
    contacts_by_id = _index(contacts)
    events_by_id = _index(events)
    views = []
    for task in tasks:
        contact = contacts_by_id.get(task.get("contact_id")) or {}
        event = events_by_id.get(task.get("event_id")) or {}
        views.append({
            **task,
            "contact_name": contact.get("name") or "",
            "event_title": event.get("title") or "",
            "event_color_index": _color_index(event),
        })
    return views


def derive_contact_views(contacts: List[dict], events: List[dict]) -> List[dict]:
    """Доповнює контакти назвою та кольором події, на якій відбулося знайомство."""
    events_by_id = _index(events)
    views = []
    for contact in contacts:
        event = events_by_id.get(contact.get("event_id")) or {}
        views.append({
            **contact,
            "event_title": event.get("title") or "",
            "event_color_index": _color_index(event),
        })
    return views


class MutationStatus(str, Enum):
    """Стан останньої зміни рядка: очікує відповіді, підтверджена сервером, відкочена."""
    PENDING = "pending"
    CONFIRMED = "confirmed"
    FAILED = "failed"


class AuthState(str, Enum):
    ANONYMOUS = "anonymous"
    AUTHENTICATING = "authenticating"
    AUTHENTICATED = "authenticated"
    ERROR = "error"


TRANSITIONS = {
    AuthState.ANONYMOUS: {AuthState.AUTHENTICATING},
    AuthState.AUTHENTICATING: {AuthState.AUTHENTICATED, AuthState.ERROR, AuthState.ANONYMOUS},
    AuthState.AUTHENTICATED: {AuthState.AUTHENTICATING, AuthState.ANONYMOUS},
    AuthState.ERROR: {AuthState.AUTHENTICATING, AuthState.ANONYMOUS},
}


class InvalidTransition(Exception):
    """Перехід між станами, якого немає в TRANSITIONS."""


class DashboardStore:
    """
    Сховище подій, контактів і завдань поточного користувача.

    Кожен `init`/`teardown` збільшує номер покоління; результати запитів,
    що повернулися вже після зміни покоління, відкидаються і не змінюють стан.

    Args:
        api (CrmApiClient): Клієнт API.
    """

    def __init__(self, api: CrmApiClient):
        self.api = api
        self.state = AuthState.ANONYMOUS
        self.user: Optional[dict] = None
        self.events: List[dict] = []
        self.contacts: List[dict] = []
        self.tasks: List[dict] = []
        self.mutations: Dict[Tuple[str, str], MutationStatus] = {}
        self.error_message: Optional[str] = None
        self.warnings: List[str] = []
        self._generation = 0
        self._subscribers: List[Callable[["DashboardStore"], None]] = []

    # --- підписки ---

    def subscribe(self, callback: Callable[["DashboardStore"], None]) -> Callable[[], None]:
        """
        Підписує callback на зміни стану.

        Returns:
            Callable: Функція для відписки.
        """
        self._subscribers.append(callback)

        def unsubscribe():
            if callback in self._subscribers:
                self._subscribers.remove(callback)
        return unsubscribe

    def _notify(self) -> None:
        for callback in list(self._subscribers):
            callback(self)

    def _transition(self, new_state: AuthState) -> None:
        if new_state not in TRANSITIONS[self.state]:
            raise InvalidTransition(f"{self.state.value} -> {new_state.value}")
        self.state = new_state
        self._notify()

    def _is_current(self, generation: int) -> bool:
        return generation == self._generation

    # --- життєвий цикл ---

    def init(self, user: dict) -> AuthState:
        """
        Завантажує дані користувача.

        Args:
            user (dict): Автентифікований користувач.

        Returns:
            AuthState: AUTHENTICATED або ERROR (або поточний стан, якщо
            за час завантаження сховище було скинуте).
        """
        self._generation += 1
        generation = self._generation
        self.user = user
        self.error_message = None
        self._transition(AuthState.AUTHENTICATING)
        try:
            events = self.api.list_events()
            contacts = self.api.list_contacts()
            tasks = self.api.list_tasks()
        except ApiRequestError as e:
            if not self._is_current(generation):
                return self.state
            logger.error(f"Dashboard load failed: {e.message}")
            self.error_message = e.message
            self._transition(AuthState.ERROR)
            return self.state

        if not self._is_current(generation):
            logger.debug("Discarding dashboard data loaded for a stale session")
            return self.state
        self.events, self.contacts, self.tasks = events, contacts, tasks
        self.mutations = {}
        self._transition(AuthState.AUTHENTICATED)
        return self.state

    def teardown(self) -> None:
        """Скидає стан; запити, що ще виконуються, більше не змінять сховище."""
        self._generation += 1
        self.user = None
        self.events, self.contacts, self.tasks = [], [], []
        self.mutations = {}
        self.error_message = None
        self.warnings = []
        if self.state != AuthState.ANONYMOUS:
            self._transition(AuthState.ANONYMOUS)

    # --- похідні представлення ---

    def task_views(self) -> List[dict]:
        return derive_task_views(self.tasks, self.contacts, self.events)

    def contact_views(self) -> List[dict]:
        return derive_contact_views(self.contacts, self.events)

    def status_of(self, kind: str, row_id: str) -> Optional[MutationStatus]:
        return self.mutations.get((kind, row_id))

    # --- оптимістичні оновлення ---

    def _collection(self, kind: str) -> List[dict]:
        return {"events": self.events, "contacts": self.contacts, "tasks": self.tasks}[kind]

    def _replace(self, kind: str, row_id: str, row: dict) -> None:
        rows = self._collection(kind)
        for i, existing in enumerate(rows):
            if existing["id"] == row_id:
                rows[i] = row
                return

    def _find(self, kind: str, row_id: str) -> dict:
        for row in self._collection(kind):
            if row["id"] == row_id:
                return row
        raise KeyError(f"{kind}/{row_id} is not loaded")

    def _optimistic_update(self, kind: str, row_id: str, changes: Dict[str, Any],
                           remote: Callable[[], dict]) -> MutationStatus:
        """
        Оптимістично застосовує зміни до рядка.

        1. Запам'ятовує початковий рядок.
        2. Одразу застосовує зміни локально.
        3. Викликає сервер.
        4. Успіх: замінює рядок відповіддю сервера.
        5. Помилка: повертає початковий рядок і виставляє error_message.

        Returns:
            MutationStatus: CONFIRMED або FAILED.
        """
        original = dict(self._find(kind, row_id))
        generation = self._generation
        self._replace(kind, row_id, {**original, **changes})
        self.mutations[(kind, row_id)] = MutationStatus.PENDING
        self._notify()

        try:
            server_row = remote()
        except ApiRequestError as e:
            if not self._is_current(generation):
                return MutationStatus.FAILED
            logger.warning(f"Reverting {kind}/{row_id}: {e.message}")
            self._replace(kind, row_id, original)
            self.mutations[(kind, row_id)] = MutationStatus.FAILED
            self.error_message = e.message
            self._notify()
            return MutationStatus.FAILED

        if not self._is_current(generation):
            return MutationStatus.CONFIRMED
        self._replace(kind, row_id, server_row)
        self.mutations[(kind, row_id)] = MutationStatus.CONFIRMED
        self.error_message = None
        self._notify()
        return MutationStatus.CONFIRMED

    def toggle_task(self, task_id: str) -> MutationStatus:
        completed = not self._find("tasks", task_id).get("completed", False)
        return self._optimistic_update(
            "tasks", task_id, {"completed": completed},
            lambda: self.api.set_task_completed(task_id, completed),
        )

    def update_task(self, task_id: str, changes: Dict[str, Any]) -> MutationStatus:
        return self._optimistic_update("tasks", task_id, changes, lambda: self.api.update_task(task_id, changes))

    def update_event(self, event_id: str, changes: Dict[str, Any]) -> MutationStatus:
        return self._optimistic_update("events", event_id, changes, lambda: self.api.update_event(event_id, changes))

    def update_contact(self, contact_id: str, changes: Dict[str, Any]) -> MutationStatus:
        return self._optimistic_update(
            "contacts", contact_id, changes, lambda: self.api.update_contact(contact_id, changes)
        )

    # --- видалення ---

    def delete_event(self, event_id: str, contact_ids: Iterable[str] = ()) -> bool:
        """
        Видаляє подію (і, за потреби, контакти) та прибирає пов'язані рядки з локального стану.

        Локальний стан змінюється лише після підтвердження сервера.

        Args:
            event_id (str): Подія.
            contact_ids (Iterable[str]): Контакти для видалення разом з подією.

        Returns:
            bool: True, якщо сервер підтвердив видалення.
        """
        generation = self._generation
        try:
            data, meta = self.api.delete_event(event_id, list(contact_ids))
        except ApiRequestError as e:
            if self._is_current(generation):
                self.error_message = e.message
                self._notify()
            return False
        if not self._is_current(generation):
            return True

        deleted_contacts = set(data.get("deleted_contact_ids") or [])
        self.warnings = list(meta.get("warnings") or [])
        self.events = [event for event in self.events if event["id"] != event_id]
        self.contacts = [
            # контакти, що лишилися, втрачають посилання на видалену подію
            {**contact, "event_id": None} if contact.get("event_id") == event_id else contact
            for contact in self.contacts
            if contact["id"] not in deleted_contacts
        ]
        self.tasks = [
            task for task in self.tasks
            if task.get("event_id") != event_id and task.get("contact_id") not in deleted_contacts
        ]
        self.error_message = None
        self._notify()
        return True
