# tests/test_viewmodels.py
import pytest

from app.client import ApiRequestError, CrmApiClient
from app.viewmodels import (
    AuthState,
    DashboardStore,
    InvalidTransition,
    MutationStatus,
    derive_contact_views,
    derive_task_views,
)

EVENTS = [{"id": "e1", "title": "Tech Conference", "color_index": "2"}]
CONTACTS = [{"id": "c1", "name": "Jane Doe", "event_id": "e1"}, {"id": "c2", "name": "John", "event_id": None}]
TASKS = [
    {"id": "t1", "title": "Follow up", "contact_id": "c1", "event_id": "e1", "completed": False, "updated_at": "a"},
    {"id": "t2", "title": "Send deck", "contact_id": "c2", "event_id": None, "completed": False, "updated_at": "a"},
]


class FakeApi:
    """
    Підміна CrmApiClient: повертає підготовлені дані або кидає ApiRequestError.
    """

    def __init__(self):
        self.fail = False
        self.calls = []
        self.on_list = None

    def _maybe_fail(self):
        if self.fail:
            raise ApiRequestError("Database error", "DATABASE_ERROR", 500)

    def list_events(self):
        self._maybe_fail()
        return [dict(row) for row in EVENTS]

    def list_contacts(self):
        if self.on_list:
            self.on_list()
        self._maybe_fail()
        return [dict(row) for row in CONTACTS]

    def list_tasks(self):
        self._maybe_fail()
        return [dict(row) for row in TASKS]

    def set_task_completed(self, task_id, completed):
        self.calls.append(("completed", task_id, completed))
        self._maybe_fail()
        row = next(dict(row) for row in TASKS if row["id"] == task_id)
        return {**row, "completed": completed, "updated_at": "b"}

    def update_task(self, task_id, changes):
        self._maybe_fail()
        row = next(dict(row) for row in TASKS if row["id"] == task_id)
        return {**row, **changes, "updated_at": "b"}

    def update_event(self, event_id, changes):
        self._maybe_fail()
        return {**EVENTS[0], **changes, "updated_at": "b"}

    def update_contact(self, contact_id, changes):
        self._maybe_fail()
        row = next(dict(row) for row in CONTACTS if row["id"] == contact_id)
        return {**row, **changes}

    def delete_event(self, event_id, contact_ids):
        self._maybe_fail()
        return (
            {"message": "Event deleted successfully", "deleted_contact_ids": contact_ids, "failed_contact_ids": []},
            {},
        )


@pytest.fixture
def api():
    return FakeApi()


@pytest.fixture
def store(api):
    store = DashboardStore(api)
    store.init({"id": "u1"})
    return store


def test_derive_task_views_left_join():
    views = derive_task_views(TASKS + [{"id": "t3", "title": "Orphan", "contact_id": "gone", "event_id": "gone"}],
                              CONTACTS, EVENTS)
    assert views[0]["contact_name"] == "Jane Doe"
    assert views[0]["event_title"] == "Tech Conference"
    assert views[0]["event_color_index"] == "2"
    assert views[1]["event_title"] == ""
    assert views[1]["event_color_index"] is None
    assert views[2]["contact_name"] == ""
    assert views[2]["title"] == "Orphan"


def test_derive_contact_views():
    views = derive_contact_views(CONTACTS, EVENTS)
    assert [view["event_title"] for view in views] == ["Tech Conference", ""]
    assert [view["event_color_index"] for view in views] == ["2", None]


def test_color_index_is_normalized_the_same_way_in_both_views():
    events = [{"id": "e1", "title": "Meetup", "color_index": 4}]
    contacts = [{"id": "c1", "name": "Jane", "event_id": "e1"}]
    tasks = [{"id": "t1", "title": "Call", "contact_id": "c1", "event_id": "e1"}]
    assert derive_contact_views(contacts, events)[0]["event_color_index"] == "4"
    assert derive_task_views(tasks, contacts, events)[0]["event_color_index"] == "4"


def test_init_loads_collections_and_notifies(api):
    store = DashboardStore(api)
    seen = []
    unsubscribe = store.subscribe(lambda s: seen.append(s.state))

    assert store.init({"id": "u1"}) == AuthState.AUTHENTICATED
    assert seen == [AuthState.AUTHENTICATING, AuthState.AUTHENTICATED]
    assert len(store.tasks) == 2

    unsubscribe()
    store.teardown()
    assert len(seen) == 2
    assert store.state == AuthState.ANONYMOUS
    assert store.tasks == []


def test_init_failure_enters_error_state(api):
    api.fail = True
    store = DashboardStore(api)
    assert store.init({"id": "u1"}) == AuthState.ERROR
    assert store.error_message == "Database error"

    api.fail = False
    assert store.init({"id": "u1"}) == AuthState.AUTHENTICATED


def test_results_arriving_after_teardown_are_discarded(api):
    """
    Дані, що повернулися після teardown, не змінюють стан сховища.
    """
    store = DashboardStore(api)
    api.on_list = store.teardown
    store.init({"id": "u1"})
    assert store.state == AuthState.ANONYMOUS
    assert store.events == []
    assert store.contacts == []


def test_invalid_transition_is_rejected(api):
    store = DashboardStore(api)
    with pytest.raises(InvalidTransition):
        store._transition(AuthState.AUTHENTICATED)


def test_toggle_task_reconciles_with_server_row(store, api):
    assert store.toggle_task("t1") == MutationStatus.CONFIRMED
    task = store.tasks[0]
    assert task["completed"] is True
    assert task["updated_at"] == "b"
    assert api.calls == [("completed", "t1", True)]
    assert store.status_of("tasks", "t1") == MutationStatus.CONFIRMED


def test_toggle_task_rolls_back_on_failure(store, api):
    """
    При помилці сервера локальний стан повертається до початкового.
    """
    before = [dict(task) for task in store.tasks]
    observed = []
    store.subscribe(lambda s: observed.append(s.tasks[0]["completed"]))
    api.fail = True

    assert store.toggle_task("t1") == MutationStatus.FAILED
    assert observed == [True, False]
    assert store.tasks == before
    assert store.error_message == "Database error"
    assert store.status_of("tasks", "t1") == MutationStatus.FAILED


@pytest.mark.parametrize("method, kind, row_id, changes", [
    ("update_task", "tasks", "t2", {"title": "Send slides"}),
    ("update_event", "events", "e1", {"title": "Renamed"}),
    ("update_contact", "contacts", "c1", {"name": "Jane Smith"}),
])
def test_every_edit_path_rolls_back(store, api, method, kind, row_id, changes):
    original = [dict(row) for row in getattr(store, kind)]
    api.fail = True
    assert getattr(store, method)(row_id, changes) == MutationStatus.FAILED
    assert getattr(store, kind) == original

    api.fail = False
    assert getattr(store, method)(row_id, changes) == MutationStatus.CONFIRMED
    row = next(row for row in getattr(store, kind) if row["id"] == row_id)
    assert all(row[key] == value for key, value in changes.items())


def test_delete_event_prunes_related_rows(store):
    assert store.delete_event("e1", ["c1"]) is True
    assert store.events == []
    assert [contact["id"] for contact in store.contacts] == ["c2"]
    assert [task["id"] for task in store.tasks] == ["t2"]
    assert store.task_views()[0]["contact_name"] == "John"


def test_delete_event_failure_keeps_state(store, api):
    api.fail = True
    assert store.delete_event("e1", ["c1"]) is False
    assert len(store.events) == 1
    assert store.error_message == "Database error"


def test_dashboard_against_live_api(client):
    """
    Сховище працює поверх справжнього API через CrmApiClient.
    """
    api = CrmApiClient(client)
    event = api.create_event({"title": "Tech Conference", "date": "2024-05-01", "color_index": "3"})
    contact = api.create_contact({"name": "Jane Doe", "event_id": event["id"]})
    api.create_task({"title": "Follow up", "contact_id": contact["id"], "event_id": event["id"]})

    store = DashboardStore(api)
    assert store.init(api.current_user()) == AuthState.AUTHENTICATED
    view = store.task_views()[0]
    assert view["contact_name"] == "Jane Doe"
    assert view["event_color_index"] == "3"

    task_id = store.tasks[0]["id"]
    assert store.toggle_task(task_id) == MutationStatus.CONFIRMED
    assert api.list_tasks()[0]["completed"] is True

    assert store.delete_event(event["id"], [contact["id"]]) is True
    assert store.tasks == []
    assert api.list_contacts() == []


def test_client_raises_on_error_envelope(client):
    api = CrmApiClient(client)
    with pytest.raises(ApiRequestError) as exc_info:
        api.update_event("missing", {"title": "x"})
    assert exc_info.value.code == "NOT_FOUND"
    assert exc_info.value.status_code == 404
    assert exc_info.value.message == "Event not found"
