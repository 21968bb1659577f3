# tests/test_session.py
import logging
import time
from datetime import timedelta

import pytest
from fastapi import Response

from app import config, crud
from app.responses import AuthorizationError
from app.session import (
    ReadOnlyCookieStore,
    ResponseCookieStore,
    SessionClient,
    build_session,
    decode_session,
    encode_session,
)

USER = {"id": "user-1", "email": "jane@example.com", "full_name": "Jane Doe", "is_active": True, "is_verified": True}
COOKIE = config.AUTH_COOKIE_NAME


def loader(user_id):
    return dict(USER) if user_id == USER["id"] else None


def expired_session(user=USER):
    """
    Сесія з простроченим access токеном, але дійсним refresh токеном.
    """
    session = build_session(user)
    claims = {"sub": user["id"], "email": user["email"], "user_metadata": {"full_name": user["full_name"]}}
    session["access_token"] = crud.create_token(claims, crud.ACCESS_TOKEN, timedelta(seconds=-10))
    return session


def test_session_cookie_format():
    session = build_session(USER)
    value = encode_session(session)
    assert value.startswith("base64-")
    assert decode_session(value) == session


def test_malformed_session_cookie_decodes_to_none():
    assert decode_session("base64-!!!not-base64") is None
    assert decode_session("not json") is None
    assert decode_session("") is None


def test_read_only_client_ignores_writes(caplog):
    """
    У контексті рендерингу запис cookies лише логується і не змінює їх.
    """
    client = SessionClient(ReadOnlyCookieStore({"theme": "dark"}), user_loader=loader)
    with caplog.at_level(logging.WARNING, logger="app.session"):
        client.set_cookie("theme", "light")
        client.set_session(USER)
        client.clear_session()
    assert client.get_cookie("theme") == "dark"
    assert client.get_session() is None
    assert "read-only context" in caplog.text


def test_read_only_client_reads_session():
    store = ResponseCookieStore({})
    SessionClient(store).set_session(USER)
    client = SessionClient(ReadOnlyCookieStore(store.pending), user_loader=loader)
    assert client.get_current_user()["email"] == USER["email"]


def test_action_client_commits_cookies_to_response():
    store = ResponseCookieStore({"theme": "dark"})
    client = SessionClient(store, user_loader=loader)
    session = client.set_session(USER)

    # read-after-write в межах одного запиту
    assert client.get_session()["access_token"] == session["access_token"]
    assert client.get_current_user()["id"] == USER["id"]
    assert client.get_cookie("theme") == "dark"

    response = client.commit_cookies(Response())
    headers = response.headers.getlist("set-cookie")
    assert len(headers) == 1
    assert headers[0].startswith(f"{COOKIE}=base64-")
    assert "HttpOnly" in headers[0]
    assert "Path=/" in headers[0]
    assert "samesite=lax" in headers[0].lower()


def test_large_session_is_fragmented_across_cookies():
    user = dict(USER, full_name="N" * 2500)
    store = ResponseCookieStore({})
    client = SessionClient(store, user_loader=loader)
    session = client.set_session(user)

    names = sorted(name for name, value in store.pending.items() if value is not None)
    assert COOKIE not in names
    assert names[0] == f"{COOKIE}.0"
    assert 1 < len(names) <= config.COOKIE_MAX_CHUNKS
    assert client.get_session() == session

    reader = SessionClient(ReadOnlyCookieStore(store.pending))
    assert reader.get_session() == session


def test_get_current_user_without_session_returns_none():
    client = SessionClient(ResponseCookieStore({}), user_loader=loader)
    assert client.get_current_user() is None
    with pytest.raises(AuthorizationError):
        client.require_user()


def test_get_current_user_rejects_unknown_user():
    store = ResponseCookieStore({})
    client = SessionClient(store, user_loader=loader)
    client.set_session(dict(USER, id="someone-else"))
    assert client.get_current_user() is None


def test_user_lookup_timeout_is_treated_as_no_session(caplog):
    """
    Перевищення ліміту часу на перевірку користувача логується і дає None.
    """
    def slow_loader(user_id):
        time.sleep(0.5)
        return dict(USER)

    store = ResponseCookieStore({})
    client = SessionClient(store, auth_timeout=0.05, user_loader=slow_loader)
    client.set_session(USER)
    with caplog.at_level(logging.ERROR, logger="app.session"):
        assert client.get_current_user() is None
    assert "timed out" in caplog.text


def test_user_lookup_error_returns_none():
    def broken_loader(user_id):
        raise RuntimeError("auth service unavailable")

    client = SessionClient(ResponseCookieStore({}), user_loader=broken_loader)
    client.set_session(USER)
    assert client.get_current_user() is None


@pytest.mark.parametrize("tampered", [
    {"access_token": 123, "refresh_token": 456},
    {"access_token": ["x"], "refresh_token": {"token": "x"}},
    {"access_token": None},
])
def test_tampered_session_tokens_are_treated_as_no_session(tampered):
    """
    Токени не рядкового типу в cookie сесії означають відсутність сесії, а не виняток.
    """
    store = ResponseCookieStore({COOKIE: encode_session(tampered)})
    client = SessionClient(store, user_loader=loader)
    assert client.get_current_user() is None
    assert client.refresh_session() is False
    assert store.pending[COOKIE] is None


def test_decode_token_rejects_non_string_tokens():
    assert crud.decode_token(123, crud.ACCESS_TOKEN) is None
    assert crud.decode_token(["x"], crud.ACCESS_TOKEN) is None
    assert crud.decode_token("not.a.jwt", crud.ACCESS_TOKEN) is None


def test_refresh_session_reissues_expired_access_token():
    store = ResponseCookieStore({COOKIE: encode_session(expired_session())})
    client = SessionClient(store, user_loader=loader)
    assert client.get_current_user() is None

    assert client.refresh_session() is True
    assert client.get_current_user()["id"] == USER["id"]
    assert store.pending[COOKIE].startswith("base64-")


def test_refresh_session_keeps_valid_session():
    store = ResponseCookieStore({COOKIE: encode_session(build_session(USER))})
    client = SessionClient(store, user_loader=loader)
    assert client.refresh_session() is False
    assert store.pending == {}


def test_refresh_session_clears_unrecoverable_session():
    session = expired_session()
    session["refresh_token"] = "garbage"
    store = ResponseCookieStore({COOKIE: encode_session(session)})
    client = SessionClient(store, user_loader=loader)

    assert client.refresh_session() is False
    assert store.pending[COOKIE] is None
    assert client.get_session() is None


def test_clear_all_auth_cookies():
    store = ResponseCookieStore({
        "sb-old-auth-token": "x",
        "sb-other-auth-token.0": "1:y",
        "theme": "dark",
    })
    client = SessionClient(store)
    assert client.clear_all_auth_cookies() == ["sb-old-auth-token", "sb-other-auth-token"]
    assert store.pending == {"sb-old-auth-token": None, "sb-other-auth-token.0": None}
    assert client.get_cookie("theme") == "dark"


def test_response_store_delete_of_unsent_cookie_only_drops_pending():
    store = ResponseCookieStore({})
    store.set("a", "1")
    store.delete("a")
    assert store.pending == {}
    assert store.get("a") is None
