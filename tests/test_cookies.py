# tests/test_cookies.py
import logging

import pytest

from app.cookies import (
    CookieFragmentCodec,
    CookieFragmentError,
    chunk_string,
    is_auth_cookie,
    split_fragment_name,
)

BASE = "sb-test-auth-token"


class FakeJar:
    """
    Простий cookie jar у пам'яті, що запам'ятовує порядок операцій.
    """

    def __init__(self, cookies=None):
        self.cookies = dict(cookies or {})
        self.operations = []

    def get(self, name):
        return self.cookies.get(name)

    def set(self, name, value, **options):
        self.operations.append(("set", name))
        self.cookies[name] = value

    def delete(self, name, **options):
        self.operations.append(("delete", name))
        self.cookies.pop(name, None)


class FakeClock:
    def __init__(self):
        self.now = 100.0

    def __call__(self):
        return self.now


@pytest.fixture
def codec():
    return CookieFragmentCodec(max_chunk_size=10, max_chunks=5)


def test_short_value_round_trip(codec):
    """
    Коротке значення записується в одну cookie і читається без змін.
    """
    jar = FakeJar()
    assert codec.encode(BASE, "short", jar) == 1
    assert jar.cookies == {BASE: "short"}
    assert codec.decode(BASE, jar) == "short"


def test_value_at_chunk_limit_is_not_fragmented(codec):
    jar = FakeJar()
    codec.encode(BASE, "x" * 10, jar)
    assert set(jar.cookies) == {BASE}


def test_long_value_round_trip(codec):
    """
    Довге значення розбивається на фрагменти та збирається в порядку індексів.
    """
    value = "abcdefghijklmnopqrstuvwxyz0123456789"
    jar = FakeJar()
    assert codec.encode(BASE, value, jar) == 4
    assert BASE not in jar.cookies
    assert sorted(jar.cookies) == [f"{BASE}.{i}" for i in range(4)]
    assert CookieFragmentCodec(max_chunk_size=10, max_chunks=5).decode(BASE, jar) == value


@pytest.mark.parametrize("length", [11, 36, 45])
def test_fragments_never_exceed_chunk_size(codec, length):
    """
    Заголовок кількості входить у розмір першого фрагмента.
    """
    jar = FakeJar()
    count = codec.encode(BASE, "v" * length, jar)
    assert jar.cookies[f"{BASE}.0"].startswith(f"{count}:")
    assert all(len(chunk) <= 10 for chunk in jar.cookies.values())
    assert codec.decode(BASE, jar) == "v" * length


def test_chunk_size_too_small_for_header_is_rejected():
    codec = CookieFragmentCodec(max_chunk_size=2, max_chunks=5)
    jar = FakeJar()
    with pytest.raises(CookieFragmentError):
        codec.encode(BASE, "abc", jar)
    assert jar.operations == []


def test_decode_ignores_physical_fragment_order(codec):
    value = "0123456789" * 3 + "tail"
    written = FakeJar()
    codec.encode(BASE, value, written)
    reversed_jar = FakeJar(dict(reversed(list(written.cookies.items()))))
    assert CookieFragmentCodec(max_chunk_size=10, max_chunks=5).decode(BASE, reversed_jar) == value


def test_encode_over_limit_raises_without_mutation(codec):
    """
    Значення, якому потрібно більше фрагментів, ніж дозволено, відхиляється
    ще до будь-яких змін cookies.
    """
    jar = FakeJar({BASE: "existing"})
    with pytest.raises(CookieFragmentError):
        codec.encode(BASE, "x" * 51, jar)
    assert jar.operations == []
    assert jar.cookies == {BASE: "existing"}


def test_switch_from_fragmented_to_short_leaves_no_stale_fragments(codec):
    jar = FakeJar()
    codec.encode(BASE, "y" * 45, jar)
    codec.encode(BASE, "tiny", jar)
    assert jar.cookies == {BASE: "tiny"}
    assert CookieFragmentCodec(max_chunk_size=10, max_chunks=5).decode(BASE, jar) == "tiny"


def test_switch_from_short_to_fragmented_removes_base(codec):
    jar = FakeJar()
    codec.encode(BASE, "tiny", jar)
    codec.encode(BASE, "z" * 25, jar)
    assert BASE not in jar.cookies
    assert codec.decode(BASE, jar) == "z" * 25


def test_encode_clears_before_writing(codec):
    jar = FakeJar()
    codec.encode(BASE, "w" * 25, jar)
    kinds = [kind for kind, _ in jar.operations]
    assert kinds[:6] == ["delete"] * 6
    assert kinds[6:] == ["set"] * 3


def test_missing_cookie_decodes_to_empty_string(codec):
    assert codec.decode(BASE, FakeJar()) == ""


def test_gap_in_fragments_fails_instead_of_joining(codec, caplog):
    """
    Якщо серед фрагментів є пропуск, значення не збирається частково.
    """
    jar = FakeJar()
    codec.encode(BASE, "q" * 30, jar)
    del jar.cookies[f"{BASE}.1"]
    fresh = CookieFragmentCodec(max_chunk_size=10, max_chunks=5)

    with pytest.raises(CookieFragmentError):
        fresh.decode_strict(BASE, jar)
    with caplog.at_level(logging.ERROR, logger="app.cookies"):
        assert fresh.decode(BASE, jar) == ""
    assert "missing fragments [1]" in caplog.text


def test_fragments_without_count_header_are_rejected(codec):
    jar = FakeJar({f"{BASE}.0": "abc", f"{BASE}.1": "def"})
    assert codec.decode(BASE, jar) == ""


def test_decode_never_raises_on_broken_source(codec):
    class BrokenJar:
        def get(self, name):
            raise RuntimeError("cookie store unavailable")

    assert codec.decode(BASE, BrokenJar()) == ""


def test_reads_are_cached_until_ttl_expires():
    clock = FakeClock()
    codec = CookieFragmentCodec(max_chunk_size=10, max_chunks=5, ttl=1.0, clock=clock)
    jar = FakeJar({BASE: "first"})
    assert codec.decode(BASE, jar) == "first"

    jar.cookies[BASE] = "second"
    assert codec.decode(BASE, jar) == "first"

    clock.now += 1.0
    assert codec.decode(BASE, jar) == "second"


def test_write_invalidates_cache():
    clock = FakeClock()
    codec = CookieFragmentCodec(max_chunk_size=10, max_chunks=5, clock=clock)
    jar = FakeJar({BASE: "old"})
    assert codec.decode(BASE, jar) == "old"

    codec.encode(BASE, "new", jar)
    assert codec.decode(BASE, jar) == "new"

    codec.clear(BASE, jar)
    assert codec.decode(BASE, jar) == ""


def test_invalidate_by_fragment_name_drops_base_entry():
    codec = CookieFragmentCodec(max_chunk_size=10, max_chunks=5, clock=FakeClock())
    jar = FakeJar({BASE: "cached"})
    codec.decode(BASE, jar)
    jar.cookies[BASE] = "changed"
    codec.invalidate(f"{BASE}.2")
    assert codec.decode(BASE, jar) == "changed"


def test_cookie_name_helpers():
    assert split_fragment_name(f"{BASE}.3") == (BASE, 3)
    assert split_fragment_name(BASE) == (BASE, None)
    assert is_auth_cookie(f"{BASE}.0")
    assert not is_auth_cookie("theme")
    assert chunk_string("abcdefg", 3) == ["abc", "def", "g"]
