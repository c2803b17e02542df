"""Tests for the key-value stores backing the return location and pending flows."""
import pytest

from client_session.stores import MemoryKeyValueStore, SqlKeyValueStore


@pytest.fixture(params=["memory", "sql"])
def store(request):
    if request.param == "memory":
        return MemoryKeyValueStore()
    return SqlKeyValueStore("sqlite:///:memory:")


def test_get_missing_returns_none(store):
    assert store.get("nope") is None


def test_set_overwrites(store):
    store.set("k", '"/a"')
    store.set("k", '"/b"')
    assert store.get("k") == '"/b"'


def test_remove(store):
    store.set("k", "v")
    store.remove("k")
    assert store.get("k") is None


def test_remove_missing_is_noop(store):
    store.remove("never-set")
    assert store.get("never-set") is None


def test_sql_store_survives_new_instance(tmp_path):
    """Entries persist across process restarts when file-based (the redirect round-trip)."""
    url = f"sqlite:///{tmp_path / 'kv.db'}"
    SqlKeyValueStore(url).set("redirect_on_login", '{"pathname": "/courses"}')
    assert SqlKeyValueStore(url).get("redirect_on_login") == '{"pathname": "/courses"}'


def test_keys_by_prefix(store):
    store.set("auth_flow:a", "1")
    store.set("auth_flow:b", "2")
    store.set("redirect_on_login", '"/"')
    assert sorted(store.keys("auth_flow:")) == ["auth_flow:a", "auth_flow:b"]
    assert len(store.keys()) == 3
