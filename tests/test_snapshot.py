import time

import pytest

from supercache.snapshot import SnapshotEntry
from supercache.store import Store


@pytest.fixture
def store():
    s = Store()
    yield s
    s.close()


@pytest.fixture
def other():
    s = Store()
    yield s
    s.close()


def _fill(s):
    s.set("str", b"1")
    s.hset("hash", {"x": b"y"})
    s.rpush("list", [b"a", b"b", b"c"])
    s.sadd("set", [b"m1", b"m2"])


def test_snapshot_covers_every_type(store):
    _fill(store)
    by_key = {e.key: e for e in store.snapshot()}
    assert set(by_key) == {"str", "hash", "list", "set"}
    assert by_key["str"].type == "string"
    assert by_key["str"].value == b"1"
    assert by_key["hash"].fields == {"x": b"y"}
    assert by_key["list"].elements == [b"a", b"b", b"c"]
    assert sorted(by_key["set"].members) == [b"m1", b"m2"]
    assert all(e.ttl_ms == 0 for e in by_key.values())


def test_round_trip(store, other):
    _fill(store)
    other.apply_snapshot(list(store.snapshot()))
    assert other.get("str") == b"1"
    assert other.hgetall("hash") == {"x": b"y"}
    assert other.lrange("list", 0, -1) == [b"a", b"b", b"c"]
    assert sorted(other.smembers("set")) == [b"m1", b"m2"]
    assert other.dbsize() == store.dbsize()


def test_apply_snapshot_flushes_existing(store, other):
    store.set("a", b"1")
    other.set("stale", b"x")
    other.apply_snapshot(list(store.snapshot()))
    assert other.exists(["stale"]) == 0
    assert other.keys("*") == ["a"]


def test_ttl_is_carried_over(store, other):
    store.set("t", b"v", time.time() + 100)
    (entry,) = list(store.snapshot())
    assert 0 < entry.ttl_ms <= 100_000
    other.apply_snapshot([entry])
    assert 0 < other.ttl("t") <= 100


def test_expired_keys_are_skipped(store):
    store.set("gone", b"v", time.time() - 1)
    store.set("kept", b"v")
    assert [e.key for e in store.snapshot()] == ["kept"]


def test_apply_entry_overwrites_key(store):
    store.set("k", b"old")
    store.apply_snapshot_entry(SnapshotEntry(key="k", type="list", elements=[b"z"]))
    assert store.type_of("k") == "list"
    assert store.lrange("k", 0, -1) == [b"z"]


def test_unknown_type_raises(store):
    with pytest.raises(ValueError):
        store.apply_snapshot_entry(SnapshotEntry(key="k", type="zset"))
    assert store.exists(["k"]) == 0


def test_empty_store_snapshot(store):
    assert list(store.snapshot()) == []