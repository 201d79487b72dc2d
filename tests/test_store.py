import math
import threading
import time

import pytest

from supercache.core import NUM_SHARDS, OutOfMemoryError, WrongTypeError, shard_index
from supercache.store import Store


@pytest.fixture
def store():
    s = Store(0, "noeviction")
    yield s
    s.close()


def test_context_manager_returns_store():
    store = Store()
    with store as entered:
        assert entered is store
        entered.set("a", b"v")
        assert entered.get("a") == b"v"


def test_set_get_delete(store):
    store.set("a", b"v")
    assert store.get("a") == b"v"
    assert store.delete(["a"]) == 1
    assert store.exists(["a"]) == 0


def test_wrong_type(store):
    store.lpush("k", [b"x"])
    with pytest.raises(WrongTypeError):
        store.get("k")


def test_sharding_stable():
    first = shard_index("hello")
    second = shard_index("hello")
    assert first == second
    assert 0 <= first < NUM_SHARDS


def test_expire_ttl(store):
    store.set("e", b"1", time.time() + 2)
    assert store.ttl("e") > 0 or store.ttl_ms("e") > 0
    assert store.persist("e") is True
    assert store.ttl("e") == -1


def test_oom_noeviction():
    with Store(4096, "noeviction") as s:
        s.set("a", b"x" * 3000)
        with pytest.raises(OutOfMemoryError):
            s.set("b", b"y" * 3000)
        assert s.get("a") == b"x" * 3000
        assert s.get("b") is None


def test_evict_allkeys_lru():
    with Store(256, "allkeys-lru") as s:
        keys = [chr(ord("a") + i % 26) for i in range(20)]
        for key in keys:
            s.set(key, b"1")
        assert s.get(keys[-1]) == b"1"
        assert s.mem_bytes() <= 256
        assert s.dbsize() < len(keys)


def test_hash_set_get(store):
    assert store.hset("h", {"f": b"v"}) == 1
    assert store.hget("h", "f") == b"v"


def test_list_push_pop(store):
    store.lpush("l", [b"a", b"b"])
    assert store.lpop("l", 1) == [b"b"]


def test_set_ops(store):
    store.sadd("s", [b"m"])
    assert store.sismember("s", b"m") is True


def test_snapshot_round_trip(store):
    store.set("a", b"1")
    store.hset("h", {"x": b"y"})
    entries = list(store.snapshot())
    with Store() as s2:
        s2.apply_snapshot(entries)
        assert s2.get("a") == b"1"
        assert s2.hget("h", "x") == b"y"


def test_concurrent_read():
    with Store(0, "noeviction") as s:
        s.set("c", b"v")
        results = []
        lock = threading.Lock()

        def reader():
            value = s.get("c")
            with lock:
                results.append(value)

        threads = [threading.Thread(target=reader) for _ in range(100)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert len(results) == 100
        assert all(value == b"v" for value in results)
        assert s.get("c") == b"v"


def test_keys_glob(store):
    store.set("pref:1", b"a")
    store.set("pref:2", b"b")
    store.set("other", b"c")
    assert sorted(store.keys("pref:*")) == ["pref:1", "pref:2"]


def test_store_shard_distribution(store):
    total = 10000
    for i in range(total):
        store.set(f"{i:036x}", b"v")
    stats = store.store_stats()
    assert len(stats) == NUM_SHARDS
    assert sum(stats.values()) == total
    mean = total / NUM_SHARDS
    std = math.sqrt(sum((c - mean) ** 2 for c in stats.values()) / NUM_SHARDS)
    assert std / mean < 0.20