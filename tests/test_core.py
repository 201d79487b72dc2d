import time

import pytest

from supercache.core import (
    NUM_SHARDS,
    DataType,
    OutOfMemoryError,
    StoreCore,
    WrongTypeError,
    _Entry,
    shard_index,
)


@pytest.fixture
def make_core():
    cores = []

    def factory(max_memory=0, policy="noeviction"):
        core = StoreCore(max_memory, policy)
        cores.append(core)
        return core

    yield factory
    for core in cores:
        core.close()


def put(core, key, value=b"v", expires_at=None):
    shard = core._shards[shard_index(key)]
    with shard.lock:
        old = core._live_entry(shard, key)
        core._replace_entry(shard, key, old, _Entry(value, DataType.STRING, expires_at))


def has(core, key):
    return key in core._shards[shard_index(key)].data


def count(core):
    return sum(core.store_stats().values())


def same_shard_keys(n):
    groups = {}
    i = 0
    while True:
        key = f"k{i}"
        group = groups.setdefault(shard_index(key), [])
        group.append(key)
        if len(group) == n:
            return group
        i += 1


def test_shard_index_known_values():
    assert shard_index("") == 197
    assert shard_index("a") == 44


def test_shard_index_stable_and_in_range():
    for key in ("hello", "pref:1", "x" * 100, "ünï"):
        idx = shard_index(key)
        assert idx == shard_index(key)
        assert 0 <= idx < NUM_SHARDS
    assert shard_index("hello") == shard_index(b"hello")


def test_store_stats_counts_every_shard(make_core):
    core = make_core()
    for i in range(500):
        put(core, f"key{i}")
    stats = core.store_stats()
    assert len(stats) == NUM_SHARDS
    assert sum(stats.values()) == 500


def test_memory_accounting_returns_to_zero(make_core):
    core = make_core()
    assert core.mem_bytes() == 0
    put(core, "a", b"short")
    small = core.mem_bytes()
    assert small > 0
    put(core, "a", b"a much longer value than before")
    assert core.mem_bytes() > small
    shard = core._shards[shard_index("a")]
    with shard.lock:
        core._purge_locked(shard, "a", shard.data["a"])
    assert core.mem_bytes() == 0


def test_noeviction_never_evicts(make_core):
    core = make_core(policy="noeviction")
    put(core, "a")
    assert core.evict("") is False
    assert has(core, "a")


def test_ensure_memory_raises_oom_under_noeviction(make_core):
    core = make_core(max_memory=200, policy="noeviction")
    put(core, "a")
    shard = core._shards[shard_index("b")]
    with shard.lock:
        with pytest.raises(OutOfMemoryError):
            core._ensure_memory(shard, "b", 1000)
    assert has(core, "a")


def test_ensure_memory_evicts_under_lru(make_core):
    core = make_core(max_memory=200, policy="allkeys-lru")
    put(core, "a")
    shard = core._shards[shard_index("b")]
    with shard.lock:
        evicted = core._ensure_memory(shard, "b", 150)
    assert evicted is True
    assert not has(core, "a")
    assert core.mem_bytes() == 0


def test_ensure_memory_no_limit_is_noop(make_core):
    core = make_core(max_memory=0)
    shard = core._shards[0]
    with shard.lock:
        assert core._ensure_memory(shard, "x", 10**9) is False


def test_allkeys_lru_evicts_least_recent(make_core):
    core = make_core(policy="allkeys-lru")
    first, second = same_shard_keys(2)
    put(core, first)
    put(core, second)
    shard = core._shards[shard_index(first)]
    with shard.lock:
        core._touch_lru(shard, first, shard.data[first])
    assert core.evict("") is True
    assert has(core, first)
    assert not has(core, second)


def test_allkeys_lru_respects_avoid_key(make_core):
    core = make_core(policy="allkeys-lru")
    put(core, "only")
    assert core.evict("only") is False
    assert has(core, "only")


def test_volatile_lru_skips_keys_without_ttl(make_core):
    core = make_core(policy="volatile-lru")
    put(core, "plain")
    assert core.evict("") is False
    put(core, "temp", expires_at=time.time() + 3600)
    assert core.evict("") is True
    assert has(core, "plain")
    assert not has(core, "temp")


def test_volatile_ttl_evicts_soonest_expiry(make_core):
    core = make_core(policy="volatile-ttl")
    now = time.time()
    put(core, "late", expires_at=now + 3600)
    put(core, "soon", expires_at=now + 60)
    put(core, "plain")
    assert core.evict("") is True
    assert not has(core, "soon")
    assert has(core, "late") and has(core, "plain")


def test_allkeys_random_removes_exactly_one(make_core):
    core = make_core(policy="allkeys-random")
    for i in range(300):
        put(core, f"r{i}")
    assert core.evict("") is True
    assert count(core) == 299


def test_volatile_random_only_removes_ttl_keys(make_core):
    core = make_core(policy="volatile-random")
    for i in range(300):
        put(core, f"p{i}")
    assert core.evict("") is False
    assert count(core) == 300


def test_replace_config_switches_policy(make_core):
    core = make_core(policy="noeviction")
    for i in range(300):
        put(core, f"c{i}")
    assert core.evict("") is False
    core.replace_config(0, "allkeys-random")
    assert core.evict("") is True
    assert count(core) == 299


def test_negative_max_memory_rejected(make_core):
    with pytest.raises(ValueError):
        make_core(max_memory=-1)


def test_sample_expired_removes_only_expired(make_core):
    core = make_core()
    past = time.time() - 10
    for i in range(50):
        put(core, f"dead{i}", expires_at=past)
        put(core, f"live{i}")
    removed = core.sample_expired()
    assert removed == 50
    assert count(core) == 50
    assert all(has(core, f"live{i}") for i in range(50))


def test_background_expiry_runs(make_core):
    core = make_core()
    put(core, "gone", expires_at=time.time() - 1)
    deadline = time.time() + 3
    while has(core, "gone") and time.time() < deadline:
        time.sleep(0.02)
    assert not has(core, "gone")


def test_close_stops_worker():
    core = StoreCore(0, "noeviction")
    core.close()
    assert core._expiry_thread.is_alive() is False


def test_watch_version_bumps_on_write(make_core):
    core = make_core()
    before = core._watch_version("w")
    put(core, "w")
    assert core._watch_version("w") == before + 1


def test_error_messages():
    assert str(WrongTypeError()) == "wrong type"
    assert str(OutOfMemoryError()) == "OOM command not allowed when used memory > 'maxmemory'"
    assert DataType.HASH.value == "hash"