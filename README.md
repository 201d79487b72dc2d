# supercache

A sharded, thread-safe, in-memory key-value store that holds Redis-style data
types. It is pure Python and has no runtime dependencies.

## Features

- 256 shards. Each key is placed by its 32-bit FNV-1a hash
  (`supercache.core.shard_index`), and each shard has its own lock.
- Strings, hashes, lists and sets, with type checks. Using a key as the wrong
  type raises `supercache.core.WrongTypeError`.
- Per-key expiry as an absolute epoch time (`time.time()` seconds). Expired
  keys are dropped when they are touched. A background thread also samples
  every shard every 0.1 s and removes expired keys. `sample_expired()` runs one
  such pass by hand and returns how many keys it removed.
- An approximate memory limit with these eviction policies: `noeviction`,
  `allkeys-lru`, `volatile-lru`, `allkeys-random`, `volatile-random` and
  `volatile-ttl`. When a write does not fit and nothing can be evicted, it
  raises `supercache.core.OutOfMemoryError`. This always happens under
  `noeviction`.
- Snapshots (`supercache.snapshot.SnapshotEntry`) for copying a whole keyspace
  from one store to another.
- Runtime counters (`supercache.stats.Stats`) for clients, commands, keyspace
  hits and misses, peers and bootstrap progress.

## Usage

```python
from supercache.store import Store

with Store(max_memory=0, policy="noeviction") as store:
    store.set("greeting", b"hello", None)
    assert store.get("greeting") == b"hello"

    store.hset("user:1", {"name": b"alice"})
    store.lpush("queue", [b"a", b"b"])      # head is now b"b"
    store.sadd("tags", [b"x", b"y"])

    store.expire("greeting", 60)
    print(store.ttl("greeting"))             # about 59 or 60
    print(sorted(store.keys("user:*")))      # ['user:1']

    entries = list(store.snapshot())

with Store(max_memory=0, policy="noeviction") as replica:
    replica.apply_snapshot(entries)
    assert replica.get("greeting") == b"hello"
```

`max_memory` is a byte count, and `0` means no limit. The memory figure is an
estimate. Each key costs a fixed 128 bytes plus the length of its name and its
contents, and a list costs 32 bytes per element. `mem_bytes()` reports the
current total. `replace_config(max_memory, policy)` changes both settings on a
running store. Leaving the `with` block calls `close()`, which stops the expiry
thread.

### Commands by family

`Store` combines these classes:

- `StringOps`: `get`, `set`, `set_nx`, `set_xx`, `get_set`, `append`,
  `incr_by`, `decr_by`, `mget`, `mset`, `mset_nx`. `incr_by` raises
  `ValueError` when the value is not an integer. It raises `OverflowError` when
  the result leaves the signed 64-bit range.
- `HashOps`: `hset`, `hget`, `hgetall`, `hdel`, `hexists`, `hlen`, `hsetnx`.
- `ListOps`: `lpush`, `rpush`, `lpop`, `rpop`, `llen`, `lrange`. `lpop` and
  `rpop` return `None` for a missing key. `lrange` takes inclusive indices,
  and negative indices count from the tail.
- `SetOps`: `sadd`, `srem`, `smembers`, `sismember`, `scard`, `replace_set`.
- `KeyspaceOps`: `delete`, `exists`, `type_of`, `rename`, `rename_nx`, `keys`,
  `dbsize`, `expire_key_count`, `flush_db`, `expire`, `expire_at`, `ttl`,
  `ttl_ms`, `persist`. `rename` raises `KeyError` when the source key is
  missing. `expire` raises `ValueError` when the seconds are not positive.
  `ttl` and `ttl_ms` return `-1` for a key with no TTL and `-2` for a missing
  key.
- `SnapshotOps`: `snapshot`, `apply_snapshot`, `apply_snapshot_entry`.

A hash or set that loses its last field or member is deleted. So is a list
that loses its last element.

`keys(pattern)` and `supercache.keyspace.match_glob` accept shell-style
patterns: `*`, `?`, `[a-z]`, `[^...]` and backslash escapes. `*` and `?` do not
match `/`. A malformed pattern matches nothing.

## Statistics

```python
from supercache.stats import Stats, random_node_id

stats = Stats(random_node_id(), 6379)
stats.client_connected()
stats.command_executed()
stats.record_hit(1)
print(stats.connected_clients(), stats.total_commands(), stats.keyspace_hits())
print(stats.bootstrap_status_map(1024))
```

`random_node_id()` returns 32 random hex characters.

## What this package does not do

This package is the storage engine and its counters only. It has no network
server, no wire protocol, no client command dispatcher, no authentication and
no transactions. It does not replicate between peers, does not write data to
disk and does not read configuration files. It exposes no metrics endpoint.
The `Stats` peer and bootstrap counters hold whatever values they are given.

## Running the tests

```
pip install .[test]
pytest
```