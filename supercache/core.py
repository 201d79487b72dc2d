"""Sharded keyspace core: entries, memory accounting, LRU bookkeeping, eviction and active expiry."""

from __future__ import annotations

import contextlib
import enum
import itertools
import random
import threading
import time
from collections import OrderedDict, deque
from dataclasses import dataclass
from typing import Any, Callable, Iterable, Iterator, Optional

NUM_SHARDS = 256

# Fixed per-entry bookkeeping cost added to every memory estimate.
ENTRY_OVERHEAD = 128
# Flat per-element cost for lists, so estimating a list stays O(1).
LIST_ELEMENT_COST = 32

EXPIRY_INTERVAL = 0.1
EXPIRY_SAMPLE_PER_SHARD = 20
EXPIRY_REPEAT_RATIO = 0.25
EXPIRY_MAX_RESAMPLES = 16

DEFAULT_POLICY = "noeviction"
LRU_POLICIES = frozenset({"allkeys-lru", "volatile-lru"})

_FNV_OFFSET = 0x811C9DC5
_FNV_PRIME = 0x01000193


class DataType(enum.Enum):
    """Type of the value stored under a key; the value is its type name."""

    NONE = "none"
    STRING = "string"
    HASH = "hash"
    LIST = "list"
    SET = "set"


class WrongTypeError(Exception):
    """The key holds a value of a different type than the operation expects."""

    def __init__(self, message: str = "wrong type") -> None:
        super().__init__(message)


class OutOfMemoryError(Exception):
    """Memory is at the configured limit and nothing can be evicted."""

    def __init__(
        self, message: str = "OOM command not allowed when used memory > 'maxmemory'"
    ) -> None:
        super().__init__(message)


def shard_index(key: str | bytes) -> int:
    """Return the shard a key lives in (32-bit FNV-1a modulo the shard count)."""
    data = key.encode("utf-8") if isinstance(key, str) else bytes(key)
    h = _FNV_OFFSET
    for byte in data:
        h ^= byte
        h = (h * _FNV_PRIME) & 0xFFFFFFFF
    return h % NUM_SHARDS


def _size(item: str | bytes) -> int:
    return len(item.encode("utf-8")) if isinstance(item, str) else len(item)


@dataclass(slots=True)
class _Entry:
    value: Any
    dtype: DataType
    expires_at: Optional[float] = None

    @property
    def has_ttl(self) -> bool:
        return self.expires_at is not None

    def clone(self) -> "_Entry":
        """Copy the entry with its own container, so edits do not leak back."""
        if self.dtype is DataType.HASH:
            value: Any = dict(self.value)
        elif self.dtype is DataType.LIST:
            value = deque(self.value)
        elif self.dtype is DataType.SET:
            value = set(self.value)
        else:
            value = bytes(self.value)
        return _Entry(value, self.dtype, self.expires_at)


def _estimate_mem(key: str, entry: _Entry) -> int:
    n = ENTRY_OVERHEAD + _size(key)
    if entry.dtype is DataType.STRING:
        n += len(entry.value)
    elif entry.dtype is DataType.HASH:
        n += sum(_size(f) + _size(v) for f, v in entry.value.items())
    elif entry.dtype is DataType.LIST:
        n += len(entry.value) * LIST_ELEMENT_COST
    elif entry.dtype is DataType.SET:
        n += sum(_size(m) for m in entry.value)
    return n


class _Shard:
    __slots__ = ("lock", "data", "all_lru", "vol_lru")

    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.data: dict[str, _Entry] = {}
        # Least recently used first, most recently used last.
        self.all_lru: OrderedDict[str, None] = OrderedDict()
        self.vol_lru: OrderedDict[str, None] = OrderedDict()


class StoreCore:
    """Sharded in-memory keyspace with memory limits, eviction and active expiry."""

    def __init__(self, max_memory: int = 0, policy: str = DEFAULT_POLICY) -> None:
        self._shards = tuple(_Shard() for _ in range(NUM_SHARDS))
        self._mem = 0
        self._mem_lock = threading.Lock()
        self._max_memory = 0
        self._policy = DEFAULT_POLICY
        self.replace_config(max_memory, policy)
        self._read_tick = itertools.count(1)
        self._evict_cursor = itertools.count()
        self._watch: dict[str, int] = {}
        self._watch_lock = threading.Lock()
        self._stop = threading.Event()
        self._expiry_thread = threading.Thread(
            target=self._run_active_expiry, name="supercache-expiry", daemon=True
        )
        self._expiry_thread.start()

    # -- lifecycle and configuration -------------------------------------

    def close(self) -> None:
        """Stop the background expiry worker and wait for it to exit."""
        self._stop.set()
        if self._expiry_thread.is_alive() and self._expiry_thread is not threading.current_thread():
            self._expiry_thread.join()

    def replace_config(self, max_memory: int, policy: str) -> None:
        """Swap the memory limit (bytes, 0 = unlimited) and eviction policy."""
        if max_memory < 0:
            raise ValueError(f"max_memory must be non-negative, got {max_memory}")
        self._max_memory = int(max_memory)
        self._policy = (policy or "").strip().lower() or DEFAULT_POLICY

    def mem_bytes(self) -> int:
        """Approximate memory used by all stored entries."""
        return self._mem

    def store_stats(self) -> dict[int, int]:
        """Number of stored entries per shard index."""
        stats = {}
        for index, shard in enumerate(self._shards):
            with shard.lock:
                stats[index] = len(shard.data)
        return stats

    # -- internal helpers shared with the operation mixins ---------------

    def _shard_for(self, key: str) -> _Shard:
        return self._shards[shard_index(key)]

    def _shards_in_order(self, keys: Iterable[str]) -> list[_Shard]:
        return [self._shards[i] for i in sorted({shard_index(k) for k in keys})]

    @staticmethod
    @contextlib.contextmanager
    def _locked(shards: Iterable[_Shard]) -> Iterator[None]:
        with contextlib.ExitStack() as stack:
            for shard in shards:
                stack.enter_context(shard.lock)
            yield

    @staticmethod
    def _is_expired(entry: _Entry) -> bool:
        return entry.expires_at is not None and time.time() > entry.expires_at

    def _live_entry(self, shard: _Shard, key: str) -> Optional[_Entry]:
        """Return the unexpired entry for key, purging it first if it has expired."""
        entry = shard.data.get(key)
        if entry is None:
            return None
        if self._is_expired(entry):
            self._purge_locked(shard, key, entry)
            return None
        return entry

    def _add_mem(self, delta: int) -> None:
        if not delta:
            return
        with self._mem_lock:
            self._mem = max(0, self._mem + delta)

    def _bump_watch(self, key: str) -> None:
        with self._watch_lock:
            self._watch[key] = self._watch.get(key, 0) + 1

    def _watch_version(self, key: str) -> int:
        with self._watch_lock:
            return self._watch.get(key, 0)

    def _reset_watch(self) -> None:
        with self._watch_lock:
            self._watch.clear()

    @staticmethod
    def _remove_from_lru(shard: _Shard, key: str) -> None:
        shard.all_lru.pop(key, None)
        shard.vol_lru.pop(key, None)

    def _touch_lru(self, shard: _Shard, key: str, entry: _Entry) -> None:
        if self._policy == "allkeys-lru":
            shard.all_lru[key] = None
            shard.all_lru.move_to_end(key)
        elif self._policy == "volatile-lru":
            if entry.has_ttl:
                shard.vol_lru[key] = None
                shard.vol_lru.move_to_end(key)
            else:
                shard.vol_lru.pop(key, None)

    def _touch_on_read(self, shard: _Shard, key: str, entry: _Entry) -> None:
        # Outside LRU policies, reads only touch 1 in 16 times to limit churn.
        if self._policy in LRU_POLICIES or next(self._read_tick) % 16 == 0:
            self._touch_lru(shard, key, entry)

    def _purge_locked(self, shard: _Shard, key: str, entry: _Entry) -> None:
        self._remove_from_lru(shard, key)
        del shard.data[key]
        self._add_mem(-_estimate_mem(key, entry))
        self._bump_watch(key)

    def _replace_entry(
        self, shard: _Shard, key: str, old: Optional[_Entry], new: _Entry
    ) -> None:
        if old is not None:
            self._remove_from_lru(shard, key)
            self._add_mem(-_estimate_mem(key, old))
        shard.data[key] = new
        self._add_mem(_estimate_mem(key, new))
        self._touch_lru(shard, key, new)
        self._bump_watch(key)

    def _ensure_memory(self, shard: _Shard, key: str, delta: int) -> bool:
        """Make room for delta bytes; the shard lock is held and may be dropped meanwhile.

        Returns True when the lock was released, so the caller must re-read shard state.
        """
        if self._max_memory == 0 or delta <= 0:
            return False
        evicted = False
        while self._mem + delta > self._max_memory:
            shard.lock.release()
            try:
                ok = self.evict(key)
            finally:
                shard.lock.acquire()
            evicted = True
            if not ok:
                raise OutOfMemoryError()
        return evicted

    def _evict_until_fits(self, delta: int) -> None:
        """Evict (holding no shard lock) until delta more bytes fit the limit."""
        if self._max_memory == 0:
            return
        while self._mem + delta > self._max_memory:
            if not self.evict(""):
                raise OutOfMemoryError()

    # -- eviction --------------------------------------------------------

    def evict(self, avoid_key: str = "") -> bool:
        """Remove one key according to the eviction policy; False if none was removed.

        Must be called without holding any shard lock.
        """
        policy = self._policy
        if policy == "allkeys-lru":
            return self._evict_lru(avoid_key, volatile=False)
        if policy == "volatile-lru":
            return self._evict_lru(avoid_key, volatile=True)
        if policy == "allkeys-random":
            return self._evict_random(avoid_key, None)
        if policy == "volatile-random":
            return self._evict_random(avoid_key, lambda e: e.has_ttl)
        if policy == "volatile-ttl":
            return self._evict_volatile_ttl(avoid_key)
        return False

    def _evict_lru(self, avoid_key: str, *, volatile: bool) -> bool:
        for _ in range(NUM_SHARDS * 2):
            shard = self._shards[next(self._evict_cursor) % NUM_SHARDS]
            with shard.lock:
                lru = shard.vol_lru if volatile else shard.all_lru
                if not lru:
                    continue
                victim = next(iter(lru))
                if avoid_key and victim == avoid_key:
                    continue
                entry = shard.data.get(victim)
                if entry is None:
                    lru.pop(victim, None)
                    continue
                if volatile and not entry.has_ttl:
                    continue
                self._purge_locked(shard, victim, entry)
                return True
        return False

    def _evict_random(
        self, avoid_key: str, predicate: Optional[Callable[[_Entry], bool]]
    ) -> bool:
        for _ in range(NUM_SHARDS * 8):
            shard = self._shards[random.randrange(NUM_SHARDS)]
            with shard.lock:
                candidates = [
                    k for k, e in shard.data.items() if predicate is None or predicate(e)
                ]
                if not candidates:
                    continue
                victim = random.choice(candidates)
                if avoid_key and victim == avoid_key:
                    continue
                self._purge_locked(shard, victim, shard.data[victim])
                return True
        return False

    def _evict_volatile_ttl(self, avoid_key: str) -> bool:
        best: Optional[tuple[float, str, _Shard]] = None
        for shard in self._shards:
            with shard.lock:
                for key, entry in shard.data.items():
                    if not entry.has_ttl or (avoid_key and key == avoid_key):
                        continue
                    if best is None or entry.expires_at < best[0]:
                        best = (entry.expires_at, key, shard)
        if best is None:
            return False
        _, key, shard = best
        with shard.lock:
            entry = shard.data.get(key)
            if entry is not None and entry.has_ttl:
                self._purge_locked(shard, key, entry)
                return True
        return False

    # -- active expiry ---------------------------------------------------

    def _run_active_expiry(self) -> None:
        while not self._stop.wait(EXPIRY_INTERVAL):
            self.sample_expired()

    def sample_expired(self) -> int:
        """Run one active-expiry pass over all shards; return how many keys expired."""
        total = 0
        for shard in self._shards:
            for _ in range(EXPIRY_MAX_RESAMPLES):
                expired, checked = self._sample_shard(shard)
                total += expired
                if checked == 0 or expired / checked <= EXPIRY_REPEAT_RATIO:
                    break
        return total

    def _sample_shard(self, shard: _Shard) -> tuple[int, int]:
        with shard.lock:
            if not shard.data:
                return 0, 0
            keys = list(shard.data)
            if len(keys) > EXPIRY_SAMPLE_PER_SHARD:
                keys = random.sample(keys, EXPIRY_SAMPLE_PER_SHARD)
            expired = checked = 0
            for key in keys:
                entry = shard.data.get(key)
                if entry is None:
                    continue
                checked += 1
                if self._is_expired(entry):
                    self._purge_locked(shard, key, entry)
                    expired += 1
            return expired, checked