"""List commands: LPUSH, RPUSH, LPOP, RPOP, LLEN and LRANGE."""

from __future__ import annotations

import itertools
from collections import deque
from typing import Iterable, Optional

from supercache.core import DataType, StoreCore, WrongTypeError, _Entry, _estimate_mem


def normalize_list_index(idx: int, n: int) -> int:
    """Map a possibly negative list index into 0..n-1, clamping at both ends."""
    if idx < 0:
        idx += n
    if idx < 0:
        return 0
    if idx >= n:
        return n - 1
    return idx


class ListOps(StoreCore):
    """List-valued operations; the left end is the head."""

    def _live_list(self, shard, key: str) -> Optional[_Entry]:
        entry = self._live_entry(shard, key)
        if entry is not None and entry.dtype is not DataType.LIST:
            raise WrongTypeError()
        return entry

    def _push(self, key: str, values: Iterable[bytes], *, left: bool) -> int:
        values = [bytes(v) for v in values]
        shard = self._shard_for(key)
        with shard.lock:
            old = self._live_list(shard, key)
            if not values:
                return len(old.value) if old is not None else 0
            items = deque(old.value) if old is not None else deque()
            if left:
                items.extendleft(values)
            else:
                items.extend(values)
            new = _Entry(items, DataType.LIST, old.expires_at if old is not None else None)
            old_bytes = _estimate_mem(key, old) if old is not None else 0
            if self._ensure_memory(shard, key, _estimate_mem(key, new) - old_bytes):
                # The shard lock was released during eviction; take what is there now.
                old = shard.data.get(key)
            self._replace_entry(shard, key, old, new)
            return len(items)

    def lpush(self, key: str, values: Iterable[bytes]) -> int:
        """Prepend values one by one at the head; return the new length."""
        return self._push(key, values, left=True)

    def rpush(self, key: str, values: Iterable[bytes]) -> int:
        """Append values at the tail; return the new length."""
        return self._push(key, values, left=False)

    def _pop(self, key: str, count: int, *, left: bool) -> Optional[list[bytes]]:
        if count <= 0:
            count = 1
        shard = self._shard_for(key)
        with shard.lock:
            entry = self._live_list(shard, key)
            if entry is None:
                return None
            self._touch_lru(shard, key, entry)
            items = deque(entry.value)
            popped = [
                items.popleft() if left else items.pop()
                for _ in range(min(count, len(items)))
            ]
            if not items:
                self._purge_locked(shard, key, entry)
                return popped
            self._replace_entry(shard, key, entry, _Entry(items, DataType.LIST, entry.expires_at))
            return popped

    def lpop(self, key: str, count: int = 1) -> Optional[list[bytes]]:
        """Pop up to count elements from the head (count <= 0 means 1); None if missing."""
        return self._pop(key, count, left=True)

    def rpop(self, key: str, count: int = 1) -> Optional[list[bytes]]:
        """Pop up to count elements from the tail (count <= 0 means 1); None if missing."""
        return self._pop(key, count, left=False)

    def llen(self, key: str) -> int:
        """Length of the list at key (0 if missing)."""
        shard = self._shard_for(key)
        with shard.lock:
            entry = self._live_list(shard, key)
            return len(entry.value) if entry is not None else 0

    def lrange(self, key: str, start: int, stop: int) -> list[bytes]:
        """Return the inclusive range start..stop; negative indices count from the tail."""
        shard = self._shard_for(key)
        with shard.lock:
            entry = self._live_list(shard, key)
            if entry is None:
                return []
            self._touch_lru(shard, key, entry)
            items = entry.value
            n = len(items)
            if n == 0 or (start >= 0 and start >= n):
                return []
            first = normalize_list_index(start, n)
            last = normalize_list_index(stop, n)
            if first > last:
                return []
            return list(itertools.islice(items, first, last + 1))