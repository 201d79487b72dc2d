"""Hash commands: HSET, HGET, HGETALL, HDEL, HEXISTS, HLEN and HSETNX."""

from __future__ import annotations

from typing import Iterable, Mapping, Optional

from supercache.core import DataType, StoreCore, WrongTypeError, _Entry, _estimate_mem


class HashOps(StoreCore):
    """Hash-valued operations; field names are strings and values are bytes."""

    def _live_hash(self, shard, key: str) -> Optional[_Entry]:
        entry = self._live_entry(shard, key)
        if entry is not None and entry.dtype is not DataType.HASH:
            raise WrongTypeError()
        return entry

    def _store_hash(self, shard, key: str, old: Optional[_Entry], new: _Entry) -> None:
        old_bytes = _estimate_mem(key, old) if old is not None else 0
        if self._ensure_memory(shard, key, _estimate_mem(key, new) - old_bytes):
            # The shard lock was released during eviction; take what is there now.
            old = shard.data.get(key)
        self._replace_entry(shard, key, old, new)

    def hset(self, key: str, pairs: Mapping[str, bytes]) -> int:
        """Set hash fields and return how many fields were newly created."""
        if not pairs:
            return 0
        shard = self._shard_for(key)
        with shard.lock:
            old = self._live_hash(shard, key)
            fields = dict(old.value) if old is not None else {}
            created = sum(1 for f in pairs if f not in fields)
            fields.update((f, bytes(v)) for f, v in pairs.items())
            new = _Entry(fields, DataType.HASH, old.expires_at if old is not None else None)
            self._store_hash(shard, key, old, new)
            return created

    def hget(self, key: str, field: str) -> Optional[bytes]:
        """Return a field's value, or None if the key or field is missing."""
        shard = self._shard_for(key)
        with shard.lock:
            entry = self._live_hash(shard, key)
            if entry is None:
                return None
            self._touch_lru(shard, key, entry)
            return entry.value.get(field)

    def hgetall(self, key: str) -> dict[str, bytes]:
        """Return a copy of the whole hash (empty if the key is missing)."""
        shard = self._shard_for(key)
        with shard.lock:
            entry = self._live_hash(shard, key)
            if entry is None:
                return {}
            self._touch_lru(shard, key, entry)
            return dict(entry.value)

    def hdel(self, key: str, fields: Iterable[str]) -> int:
        """Delete fields and return how many were removed; an emptied hash is deleted."""
        shard = self._shard_for(key)
        with shard.lock:
            entry = self._live_hash(shard, key)
            if entry is None:
                return 0
            remaining = dict(entry.value)
            removed = 0
            for field in fields:
                if remaining.pop(field, None) is not None:
                    removed += 1
            if not remaining:
                self._purge_locked(shard, key, entry)
                return removed
            self._replace_entry(
                shard, key, entry, _Entry(remaining, DataType.HASH, entry.expires_at)
            )
            return removed

    def hexists(self, key: str, field: str) -> bool:
        """Report whether the hash at key has field."""
        shard = self._shard_for(key)
        with shard.lock:
            entry = self._live_hash(shard, key)
            if entry is None:
                return False
            self._touch_lru(shard, key, entry)
            return field in entry.value

    def hlen(self, key: str) -> int:
        """Number of fields in the hash at key (0 if missing)."""
        shard = self._shard_for(key)
        with shard.lock:
            entry = self._live_hash(shard, key)
            if entry is None:
                return 0
            self._touch_lru(shard, key, entry)
            return len(entry.value)

    def hsetnx(self, key: str, field: str, value: bytes) -> int:
        """Set field only if it does not exist; return 1 if set, 0 if not."""
        shard = self._shard_for(key)
        with shard.lock:
            old = self._live_hash(shard, key)
            if old is not None and field in old.value:
                return 0
            fields = dict(old.value) if old is not None else {}
            fields[field] = bytes(value)
            new = _Entry(fields, DataType.HASH, old.expires_at if old is not None else None)
            self._store_hash(shard, key, old, new)
            return 1