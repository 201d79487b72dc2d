"""Set commands: SADD, SREM, SMEMBERS, SISMEMBER, SCARD and whole-set replacement."""

from __future__ import annotations

from typing import Iterable, Optional

from supercache.core import DataType, StoreCore, WrongTypeError, _Entry, _estimate_mem


class SetOps(StoreCore):
    """Set-valued operations; members are bytes."""

    def _live_set(self, shard, key: str) -> Optional[_Entry]:
        entry = self._live_entry(shard, key)
        if entry is not None and entry.dtype is not DataType.SET:
            raise WrongTypeError()
        return entry

    def _store_set(self, shard, key: str, old: Optional[_Entry], new: _Entry) -> None:
        old_bytes = _estimate_mem(key, old) if old is not None else 0
        if self._ensure_memory(shard, key, _estimate_mem(key, new) - old_bytes):
            # The shard lock was released during eviction; take what is there now.
            old = shard.data.get(key)
        self._replace_entry(shard, key, old, new)

    def sadd(self, key: str, members: Iterable[bytes]) -> int:
        """Add members to the set at key and return how many were newly inserted."""
        members = [bytes(m) for m in members]
        if not members:
            return 0
        shard = self._shard_for(key)
        with shard.lock:
            old = self._live_set(shard, key)
            current = set(old.value) if old is not None else set()
            before = len(current)
            current.update(members)
            added = len(current) - before
            new = _Entry(current, DataType.SET, old.expires_at if old is not None else None)
            self._store_set(shard, key, old, new)
            return added

    def srem(self, key: str, members: Iterable[bytes]) -> int:
        """Remove members and return how many were removed; an emptied set is deleted."""
        shard = self._shard_for(key)
        with shard.lock:
            entry = self._live_set(shard, key)
            if entry is None:
                return 0
            remaining = set(entry.value)
            removed = 0
            for member in members:
                member = bytes(member)
                if member in remaining:
                    remaining.discard(member)
                    removed += 1
            if not remaining:
                self._purge_locked(shard, key, entry)
                return removed
            self._replace_entry(
                shard, key, entry, _Entry(remaining, DataType.SET, entry.expires_at)
            )
            return removed

    def smembers(self, key: str) -> list[bytes]:
        """Return all members of the set at key (empty if missing), in no set order."""
        shard = self._shard_for(key)
        with shard.lock:
            entry = self._live_set(shard, key)
            if entry is None:
                return []
            self._touch_lru(shard, key, entry)
            return list(entry.value)

    def sismember(self, key: str, member: bytes) -> bool:
        """Report whether member is in the set at key."""
        shard = self._shard_for(key)
        with shard.lock:
            entry = self._live_set(shard, key)
            if entry is None:
                return False
            self._touch_lru(shard, key, entry)
            return bytes(member) in entry.value

    def scard(self, key: str) -> int:
        """Number of members in the set at key (0 if missing)."""
        shard = self._shard_for(key)
        with shard.lock:
            entry = self._live_set(shard, key)
            if entry is None:
                return 0
            self._touch_lru(shard, key, entry)
            return len(entry.value)

    def replace_set(self, key: str, members: Iterable[bytes]) -> None:
        """Overwrite key with a set holding exactly members, keeping any live TTL."""
        new_members = {bytes(m) for m in members}
        shard = self._shard_for(key)
        with shard.lock:
            old = self._live_entry(shard, key)
            new = _Entry(
                new_members, DataType.SET, old.expires_at if old is not None else None
            )
            self._store_set(shard, key, old, new)