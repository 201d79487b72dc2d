"""String commands: GET, SET and its NX/XX variants, GETSET, APPEND, INCRBY and multi-key forms."""

from __future__ import annotations

import re
from typing import Mapping, Optional, Sequence

from supercache.core import DataType, StoreCore, WrongTypeError, _Entry, _estimate_mem

INT64_MIN = -(2**63)
INT64_MAX = 2**63 - 1

_INTEGER_RE = re.compile(r"[+-]?[0-9]+")


def _parse_int64(raw: bytes) -> int:
    text = raw.decode("utf-8", errors="replace").strip()
    if not text:
        return 0
    if not _INTEGER_RE.fullmatch(text):
        raise ValueError(f"not an integer: {text!r}")
    value = int(text)
    if not INT64_MIN <= value <= INT64_MAX:
        raise ValueError(f"not an integer: {text!r} is out of range")
    return value


class StringOps(StoreCore):
    """String-valued operations over the sharded keyspace."""

    def get(self, key: str) -> Optional[bytes]:
        """Return the string value of key, or None if it does not exist."""
        shard = self._shard_for(key)
        with shard.lock:
            entry = self._live_entry(shard, key)
            if entry is None:
                return None
            if entry.dtype is not DataType.STRING:
                raise WrongTypeError()
            self._touch_on_read(shard, key, entry)
            return entry.value

    def set(self, key: str, value: bytes, expires_at: Optional[float] = None) -> None:
        """Store a string value; expires_at is an absolute epoch time or None for no TTL."""
        shard = self._shard_for(key)
        with shard.lock:
            self._set_locked(shard, key, value, expires_at, nx=False, xx=False)

    def _set_locked(
        self, shard, key: str, value: bytes, expires_at: Optional[float], *, nx: bool, xx: bool
    ) -> bool:
        old = self._live_entry(shard, key)
        if (nx and old is not None) or (xx and old is None):
            return False
        new = _Entry(bytes(value), DataType.STRING, expires_at)
        old_bytes = _estimate_mem(key, old) if old is not None else 0
        if self._ensure_memory(shard, key, _estimate_mem(key, new) - old_bytes):
            # The shard lock was released during eviction; re-read its state.
            old = self._live_entry(shard, key)
            if (nx and old is not None) or (xx and old is None):
                return False
        self._replace_entry(shard, key, old, new)
        return True

    def set_nx(self, key: str, value: bytes, expires_at: Optional[float] = None) -> bool:
        """Set key only if it does not exist; return whether it was set."""
        shard = self._shard_for(key)
        with shard.lock:
            return self._set_locked(shard, key, value, expires_at, nx=True, xx=False)

    def set_xx(self, key: str, value: bytes, expires_at: Optional[float] = None) -> bool:
        """Set key only if it already exists; return whether it was set."""
        shard = self._shard_for(key)
        with shard.lock:
            return self._set_locked(shard, key, value, expires_at, nx=False, xx=True)

    def get_set(
        self, key: str, value: bytes, expires_at: Optional[float] = None
    ) -> Optional[bytes]:
        """Set a new value and return the previous one (None if the key was missing)."""
        shard = self._shard_for(key)
        with shard.lock:
            old = self._live_entry(shard, key)
            previous = None
            if old is not None:
                if old.dtype is not DataType.STRING:
                    raise WrongTypeError()
                previous = old.value
            new = _Entry(bytes(value), DataType.STRING, expires_at)
            old_bytes = _estimate_mem(key, old) if old is not None else 0
            if self._ensure_memory(shard, key, _estimate_mem(key, new) - old_bytes):
                old = shard.data.get(key)
            self._replace_entry(shard, key, old, new)
            return previous

    def append(self, key: str, tail: bytes) -> int:
        """Append tail to the string at key (creating it) and return the new length."""
        shard = self._shard_for(key)
        with shard.lock:
            current = self._live_entry(shard, key)
            if current is None:
                new = _Entry(bytes(tail), DataType.STRING)
                if self._ensure_memory(shard, key, _estimate_mem(key, new)):
                    current = self._live_entry(shard, key)
                if current is None:
                    self._replace_entry(shard, key, None, new)
                    return len(new.value)
                # The key appeared while eviction ran: append to it instead.
                if current.dtype is not DataType.STRING:
                    raise WrongTypeError()
                new = _Entry(current.value + bytes(tail), DataType.STRING, current.expires_at)
                self._replace_entry(shard, key, current, new)
                return len(new.value)
            if current.dtype is not DataType.STRING:
                raise WrongTypeError()
            new = _Entry(current.value + bytes(tail), DataType.STRING, current.expires_at)
            delta = _estimate_mem(key, new) - _estimate_mem(key, current)
            if self._ensure_memory(shard, key, delta):
                current = shard.data.get(key)
            self._replace_entry(shard, key, current, new)
            return len(new.value)

    def incr_by(self, key: str, delta: int) -> int:
        """Add delta to the integer stored at key and return the result."""
        shard = self._shard_for(key)
        with shard.lock:
            current = self._live_entry(shard, key)
            value = 0
            if current is not None:
                if current.dtype is not DataType.STRING:
                    raise WrongTypeError()
                value = _parse_int64(current.value)
            result = value + delta
            if not INT64_MIN <= result <= INT64_MAX:
                raise OverflowError("increment or decrement would overflow")
            new = _Entry(
                str(result).encode("ascii"),
                DataType.STRING,
                current.expires_at if current is not None else None,
            )
            old_bytes = _estimate_mem(key, current) if current is not None else 0
            if self._ensure_memory(shard, key, _estimate_mem(key, new) - old_bytes):
                current = shard.data.get(key)
            self._replace_entry(shard, key, current, new)
            return result

    def decr_by(self, key: str, delta: int) -> int:
        """Subtract delta from the integer stored at key and return the result."""
        return self.incr_by(key, -delta)

    def mget(self, keys: Sequence[str]) -> list[Optional[bytes]]:
        """Return the values of keys in order, None for each missing key."""
        return [self.get(key) for key in keys]

    def mset(self, pairs: Mapping[str, bytes]) -> None:
        """Set many keys without TTL, in sorted key order."""
        for key in sorted(pairs):
            self.set(key, pairs[key])

    def mset_nx(self, pairs: Mapping[str, bytes]) -> bool:
        """Set all keys only if none of them exists; return whether they were set."""
        if not pairs:
            return True
        shards = self._shards_in_order(pairs)
        with self._locked(shards):
            delta = 0
            for key, value in pairs.items():
                shard = self._shard_for(key)
                if self._live_entry(shard, key) is not None:
                    return False
                delta += _estimate_mem(key, _Entry(bytes(value), DataType.STRING))
        self._evict_until_fits(delta)
        with self._locked(shards):
            for key in pairs:
                if self._live_entry(self._shard_for(key), key) is not None:
                    return False
            for key, value in pairs.items():
                shard = self._shard_for(key)
                self._replace_entry(
                    shard, key, shard.data.get(key), _Entry(bytes(value), DataType.STRING)
                )
        return True