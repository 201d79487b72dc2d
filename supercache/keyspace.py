"""Key-level commands: DEL, EXISTS, TYPE, RENAME, KEYS, DBSIZE, FLUSHDB and TTL management."""

from __future__ import annotations

import functools
import re
import time
from typing import Iterable, Optional

from supercache.core import DataType, StoreCore, _Entry, _estimate_mem


def _class_char(pattern: str, i: int) -> Optional[tuple[str, int]]:
    """Read one (possibly escaped) character of a bracket class; None if malformed."""
    if i >= len(pattern) or pattern[i] in "-]":
        return None
    if pattern[i] == "\\":
        i += 1
        if i >= len(pattern):
            return None
    return pattern[i], i + 1


def _class_regex(pattern: str, i: int) -> Optional[tuple[str, int]]:
    """Translate a bracket class starting after '['; return its regex and the next index."""
    negate = False
    if i < len(pattern) and pattern[i] == "^":
        negate = True
        i += 1
    parts: list[str] = []
    seen = False
    while True:
        if i < len(pattern) and pattern[i] == "]" and seen:
            i += 1
            break
        read = _class_char(pattern, i)
        if read is None:
            return None
        lo, i = read
        hi = lo
        if i < len(pattern) and pattern[i] == "-":
            read = _class_char(pattern, i + 1)
            if read is None:
                return None
            hi, i = read
        seen = True
        # A reversed range matches nothing; leave it out of the class.
        if lo <= hi:
            parts.append(re.escape(lo) if lo == hi else f"{re.escape(lo)}-{re.escape(hi)}")
    if not parts:
        return ("(?s:.)" if negate else "(?!)"), i
    return f"[{'^' if negate else ''}{''.join(parts)}]", i


@functools.lru_cache(maxsize=256)
def _compile_glob(pattern: str) -> Optional[re.Pattern[str]]:
    """Compile a shell-style glob (* ? [..] and backslash escapes); None if malformed."""
    out: list[str] = []
    i = 0
    while i < len(pattern):
        c = pattern[i]
        if c == "*":
            out.append("[^/]*")
            i += 1
        elif c == "?":
            out.append("[^/]")
            i += 1
        elif c == "\\":
            if i + 1 >= len(pattern):
                return None
            out.append(re.escape(pattern[i + 1]))
            i += 2
        elif c == "[":
            translated = _class_regex(pattern, i + 1)
            if translated is None:
                return None
            fragment, i = translated
            out.append(fragment)
        else:
            out.append(re.escape(c))
            i += 1
    return re.compile("".join(out), re.DOTALL)


def match_glob(pattern: str, key: str) -> bool:
    """Report whether key matches the glob pattern; a malformed pattern matches nothing."""
    regex = _compile_glob(pattern)
    return regex is not None and regex.fullmatch(key) is not None


class KeyspaceOps(StoreCore):
    """Operations on keys regardless of the type of value they hold."""

    def delete(self, keys: Iterable[str]) -> int:
        """Delete keys and return how many live keys were removed."""
        removed = 0
        for key in keys:
            shard = self._shard_for(key)
            with shard.lock:
                entry = shard.data.get(key)
                if entry is None:
                    continue
                expired = self._is_expired(entry)
                self._purge_locked(shard, key, entry)
                if not expired:
                    removed += 1
        return removed

    def exists(self, keys: Iterable[str]) -> int:
        """Count how many of keys exist (a key named twice counts twice)."""
        count = 0
        for key in keys:
            shard = self._shard_for(key)
            with shard.lock:
                if self._live_entry(shard, key) is not None:
                    count += 1
        return count

    def type_of(self, key: str) -> str:
        """Return the type name of key's value, or "none" if it does not exist."""
        shard = self._shard_for(key)
        with shard.lock:
            entry = self._live_entry(shard, key)
            return DataType.NONE.value if entry is None else entry.dtype.value

    def _move_locked(self, src: str, dst: str, entry: _Entry) -> None:
        src_shard = self._shard_for(src)
        dst_shard = self._shard_for(dst)
        old_dst = dst_shard.data.get(dst)
        if old_dst is not None:
            self._purge_locked(dst_shard, dst, old_dst)
        self._remove_from_lru(src_shard, src)
        del src_shard.data[src]
        self._add_mem(-_estimate_mem(src, entry))
        self._replace_entry(dst_shard, dst, None, entry.clone())

    def rename(self, src: str, dst: str) -> None:
        """Rename src to dst, overwriting dst; raise KeyError if src does not exist."""
        if src == dst:
            return
        with self._locked(self._shards_in_order((src, dst))):
            entry = self._live_entry(self._shard_for(src), src)
            if entry is None:
                raise KeyError(f"no such key: {src!r}")
            self._move_locked(src, dst, entry)

    def rename_nx(self, src: str, dst: str) -> bool:
        """Rename src to dst only if dst does not exist; return whether it was renamed."""
        if src == dst:
            return True
        with self._locked(self._shards_in_order((src, dst))):
            entry = self._live_entry(self._shard_for(src), src)
            if entry is None:
                return False
            if self._live_entry(self._shard_for(dst), dst) is not None:
                return False
            self._move_locked(src, dst, entry)
            return True

    def keys(self, pattern: str) -> list[str]:
        """Return every live key matching the glob pattern."""
        regex = _compile_glob(pattern)
        if regex is None:
            return []
        found: list[str] = []
        for shard in self._shards:
            with shard.lock:
                found.extend(
                    key
                    for key, entry in shard.data.items()
                    if not self._is_expired(entry) and regex.fullmatch(key)
                )
        return found

    def dbsize(self) -> int:
        """Number of live keys."""
        total = 0
        for shard in self._shards:
            with shard.lock:
                total += sum(1 for e in shard.data.values() if not self._is_expired(e))
        return total

    def expire_key_count(self) -> int:
        """Number of live keys that carry a TTL."""
        total = 0
        for shard in self._shards:
            with shard.lock:
                total += sum(
                    1 for e in shard.data.values() if e.has_ttl and not self._is_expired(e)
                )
        return total

    def flush_db(self) -> None:
        """Remove every key."""
        for shard in self._shards:
            with shard.lock:
                for key, entry in list(shard.data.items()):
                    self._purge_locked(shard, key, entry)
        self._reset_watch()

    def expire(self, key: str, seconds: int) -> bool:
        """Give key a TTL of seconds from now; raise ValueError if seconds is not positive."""
        if seconds <= 0:
            raise ValueError(f"invalid expire: non-positive ({seconds})")
        return self.expire_at(key, time.time() + seconds)

    def expire_at(self, key: str, at: float) -> bool:
        """Set key to expire at the epoch time at; return False if key does not exist."""
        shard = self._shard_for(key)
        with shard.lock:
            entry = self._live_entry(shard, key)
            if entry is None:
                return False
            new = entry.clone()
            new.expires_at = at
            self._replace_entry(shard, key, entry, new)
            return True

    def _remaining(self, key: str) -> Optional[float]:
        """Seconds left for key; -1.0 without TTL, None if missing or expired."""
        shard = self._shard_for(key)
        with shard.lock:
            entry = self._live_entry(shard, key)
            if entry is None:
                return None
            if entry.expires_at is None:
                return -1.0
            remaining = entry.expires_at - time.time()
            if remaining <= 0:
                self._purge_locked(shard, key, entry)
                return None
            return remaining

    def ttl(self, key: str) -> int:
        """Whole seconds to live; -1 if key has no TTL, -2 if it does not exist."""
        remaining = self._remaining(key)
        if remaining is None:
            return -2
        if remaining < 0:
            return -1
        return int(remaining)

    def ttl_ms(self, key: str) -> int:
        """Milliseconds to live; -1 if key has no TTL, -2 if it does not exist."""
        remaining = self._remaining(key)
        if remaining is None:
            return -2
        if remaining < 0:
            return -1
        return int(remaining * 1000)

    def persist(self, key: str) -> bool:
        """Remove key's TTL; return whether a TTL was removed."""
        shard = self._shard_for(key)
        with shard.lock:
            entry = self._live_entry(shard, key)
            if entry is None or entry.expires_at is None:
                return False
            new = entry.clone()
            new.expires_at = None
            self._replace_entry(shard, key, entry, new)
            return True