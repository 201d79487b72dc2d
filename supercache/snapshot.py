"""Copy-on-read snapshots of the keyspace and applying them to another store."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from collections import deque
from typing import Iterable, Iterator

from supercache.core import DataType, _Entry, _estimate_mem
from supercache.keyspace import KeyspaceOps


@dataclass
class SnapshotEntry:
    """Portable form of one key: its type, contents and remaining TTL in ms (0 = none)."""

    key: str
    type: str
    value: bytes = b""
    fields: dict[str, bytes] = field(default_factory=dict)
    members: list[bytes] = field(default_factory=list)
    elements: list[bytes] = field(default_factory=list)
    ttl_ms: int = 0


def _build_entry(key: str, entry: _Entry) -> SnapshotEntry:
    ttl_ms = 0
    if entry.expires_at is not None:
        ttl_ms = max(0, int((entry.expires_at - time.time()) * 1000))
    out = SnapshotEntry(key=key, type=entry.dtype.value, ttl_ms=ttl_ms)
    if entry.dtype is DataType.STRING:
        out.value = bytes(entry.value)
    elif entry.dtype is DataType.HASH:
        out.fields = dict(entry.value)
    elif entry.dtype is DataType.LIST:
        out.elements = list(entry.value)
    elif entry.dtype is DataType.SET:
        out.members = list(entry.value)
    return out


class SnapshotOps(KeyspaceOps):
    """Streaming snapshot export and import."""

    def snapshot(self) -> Iterator[SnapshotEntry]:
        """Yield a copy of every live key, one shard at a time."""
        for shard in self._shards:
            with shard.lock:
                batch = [
                    _build_entry(key, entry)
                    for key, entry in shard.data.items()
                    if not self._is_expired(entry)
                ]
            yield from batch

    def apply_snapshot(self, entries: Iterable[SnapshotEntry]) -> None:
        """Replace the whole database with the snapshot entries."""
        self.flush_db()
        for entry in entries:
            self.apply_snapshot_entry(entry)

    def apply_snapshot_entry(self, entry: SnapshotEntry) -> None:
        """Write one snapshot entry, overwriting the key; raise ValueError on an unknown type."""
        expires_at = time.time() + entry.ttl_ms / 1000 if entry.ttl_ms > 0 else None
        if entry.type == DataType.STRING.value:
            new = _Entry(bytes(entry.value), DataType.STRING, expires_at)
        elif entry.type == DataType.HASH.value:
            new = _Entry(
                {f: bytes(v) for f, v in entry.fields.items()}, DataType.HASH, expires_at
            )
        elif entry.type == DataType.LIST.value:
            new = _Entry(deque(bytes(e) for e in entry.elements), DataType.LIST, expires_at)
        elif entry.type == DataType.SET.value:
            new = _Entry({bytes(m) for m in entry.members}, DataType.SET, expires_at)
        else:
            raise ValueError(f"invalid snapshot: unknown type {entry.type!r}")
        shard = self._shard_for(entry.key)
        with shard.lock:
            self._ensure_memory(shard, entry.key, _estimate_mem(entry.key, new))
            self._replace_entry(shard, entry.key, shard.data.get(entry.key), new)