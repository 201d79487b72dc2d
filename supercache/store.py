"""The full in-memory store combining every command family."""

from __future__ import annotations

from supercache.hashops import HashOps
from supercache.keyspace import KeyspaceOps
from supercache.listops import ListOps
from supercache.setops import SetOps
from supercache.snapshot import SnapshotOps
from supercache.stringops import StringOps


class Store(StringOps, HashOps, SetOps, ListOps, SnapshotOps, KeyspaceOps):
    """Concurrent sharded in-memory database; usable as a context manager that closes it."""

    def __enter__(self) -> "Store":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()