"""Sharded in-memory key-value store with Redis-style types, expiry, eviction and runtime stats."""

__version__ = "0.1.0"

__all__ = ["core", "stringops", "stats", "keyspace", "hashops", "setops", "listops", "snapshot", "store"]