"""Runtime counters for INFO, metrics and management snapshots."""

from __future__ import annotations

import secrets
import threading
import time
from typing import Any, Iterable

DEFAULT_BOOTSTRAP_STATE = "standalone"


def random_node_id() -> str:
    """Return a random 128-bit node identifier as 32 hex characters."""
    try:
        return secrets.token_hex(16)
    except OSError:
        return "unknown"


class Stats:
    """Thread-safe process counters: clients, commands, keyspace, peers and bootstrap."""

    def __init__(self, node_id: str, client_port: int) -> None:
        self.node_id = node_id
        self.client_port = client_port
        self._start = time.monotonic()
        self._lock = threading.Lock()
        self._build_version = ""
        self._active_clients = 0
        self._total_conns = 0
        self._total_cmds = 0
        self._keyspace_hits = 0
        self._keyspace_misses = 0
        self._peer_inbound = 0
        self._peer_out_addrs: list[str] = []
        self._bootstrap_state = DEFAULT_BOOTSTRAP_STATE
        self._bootstrap_bytes = 0
        self._bootstrap_keys = 0
        self._bootstrap_depth = 0

    def _elapsed(self) -> float:
        return time.monotonic() - self._start

    def client_connected(self) -> None:
        with self._lock:
            self._active_clients += 1
            self._total_conns += 1

    def client_disconnected(self) -> None:
        with self._lock:
            self._active_clients -= 1

    def command_executed(self) -> None:
        with self._lock:
            self._total_cmds += 1

    def set_replication_stats(self, inbound_connected: int, outbound_addrs: Iterable[str]) -> None:
        with self._lock:
            self._peer_inbound = int(inbound_connected)
            self._peer_out_addrs = list(outbound_addrs)

    def set_bootstrap_inbound_queue_depth(self, depth: int) -> None:
        with self._lock:
            self._bootstrap_depth = int(depth)

    def bootstrap_inbound_queue_depth(self) -> int:
        """Inbound replication queue depth during bootstrap (0 when idle)."""
        return self._bootstrap_depth

    def uptime_seconds(self) -> int:
        return int(self._elapsed())

    def connected_clients(self) -> int:
        return self._active_clients

    def total_connections(self) -> int:
        return self._total_conns

    def total_commands(self) -> int:
        return self._total_cmds

    def ops_per_sec(self) -> int:
        """Commands per second averaged since start (whole seconds, at least one)."""
        return self._total_cmds // max(1, int(self._elapsed()))

    def keyspace_hits(self) -> int:
        return self._keyspace_hits

    def keyspace_misses(self) -> int:
        return self._keyspace_misses

    def record_hit(self, n: int) -> None:
        if n > 0:
            with self._lock:
                self._keyspace_hits += n

    def record_miss(self, n: int) -> None:
        if n > 0:
            with self._lock:
                self._keyspace_misses += n

    def connected_peers(self) -> int:
        return self._peer_inbound

    def peer_addresses(self) -> list[str]:
        """A copy of the connected outbound mesh addresses."""
        with self._lock:
            return list(self._peer_out_addrs)

    def set_build_version(self, version: str) -> None:
        with self._lock:
            self._build_version = version.strip()

    def server_version(self) -> str:
        return self._build_version

    def bootstrap_keys_applied(self) -> int:
        return self._bootstrap_keys

    def bootstrap_state(self) -> str:
        return self._bootstrap_state or DEFAULT_BOOTSTRAP_STATE

    def set_bootstrap_state(self, state: str) -> None:
        with self._lock:
            self._bootstrap_state = state

    def reset_bootstrap_stats(self) -> None:
        with self._lock:
            self._bootstrap_bytes = 0
            self._bootstrap_keys = 0

    def add_bootstrap_bytes(self, n: int) -> None:
        if n > 0:
            with self._lock:
                self._bootstrap_bytes += n

    def add_bootstrap_keys(self, n: int) -> None:
        if n > 0:
            with self._lock:
                self._bootstrap_keys += n

    def bootstrap_status_map(self, queue_depth_config: int) -> dict[str, Any]:
        """Bootstrap pull telemetry for the management API."""
        with self._lock:
            return {
                "bytes_received": self._bootstrap_bytes,
                "keys_applied": self._bootstrap_keys,
                "queue_depth": self._bootstrap_depth,
                "bootstrap_queue_depth_config": queue_depth_config,
            }