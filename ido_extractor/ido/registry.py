from __future__ import annotations

import secrets
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict

from ido_extractor.ido.client import IdoClient


@dataclass
class _Entry:
    owner_id: int
    client: IdoClient
    username: str
    last_used: float


class ConnectionRegistry:
    """In-process table of live IDO sessions, keyed by an opaque connection id."""

    def __init__(self, *, clock: Callable[[], float] | None = None) -> None:
        self._lock = threading.Lock()
        self._entries: Dict[str, _Entry] = {}
        self._clock = clock or time.monotonic

    def register(self, owner_id: int, client: IdoClient, username: str) -> str:
        connection_id = secrets.token_urlsafe(24)
        with self._lock:
            self._entries[connection_id] = _Entry(
                owner_id=int(owner_id),
                client=client,
                username=username,
                last_used=self._clock(),
            )
        return connection_id

    def get(self, connection_id: str | None, owner_id: int, *, ttl_seconds: int) -> IdoClient | None:
        if not connection_id:
            return None
        now = self._clock()
        with self._lock:
            self._expire_locked(now, ttl_seconds)
            entry = self._entries.get(connection_id)
            if entry is None or entry.owner_id != int(owner_id):
                return None
            entry.last_used = now
            return entry.client

    def remove(self, connection_id: str | None) -> bool:
        with self._lock:
            return self._entries.pop(connection_id or "", None) is not None

    def active_count(self, *, ttl_seconds: int | None = None) -> int:
        with self._lock:
            if ttl_seconds is not None:
                self._expire_locked(self._clock(), ttl_seconds)
            return len(self._entries)

    def reset(self) -> None:
        with self._lock:
            self._entries.clear()

    def _expire_locked(self, now: float, ttl_seconds: int) -> None:
        ttl = max(1, int(ttl_seconds))
        expired = [key for key, entry in self._entries.items() if now - entry.last_used > ttl]
        for key in expired:
            self._entries.pop(key, None)


IDO_SESSION_KEY = "ido_connection_id"

_REGISTRY = ConnectionRegistry()


def connection_registry() -> ConnectionRegistry:
    return _REGISTRY


def reset_connections_for_tests() -> None:
    _REGISTRY.reset()
