"""In-process credential storage used when no secure store is available."""

from __future__ import annotations

import threading


class MemoryCredentialStore:
    """Thread-safe dict keyed by ``service:account``."""

    def __init__(self) -> None:
        self._storage: dict[str, str] = {}
        self._lock = threading.Lock()

    @staticmethod
    def _key(service: str, account: str) -> str:
        return f"{service}:{account}"

    def store(self, service: str, account: str, secret: str) -> None:
        with self._lock:
            self._storage[self._key(service, account)] = secret

    def retrieve(self, service: str, account: str) -> str | None:
        with self._lock:
            return self._storage.get(self._key(service, account)) or None

    def delete(self, service: str, account: str) -> bool:
        with self._lock:
            return self._storage.pop(self._key(service, account), None) is not None

    def clear(self) -> None:
        with self._lock:
            self._storage.clear()

    def size(self) -> int:
        with self._lock:
            return len(self._storage)


class FallbackRegistry:
    """Owner of the memory store shared by every vault in the process.

    The store is created on first ``acquire`` and handed out by reference, so
    independently constructed vaults see the same data. ``reset`` drops it.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._store: MemoryCredentialStore | None = None
        self._refs = 0

    def acquire(self) -> MemoryCredentialStore:
        with self._lock:
            if self._store is None:
                self._store = MemoryCredentialStore()
            self._refs += 1
            return self._store

    def release(self) -> None:
        with self._lock:
            if self._refs > 0:
                self._refs -= 1

    @property
    def ref_count(self) -> int:
        with self._lock:
            return self._refs

    def reset(self) -> None:
        """Discard the shared store. Intended for tests."""
        with self._lock:
            if self._store is not None:
                self._store.clear()
            self._store = None
            self._refs = 0


default_fallback_registry = FallbackRegistry()
