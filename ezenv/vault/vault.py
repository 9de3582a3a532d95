"""Credential vault: secure OS store with an in-process fallback."""

from __future__ import annotations

import logging
import threading
from typing import Callable, TypeVar

from keyring.errors import KeyringError

from ezenv.errors import StorageUnavailable
from ezenv.utils.helpers import get_platform_name
from ezenv.vault.backends import PROBE_ACCOUNT, PROBE_SERVICE, CredentialBackend, KeyringBackend
from ezenv.vault.memory import FallbackRegistry, default_fallback_registry

T = TypeVar("T")

logger = logging.getLogger(__name__)

_STORE_MARKERS = ("keychain", "keyring", "credential", "secret service")


def _names_secure_store(exc: BaseException) -> bool:
    if isinstance(exc, KeyringError):
        return True
    text = str(exc).lower()
    return any(marker in text for marker in _STORE_MARKERS)


class CredentialVault:
    """Stores secrets by (service, account).

    The secure backend is probed once, lazily, on first use. If the probe
    fails the vault switches to the process-wide memory store for the rest of
    its lifetime and ``is_using_fallback()`` reports it.
    """

    def __init__(
        self,
        backend: CredentialBackend | None = None,
        fallback_registry: FallbackRegistry | None = None,
    ):
        self._secure = backend if backend is not None else KeyringBackend()
        self._registry = fallback_registry or default_fallback_registry
        self._active: CredentialBackend | None = None
        self._using_fallback = False
        self._select_lock = threading.Lock()

    def _probe(self) -> None:
        probe = getattr(self._secure, "probe", None)
        if callable(probe):
            probe()
        else:
            self._secure.retrieve(PROBE_SERVICE, PROBE_ACCOUNT)

    def _backend(self) -> CredentialBackend:
        if self._active is not None:
            return self._active
        with self._select_lock:
            if self._active is not None:
                return self._active
            try:
                self._probe()
            except Exception as exc:
                logger.warning(
                    "System credential store unavailable (%s). "
                    "Falling back to memory storage; credentials will not persist.",
                    exc,
                )
                self._using_fallback = True
                self._active = self._registry.acquire()
            else:
                logger.info("Using %s credential store", get_platform_name())
                self._active = self._secure
            return self._active

    def _run(self, action: str, call: Callable[[CredentialBackend], T]) -> T:
        backend = self._backend()
        try:
            return call(backend)
        except StorageUnavailable:
            raise
        except Exception as exc:
            if _names_secure_store(exc):
                raise StorageUnavailable(
                    f"Failed to {action} credentials. "
                    "Please ensure your system keychain is accessible."
                ) from exc
            raise

    def store(self, service: str, account: str, secret: str) -> None:
        self._run("store", lambda backend: backend.store(service, account, secret))

    def retrieve(self, service: str, account: str) -> str | None:
        return self._run("retrieve", lambda backend: backend.retrieve(service, account))

    def delete(self, service: str, account: str) -> bool:
        return self._run("delete", lambda backend: backend.delete(service, account))

    def is_using_fallback(self) -> bool:
        return self._using_fallback

    def close(self) -> None:
        """Drop this vault's reference to the shared fallback store."""
        if self._using_fallback:
            self._registry.release()
