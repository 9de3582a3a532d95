"""Secure credential backends."""

from __future__ import annotations

from typing import Protocol

import keyring
from keyring.errors import PasswordDeleteError

PROBE_SERVICE = "ezenv-test"
PROBE_ACCOUNT = "test"


class CredentialBackend(Protocol):
    def store(self, service: str, account: str, secret: str) -> None: ...

    def retrieve(self, service: str, account: str) -> str | None: ...

    def delete(self, service: str, account: str) -> bool: ...


class KeyringBackend:
    """OS credential store (Keychain, Credential Locker, Secret Service)."""

    def probe(self) -> None:
        """Touch the store once; raises when it is not usable."""
        keyring.get_password(PROBE_SERVICE, PROBE_ACCOUNT)

    def store(self, service: str, account: str, secret: str) -> None:
        keyring.set_password(service, account, secret)

    def retrieve(self, service: str, account: str) -> str | None:
        return keyring.get_password(service, account)

    def delete(self, service: str, account: str) -> bool:
        if keyring.get_password(service, account) is None:
            return False
        try:
            keyring.delete_password(service, account)
        except PasswordDeleteError:
            return False
        return True
