"""Credential vault."""

from ezenv.vault.backends import CredentialBackend, KeyringBackend
from ezenv.vault.memory import FallbackRegistry, MemoryCredentialStore, default_fallback_registry
from ezenv.vault.vault import CredentialVault

__all__ = [
    "CredentialBackend",
    "CredentialVault",
    "FallbackRegistry",
    "KeyringBackend",
    "MemoryCredentialStore",
    "default_fallback_registry",
]
