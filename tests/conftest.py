from __future__ import annotations

from typing import Callable

import httpx
import pytest

from ezenv.auth import TokenLifecycleManager
from ezenv.secrets import SecretsClient
from ezenv.vault import CredentialVault, FallbackRegistry

BASE_URL = "https://auth.test"
ANON_KEY = "anon-key"


class FakeBackend:
    """In-test stand-in for the OS credential store."""

    def __init__(self, probe_error: Exception | None = None, op_error: Exception | None = None):
        self.data: dict[tuple[str, str], str] = {}
        self.probe_error = probe_error
        self.op_error = op_error
        self.probe_calls = 0

    def probe(self) -> None:
        self.probe_calls += 1
        if self.probe_error is not None:
            raise self.probe_error

    def store(self, service: str, account: str, secret: str) -> None:
        if self.op_error is not None:
            raise self.op_error
        self.data[(service, account)] = secret

    def retrieve(self, service: str, account: str) -> str | None:
        if self.op_error is not None:
            raise self.op_error
        return self.data.get((service, account))

    def delete(self, service: str, account: str) -> bool:
        if self.op_error is not None:
            raise self.op_error
        return self.data.pop((service, account), None) is not None


@pytest.fixture
def backend_factory() -> type[FakeBackend]:
    return FakeBackend


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def registry() -> FallbackRegistry:
    return FallbackRegistry()


@pytest.fixture
def vault(backend: FakeBackend, registry: FallbackRegistry) -> CredentialVault:
    return CredentialVault(backend=backend, fallback_registry=registry)


@pytest.fixture
def make_manager(vault: CredentialVault) -> Callable[..., TokenLifecycleManager]:
    """Build a manager whose HTTP calls go to ``handler``."""

    def factory(handler: Callable[[httpx.Request], httpx.Response], **kwargs) -> TokenLifecycleManager:
        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        return TokenLifecycleManager(
            kwargs.pop("vault", vault),
            BASE_URL,
            ANON_KEY,
            http_client=client,
            **kwargs,
        )

    return factory


@pytest.fixture
def make_secrets_client(make_manager) -> Callable[..., SecretsClient]:
    """Build a secrets client whose HTTP calls go to ``handler``.

    The token manager it reads from shares the ``vault`` fixture.
    """

    def factory(handler: Callable[[httpx.Request], httpx.Response], manager=None) -> SecretsClient:
        manager = manager or make_manager(lambda request: httpx.Response(500))
        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        return SecretsClient(manager, BASE_URL, ANON_KEY, http_client=client)

    return factory
