"""Token lifecycle: device and password grants, refresh, expiry."""

from __future__ import annotations

import asyncio
import json
import logging
import time
import urllib.parse
import webbrowser
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
from typing import Any, AsyncIterator

import httpx

from ezenv.auth.constants import (
    DEFAULT_ENVIRONMENT,
    DEFAULT_EXPIRES_IN_SEC,
    DEVICE_CODE_PATH,
    DEVICE_TOKEN_PATH,
    ENVIRONMENTS,
    EXPIRY_MARGIN_SEC,
    HTTP_TIMEOUT_SEC,
    MAX_POLL_TIME_SEC,
    PASSWORD_GRANT_PATH,
    PASSWORD_MAX_ATTEMPTS,
    POLL_INTERVAL_SEC,
    REFRESH_PATH,
    RETRY_BASE_DELAY_SEC,
    SERVICE_PREFIX,
    TOKEN_ACCOUNT,
    USER_PATH,
)
from ezenv.auth.models import DeviceGrantSession, TokenRecord
from ezenv.auth.retry import Sleep, retry_with_backoff
from ezenv.errors import (
    AccessDenied,
    AuthError,
    ExpiredGrant,
    InvalidCredentials,
    NetworkError,
    ProtocolError,
    RateLimited,
    ServerError,
    UnknownAuthError,
)
from ezenv.vault import CredentialVault

logger = logging.getLogger(__name__)


def _parse_json(response: httpx.Response) -> dict[str, Any]:
    try:
        data = response.json()
    except ValueError as exc:
        raise ProtocolError() from exc
    if not isinstance(data, dict):
        raise ProtocolError()
    return data


def _error_message(response: httpx.Response) -> str:
    text = response.text
    try:
        data = json.loads(text)
    except ValueError:
        return text or f"HTTP error! status: {response.status_code}"
    if isinstance(data, dict):
        for key in ("error_description", "msg", "message", "error"):
            value = data.get(key)
            if isinstance(value, str) and value:
                return value
    return text


def _classify_password_failure(response: httpx.Response) -> AuthError:
    status = response.status_code
    message = _error_message(response)
    if status == 400 and "invalid" in message.lower():
        return InvalidCredentials(message)
    if status == 429:
        return RateLimited()
    if status >= 500:
        return ServerError(status)
    return UnknownAuthError(message, status)


def _is_connect_error(exc: BaseException) -> bool:
    # DNS failures and refused connections both surface as ConnectError.
    return isinstance(exc, httpx.ConnectError)


class TokenLifecycleManager:
    """Obtains, stores and renews the bearer token for one environment at a time.

    Every stored record is keyed by ``service_name``, which is derived from the
    current environment, so development, staging and production tokens never
    collide in the vault.

    Args:
        vault: Where token records are persisted.
        base_url: Authorization service root URL.
        anon_key: Public API key sent as ``apikey`` on password and user calls.
        environment: Initial environment.
        poll_interval: Seconds between device-grant polls.
        max_poll_time: Wall-clock ceiling for device-grant polling.
        http_client: Shared client; a short-lived one is created per call if omitted.
        sleep: Coroutine used for every wait, replaceable in tests.
    """

    def __init__(
        self,
        vault: CredentialVault,
        base_url: str,
        anon_key: str = "",
        *,
        environment: str = DEFAULT_ENVIRONMENT,
        poll_interval: float = POLL_INTERVAL_SEC,
        max_poll_time: float = MAX_POLL_TIME_SEC,
        http_client: httpx.AsyncClient | None = None,
        sleep: Sleep = asyncio.sleep,
    ):
        if not base_url:
            raise ValueError("base_url is required")
        self._vault = vault
        self._base_url = base_url.rstrip("/")
        self._anon_key = anon_key
        self._poll_interval = poll_interval
        self._max_poll_time = max_poll_time
        self._http_client = http_client
        self._sleep = sleep
        self._environment = DEFAULT_ENVIRONMENT
        self.set_environment(environment)

    # ------------------------------------------------------------------
    # Environment scoping
    # ------------------------------------------------------------------

    def set_environment(self, environment: str) -> None:
        if environment not in ENVIRONMENTS:
            raise ValueError(
                f"Invalid environment: {environment}. Valid environments: {', '.join(ENVIRONMENTS)}"
            )
        self._environment = environment

    def get_environment(self) -> str:
        return self._environment

    @property
    def service_name(self) -> str:
        return f"{SERVICE_PREFIX}-{self._environment}"

    # ------------------------------------------------------------------
    # HTTP
    # ------------------------------------------------------------------

    @asynccontextmanager
    async def _client(self) -> AsyncIterator[httpx.AsyncClient]:
        if self._http_client is not None:
            yield self._http_client
            return
        async with httpx.AsyncClient(timeout=HTTP_TIMEOUT_SEC) as client:
            yield client

    async def _post(
        self,
        path: str,
        body: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> httpx.Response:
        request_headers = {"Content-Type": "application/json"}
        if headers:
            request_headers.update(headers)
        async with self._client() as client:
            return await client.post(f"{self._base_url}{path}", json=body, headers=request_headers)

    # ------------------------------------------------------------------
    # Device grant
    # ------------------------------------------------------------------

    async def begin_device_grant(self) -> DeviceGrantSession:
        """Request a device code for out-of-band approval."""
        try:
            response = await self._post(DEVICE_CODE_PATH)
        except httpx.TransportError as exc:
            raise NetworkError() from exc
        if not response.is_success:
            raise ServerError(response.status_code)
        session = DeviceGrantSession.from_dict(_parse_json(response))
        logger.debug("Device grant started, user code %s", session.user_code)
        return session

    async def poll_for_token(
        self,
        device_code: str,
        cancel_event: asyncio.Event | None = None,
    ) -> TokenRecord:
        """Poll until the user approves, the grant fails, or the ceiling passes.

        Setting ``cancel_event`` interrupts the current wait immediately and
        raises ``asyncio.CancelledError``.
        """
        deadline = time.monotonic() + self._max_poll_time
        while time.monotonic() < deadline:
            if cancel_event is not None and cancel_event.is_set():
                raise asyncio.CancelledError("Authentication cancelled")
            try:
                response = await asyncio.wait_for(
                    self._post(DEVICE_TOKEN_PATH, {"device_code": device_code}),
                    timeout=max(deadline - time.monotonic(), 0.0),
                )
            except asyncio.TimeoutError as exc:
                raise ExpiredGrant("Authentication timed out") from exc
            except httpx.TransportError as exc:
                raise NetworkError() from exc
            data = _parse_json(response)

            error = data.get("error")
            if error == "authorization_pending":
                remaining = deadline - time.monotonic()
                await self._wait(min(self._poll_interval, max(remaining, 0.0)), cancel_event)
                continue
            if error == "expired_token":
                raise ExpiredGrant()
            if error == "access_denied":
                raise AccessDenied()
            if error:
                raise UnknownAuthError(data.get("error_description") or str(error), response.status_code)

            record = TokenRecord.from_grant(data, self._environment, DEFAULT_EXPIRES_IN_SEC)
            self._save(record)
            return record

        raise ExpiredGrant("Authentication timed out")

    async def _wait(self, seconds: float, cancel_event: asyncio.Event | None) -> None:
        if cancel_event is None:
            await self._sleep(seconds)
            return
        try:
            await asyncio.wait_for(cancel_event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            return
        raise asyncio.CancelledError("Authentication cancelled")

    # ------------------------------------------------------------------
    # Password grant
    # ------------------------------------------------------------------

    async def authenticate_with_password(self, email: str, password: str) -> TokenRecord:
        """Exchange email and password for a token.

        Connection-level failures are retried with exponential backoff; any
        answer from the server is classified at once.
        """

        async def attempt() -> httpx.Response:
            return await self._post(
                PASSWORD_GRANT_PATH,
                {"email": email, "password": password, "gotrue_meta_security": {}},
                headers={"apikey": self._anon_key},
            )

        try:
            response = await retry_with_backoff(
                attempt,
                is_retryable=_is_connect_error,
                max_attempts=PASSWORD_MAX_ATTEMPTS,
                base_delay=RETRY_BASE_DELAY_SEC,
                sleep=self._sleep,
            )
        except httpx.TransportError as exc:
            raise NetworkError() from exc

        if not response.is_success:
            raise _classify_password_failure(response)

        record = TokenRecord.from_grant(_parse_json(response), self._environment, DEFAULT_EXPIRES_IN_SEC)
        self._save(record)
        return record

    # ------------------------------------------------------------------
    # Stored credentials
    # ------------------------------------------------------------------

    def _save(self, record: TokenRecord) -> None:
        self._vault.store(self.service_name, TOKEN_ACCOUNT, record.to_json())

    def store_credentials(
        self,
        access_token: str,
        expires_in: int | None = None,
        refresh_token: str | None = None,
        user_id: str | None = None,
        user_email: str | None = None,
    ) -> TokenRecord:
        record = TokenRecord(
            access_token=access_token,
            expires_at=datetime.now(timezone.utc)
            + timedelta(seconds=expires_in or DEFAULT_EXPIRES_IN_SEC),
            environment=self._environment,
            refresh_token=refresh_token,
            user_id=user_id,
            user_email=user_email,
        )
        self._save(record)
        return record

    def get_stored_token_data(self) -> TokenRecord | None:
        raw = self._vault.retrieve(self.service_name, TOKEN_ACCOUNT)
        if not raw:
            return None
        try:
            data = json.loads(raw)
        except ValueError:
            # Older releases stored the bare access token.
            return TokenRecord(
                access_token=raw,
                expires_at=datetime.now(timezone.utc) + timedelta(seconds=DEFAULT_EXPIRES_IN_SEC),
                environment=self._environment,
            )
        try:
            return TokenRecord.from_dict(data)
        except (KeyError, TypeError, ValueError) as exc:
            logger.debug("Ignoring malformed token record for %s: %s", self._environment, exc)
            return None

    def get_stored_token(self) -> str | None:
        record = self.get_stored_token_data()
        return record.access_token if record else None

    def logout(self) -> bool:
        """Delete this environment's record; True if one existed."""
        return self._vault.delete(self.service_name, TOKEN_ACCOUNT)

    # ------------------------------------------------------------------
    # Expiry and refresh
    # ------------------------------------------------------------------

    def is_token_expired(self) -> bool:
        record = self.get_stored_token_data()
        if record is None:
            return True
        return record.expires_within(EXPIRY_MARGIN_SEC)

    async def refresh_token(self) -> TokenRecord | None:
        """Renew the stored token. Returns None when renewal is not possible."""
        try:
            current = self.get_stored_token_data()
            if current is None or not current.refresh_token:
                return None
            response = await self._post(REFRESH_PATH, {"refresh_token": current.refresh_token})
            if not response.is_success:
                logger.debug("Token refresh failed with status: %s", response.status_code)
                return None
            data = _parse_json(response)
            record = TokenRecord.from_grant(data, self._environment, DEFAULT_EXPIRES_IN_SEC)
            record.refresh_token = record.refresh_token or current.refresh_token
            record.user_id = record.user_id or current.user_id
            record.user_email = record.user_email or current.user_email
            self._save(record)
            return record
        except Exception as exc:
            logger.debug("Token refresh error: %s", exc)
            return None

    async def is_authenticated(self) -> bool:
        """True if a usable token exists, refreshing it if needed. Never raises."""
        try:
            record = self.get_stored_token_data()
            if record is None:
                return False
            if not record.expires_within(EXPIRY_MARGIN_SEC):
                return True
            if not record.refresh_token:
                return False
            return await self.refresh_token() is not None
        except Exception as exc:
            logger.debug("Authentication check failed: %s", exc)
            return False

    async def get_current_user(self) -> dict[str, Any] | None:
        token = self.get_stored_token()
        if not token:
            return None
        try:
            async with self._client() as client:
                response = await client.get(
                    f"{self._base_url}{USER_PATH}",
                    headers={"apikey": self._anon_key, "Authorization": f"Bearer {token}"},
                )
            if not response.is_success:
                return None
            return _parse_json(response)
        except (httpx.HTTPError, ProtocolError) as exc:
            logger.debug("Failed to fetch current user: %s", exc)
            return None

    # ------------------------------------------------------------------
    # Browser
    # ------------------------------------------------------------------

    @staticmethod
    def open_browser(url: str) -> bool:
        parsed = urllib.parse.urlparse(url)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ValueError("Invalid URL provided")
        return webbrowser.open(url)
