"""Fetch decrypted secrets for a project environment."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from ezenv.auth import TokenLifecycleManager
from ezenv.auth.constants import HTTP_TIMEOUT_SEC
from ezenv.errors import ApiError, NetworkError, NotAuthenticated

logger = logging.getLogger(__name__)

SECRETS_PATH = "/functions/v1/get-secrets"


class SecretsClient:
    """Reads the remote secret map using the manager's stored token."""

    def __init__(
        self,
        manager: TokenLifecycleManager,
        base_url: str,
        anon_key: str = "",
        http_client: httpx.AsyncClient | None = None,
    ):
        self._manager = manager
        self._base_url = base_url.rstrip("/")
        self._anon_key = anon_key
        self._http_client = http_client

    async def _post(self, url: str, body: dict[str, Any], headers: dict[str, str]) -> httpx.Response:
        if self._http_client is not None:
            return await self._http_client.post(url, json=body, headers=headers)
        async with httpx.AsyncClient(timeout=HTTP_TIMEOUT_SEC) as client:
            return await client.post(url, json=body, headers=headers)

    async def fetch_secrets(self, project_id: str, environment_id: str) -> dict[str, str]:
        logger.debug("Fetching secrets for project %s, environment %s", project_id, environment_id)
        token = self._manager.get_stored_token()
        if not token:
            raise NotAuthenticated()

        headers = {
            "Authorization": f"Bearer {token}",
            "apikey": self._anon_key,
            "Content-Type": "application/json",
        }
        body = {"projectId": project_id, "environmentId": environment_id}
        try:
            response = await self._post(f"{self._base_url}{SECRETS_PATH}", body, headers)
        except httpx.TransportError as exc:
            raise NetworkError() from exc

        status = response.status_code
        if status == 401:
            raise ApiError(401, "Authentication expired")
        if status == 403:
            raise ApiError(403, "Access denied")
        if status == 404:
            raise ApiError(404, _error_field(response) or "Not found")
        if not response.is_success:
            raise ApiError(status, f"Failed to fetch secrets: {response.text}")

        try:
            payload = response.json()
        except ValueError as exc:
            raise ApiError(status, "Invalid response from server: failed to parse JSON") from exc
        if not isinstance(payload, dict):
            raise ApiError(status, "Invalid response from server: expected an object")
        secrets = payload.get("secrets") or {}
        # Values are never logged.
        logger.debug("Fetched %d secrets", len(secrets))
        return {str(k): str(v) for k, v in secrets.items()}


def _error_field(response: httpx.Response) -> str | None:
    try:
        data = response.json()
    except ValueError:
        return None
    if isinstance(data, dict) and isinstance(data.get("error"), str):
        return data["error"]
    return None
