"""Token and device-grant data models."""

from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any

from ezenv.errors import ProtocolError


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _parse_timestamp(value: str) -> datetime:
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass
class TokenRecord:
    """Bearer credential stored for one environment."""

    access_token: str
    expires_at: datetime
    environment: str
    refresh_token: str | None = None
    user_id: str | None = None
    user_email: str | None = None

    def __post_init__(self) -> None:
        if not self.access_token:
            raise ValueError("access_token must not be empty")

    def expires_within(self, seconds: float) -> bool:
        return self.expires_at <= _utcnow() + timedelta(seconds=seconds)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "access_token": self.access_token,
            "expires_at": self.expires_at.isoformat().replace("+00:00", "Z"),
            "environment": self.environment,
        }
        for name in ("refresh_token", "user_id", "user_email"):
            value = getattr(self, name)
            if value is not None:
                data[name] = value
        return data

    def to_json(self) -> str:
        return json.dumps(self.to_dict())

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TokenRecord:
        return cls(
            access_token=data["access_token"],
            expires_at=_parse_timestamp(data["expires_at"]),
            environment=data["environment"],
            refresh_token=data.get("refresh_token"),
            user_id=data.get("user_id"),
            user_email=data.get("user_email"),
        )

    @classmethod
    def from_grant(
        cls,
        payload: dict[str, Any],
        environment: str,
        default_expires_in: int,
    ) -> TokenRecord:
        """Build a record from a token endpoint response body."""
        access = payload.get("access_token")
        if not access or not isinstance(access, str):
            raise ProtocolError("Token response missing access_token")
        expires_in = payload.get("expires_in") or default_expires_in
        user = payload.get("user") or {}
        return cls(
            access_token=access,
            expires_at=_utcnow() + timedelta(seconds=int(expires_in)),
            environment=environment,
            refresh_token=payload.get("refresh_token"),
            user_id=payload.get("user_id") or user.get("id"),
            user_email=user.get("email"),
        )


@dataclass(frozen=True)
class DeviceGrantSession:
    """Device code issued for one login attempt. Never persisted."""

    device_code: str
    user_code: str
    verification_uri: str
    verification_uri_complete: str
    expires_in: int
    interval: int

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> DeviceGrantSession:
        try:
            return cls(
                device_code=str(data["device_code"]),
                user_code=str(data["user_code"]),
                verification_uri=str(data["verification_uri"]),
                verification_uri_complete=str(
                    data.get("verification_uri_complete") or data["verification_uri"]
                ),
                expires_in=int(data.get("expires_in", 0)),
                interval=int(data.get("interval", 5)),
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise ProtocolError(f"Device code response missing fields: {exc}") from exc
