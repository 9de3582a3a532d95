"""Configuration schema."""

from __future__ import annotations

import os
from dataclasses import dataclass, field

from ezenv.auth.constants import DEFAULT_ENVIRONMENT

HOSTED_URL = "https://uqvlfpmnwjwsgoqyexyh.supabase.co"

URL_ENV_VARS = ("SUPABASE_URL", "NEXT_PUBLIC_SUPABASE_URL")
ANON_KEY_ENV_VARS = ("SUPABASE_ANON_KEY", "NEXT_PUBLIC_SUPABASE_ANON_KEY")


def _first_env(names: tuple[str, ...]) -> str | None:
    for name in names:
        value = os.environ.get(name)
        if value:
            return value
    return None


@dataclass
class ApiConfig:
    url: str = ""
    anon_key: str = ""


@dataclass
class Config:
    api: ApiConfig = field(default_factory=ApiConfig)
    active_environment: str = DEFAULT_ENVIRONMENT
    selected_project: str | None = None
    selected_environment: str | None = None
    env_file: str = ".env"

    def get_api_url(self) -> str:
        """Environment variables win over the file; the hosted service is the fallback."""
        url = _first_env(URL_ENV_VARS) or self.api.url or HOSTED_URL
        return url.rstrip("/")

    def get_anon_key(self) -> str:
        return _first_env(ANON_KEY_ENV_VARS) or self.api.anon_key

    def is_using_hosted(self) -> bool:
        return not _first_env(URL_ENV_VARS) and not self.api.url
