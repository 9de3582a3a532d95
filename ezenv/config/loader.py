"""Configuration loading utilities."""

from __future__ import annotations

import json
import logging
import re
from dataclasses import asdict
from pathlib import Path
from typing import Any

from ezenv.config.schema import ApiConfig, Config
from ezenv.utils.helpers import ensure_dir, get_data_path

logger = logging.getLogger(__name__)

PROJECT_CONFIG_NAME = ".ezenvrc"


def get_config_path() -> Path:
    """Get the default configuration file path."""
    return Path.home() / ".ezenv" / "config.json"


def get_data_dir() -> Path:
    """Get the ezenv data directory."""
    return get_data_path()


def load_config(config_path: Path | None = None, project_dir: Path | None = None) -> Config:
    """
    Load configuration from file, then overlay the project's .ezenvrc.

    Args:
        config_path: Optional path to config file. Uses default if not provided.
        project_dir: Directory holding .ezenvrc. Defaults to the working directory.

    Returns:
        Loaded configuration object.
    """
    path = config_path or get_config_path()
    data: dict[str, Any] = {}

    if path.exists():
        try:
            with open(path, encoding="utf-8") as f:
                data = convert_keys(json.load(f))
        except (json.JSONDecodeError, ValueError) as e:
            logger.warning("Failed to load config from %s: %s", path, e)
            logger.warning("Using default configuration.")
            data = {}

    config = _from_dict(data)

    rc_path = (project_dir or Path.cwd()) / PROJECT_CONFIG_NAME
    if rc_path.exists():
        try:
            project = convert_keys(json.loads(rc_path.read_text(encoding="utf-8")))
        except (json.JSONDecodeError, ValueError) as e:
            logger.warning("Ignoring invalid %s: %s", rc_path, e)
        else:
            if project.get("selected_project"):
                config.selected_project = project["selected_project"]
            if project.get("selected_environment"):
                config.selected_environment = project["selected_environment"]

    return config


def save_config(config: Config, config_path: Path | None = None) -> None:
    """
    Save configuration to file.

    Args:
        config: Configuration to save.
        config_path: Optional path to save to. Uses default if not provided.
    """
    path = config_path or get_data_dir() / "config.json"
    ensure_dir(path.parent)

    data = convert_to_camel(asdict(config))

    with open(path, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=2)


def _from_dict(data: dict[str, Any]) -> Config:
    api = data.get("api") or {}
    defaults = Config()
    return Config(
        api=ApiConfig(url=api.get("url", ""), anon_key=api.get("anon_key", "")),
        active_environment=data.get("active_environment", defaults.active_environment),
        selected_project=data.get("selected_project"),
        selected_environment=data.get("selected_environment"),
        env_file=data.get("env_file", defaults.env_file),
    )


def convert_keys(data: Any) -> Any:
    """Convert camelCase keys to snake_case."""
    if isinstance(data, dict):
        return {camel_to_snake(k): convert_keys(v) for k, v in data.items()}
    if isinstance(data, list):
        return [convert_keys(item) for item in data]
    return data


def convert_to_camel(data: Any) -> Any:
    """Convert snake_case keys to camelCase."""
    if isinstance(data, dict):
        return {snake_to_camel(k): convert_to_camel(v) for k, v in data.items()}
    if isinstance(data, list):
        return [convert_to_camel(item) for item in data]
    return data


def camel_to_snake(name: str) -> str:
    """Convert camelCase to snake_case."""
    return re.sub(r"(?<!^)(?=[A-Z])", "_", name).lower()


def snake_to_camel(name: str) -> str:
    """Convert snake_case to camelCase."""
    components = name.split("_")
    return components[0] + "".join(x.title() for x in components[1:])
