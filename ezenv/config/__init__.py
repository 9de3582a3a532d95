"""Configuration module."""

from ezenv.config.loader import get_config_path, load_config, save_config
from ezenv.config.schema import Config

__all__ = ["Config", "get_config_path", "load_config", "save_config"]
