"""Utility helpers."""

from ezenv.utils.helpers import ensure_dir, get_data_path, get_platform_name

__all__ = ["ensure_dir", "get_data_path", "get_platform_name"]
