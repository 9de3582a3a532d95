"""Small filesystem and platform helpers."""

from __future__ import annotations

import sys
from pathlib import Path


def ensure_dir(path: Path) -> Path:
    """Create ``path`` (and parents) if missing and return it."""
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_data_path() -> Path:
    """Return the ezenv data directory (~/.ezenv)."""
    return ensure_dir(Path.home() / ".ezenv")


def get_platform_name() -> str:
    """Human-readable name of the OS family, used in credential store messages."""
    if sys.platform == "darwin":
        return "macOS"
    if sys.platform in ("win32", "cygwin"):
        return "Windows"
    if sys.platform.startswith(("linux", "freebsd", "openbsd", "sunos")):
        return "Linux"
    return "Unknown"
