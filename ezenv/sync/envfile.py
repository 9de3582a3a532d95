"""Read and write KEY=value env files."""

from __future__ import annotations

import logging
import os
import re
import shutil
import tempfile
from datetime import datetime, timezone
from pathlib import Path

from ezenv.errors import EnvFileError
from ezenv.sync.diff import is_local_only

logger = logging.getLogger(__name__)

SYNC_HEADER_PREFIX = "# Synced from EzEnv on "
LOCAL_MARKER = "# Local-only variable"
BACKUP_INFIX = ".backup."
DEFAULT_BACKUPS_KEPT = 5

_SYNC_HEADER_RE = re.compile(r"^#\s*Synced from EzEnv on (.+)$")


def _unquote(value: str) -> str:
    if len(value) >= 2 and value[0] == value[-1] and value[0] in ("'", '"'):
        return value[1:-1]
    return value


def _format_value(value: str) -> str:
    if " " in value or "#" in value or "=" in value:
        return f'"{value}"'
    return value


def read_env_file(path: str | Path) -> dict[str, str]:
    path = Path(path)
    try:
        content = path.read_text(encoding="utf-8")
    except OSError as exc:
        logger.error("Failed to read file %s: %s", path, exc)
        raise EnvFileError(f"Failed to read file: {path}", str(path)) from exc

    result: dict[str, str] = {}
    for line in content.splitlines():
        stripped = line.strip()
        if not stripped or stripped.startswith("#"):
            continue
        key, _, value = stripped.partition("=")
        key = key.strip()
        if key:
            result[key] = _unquote(value)
    return result


def write_env_file(path: str | Path, data: dict[str, str]) -> None:
    """Write ``data`` atomically with a sync timestamp header."""
    path = Path(path)
    lines = [f"{SYNC_HEADER_PREFIX}{datetime.now(timezone.utc).isoformat()}", ""]
    for key, value in data.items():
        if is_local_only(key):
            lines.append(LOCAL_MARKER)
        lines.append(f"{key}={_format_value(value)}")
    content = "\n".join(lines) + "\n"

    tmp_name: str | None = None
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f"{path.name}.", suffix=".tmp")
        with os.fdopen(fd, "w", encoding="utf-8") as fp:
            fp.write(content)
        os.replace(tmp_name, path)
        tmp_name = None
        logger.debug("Wrote %d variables to %s", len(data), path)
    except OSError as exc:
        logger.error("Failed to write file %s: %s", path, exc)
        raise EnvFileError(f"Failed to write file: {path}", str(path)) from exc
    finally:
        if tmp_name is not None:
            Path(tmp_name).unlink(missing_ok=True)


def get_last_sync_time(path: str | Path) -> str | None:
    try:
        content = Path(path).read_text(encoding="utf-8")
    except OSError:
        return None
    for line in content.splitlines():
        match = _SYNC_HEADER_RE.match(line)
        if match:
            return match.group(1)
    return None


def backup_file(path: str | Path) -> Path | None:
    """Copy ``path`` next to itself. Failures are logged, not raised."""
    path = Path(path)
    timestamp = datetime.now(timezone.utc).strftime("%Y-%m-%dT%H-%M-%S-%fZ")
    backup_path = path.with_name(f"{path.name}{BACKUP_INFIX}{timestamp}")
    try:
        shutil.copy2(path, backup_path)
    except OSError as exc:
        logger.error("Failed to backup file %s: %s", path, exc)
        return None
    logger.debug("Backed up %s to %s", path, backup_path)
    return backup_path


def list_backups(path: str | Path) -> list[Path]:
    """Backups of ``path``, newest first."""
    path = Path(path)
    if not path.parent.is_dir():
        return []
    prefix = f"{path.name}{BACKUP_INFIX}"
    backups = [p for p in path.parent.iterdir() if p.name.startswith(prefix)]
    return sorted(backups, key=lambda p: p.name, reverse=True)


def cleanup_old_backups(path: str | Path, keep: int = DEFAULT_BACKUPS_KEPT) -> list[Path]:
    removed: list[Path] = []
    for old in list_backups(path)[keep:]:
        try:
            old.unlink()
            removed.append(old)
        except OSError as exc:
            logger.error("Failed to remove backup %s: %s", old, exc)
    return removed
