"""Compare, render and merge local and remote secret maps."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

import typer

LOCAL_PREFIX = "LOCAL_"
LOCAL_SUFFIX = "_LOCAL"

_MIN_KEY_WIDTH = 10
_MIN_VALUE_WIDTH = 12
_STATUS_WIDTH = 11

_STATUS_COLORS = {
    "Added": typer.colors.GREEN,
    "Modified": typer.colors.YELLOW,
    "Removed": typer.colors.RED,
    "Local Only": typer.colors.CYAN,
}


class DiffFormat(str, Enum):
    INLINE = "inline"
    SIDE_BY_SIDE = "side-by-side"
    SUMMARY = "summary"


@dataclass(frozen=True)
class ModifiedValue:
    old: str
    new: str


@dataclass
class DiffResult:
    added: dict[str, str] = field(default_factory=dict)
    modified: dict[str, ModifiedValue] = field(default_factory=dict)
    removed: dict[str, str] = field(default_factory=dict)
    local_only: dict[str, str] = field(default_factory=dict)

    def has_changes(self) -> bool:
        return bool(self.added or self.modified or self.removed or self.local_only)


def is_local_only(key: str) -> bool:
    """Keys named LOCAL_* or *_LOCAL are operator overrides and never synced."""
    return key.startswith(LOCAL_PREFIX) or key.endswith(LOCAL_SUFFIX)


def compare_secrets(local: dict[str, str], remote: dict[str, str]) -> DiffResult:
    diff = DiffResult()
    for key, value in remote.items():
        if key not in local:
            diff.added[key] = value
        elif local[key] != value:
            diff.modified[key] = ModifiedValue(old=local[key], new=value)

    for key, value in local.items():
        if key in remote:
            continue
        if is_local_only(key):
            diff.local_only[key] = value
        else:
            diff.removed[key] = value
    return diff


def _paint(text: str, color: str, colorize: bool) -> str:
    return typer.style(text, fg=color) if colorize else text


def _format_inline(diff: DiffResult, colorize: bool) -> str:
    lines: list[str] = []
    for key, value in diff.added.items():
        lines.append(_paint(f"+ {key}={value}", typer.colors.GREEN, colorize))
    for key, change in diff.modified.items():
        lines.append(_paint(f"~ {key}", typer.colors.YELLOW, colorize))
        lines.append(_paint(f"  - {change.old}", typer.colors.RED, colorize))
        lines.append(_paint(f"  + {change.new}", typer.colors.GREEN, colorize))
    for key, value in diff.removed.items():
        lines.append(_paint(f"- {key}={value}", typer.colors.RED, colorize))
    for key, value in diff.local_only.items():
        lines.append(_paint(f"! {key}={value}", typer.colors.CYAN, colorize))
    return "\n".join(lines)


def _format_side_by_side(diff: DiffResult, colorize: bool) -> str:
    rows: list[tuple[str, str, str, str]] = []
    rows.extend((key, "-", value, "Added") for key, value in diff.added.items())
    rows.extend((key, c.old, c.new, "Modified") for key, c in diff.modified.items())
    rows.extend((key, value, "-", "Removed") for key, value in diff.removed.items())
    rows.extend((key, value, "-", "Local Only") for key, value in diff.local_only.items())

    key_width = max([_MIN_KEY_WIDTH, *(len(r[0]) for r in rows)])
    local_width = max([_MIN_VALUE_WIDTH, *(len(r[1]) for r in rows)])
    remote_width = max([_MIN_VALUE_WIDTH, *(len(r[2]) for r in rows)])

    header = " | ".join(
        ["KEY".ljust(key_width), "LOCAL".ljust(local_width), "REMOTE".ljust(remote_width), "STATUS"]
    )
    separator = "-|-".join(
        ["-" * key_width, "-" * local_width, "-" * remote_width, "-" * _STATUS_WIDTH]
    )
    lines = [header, separator]
    for key, local, remote, status in rows:
        row = " | ".join(
            [key.ljust(key_width), local.ljust(local_width), remote.ljust(remote_width), status]
        )
        lines.append(_paint(row, _STATUS_COLORS[status], colorize))
    return "\n".join(lines)


def _format_summary(diff: DiffResult, colorize: bool) -> str:
    counts = [
        ("Added", len(diff.added)),
        ("Modified", len(diff.modified)),
        ("Removed", len(diff.removed)),
        ("Local Only", len(diff.local_only)),
    ]
    return ", ".join(
        _paint(f"{label}: {count}", _STATUS_COLORS[label], colorize)
        for label, count in counts
        if count > 0
    )


def format_diff(
    diff: DiffResult,
    format: DiffFormat | str = DiffFormat.INLINE,
    colorize: bool = False,
) -> str:
    """Render ``diff``. Returns "" exactly when there is nothing to show."""
    if not diff.has_changes():
        return ""
    try:
        kind = DiffFormat(format)
    except ValueError:
        kind = DiffFormat.INLINE
    if kind is DiffFormat.SIDE_BY_SIDE:
        return _format_side_by_side(diff, colorize)
    if kind is DiffFormat.SUMMARY:
        return _format_summary(diff, colorize)
    return _format_inline(diff, colorize)


def apply_diff(diff: DiffResult, current: dict[str, str]) -> dict[str, str]:
    """Merge remote changes into ``current`` without mutating either input.

    Local-only entries are applied last so they always win.
    """
    merged: dict[str, str] = dict(diff.added)
    for key, change in diff.modified.items():
        merged[key] = change.new
    for key, value in current.items():
        if key not in diff.removed and key not in diff.modified:
            merged[key] = value
    merged.update(diff.local_only)
    return merged
