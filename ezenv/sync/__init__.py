"""Reconciliation of local and remote secret sets."""

from ezenv.sync.diff import (
    DiffFormat,
    DiffResult,
    ModifiedValue,
    apply_diff,
    compare_secrets,
    format_diff,
    is_local_only,
)

__all__ = [
    "DiffFormat",
    "DiffResult",
    "ModifiedValue",
    "apply_diff",
    "compare_secrets",
    "format_diff",
    "is_local_only",
]
