"""
Utility functions and helpers.

This module intentionally uses lazy attribute loading to avoid importing heavier
submodules (e.g., pandas) unless they are needed.
"""

from __future__ import annotations

from typing import Any

__all__ = [
    "ProjectPaths",
    "clean_description",
    "ensure_columns",
    "lenient_int",
    "read_csv",
    "row_ids",
    "split_semi_list",
    "with_retries",
    "write_csv",
]


def __getattr__(name: str) -> Any:  # pragma: no cover
    if name in {
        "ProjectPaths",
        "ensure_columns",
        "lenient_int",
        "read_csv",
        "row_ids",
        "with_retries",
        "write_csv",
    }:
        from . import utilities as _u

        return getattr(_u, name)

    if name in {"clean_description", "split_semi_list"}:
        from . import text as _t

        return getattr(_t, name)

    raise AttributeError(name)
