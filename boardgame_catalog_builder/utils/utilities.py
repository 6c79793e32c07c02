from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable

import pandas as pd
import requests

from ..config import ENRICH, RETRY
from ..schema import ID_COL

# ----------------------------
# Paths / Folder structure
# ----------------------------


@dataclass(frozen=True)
class ProjectPaths:
    root: Path
    data_dir: Path
    logs_dir: Path
    default_input: Path
    default_output: Path

    @staticmethod
    def from_root(root: str | Path) -> ProjectPaths:
        rootp = Path(root).resolve()
        data = rootp / "data"
        return ProjectPaths(
            root=rootp,
            data_dir=data,
            logs_dir=data / "logs",
            default_input=data / ENRICH.input_filename,
            default_output=data / ENRICH.output_filename,
        )


# ----------------------------
# CSV Helpers
# ----------------------------


def read_csv(path: str | Path) -> pd.DataFrame:
    """
    Read CSV as strings only, trimming headers and cells.

    Blank lines are skipped and no NaN/number inference happens, so a cell reads back exactly
    as written (minus surrounding whitespace).
    """
    df = pd.read_csv(path, dtype=str, keep_default_na=False, skip_blank_lines=True)
    df.columns = [str(c).strip() for c in df.columns]
    return df.apply(lambda col: col.astype(str).str.strip())


def write_csv(df: pd.DataFrame, path: str | Path) -> None:
    Path(path).parent.mkdir(parents=True, exist_ok=True)
    df.to_csv(path, index=False)


def ensure_columns(df: pd.DataFrame, cols_with_defaults: dict[str, Any]) -> pd.DataFrame:
    """Create columns if they don't exist, with a default value."""
    for col, default in cols_with_defaults.items():
        if col not in df.columns:
            df[col] = default
    return df


def row_ids(df: pd.DataFrame, *, col: str = ID_COL) -> pd.Series:
    """Trimmed identity column; all-empty when the CSV has no such column."""
    if col not in df.columns:
        return pd.Series([""] * len(df), index=df.index, dtype=object)
    return df[col].astype(str).str.strip()


# ----------------------------
# CLI value parsing
# ----------------------------


def lenient_int(default: int, *, minimum: int = 0, clamp: bool = True) -> Callable[[str], int]:
    """
    Build an argparse `type=` callable that never rejects a value.

    Malformed input falls back to `default`. Values below `minimum` are raised to it when
    `clamp` is set, otherwise they also fall back to `default`.
    """

    def _parse(raw: str) -> int:
        try:
            value = int(str(raw).strip())
        except ValueError:
            return default
        if value < minimum:
            return minimum if clamp else default
        return value

    return _parse


# ----------------------------
# Retries
# ----------------------------


def _failure_kind(exc: BaseException) -> str:
    if isinstance(exc, requests.exceptions.HTTPError):
        return "http"
    if isinstance(
        exc,
        (
            requests.exceptions.ConnectionError,
            requests.exceptions.Timeout,
            requests.exceptions.SSLError,
        ),
    ):
        return "network"
    return "request"


def _bump(stats: dict[str, Any] | None, key: str) -> None:
    if stats is None:
        return
    stats[key] = int(stats.get(key, 0) or 0) + 1


def with_retries(
    fn: Callable[[], Any],
    *,
    attempts: int = RETRY.attempts,
    backoff_step_s: float = RETRY.backoff_step_s,
    retry_on: tuple[type, ...] = (Exception,),
    on_fail_return: Any = None,
    context: str | None = None,
    retry_stats: dict[str, Any] | None = None,
) -> Any:
    """
    Execute fn up to `attempts` times with linear backoff (attempt N waits N * step).

    Returns `on_fail_return` once every attempt failed; the last error is logged, not raised.
    """
    for attempt in range(1, attempts + 1):
        try:
            return fn()
        except retry_on as e:
            kind = _failure_kind(e)
            _bump(retry_stats, f"{kind}_errors")
            if attempt >= attempts:
                if context:
                    logging.error(f"[{kind.upper()}] {context}: {type(e).__name__}: {e}")
                _bump(retry_stats, f"{kind}_failures")
                return on_fail_return
            sleep = backoff_step_s * attempt
            _bump(retry_stats, "retry_attempts")
            logging.debug(
                f"{context or 'request'}: attempt {attempt}/{attempts} failed "
                f"({type(e).__name__}); retrying in {sleep:.1f}s"
            )
            time.sleep(sleep)
    return on_fail_return
