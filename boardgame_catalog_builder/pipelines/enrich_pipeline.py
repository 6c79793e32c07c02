from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Protocol, cast

import pandas as pd

from ..clients.bgg_client import BGGClient, EnrichmentRecord
from ..config import BGG
from ..schema import COMPLETION_FIELD, ENRICH_FIELDS
from ..utils.utilities import ensure_columns, read_csv, row_ids, write_csv
from .context import BatchSettings, InputNotFoundError


class LookupClient(Protocol):
    def lookup(self, game_id: str) -> EnrichmentRecord | None: ...


@dataclass
class EnrichStats:
    rows: int = 0
    missing_before: int = 0
    batch: int = 0
    fetched: int = 0
    failed: int = 0
    skipped: int = 0
    missing_after: int = 0


def is_row_enriched(row: Mapping[str, object]) -> bool:
    """A row is complete once its description is non-empty."""
    return str(row.get(COMPLETION_FIELD, "") or "").strip() != ""


def load_existing_output(output_csv: Path) -> dict[str, dict[str, str]]:
    """
    Index a previous output CSV by id (last row wins on duplicates).

    A missing file means a fresh start. An unreadable one is logged and also treated as a
    fresh start: resume state is never a reason to abort.
    """
    if not output_csv.exists():
        return {}
    logging.info(f"Found existing output. Resuming from: {output_csv}")
    try:
        df = read_csv(output_csv)
    except Exception as e:
        logging.warning(
            f"Failed to read existing output for resume; proceeding fresh. "
            f"({type(e).__name__}: {e})"
        )
        return {}

    existing: dict[str, dict[str, str]] = {}
    for rid, record in zip(row_ids(df).tolist(), df.to_dict(orient="records")):
        existing[rid] = {str(k): str(v) for k, v in record.items()}
    return existing


def merge_enriched(
    df: pd.DataFrame, existing: Mapping[str, Mapping[str, str]]
) -> pd.DataFrame:
    """
    Carry previously persisted enrichment forward onto freshly read input rows.

    Only non-empty existing values are copied, so a blank never overwrites data. All
    enrichment columns exist afterwards (default "").
    """
    out = ensure_columns(df.copy(), {f: "" for f in ENRICH_FIELDS})
    if not existing:
        return out
    ids = row_ids(out)
    for field in ENRICH_FIELDS:
        prev = ids.map(lambda rid: str(existing.get(rid, {}).get(field, "") or ""))
        mask = prev != ""
        if mask.any():
            out.loc[mask, field] = prev[mask]
    return out


def missing_positions(df: pd.DataFrame) -> list[int]:
    """Row positions (input order) still failing the completeness check."""
    if COMPLETION_FIELD not in df.columns:
        return list(range(len(df)))
    desc = df[COMPLETION_FIELD].astype(str).str.strip()
    return [pos for pos, value in enumerate(desc.tolist()) if not value]


def apply_enrichment(df: pd.DataFrame, pos: int, record: EnrichmentRecord | None) -> None:
    """
    Overwrite one row's enrichment columns with a lookup result.

    Every field is replaced, including with "" when the record lacks it or the lookup failed.
    """
    fields = record.as_fields() if record is not None else {}
    for field in ENRICH_FIELDS:
        df.iat[pos, df.columns.get_loc(field)] = fields.get(field, "")


def run_enrich_batch(
    settings: BatchSettings, client: LookupClient | None = None
) -> EnrichStats:
    """
    Enrich the next `settings.limit` unenriched rows and rewrite the whole output CSV.

    The output file is only written once, at the end, with every input row (in input order).
    """
    input_csv = Path(settings.input_csv)
    output_csv = Path(settings.output_csv)
    limit = max(0, int(settings.limit))

    if not input_csv.exists():
        raise InputNotFoundError(f"Input CSV not found: {input_csv}")

    logging.info(f"Reading CSV: {input_csv}")
    rows = read_csv(input_csv)
    stats = EnrichStats(rows=len(rows))
    logging.info(f"Rows: {stats.rows}")

    df = merge_enriched(rows, load_existing_output(output_csv))

    missing = missing_positions(df)
    to_process = missing[:limit]
    stats.missing_before = len(missing)
    stats.batch = len(to_process)
    logging.info(f"Missing: {stats.missing_before}. Processing next batch: {stats.batch}")

    owned_client: BGGClient | None = None
    if client is None and to_process:
        owned_client = BGGClient()
        client = owned_client

    try:
        ids = row_ids(df)
        for batch_idx, pos in enumerate(to_process, start=1):
            rid = ids.iat[pos]
            if not rid:
                stats.skipped += 1
                continue
            logging.info(f"[{batch_idx}/{stats.batch}] Fetching BGG data for id={rid}")
            record = cast(LookupClient, client).lookup(rid)
            time.sleep(BGG.politeness_delay_s)
            if record is None:
                stats.failed += 1
            else:
                stats.fetched += 1
            apply_enrichment(df, pos, record)
    finally:
        if owned_client is not None:
            logging.info(f"[BGG] Client stats: {owned_client.format_stats()}")
            owned_client.close()

    output_csv.parent.mkdir(parents=True, exist_ok=True)
    logging.info(f"Writing enriched CSV: {output_csv}")
    write_csv(df, output_csv)

    stats.missing_after = len(missing_positions(df))
    logging.info(
        f"✔ Enrich batch completed: {output_csv} (rows={stats.rows}, "
        f"missing_before={stats.missing_before}, batch={stats.batch}, fetched={stats.fetched}, "
        f"failed={stats.failed}, skipped={stats.skipped}, missing_after={stats.missing_after})"
    )
    return stats
