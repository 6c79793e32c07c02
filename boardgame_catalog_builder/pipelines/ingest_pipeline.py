from __future__ import annotations

import logging
import math
from pathlib import Path
from typing import Any, Mapping, Protocol

from ..clients.chroma_client import chroma_http_client
from ..clients.ollama_client import OllamaEmbedder
from ..clients.parse import as_str
from ..schema import ID_COL, LIST_METADATA_COLS, LIST_SEPARATOR, NUMERIC_METADATA_COLS
from ..utils.text import clean_description, split_semi_list
from ..utils.utilities import read_csv
from .context import IngestSettings, InputNotFoundError


class Collection(Protocol):
    def upsert(self, **kwargs: Any) -> Any: ...


class Embedder(Protocol):
    def embed(self, texts: list[str]) -> list[list[float]]: ...


def to_number(value: object) -> int | float | None:
    s = as_str(value)
    if not s:
        return None
    try:
        n = float(s)
    except ValueError:
        return None
    if not math.isfinite(n):
        return None
    return int(n) if n.is_integer() else n


def to_bool01(value: object) -> bool | None:
    s = as_str(value)
    if s == "1":
        return True
    if s == "0":
        return False
    return None


def build_document(row: Mapping[str, str]) -> str:
    """Name and plain-text description, separated by a blank line."""
    name = as_str(row.get("primaryName")) or as_str(row.get("name"))
    description = clean_description(as_str(row.get("description")))
    return "\n\n".join(p for p in (name, description) if p)


def build_metadata(row: Mapping[str, str]) -> dict[str, Any]:
    """
    Scalar metadata for one game. Unset values are left out entirely since the vector store
    rejects nulls; list columns are normalized to "A; B".
    """
    meta: dict[str, Any] = {
        "name": as_str(row.get("name")),
        "primaryName": as_str(row.get("primaryName")) or as_str(row.get("name")),
        "is_expansion": to_bool01(row.get("is_expansion")),
    }
    for col in NUMERIC_METADATA_COLS:
        meta[col] = to_number(row.get(col))
    for col in LIST_METADATA_COLS:
        meta[col] = LIST_SEPARATOR.join(split_semi_list(row.get(col)))
    for key, value in row.items():
        if key == "rank" or str(key).endswith("_rank"):
            meta[str(key)] = to_number(value)
    return {k: v for k, v in meta.items() if v is not None and v != ""}


def chroma_collection(chroma_url: str, name: str) -> Collection:
    return chroma_http_client(chroma_url).get_or_create_collection(name=name)


def run_ingest(
    settings: IngestSettings,
    *,
    collection: Collection | None = None,
    embedder: Embedder | None = None,
) -> int:
    """
    Upsert enriched games into a vector-store collection in fixed-size batches.

    Returns the number of rows upserted. Rows without an id are skipped.
    """
    input_csv = Path(settings.input_csv)
    if not input_csv.exists():
        raise InputNotFoundError(f"Input CSV not found: {input_csv}")

    logging.info(f"Reading CSV: {input_csv}")
    df = read_csv(input_csv)
    logging.info(f"Rows: {len(df)}")
    records = df.to_dict(orient="records")
    if settings.limit > 0:
        records = records[: settings.limit]

    if collection is None:
        collection = chroma_collection(settings.chroma_url, settings.collection)
    if settings.embed and embedder is None:
        embedder = OllamaEmbedder(settings.ollama_url, model=settings.embedding_model)

    batch_size = max(1, int(settings.batch_size))
    processed = 0
    for batch_no, start in enumerate(range(0, len(records), batch_size), start=1):
        ids: list[str] = []
        documents: list[str] = []
        metadatas: list[dict[str, Any]] = []
        for row in records[start : start + batch_size]:
            rid = as_str(row.get(ID_COL))
            if not rid:
                continue
            ids.append(rid)
            documents.append(build_document(row))
            metadatas.append(build_metadata(row))
        if not ids:
            continue

        kwargs: dict[str, Any] = {"ids": ids, "documents": documents, "metadatas": metadatas}
        if settings.embed and embedder is not None:
            logging.info(f"Embedding {len(ids)} docs via Ollama ({settings.embedding_model})...")
            kwargs["embeddings"] = embedder.embed(documents)

        logging.info(f"Upserting batch {batch_no} - size {len(ids)}")
        collection.upsert(**kwargs)
        processed += len(ids)

    logging.info(f"✔ Ingest completed: collection={settings.collection} processed={processed}")
    return processed
