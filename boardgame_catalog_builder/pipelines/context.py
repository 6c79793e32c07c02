from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from ..config import ENRICH, INGEST, LOOP


class InputNotFoundError(FileNotFoundError):
    """Raised before any work when a pipeline's input CSV does not exist."""


@dataclass(frozen=True)
class BatchSettings:
    input_csv: Path
    output_csv: Path
    limit: int = ENRICH.default_limit


@dataclass(frozen=True)
class LoopSettings:
    input_csv: Path
    output_csv: Path
    limit: int = LOOP.default_limit
    interval_s: int = LOOP.default_interval_s
    debug: bool = False
    # Forwarded to each batch process as --logs-dir.
    logs_dir: Path | None = None

    def batch(self) -> BatchSettings:
        return BatchSettings(input_csv=self.input_csv, output_csv=self.output_csv, limit=self.limit)


@dataclass(frozen=True)
class IngestSettings:
    input_csv: Path
    collection: str = INGEST.collection
    # 0 means "all rows".
    limit: int = 0
    embed: bool = False
    embedding_model: str = INGEST.embedding_model
    chroma_url: str = INGEST.chroma_url_default
    ollama_url: str = INGEST.ollama_url_default
    batch_size: int = INGEST.batch_size
