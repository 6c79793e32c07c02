from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class RetryConfig:
    # Total attempts per request (first try included).
    attempts: int = 6
    # Linear backoff: sleep `attempt * backoff_step_s` after a failed attempt.
    backoff_step_s: float = 1.0


@dataclass(frozen=True)
class RequestConfig:
    timeout_s: int = 30


@dataclass(frozen=True)
class BGGConfig:
    base_url: str = "https://boardgamegeek.com/xmlapi/boardgame"
    user_agent: str = "boardgame-catalog-builder/0.1 (learning project)"
    # Fixed pause after every lookup, successful or not.
    politeness_delay_s: float = 0.5


@dataclass(frozen=True)
class EnrichConfig:
    default_limit: int = 25
    input_filename: str = "boardgames_ranks.csv"
    output_filename: str = "boardgames_enriched.csv"


@dataclass(frozen=True)
class LoopConfig:
    default_limit: int = 100
    default_interval_s: int = 30


@dataclass(frozen=True)
class IngestConfig:
    collection: str = "boardgames"
    batch_size: int = 100
    embedding_model: str = "nomic-embed-text"
    chroma_url_env: str = "CHROMA_URL"
    chroma_url_default: str = "http://localhost:8000"
    ollama_url_env: str = "OLLAMA_URL"
    ollama_url_default: str = "http://localhost:11434"


@dataclass(frozen=True)
class ServerConfig:
    host: str = "127.0.0.1"
    port: int = 3000
    api_version: str = "0.1.0"


RETRY = RetryConfig()
REQUEST = RequestConfig()
BGG = BGGConfig()
ENRICH = EnrichConfig()
LOOP = LoopConfig()
INGEST = IngestConfig()
SERVER = ServerConfig()
