"""API clients for board game data and the ingestion services."""

from .bgg_client import BGGClient, EnrichmentRecord
from .ollama_client import OllamaEmbedder

__all__ = [
    "BGGClient",
    "EnrichmentRecord",
    "OllamaEmbedder",
]
