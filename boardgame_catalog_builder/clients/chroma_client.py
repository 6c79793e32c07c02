from __future__ import annotations

from typing import Any
from urllib.parse import urlparse


def chroma_http_client(chroma_url: str) -> Any:
    """Connect to a Chroma server given a URL like `http://localhost:8000`."""
    import chromadb  # local import: only ingest/serve need the vector store

    parsed = urlparse(chroma_url)
    ssl = parsed.scheme == "https"
    return chromadb.HttpClient(
        host=parsed.hostname or "localhost",
        port=parsed.port or (443 if ssl else 8000),
        ssl=ssl,
    )
