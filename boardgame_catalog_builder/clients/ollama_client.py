from __future__ import annotations

from typing import Any

import requests

from ..config import INGEST
from .http_client import ConfiguredHTTPClient, HTTPClient, HTTPRequestDefaults


class OllamaEmbedder:
    """
    Text embeddings via a local Ollama server (`POST /api/embeddings`).

    Unlike lookups, embedding failures are fatal: a partially embedded collection is worse
    than none, so `embed()` raises instead of returning placeholders.
    """

    def __init__(self, base_url: str, model: str = INGEST.embedding_model, attempts: int = 3):
        self.base_url = base_url.rstrip("/")
        self.model = model
        self._session = requests.Session()
        self.stats: dict[str, int] = {"http_post": 0}
        self._http = ConfiguredHTTPClient(
            HTTPClient(self._session, stats=self.stats),
            HTTPRequestDefaults(
                attempts=attempts,
                counter_key="http_post",
                context_prefix="Ollama embeddings",
            ),
        )

    def embed_one(self, text: str) -> list[float]:
        data: Any = self._http.post_json(
            f"{self.base_url}/api/embeddings",
            json_body={"model": self.model, "prompt": text},
            context=self.model,
            on_fail_return=None,
        )
        if data is None:
            raise RuntimeError(f"Ollama embed failed for model {self.model} at {self.base_url}")
        emb = data.get("embedding") if isinstance(data, dict) else None
        if not isinstance(emb, list) or not emb:
            raise RuntimeError(f"Unexpected embeddings response shape: {str(data)[:200]}...")
        return [float(v) for v in emb]

    def embed(self, texts: list[str]) -> list[list[float]]:
        return [self.embed_one(t) for t in texts]
