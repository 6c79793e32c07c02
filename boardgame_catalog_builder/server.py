"""Flask health-check API: service version and vector-store heartbeat."""

from __future__ import annotations

import logging
import os
from typing import Any

from flask import Flask, jsonify

from .clients.chroma_client import chroma_http_client
from .config import INGEST, SERVER


def _default_chroma_client() -> Any:
    return chroma_http_client(os.environ.get(INGEST.chroma_url_env, INGEST.chroma_url_default))


def create_app(chroma_client: Any = None) -> Flask:
    app = Flask(__name__)
    state: dict[str, Any] = {"client": chroma_client}

    def _client() -> Any:
        # Connect lazily so /version works without a running vector store.
        if state["client"] is None:
            state["client"] = _default_chroma_client()
        return state["client"]

    @app.route("/version")
    def version():
        return jsonify({"version": SERVER.api_version, "health": "ok"})

    @app.route("/db/heartbeat")
    def heartbeat():
        try:
            beat = _client().heartbeat()
        except Exception as e:
            logging.error(f"Vector store heartbeat failed: {type(e).__name__}: {e}")
            return jsonify({"error": "vector store unavailable"}), 503
        return jsonify({"heartbeat": beat})

    return app


def serve(host: str = SERVER.host, port: int = SERVER.port) -> None:
    app = create_app()
    logging.info(f"Server running on port {port}")
    app.run(host=host, port=port, debug=False)
