from __future__ import annotations

from pathlib import Path

import pytest

from boardgame_catalog_builder.pipelines.context import IngestSettings, InputNotFoundError

from helpers import write_rows


class FakeCollection:
    def __init__(self):
        self.upserts: list[dict] = []

    def upsert(self, **kwargs):
        self.upserts.append(kwargs)


class FakeEmbedder:
    def __init__(self):
        self.seen: list[str] = []

    def embed(self, texts):
        self.seen.extend(texts)
        return [[float(len(t)), 0.5] for t in texts]


def test_clean_description() -> None:
    from boardgame_catalog_builder.utils.text import clean_description

    raw = "Trade &amp; build.<br/>Settle&nbsp;the <b>island</b>.&#10;&#10;  Win!"
    assert clean_description(raw) == "Trade & build. Settle the island. Win!"
    assert clean_description("") == ""


def test_clean_description_keeps_comparison_signs_in_prose() -> None:
    from boardgame_catalog_builder.utils.text import clean_description

    out = clean_description("Score if 2 < 4 players and time > 30 minutes.")
    assert "players" in out
    assert out == "Score if 2 < 4 players and time > 30 minutes."


def test_build_document_prefers_primary_name() -> None:
    from boardgame_catalog_builder.pipelines.ingest_pipeline import build_document

    assert build_document({"name": "Catan", "primaryName": "CATAN", "description": "Trade."}) == (
        "CATAN\n\nTrade."
    )
    assert build_document({"name": "Catan", "primaryName": "", "description": ""}) == "Catan"


def test_build_metadata_drops_unset_values() -> None:
    from boardgame_catalog_builder.pipelines.ingest_pipeline import build_metadata

    meta = build_metadata(
        {
            "id": "13",
            "name": "Catan",
            "primaryName": "",
            "yearpublished": "1995",
            "average": "7.1",
            "usersrated": "",
            "is_expansion": "0",
            "minplayers": "3",
            "categories": "Negotiation;  Dice ;",
            "mechanics": "",
            "rank": "400",
            "strategygames_rank": "abc",
            "familygames_rank": "12",
        }
    )
    assert meta == {
        "name": "Catan",
        "primaryName": "Catan",
        "yearpublished": 1995,
        "average": 7.1,
        "is_expansion": False,
        "minplayers": 3,
        "categories": "Negotiation; Dice",
        "rank": 400,
        "familygames_rank": 12,
    }


def _enriched_csv(tmp_path: Path) -> Path:
    return write_rows(
        tmp_path / "enriched.csv",
        [
            {"id": "1", "name": "One", "description": "First &amp; best"},
            {"id": "", "name": "Skipped", "description": ""},
            {"id": "2", "name": "Two", "description": ""},
            {"id": "3", "name": "Three", "description": "Third"},
        ],
    )


def test_run_ingest_batches_and_skips_empty_ids(tmp_path: Path) -> None:
    from boardgame_catalog_builder.pipelines.ingest_pipeline import run_ingest

    collection = FakeCollection()
    settings = IngestSettings(input_csv=_enriched_csv(tmp_path), batch_size=2)

    assert run_ingest(settings, collection=collection) == 3
    assert [u["ids"] for u in collection.upserts] == [["1"], ["2", "3"]]
    assert collection.upserts[0]["documents"] == ["One\n\nFirst & best"]
    assert "embeddings" not in collection.upserts[0]


def test_run_ingest_with_embeddings_and_limit(tmp_path: Path) -> None:
    from boardgame_catalog_builder.pipelines.ingest_pipeline import run_ingest

    collection = FakeCollection()
    embedder = FakeEmbedder()
    settings = IngestSettings(input_csv=_enriched_csv(tmp_path), embed=True, limit=3)

    assert run_ingest(settings, collection=collection, embedder=embedder) == 2
    assert collection.upserts[0]["ids"] == ["1", "2"]
    assert embedder.seen == ["One\n\nFirst & best", "Two"]
    assert collection.upserts[0]["embeddings"] == [[17.0, 0.5], [3.0, 0.5]]


def test_run_ingest_missing_input(tmp_path: Path) -> None:
    from boardgame_catalog_builder.pipelines.ingest_pipeline import run_ingest

    with pytest.raises(InputNotFoundError):
        run_ingest(IngestSettings(input_csv=tmp_path / "nope.csv"), collection=FakeCollection())


def test_ollama_embedder(monkeypatch) -> None:
    from boardgame_catalog_builder.clients.ollama_client import OllamaEmbedder

    seen: dict[str, object] = {}

    class Resp:
        status_code = 200

        def raise_for_status(self):
            return None

        def json(self):
            return {"embedding": [0.1, 0.2, 0.3]}

    def fake_post(_self, url, **kwargs):
        seen["url"] = url
        seen.update(kwargs)
        return Resp()

    monkeypatch.setattr("requests.sessions.Session.post", fake_post)

    emb = OllamaEmbedder("http://localhost:11434/", model="nomic-embed-text").embed(["hello"])
    assert emb == [[0.1, 0.2, 0.3]]
    assert seen["url"] == "http://localhost:11434/api/embeddings"
    assert seen["json"] == {"model": "nomic-embed-text", "prompt": "hello"}


def test_ollama_embedder_raises_on_failure(monkeypatch) -> None:
    import requests

    from boardgame_catalog_builder.clients.ollama_client import OllamaEmbedder

    monkeypatch.setattr("time.sleep", lambda s: None)

    def fake_post(_self, url, **kwargs):
        raise requests.exceptions.ConnectionError("refused")

    monkeypatch.setattr("requests.sessions.Session.post", fake_post)

    with pytest.raises(RuntimeError):
        OllamaEmbedder("http://localhost:11434").embed(["hello"])
