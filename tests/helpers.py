from __future__ import annotations

import csv
from pathlib import Path


class FakeLookupClient:
    """In-memory stand-in for BGGClient: id -> record (None means permanent failure)."""

    def __init__(self, records=None, default=None):
        self.records = dict(records or {})
        self.default = default
        self.calls: list[str] = []

    def lookup(self, game_id):
        self.calls.append(game_id)
        if game_id in self.records:
            return self.records[game_id]
        if self.default is not None:
            return self.default(game_id)
        return None


def write_rows(path: Path, rows: list[dict[str, str]], fieldnames: list[str] | None = None) -> Path:
    names = fieldnames or list(rows[0].keys())
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8", newline="") as f:
        w = csv.DictWriter(f, fieldnames=names)
        w.writeheader()
        w.writerows(rows)
    return path


def read_rows(path: Path) -> list[dict[str, str]]:
    with path.open("r", encoding="utf-8", newline="") as f:
        return list(csv.DictReader(f))
