from __future__ import annotations

import logging
import xml.etree.ElementTree as ET
from dataclasses import dataclass
from typing import Any
from urllib.parse import quote

import requests

from ..config import BGG, RETRY
from ..schema import LIST_SEPARATOR
from .http_client import ConfiguredHTTPClient, HTTPClient, HTTPRequestDefaults
from .parse import as_str, format_number, parse_number_text


@dataclass(frozen=True)
class EnrichmentRecord:
    """One game's data as returned by the BGG legacy XML API."""

    game_id: str
    primary_name: str = ""
    description: str = ""
    minplayers: int | float | None = None
    maxplayers: int | float | None = None
    playingtime: int | float | None = None
    minage: int | float | None = None
    categories: str = ""
    mechanics: str = ""

    def as_fields(self) -> dict[str, str]:
        """All enrichment columns as CSV strings; unset values become ""."""
        return {
            "description": self.description,
            "minplayers": format_number(self.minplayers),
            "maxplayers": format_number(self.maxplayers),
            "playingtime": format_number(self.playingtime),
            "minage": format_number(self.minage),
            "categories": self.categories,
            "mechanics": self.mechanics,
            "primaryName": self.primary_name,
        }


def _text(node: ET.Element | None) -> str:
    if node is None:
        return ""
    return as_str("".join(node.itertext()))


def _pick_primary_name(names: list[ET.Element]) -> str:
    for n in names:
        if as_str(n.get("primary")).lower() == "true":
            text = _text(n)
            if text:
                return text
    return _text(names[0]) if names else ""


def _joined_texts(nodes: list[ET.Element]) -> str:
    return LIST_SEPARATOR.join(t for t in (_text(n) for n in nodes) if t)


def extract_enrichment(game_id: str, root: ET.Element | None) -> EnrichmentRecord | None:
    """
    Extract enrichment fields from a `<boardgames><boardgame>...` document.

    Only the first `<boardgame>` is used. Missing or non-numeric values become unset rather
    than raising.
    """
    if root is None or root.tag != "boardgames":
        return None
    bg = root.find("boardgame")
    if bg is None:
        return None

    age_node = bg.find("age")
    minage_raw = _text(age_node) if age_node is not None else _text(bg.find("minage"))

    return EnrichmentRecord(
        game_id=game_id,
        primary_name=_pick_primary_name(bg.findall("name")),
        description=_text(bg.find("description")),
        minplayers=parse_number_text(_text(bg.find("minplayers"))),
        maxplayers=parse_number_text(_text(bg.find("maxplayers"))),
        playingtime=parse_number_text(_text(bg.find("playingtime"))),
        minage=parse_number_text(minage_raw),
        categories=_joined_texts(bg.findall("boardgamecategory")),
        mechanics=_joined_texts(bg.findall("boardgamemechanic")),
    )


class BGGClient:
    """
    BoardGameGeek legacy XML API (`/xmlapi/boardgame/<id>?stats=1`).

    `lookup()` never raises: after the retry budget is spent it returns None, which callers
    treat as "no data available".
    """

    def __init__(
        self,
        *,
        base_url: str = BGG.base_url,
        user_agent: str = BGG.user_agent,
        attempts: int = RETRY.attempts,
        backoff_step_s: float = RETRY.backoff_step_s,
    ):
        self.base_url = base_url.rstrip("/")
        self._session = requests.Session()
        self.stats: dict[str, int] = {
            "lookup": 0,
            "lookup_found": 0,
            "lookup_empty": 0,
            "lookup_failed": 0,
            # HTTP request counters (attempts, including retries).
            "http_get": 0,
        }
        self._http = ConfiguredHTTPClient(
            HTTPClient(self._session, stats=self.stats),
            HTTPRequestDefaults(
                attempts=attempts,
                backoff_step_s=backoff_step_s,
                headers={"User-Agent": user_agent},
                counter_key="http_get",
                context_prefix="BGG",
            ),
        )

    def lookup(self, game_id: str) -> EnrichmentRecord | None:
        gid = as_str(game_id)
        if not gid:
            return None
        self.stats["lookup"] += 1
        url = f"{self.base_url}/{quote(gid, safe='')}"
        root = self._http.get_text(
            url,
            params={"stats": 1},
            parse=ET.fromstring,
            context=f"id={gid}",
            on_fail_return=None,
        )
        if root is None:
            self.stats["lookup_failed"] += 1
            logging.warning(f"BGG lookup failed for id={gid}; leaving row unenriched")
            return None

        record = extract_enrichment(gid, root)
        if record is None:
            self.stats["lookup_empty"] += 1
            logging.warning(f"BGG returned no boardgame element for id={gid}")
            return None
        self.stats["lookup_found"] += 1
        return record

    def format_stats(self) -> str:
        s = self.stats
        base = (
            f"lookup={s['lookup']} found={s['lookup_found']} empty={s['lookup_empty']} "
            f"failed={s['lookup_failed']}, {HTTPClient.format_timing(s, key='http_get')}"
        )
        retries = int(s.get("retry_attempts", 0) or 0)
        if retries:
            return base + f", retries={retries}"
        return base

    def close(self) -> None:
        self._session.close()

    def __enter__(self) -> BGGClient:
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()
