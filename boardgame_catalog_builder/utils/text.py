from __future__ import annotations

import re

from bs4 import BeautifulSoup

_WS_RE = re.compile(r"\s+")


def clean_description(text: str) -> str:
    """
    Turn a BGG description into plain text: line breaks kept as whitespace, tags removed,
    entities decoded, whitespace collapsed.
    """
    if not text:
        return ""
    soup = BeautifulSoup(str(text), "lxml")
    for br in soup.find_all("br"):
        br.replace_with("\n")
    return _WS_RE.sub(" ", soup.get_text()).strip()


def split_semi_list(value: object) -> list[str]:
    """Split a "A; B" cell into its non-empty trimmed parts."""
    if value is None:
        return []
    return [p.strip() for p in str(value).split(";") if p.strip()]
