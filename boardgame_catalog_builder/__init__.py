"""Board Game Catalog Builder - Enrich board game CSVs from BoardGameGeek and index them."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("boardgame-catalog-builder")
except PackageNotFoundError:  # pragma: no cover
    __version__ = "0.1.0"
