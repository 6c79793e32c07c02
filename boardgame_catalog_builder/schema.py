from __future__ import annotations

# -----------------------------------------------------------------------------
# CSV schema / column sets
# -----------------------------------------------------------------------------

# Stable external identifier (BoardGameGeek object id).
ID_COL = "id"

# Columns filled from the BGG lookup. Order matters: new columns are appended to
# the output CSV in this order.
ENRICH_FIELDS: tuple[str, ...] = (
    "description",
    "minplayers",
    "maxplayers",
    "playingtime",
    "minage",
    "categories",
    "mechanics",
    "primaryName",
)

# A row counts as enriched once this column is non-empty.
COMPLETION_FIELD = "description"

# Multi-value enrichment columns are stored as "A; B; C".
LIST_SEPARATOR = "; "

# Columns copied into vector-store metadata as numbers.
NUMERIC_METADATA_COLS = (
    "yearpublished",
    "bayesaverage",
    "average",
    "usersrated",
    "minplayers",
    "maxplayers",
    "playingtime",
    "minage",
)

# Columns copied into vector-store metadata as normalized "A; B" lists.
LIST_METADATA_COLS = ("categories", "mechanics")
