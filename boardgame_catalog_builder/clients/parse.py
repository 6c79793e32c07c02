from __future__ import annotations

import math


def as_str(value: object) -> str:
    if value is None:
        return ""
    return str(value).strip()


def parse_number_text(value: object) -> int | float | None:
    """
    Parse a numeric provider text field.

    Integral values come back as int. Empty, non-numeric, non-finite and zero values are all
    treated as "unset" (BGG reports unknown counts as 0).
    """
    if value is None or isinstance(value, bool):
        return None
    s = as_str(value)
    if not s:
        return None
    try:
        n = float(s)
    except ValueError:
        return None
    if not math.isfinite(n) or n == 0:
        return None
    return int(n) if n.is_integer() else n


def format_number(value: int | float | None) -> str:
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)
