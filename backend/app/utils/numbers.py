"""Number parsing helpers shared by the result entry engine.

Entered values arrive as strings typed by an operator. These helpers give the
three parse flavours the engine needs: strict (whole string must be a decimal
literal), leading-prefix (reads ``"10 mg"`` as 10), and range-key bounds
(where an empty segment counts as zero).
"""

import math
import re

_DECIMAL = r"[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?"
_STRICT_RE = re.compile(rf"^{_DECIMAL}$")
_LEADING_RE = re.compile(rf"^{_DECIMAL}")


def to_number(value: object) -> float | None:
    """Parse an entered value as a number.

    Returns None for empty, non-numeric, or comparator-prefixed values.
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value) if math.isfinite(value) else None
    if not isinstance(value, str):
        return None
    text = value.strip()
    if not _STRICT_RE.match(text):
        return None
    return float(text)


def parse_leading_float(text: str) -> float | None:
    """Parse the numeric prefix of a string (``"12.5 g/dL"`` -> 12.5)."""
    match = _LEADING_RE.match(text.lstrip())
    return float(match.group(0)) if match else None


def parse_bound(segment: str | None) -> float:
    """Parse one bound of a range key; empty means 0, garbage means NaN."""
    if segment is None:
        return math.nan
    text = segment.strip()
    if text == "":
        return 0.0
    if not _STRICT_RE.match(text):
        return math.nan
    return float(text)


def number_text(v: int | float) -> str:
    """Render a number the way the browser stringifies it (``4.0`` -> ``"4"``)."""
    if isinstance(v, float) and v.is_integer():
        return str(int(v))
    return str(v)
