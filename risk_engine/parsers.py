"""Value parsing primitives for user-supplied procurement cells.

Every parser accepts whatever the CSV layer handed over (usually a string,
sometimes ``None``) and returns a typed value or ``None``. Nothing here
raises on bad input: an unparsable cell simply becomes an unknown value so a
single malformed row never blocks the scoring of a whole dataset.
"""

from __future__ import annotations

import re
import warnings
from datetime import date, datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict, Mapping, Optional

import numpy as np
import pandas as pd


TRUE_TOKENS = {"y", "yes", "true", "1", "t"}
FALSE_TOKENS = {"n", "no", "false", "0", "f"}

_HEADER_SEPARATOR_RE = re.compile(r"[^a-z0-9]+")
_PARENTHESIZED_RE = re.compile(r"\(([^)]+)\)")
_NUMERIC_PREFIX_RE = re.compile(r"^-?(?:\d+\.?\d*|\.\d+)")
_NUMERIC_DATE_RE = re.compile(r"^(\d{1,2})[/-](\d{1,2})[/-](\d{2,4})$")
_TIME_ONLY_RE = re.compile(r"^\d{1,2}(?:(?::\d{2}){1,2}(?:\.\d+)?\s*(?:[ap]\.?m\.?)?|\s*[ap]\.?m\.?)$", re.IGNORECASE)
RELATIVE_DATE_WORDS = {"now", "today", "tomorrow", "yesterday"}


def normalize_header(value: str) -> str:
    """Lowercase a header and collapse separator runs to single spaces."""

    return _HEADER_SEPARATOR_RE.sub(" ", str(value).lower()).strip()


def trim_value(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def normalize_row(row: Mapping[str, Any]) -> Dict[str, str]:
    """Return a copy of ``row`` with trimmed keys and trimmed string cells."""

    return {str(key).strip(): trim_value(value) for key, value in row.items()}


def coerce_text(value: Any) -> Optional[str]:
    text = trim_value(value)
    return text or None


def parse_number(value: Any) -> Optional[float]:
    """Parse a numeric cell such as ``"$1,200.50"``, ``"15%"`` or ``"(30)"``.

    Currency symbols, thousands separators and percent signs are dropped and
    accounting-style parentheses turn the value negative. The longest leading
    numeric prefix of what remains is used; no prefix means ``None``.
    """

    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value) if np.isfinite(value) else None

    cleaned = _PARENTHESIZED_RE.sub(r"-\1", str(value).strip())
    cleaned = re.sub(r"[,$%]", "", cleaned)
    cleaned = re.sub(r"[^0-9.\-]", "", cleaned)
    if not cleaned:
        return None

    match = _NUMERIC_PREFIX_RE.match(cleaned)
    if match is None:
        return None
    parsed = float(match.group(0))
    return parsed if np.isfinite(parsed) else None


def parse_boolean(value: Any) -> Optional[bool]:
    """Parse a yes/no style flag; anything unrecognised is ``None``, not ``False``.

    A value mentioning both "non" and "compliance" (e.g. ``"Non-Compliance"``)
    counts as ``True`` because such columns flag the presence of a gap.
    """

    if value is None:
        return None
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0

    normalized = str(value).strip().lower()
    if not normalized:
        return None
    if normalized in TRUE_TOKENS:
        return True
    if normalized in FALSE_TOKENS:
        return False
    if "non" in normalized and "compliance" in normalized:
        return True
    return None


def _parse_native(text: str) -> Optional[datetime]:
    # pandas would fill in the current date for a bare time or a relative word.
    if _TIME_ONLY_RE.match(text) or text.lower() in RELATIVE_DATE_WORDS:
        return None

    with warnings.catch_warnings():
        warnings.simplefilter("ignore")
        try:
            parsed = pd.to_datetime(text, errors="coerce")
        except (ValueError, TypeError, OverflowError):
            return None
    if parsed is None or pd.isna(parsed):
        return None
    if parsed.tzinfo is not None:
        parsed = parsed.tz_convert(None)
    return parsed.to_pydatetime()


def _parse_day_month_year(match: "re.Match[str]") -> Optional[datetime]:
    part1, part2, year_text = match.groups()
    first = int(part1)
    second = int(part2)
    year = int(f"20{year_text}") if len(year_text) == 2 else int(year_text)

    # Month-first is tried before day-first; the first real calendar date wins.
    for month, day in ((first, second), (second, first)):
        if not 1 <= month <= 12 or not 1 <= day <= 31:
            continue
        try:
            return datetime(year, month, day)
        except ValueError:
            continue
    return None


def parse_date(value: Any) -> Optional[datetime]:
    """Parse a date cell into a naive ``datetime``.

    ISO and textual dates go through pandas. Purely numeric ``D/M/Y`` or
    ``D-M-Y`` values (two-digit years meaning 20xx) are resolved by trying
    (month, day) and then (day, month), so ``"13/02/2024"`` is 13 February
    while ``"02/03/2024"`` is 3 February. Text without a calendar date (a bare
    time, "today") is ``None``. Timezone-aware inputs, text or ``datetime``,
    are converted to UTC before the zone is dropped.
    """

    if value is None:
        return None
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            return value.astimezone(timezone.utc).replace(tzinfo=None)
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)

    text = trim_value(value)
    if not text:
        return None

    match = _NUMERIC_DATE_RE.match(text)
    if match is None:
        return _parse_native(text)
    return _parse_day_month_year(match)


def month_key(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    return f"{value.year}-{value.month:02d}"


def days_between(start: Optional[datetime], end: Optional[datetime]) -> Optional[float]:
    """Fractional days from ``start`` to ``end`` (negative when ``end`` is earlier)."""

    if start is None or end is None:
        return None
    return (end - start).total_seconds() / 86400.0


def clamp01(value: float) -> float:
    return float(np.clip(value, 0.0, 1.0))


def round_half_up(value: float, digits: int = 1) -> float:
    """Round the exact binary value of ``value`` with halves away from zero.

    Matches fixed-point string formatting, so ``round_half_up(0.25, 1)`` is
    ``0.3`` where the built-in ``round`` gives ``0.2``.
    """

    quantum = Decimal(1).scaleb(-digits)
    return float(Decimal(value).quantize(quantum, rounding=ROUND_HALF_UP))
