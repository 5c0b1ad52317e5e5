"""Row canonicalization for procurement extracts.

Raw rows arrive as ``{header: cell}`` dictionaries from the CSV layer. Each
row is trimmed, looked up through the column mapping, parsed field by field
and validated against :class:`~risk_engine.schema.CanonicalSchema`. Rows are
never rejected: identifier and supplier fall back to synthetic defaults and a
failed schema check keeps the coerced values as they are.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple, Union

import pandas as pd
from pydantic import ValidationError

from .mapping import MappingError, missing_required_fields
from .parsers import coerce_text, normalize_row, parse_boolean, parse_date, parse_number, round_half_up
from .schema import (
    BOOLEAN_FIELDS,
    DATE_FIELDS,
    NUMBER_FIELDS,
    TEXT_FIELDS,
    UNKNOWN_SUPPLIER,
    CanonicalRecord,
    CanonicalSchema,
)


LOGGER = logging.getLogger(__name__)

RawRow = Mapping[str, Any]

_FIELD_PARSERS: Dict[str, Callable[[Any], Any]] = {
    **{key: parse_date for key in DATE_FIELDS},
    **{key: parse_boolean for key in BOOLEAN_FIELDS},
    **{key: parse_number for key in NUMBER_FIELDS},
    **{key: coerce_text for key in TEXT_FIELDS},
}


def _lookup(row: Mapping[str, str], mapping: Mapping[str, Optional[str]], key: str) -> Optional[str]:
    header = mapping.get(key)
    if not header:
        return None
    return row.get(header)


def backfill_total_cost(values: Dict[str, Any]) -> None:
    """Derive ``total_cost`` as quantity x unit price when the column is empty.

    Ordered quantity is preferred over received quantity. An existing total
    is never touched.
    """

    if values.get("total_cost") is not None:
        return
    quantity = values.get("qty_ordered")
    if quantity is None:
        quantity = values.get("qty_received")
    unit_price = values.get("unit_price")
    if quantity is not None and unit_price is not None:
        values["total_cost"] = round_half_up(quantity * unit_price, 2)


def to_canonical(raw_row: RawRow, mapping: Mapping[str, Optional[str]], index: int) -> CanonicalRecord:
    """Convert one raw row into a :class:`CanonicalRecord`.

    Parameters
    ----------
    raw_row : Mapping[str, Any]
        Source row keyed by header.
    mapping : Mapping[str, Optional[str]]
        Canonical field -> source header.
    index : int
        Zero-based row position, used for the ``row-N`` identifier default.
    """

    cleaned = normalize_row(raw_row)

    po_id = (_lookup(cleaned, mapping, "po_id") or "").strip()
    supplier = (_lookup(cleaned, mapping, "supplier") or "").strip() or UNKNOWN_SUPPLIER

    values: Dict[str, Any] = {
        "po_id": po_id or f"row-{index + 1}",
        "supplier": supplier,
    }
    for key, parser in _FIELD_PARSERS.items():
        values[key] = parser(_lookup(cleaned, mapping, key))

    backfill_total_cost(values)

    try:
        validated = CanonicalSchema.model_validate(values).model_dump()
    except ValidationError as exc:
        LOGGER.debug("Row %d failed canonical validation; keeping coerced values: %s", index, exc)
        validated = values

    validated["supplier"] = supplier
    return CanonicalRecord(**validated, source_row=cleaned)


def map_rows(
    rows: Sequence[RawRow],
    mapping: Mapping[str, Optional[str]],
    headers: Optional[Sequence[str]] = None,
) -> List[CanonicalRecord]:
    """Canonicalize every row.

    When ``headers`` is given the required identifier/supplier mapping is
    checked first and :class:`MappingError` raised if either is unusable.
    """

    if headers is not None:
        missing = missing_required_fields(mapping, headers)
        if missing:
            raise MappingError(f"Required fields are not mapped to a column: {', '.join(missing)}")

    records = [to_canonical(row, mapping, index) for index, row in enumerate(rows)]
    LOGGER.info("Canonicalized %d rows", len(records))
    return records


def read_raw_rows(source: Union[str, Path, Any]) -> Tuple[List[Dict[str, str]], List[str]]:
    """Read a CSV into raw string rows and trimmed headers.

    Every cell is read as text so the engine's own parsers decide how to
    interpret numbers, flags and dates; blank cells stay empty strings.
    """

    frame = pd.read_csv(source, dtype=str, keep_default_na=False, skip_blank_lines=True)
    frame.columns = [str(column).strip() for column in frame.columns]
    frame = frame.apply(lambda column: column.str.strip())
    headers = list(frame.columns)
    rows = frame.to_dict(orient="records")
    return rows, headers
