"""Header to canonical field mapping.

Uploaded procurement extracts name their columns in wildly different ways
("Vendor Name", "supplier", "SUPPLIER_NM", ...). The mapper normalises every
header and looks for suggestion phrases inside it. Two suggestion tables are
used: a generic list of human phrasings and a literal list for the public
procurement dataset whose machine-style headers we know exactly. Whichever
table is applied last wins a field, which is how ``prefer_known_dataset``
gives the literal table priority.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional, Sequence

from .config import resolve_config
from .parsers import normalize_header
from .schema import CANONICAL_FIELDS, CANONICAL_KEYS, REQUIRED_KEYS, ColumnMapping, default_mapping


LOGGER = logging.getLogger(__name__)

SUGGESTIONS: Dict[str, List[str]] = {
    "po_id": ["po id", "purchase order", "order id", "po#", "po number", "purchase_order_id", "po_id"],
    "supplier": ["supplier", "vendor", "supplier name", "vendor name"],
    "po_date": ["po date", "order date", "purchase date", "created date", "po_date", "order_date"],
    "promised_delivery_date": [
        "promised delivery",
        "promise date",
        "expected delivery",
        "due date",
        "promised_delivery_date",
    ],
    "actual_delivery_date": [
        "actual delivery",
        "delivered date",
        "receipt date",
        "arrival date",
        "actual_delivery_date",
        "delivery_date",
    ],
    "delivery_status": ["delivery status", "on time", "status", "delivery_status", "order_status"],
    "defect_flag": ["defect flag", "defect", "defective", "quality issue", "defect_flag", "defect_rate"],
    "defect_count": ["defect count", "defects", "defect qty", "defective_units"],
    "compliance_flag": [
        "compliance flag",
        "compliance",
        "noncompliance",
        "violation",
        "compliance_flag",
        "policy_violation",
    ],
    "compliance_issue_type": ["compliance issue", "issue type", "violation type"],
    "partial_order_flag": ["partial order", "partial", "backorder", "short shipped", "partial_order_flag"],
    "qty_ordered": ["qty ordered", "quantity ordered", "ordered qty", "order qty", "quantity_ordered", "quantity"],
    "qty_received": ["qty received", "quantity received", "received qty", "receipt qty", "quantity_received"],
    "unit_price": ["unit price", "price", "unit cost", "item price", "unit_price"],
    "total_cost": [
        "total cost",
        "total spend",
        "total amount",
        "po total",
        "total_cost",
        "spend",
        "negotiated_price",
    ],
    "savings_amount": ["savings", "savings amount", "savings_amount"],
    "category": ["category", "commodity", "product category", "item_category"],
    "region": ["region", "location", "site", "country"],
}

KNOWN_DATASET_HEADERS: Dict[str, List[str]] = {
    "supplier": ["supplier"],
    "category": ["category", "item_category"],
    "po_id": ["purchase_order_id", "po_id"],
    "po_date": ["po_date", "order_date"],
    "promised_delivery_date": ["promised_delivery_date"],
    "actual_delivery_date": ["actual_delivery_date", "delivery_date"],
    "delivery_status": ["delivery_status", "order_status"],
    "defect_flag": ["defect_flag", "defect_rate"],
    "compliance_flag": ["compliance_flag", "policy_violation", "compliance"],
    "qty_ordered": ["quantity_ordered", "quantity"],
    "unit_price": ["unit_price"],
    "total_cost": ["total_cost", "spend", "negotiated_price"],
    "savings_amount": ["savings"],
    "region": ["region"],
}

KNOWN_DATASET_FRAGMENTS = [
    "supplier",
    "category",
    "purchase order id",
    "po id",
    "po_date",
    "promised_delivery_date",
]


class MappingError(ValueError):
    """Raised when rows are mapped without the required identifier/supplier columns."""


def _apply_suggestions(
    mapping: ColumnMapping,
    normalized_headers: Sequence[tuple],
    suggestions_map: Mapping[str, Sequence[str]],
) -> None:
    for key in CANONICAL_KEYS:
        suggestions = [normalize_header(item) for item in suggestions_map.get(key, [])]
        if not suggestions:
            continue
        for header, header_key in normalized_headers:
            if any(suggestion in header_key for suggestion in suggestions):
                mapping[key] = header
                break


def auto_map(headers: Sequence[str], prefer_known_dataset: bool = False) -> ColumnMapping:
    """Guess a column mapping for ``headers``.

    For each canonical field the first header (in header order) containing
    one of the field's suggestions is taken. Both suggestion tables are
    applied; the second pass overwrites the first wherever it finds a match.

    Parameters
    ----------
    headers : Sequence[str]
        Source column names as they appear in the file.
    prefer_known_dataset : bool
        Apply the known dataset's literal header table last so it wins ties.

    Returns
    -------
    ColumnMapping
        Every canonical key, mapped to a header from ``headers`` or ``None``.
    """

    normalized = [(header, normalize_header(header)) for header in headers]
    mapping = default_mapping()

    if prefer_known_dataset:
        passes = (SUGGESTIONS, KNOWN_DATASET_HEADERS)
    else:
        passes = (KNOWN_DATASET_HEADERS, SUGGESTIONS)
    for suggestions_map in passes:
        _apply_suggestions(mapping, normalized, suggestions_map)

    LOGGER.debug(
        "Auto-mapped %d of %d canonical fields (prefer_known_dataset=%s)",
        count_mapped(mapping),
        len(CANONICAL_FIELDS),
        prefer_known_dataset,
    )
    return mapping


def detect_known_dataset(
    headers: Sequence[str],
    row_count: int,
    source_hint: Optional[str] = None,
    config: Optional[Mapping[str, Any]] = None,
) -> bool:
    """Heuristically decide whether the rows come from the known reference dataset."""

    settings = resolve_config(config)["known_dataset"]
    if source_hint is not None and source_hint == settings["sample_path"]:
        return True
    if row_count < int(settings["min_rows"]):
        return False

    normalized = [normalize_header(header) for header in headers]
    fragments = [normalize_header(fragment) for fragment in KNOWN_DATASET_FRAGMENTS]
    return any(fragment in header for fragment in fragments for header in normalized)


def count_mapped(mapping: Mapping[str, Optional[str]]) -> int:
    return sum(1 for key in CANONICAL_KEYS if mapping.get(key))


def mapping_confidence(mapping: Mapping[str, Optional[str]], headers: Sequence[str]) -> float:
    """Share of canonical fields that received a column (0 when there are no headers)."""

    if not headers:
        return 0.0
    return count_mapped(mapping) / len(CANONICAL_FIELDS)


def sanitize_mapping(mapping: Optional[Mapping[str, Any]], headers: Sequence[str]) -> ColumnMapping:
    """Merge ``mapping`` over the default, dropping unknown keys and absent headers."""

    header_set = set(headers)
    sanitized = default_mapping()
    for key, value in (mapping or {}).items():
        if key not in sanitized:
            continue
        if isinstance(value, str) and value in header_set:
            sanitized[key] = value
    return sanitized


def missing_required_fields(mapping: Mapping[str, Optional[str]], headers: Sequence[str]) -> List[str]:
    header_set = set(headers)
    return [key for key in REQUIRED_KEYS if not mapping.get(key) or mapping.get(key) not in header_set]


def build_header_hash(headers: Sequence[str]) -> str:
    """Fingerprint a header list with a 32-bit rolling hash rendered in base 36."""

    raw = "|".join(headers)
    value = 0
    for char in raw:
        value = (value * 31 + ord(char)) & 0xFFFFFFFF
    if value >= 0x80000000:
        value -= 0x100000000
    return _to_base36(abs(value))


def _to_base36(value: int) -> str:
    digits = "0123456789abcdefghijklmnopqrstuvwxyz"
    if value == 0:
        return "0"
    encoded = []
    while value:
        value, remainder = divmod(value, 36)
        encoded.append(digits[remainder])
    return "".join(reversed(encoded))


def mapping_key(dataset_name: str, headers: Sequence[str]) -> str:
    return f"{dataset_name}::{build_header_hash(headers)}"
