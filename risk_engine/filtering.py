"""View filters applied to canonical records before metrics are re-derived."""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass
from datetime import datetime
from typing import Any, List, Optional, Sequence, Union

from .parsers import parse_date
from .schema import CanonicalRecord


ALL = "All"
OPTION_FIELDS = ("supplier", "category", "region")

DateBound = Union[str, datetime, None]


@dataclass(frozen=True)
class Filters:
    """Exact-match dimension filters plus an inclusive PO date range.

    ``"All"`` (or an empty value) disables a dimension. Date bounds may be
    given as text and are parsed like any other date cell.
    """

    supplier: str = ALL
    category: str = ALL
    region: str = ALL
    date_from: DateBound = None
    date_to: DateBound = None

    def replace(self, key: str, value: Any) -> "Filters":
        if key not in {item.name for item in dataclasses.fields(self)}:
            raise ValueError(f"Unknown filter: {key!r}")
        return dataclasses.replace(self, **{key: value})

    @property
    def is_empty(self) -> bool:
        return (
            all(not _is_active(getattr(self, name)) for name in OPTION_FIELDS)
            and _bound(self.date_from) is None
            and _bound(self.date_to) is None
        )


def _is_active(value: Optional[str]) -> bool:
    return bool(value) and value != ALL


def _bound(value: DateBound) -> Optional[datetime]:
    if value is None or value == "":
        return None
    return parse_date(value)


def apply_filters(records: Sequence[CanonicalRecord], filters: Filters) -> List[CanonicalRecord]:
    """Return the records passing ``filters``; the input sequence is left untouched.

    A record without a PO date fails whenever either date bound is set.
    """

    date_from = _bound(filters.date_from)
    date_to = _bound(filters.date_to)

    def keep(record: CanonicalRecord) -> bool:
        for name in OPTION_FIELDS:
            wanted = getattr(filters, name)
            if _is_active(wanted) and getattr(record, name) != wanted:
                return False
        if date_from is not None and (record.po_date is None or record.po_date < date_from):
            return False
        if date_to is not None and (record.po_date is None or record.po_date > date_to):
            return False
        return True

    return [record for record in records if keep(record)]


def unique_options(records: Sequence[CanonicalRecord], key: str) -> List[str]:
    """Sorted distinct non-blank values of a text field, for filter pick lists."""

    values = {getattr(record, key) for record in records}
    return sorted(value for value in values if isinstance(value, str) and value.strip())


def describe_filters(filters: Filters) -> str:
    parts = []
    for name in OPTION_FIELDS:
        value = getattr(filters, name)
        if _is_active(value):
            parts.append(f"{name.capitalize()}={value}")
    if filters.date_from or filters.date_to:
        parts.append(f"Date={_describe_bound(filters.date_from)} to {_describe_bound(filters.date_to)}")
    return ", ".join(parts) if parts else "None"


def _describe_bound(value: DateBound) -> str:
    if not value:
        return "..."
    if isinstance(value, datetime):
        return value.date().isoformat()
    return str(value)
