"""Data-completeness diagnostics: which signals a dataset actually carries."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional, Sequence

from .schema import CanonicalRecord


@dataclass
class DatasetDiagnostics:
    raw_rows: int
    mapped_rows: int
    suppliers: int
    delivery_dates: int
    defects: int
    compliance: int
    quantities: int
    pricing: int
    mapped_fields: Dict[str, str] = field(default_factory=dict)
    notes: List[str] = field(default_factory=list)


def _count(records: Sequence[CanonicalRecord], predicate) -> int:
    return sum(1 for record in records if predicate(record))


def diagnostic_notes(records: Sequence[CanonicalRecord]) -> List[str]:
    """Explain which views have nothing to show for this dataset."""

    has_promise = any(record.promised_delivery_date is not None for record in records)
    has_actual = any(record.actual_delivery_date is not None for record in records)
    has_status = any(record.delivery_status for record in records)
    has_defects = any(record.defect_flag is not None or record.defect_count is not None for record in records)
    has_compliance = any(record.compliance_flag is not None for record in records)
    has_total_cost = any(record.total_cost is not None for record in records)

    notes = []
    if not has_promise or not has_actual:
        notes.append("Delivery dates not present in dataset")
        if not has_status:
            notes.append("Delivery status not present in dataset")
    if not has_defects:
        notes.append("Defect data missing")
    if not has_compliance:
        notes.append("Compliance data missing")
    if not has_total_cost:
        notes.append("Pricing data missing")
    return notes


def compute_diagnostics(
    records: Sequence[CanonicalRecord],
    raw_row_count: int,
    mapping: Optional[Mapping[str, Optional[str]]] = None,
) -> DatasetDiagnostics:
    return DatasetDiagnostics(
        raw_rows=raw_row_count,
        mapped_rows=len(records),
        suppliers=len({record.supplier for record in records if record.supplier}),
        delivery_dates=_count(
            records,
            lambda record: record.promised_delivery_date is not None or record.actual_delivery_date is not None,
        ),
        defects=_count(records, lambda record: record.defect_flag is not None or record.defect_count is not None),
        compliance=_count(records, lambda record: record.compliance_flag is not None),
        quantities=_count(
            records,
            lambda record: record.qty_ordered is not None
            or record.qty_received is not None
            or record.partial_order_flag is not None,
        ),
        pricing=_count(records, lambda record: record.total_cost is not None or record.unit_price is not None),
        mapped_fields={key: value for key, value in (mapping or {}).items() if value},
        notes=diagnostic_notes(records),
    )
