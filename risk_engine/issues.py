"""Flat issue rows and exception subsets for drill-down views."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence, Set

from .outliers import flag_price_outliers
from .parsers import days_between, round_half_up
from .schema import (
    ISSUE_COMPLIANCE,
    ISSUE_DEFECT,
    ISSUE_LATE,
    ISSUE_MISSING_DATES,
    ISSUE_PARTIAL,
    ISSUE_PRICE_OUTLIER,
    CanonicalRecord,
    ExceptionRecord,
    SupplierIssue,
)
from .supplier_metrics import has_compliance_gap, has_missing_dates, is_defective, is_partial


def _format_count(value: float) -> str:
    return str(int(value)) if float(value).is_integer() else str(value)


def record_issues(record: CanonicalRecord, outliers: Set[str]) -> List[SupplierIssue]:
    """Every issue one record exhibits; categories are checked independently."""

    issues: List[SupplierIssue] = []

    days_late = days_between(record.promised_delivery_date, record.actual_delivery_date)
    if days_late is not None and days_late > 0:
        rounded = round_half_up(days_late, 1)
        issues.append(
            SupplierIssue(
                po_id=record.po_id,
                supplier=record.supplier,
                issue_type=ISSUE_LATE,
                days_late=rounded,
                details=f"Late by {rounded:.1f} days",
            )
        )

    if is_defective(record):
        details = (
            f"Defects: {_format_count(record.defect_count)}" if record.defect_count is not None else "Defect flagged"
        )
        issues.append(SupplierIssue(record.po_id, record.supplier, ISSUE_DEFECT, details=details))

    if has_compliance_gap(record):
        issues.append(
            SupplierIssue(
                record.po_id,
                record.supplier,
                ISSUE_COMPLIANCE,
                details=record.compliance_issue_type or "Compliance gap",
            )
        )

    if has_missing_dates(record):
        issues.append(
            SupplierIssue(
                record.po_id,
                record.supplier,
                ISSUE_MISSING_DATES,
                details="Missing promised or actual date",
            )
        )

    if is_partial(record):
        issues.append(SupplierIssue(record.po_id, record.supplier, ISSUE_PARTIAL, details="Partial order"))

    if record.po_id in outliers:
        issues.append(
            SupplierIssue(record.po_id, record.supplier, ISSUE_PRICE_OUTLIER, details="Unit price outlier")
        )

    return issues


def build_top_issues(
    records: Sequence[CanonicalRecord],
    config: Optional[Mapping[str, Any]] = None,
    outliers: Optional[Set[str]] = None,
) -> List[SupplierIssue]:
    """Flatten the issues of every record, in record order."""

    if outliers is None:
        outliers = flag_price_outliers(records, config)
    issues: List[SupplierIssue] = []
    for record in records:
        issues.extend(record_issues(record, outliers))
    return issues


def supplier_issues(
    records: Sequence[CanonicalRecord],
    supplier: str,
    config: Optional[Mapping[str, Any]] = None,
) -> List[SupplierIssue]:
    """Issues of one supplier; outliers are still judged against the whole view."""

    return [issue for issue in build_top_issues(records, config) if issue.supplier == supplier]


EXCEPTION_LABELS: Dict[str, str] = {
    "missing_dates": ISSUE_MISSING_DATES,
    "compliance": ISSUE_COMPLIANCE,
    "defects": ISSUE_DEFECT,
    "partials": ISSUE_PARTIAL,
    "price_outliers": ISSUE_PRICE_OUTLIER,
}


@dataclass
class ExceptionSets:
    missing_dates: List[CanonicalRecord] = field(default_factory=list)
    compliance: List[CanonicalRecord] = field(default_factory=list)
    defects: List[CanonicalRecord] = field(default_factory=list)
    partials: List[CanonicalRecord] = field(default_factory=list)
    price_outliers: List[CanonicalRecord] = field(default_factory=list)

    def counts(self) -> Dict[str, int]:
        return {key: len(getattr(self, key)) for key in EXCEPTION_LABELS}


def compute_exceptions(
    records: Sequence[CanonicalRecord],
    config: Optional[Mapping[str, Any]] = None,
    outliers: Optional[Set[str]] = None,
) -> ExceptionSets:
    """Split records into the five exception subsets (a record may sit in several)."""

    if outliers is None:
        outliers = flag_price_outliers(records, config)
    return ExceptionSets(
        missing_dates=[record for record in records if has_missing_dates(record)],
        compliance=[record for record in records if has_compliance_gap(record)],
        defects=[record for record in records if is_defective(record)],
        partials=[record for record in records if is_partial(record)],
        price_outliers=[record for record in records if record.po_id in outliers],
    )


def flatten_exceptions(
    exceptions: ExceptionSets,
    key: str,
    search: Optional[str] = None,
) -> List[ExceptionRecord]:
    """Denormalised rows for one exception subset, optionally narrowed by a text search."""

    if key not in EXCEPTION_LABELS:
        raise ValueError(f"Unknown exception subset: {key!r}")

    rows = [
        ExceptionRecord(
            po_id=record.po_id,
            supplier=record.supplier,
            issue=EXCEPTION_LABELS[key],
            category=record.category,
            region=record.region,
            po_date=record.po_date,
        )
        for record in getattr(exceptions, key)
    ]
    needle = (search or "").strip().lower()
    if not needle:
        return rows
    return [
        row
        for row in rows
        if needle in f"{row.po_id} {row.supplier} {row.category or ''} {row.region or ''}".lower()
    ]
