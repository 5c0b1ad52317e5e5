"""Canonical procurement schema and the plain data types the engine returns."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, Field


@dataclass(frozen=True)
class FieldSpec:
    key: str
    label: str
    required: bool = False


CANONICAL_FIELDS: List[FieldSpec] = [
    FieldSpec("po_id", "PO ID", required=True),
    FieldSpec("supplier", "Supplier", required=True),
    FieldSpec("po_date", "PO Date"),
    FieldSpec("promised_delivery_date", "Promised Delivery Date"),
    FieldSpec("actual_delivery_date", "Actual Delivery Date"),
    FieldSpec("delivery_status", "Delivery Status"),
    FieldSpec("defect_flag", "Defect Flag"),
    FieldSpec("defect_count", "Defect Count"),
    FieldSpec("compliance_flag", "Compliance Flag"),
    FieldSpec("compliance_issue_type", "Compliance Issue Type"),
    FieldSpec("partial_order_flag", "Partial Order Flag"),
    FieldSpec("qty_ordered", "Qty Ordered"),
    FieldSpec("qty_received", "Qty Received"),
    FieldSpec("unit_price", "Unit Price"),
    FieldSpec("total_cost", "Total Cost"),
    FieldSpec("savings_amount", "Savings"),
    FieldSpec("category", "Category"),
    FieldSpec("region", "Region"),
]

CANONICAL_KEYS: List[str] = [spec.key for spec in CANONICAL_FIELDS]
REQUIRED_KEYS: List[str] = [spec.key for spec in CANONICAL_FIELDS if spec.required]

DATE_FIELDS = ("po_date", "promised_delivery_date", "actual_delivery_date")
BOOLEAN_FIELDS = ("defect_flag", "compliance_flag", "partial_order_flag")
NUMBER_FIELDS = (
    "defect_count",
    "qty_ordered",
    "qty_received",
    "unit_price",
    "total_cost",
    "savings_amount",
)
TEXT_FIELDS = ("delivery_status", "compliance_issue_type", "category", "region")

UNKNOWN_SUPPLIER = "Unknown Supplier"

# Canonical field key -> source header, or None when unmapped.
ColumnMapping = Dict[str, Optional[str]]


def default_mapping() -> ColumnMapping:
    """Return a mapping with every canonical field unmapped."""

    return {key: None for key in CANONICAL_KEYS}


@dataclass(frozen=True)
class CanonicalRecord:
    """One normalised procurement line.

    ``source_row`` keeps the trimmed raw row the record was built from so any
    metric can be traced back to the uploaded data.
    """

    po_id: str
    supplier: str
    po_date: Optional[datetime] = None
    promised_delivery_date: Optional[datetime] = None
    actual_delivery_date: Optional[datetime] = None
    delivery_status: Optional[str] = None
    defect_flag: Optional[bool] = None
    defect_count: Optional[float] = None
    compliance_flag: Optional[bool] = None
    compliance_issue_type: Optional[str] = None
    partial_order_flag: Optional[bool] = None
    qty_ordered: Optional[float] = None
    qty_received: Optional[float] = None
    unit_price: Optional[float] = None
    total_cost: Optional[float] = None
    savings_amount: Optional[float] = None
    category: Optional[str] = None
    region: Optional[str] = None
    source_row: Dict[str, str] = field(default_factory=dict, compare=False, repr=False)

    @property
    def reference_date(self) -> Optional[datetime]:
        """First available of PO, promised and actual date."""

        return self.po_date or self.promised_delivery_date or self.actual_delivery_date


class CanonicalSchema(BaseModel):
    """Type check applied to every canonical record before it is emitted."""

    po_id: Optional[str] = Field(default=None, min_length=1)
    supplier: Optional[str] = Field(default=None, min_length=1)
    po_date: Optional[datetime] = None
    promised_delivery_date: Optional[datetime] = None
    actual_delivery_date: Optional[datetime] = None
    delivery_status: Optional[str] = None
    defect_flag: Optional[bool] = None
    defect_count: Optional[float] = None
    compliance_flag: Optional[bool] = None
    compliance_issue_type: Optional[str] = None
    partial_order_flag: Optional[bool] = None
    qty_ordered: Optional[float] = None
    qty_received: Optional[float] = None
    unit_price: Optional[float] = None
    total_cost: Optional[float] = None
    savings_amount: Optional[float] = None
    category: Optional[str] = None
    region: Optional[str] = None


@dataclass
class SupplierMetric:
    """Aggregated delivery, quality, compliance and pricing signals for one supplier."""

    supplier: str
    total_pos: int = 0
    on_time_rate: float = 0.0
    late_rate: float = 0.0
    avg_days_late: float = 0.0
    missing_delivery_rate: float = 0.0
    defect_rate: float = 0.0
    compliance_gap_rate: float = 0.0
    partial_order_rate: float = 0.0
    price_outlier_rate: float = 0.0
    risk_score: float = 0.0
    risk_band: str = "Low"
    late_deliveries: int = 0
    defects: int = 0
    compliance_gaps: int = 0
    partial_orders: int = 0
    spend: float = 0.0


@dataclass(frozen=True)
class MonthlyRiskPoint:
    month: str
    risk_score: float


@dataclass(frozen=True)
class SupplierMonthlyRates:
    month: str
    late_rate: float
    defect_rate: float
    compliance_gap_rate: float


ISSUE_LATE = "Late"
ISSUE_DEFECT = "Defect"
ISSUE_COMPLIANCE = "Compliance"
ISSUE_MISSING_DATES = "Missing Dates"
ISSUE_PARTIAL = "Partial"
ISSUE_PRICE_OUTLIER = "Price Outlier"


@dataclass(frozen=True)
class SupplierIssue:
    po_id: str
    supplier: str
    issue_type: str
    days_late: Optional[float] = None
    details: Optional[str] = None


@dataclass(frozen=True)
class ExceptionRecord:
    po_id: str
    supplier: str
    issue: str
    category: Optional[str] = None
    region: Optional[str] = None
    po_date: Optional[datetime] = None
