"""Time-series trends, portfolio KPIs and chart series derived from supplier metrics."""

from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional, Sequence

from .parsers import month_key, round_half_up
from .schema import CanonicalRecord, MonthlyRiskPoint, SupplierMetric, SupplierMonthlyRates
from .supplier_metrics import (
    compute_supplier_metrics,
    has_compliance_gap,
    is_defective,
    is_late,
    weighted_risk_score,
)


def bucket_by_month(records: Sequence[CanonicalRecord]) -> Dict[str, List[CanonicalRecord]]:
    """Group records by the month of their first available date, months ascending.

    Records without any date are left out.
    """

    buckets: Dict[str, List[CanonicalRecord]] = {}
    for record in records:
        key = month_key(record.reference_date)
        if key is None:
            continue
        buckets.setdefault(key, []).append(record)
    return dict(sorted(buckets.items()))


def compute_monthly_risk_trend(
    records: Sequence[CanonicalRecord],
    config: Optional[Mapping[str, Any]] = None,
) -> List[MonthlyRiskPoint]:
    """Score each month's records on their own and weight suppliers by record count.

    Outliers and days-late normalisation are recomputed inside every month,
    so a point reflects that month only.
    """

    return [
        MonthlyRiskPoint(month=month, risk_score=weighted_risk_score(compute_supplier_metrics(items, config)))
        for month, items in bucket_by_month(records).items()
    ]


def compute_supplier_monthly_rates(
    records: Sequence[CanonicalRecord],
    supplier: str,
) -> List[SupplierMonthlyRates]:
    """Plain monthly late/defect/compliance shares for one supplier (no scoring)."""

    supplier_records = [record for record in records if record.supplier == supplier]
    points = []
    for month, items in bucket_by_month(supplier_records).items():
        total = len(items) or 1
        points.append(
            SupplierMonthlyRates(
                month=month,
                late_rate=sum(1 for record in items if is_late(record)) / total,
                defect_rate=sum(1 for record in items if is_defective(record)) / total,
                compliance_gap_rate=sum(1 for record in items if has_compliance_gap(record)) / total,
            )
        )
    return points


def _weighted_mean(metrics: Sequence[SupplierMetric], attribute: str) -> float:
    total = sum(metric.total_pos for metric in metrics)
    if not metrics or total == 0:
        return 0.0
    return sum(getattr(metric, attribute) * metric.total_pos for metric in metrics) / total


def compute_overall_kpis(
    records: Sequence[CanonicalRecord],
    metrics: Optional[Sequence[SupplierMetric]] = None,
    config: Optional[Mapping[str, Any]] = None,
) -> Dict[str, float]:
    """Portfolio headline numbers: supplier rates weighted by each supplier's record count."""

    if metrics is None:
        metrics = compute_supplier_metrics(records, config)
    return {
        "total_pos": len(records),
        "on_time_rate": _weighted_mean(metrics, "on_time_rate"),
        "avg_days_late": _weighted_mean(metrics, "avg_days_late"),
        "defect_rate": _weighted_mean(metrics, "defect_rate"),
        "compliance_gap_rate": _weighted_mean(metrics, "compliance_gap_rate"),
        "partial_order_rate": _weighted_mean(metrics, "partial_order_rate"),
        "risk_score": weighted_risk_score(metrics),
    }


def late_deliveries_by_supplier(metrics: Sequence[SupplierMetric]) -> List[Dict[str, Any]]:
    return [{"supplier": metric.supplier, "late_deliveries": metric.late_deliveries} for metric in metrics]


def defects_by_supplier(metrics: Sequence[SupplierMetric]) -> List[Dict[str, Any]]:
    return [{"supplier": metric.supplier, "defects": metric.defects} for metric in metrics]


def spend_vs_risk(metrics: Sequence[SupplierMetric]) -> List[Dict[str, Any]]:
    """Suppliers with recorded spend, paired with their risk score."""

    return [
        {
            "supplier": metric.supplier,
            "risk_score": metric.risk_score,
            "spend": round_half_up(metric.spend, 2),
        }
        for metric in metrics
        if metric.spend > 0
    ]
