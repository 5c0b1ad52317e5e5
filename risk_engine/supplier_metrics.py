"""Per-supplier aggregation and the weighted, missing-data-aware risk score.

Scoring happens in three phases over the current view of records:

1. one pass folds every record into raw per-supplier counters;
2. the largest average days late across all suppliers is taken;
3. each supplier is scored, normalising its days late by that maximum.

Phase 3 needs the maximum from phase 2, so a view must be aggregated in full
before any supplier can be scored.

A risk component only takes part in a supplier's score when its signal was
observed for that supplier. The weights of the components that do take part
are re-normalised to sum to one, so a dataset without (say) defect columns
neither rewards nor punishes anybody for the missing data.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Sequence, Set, Tuple

from .config import resolve_config
from .outliers import flag_price_outliers
from .parsers import clamp01, days_between, round_half_up
from .schema import UNKNOWN_SUPPLIER, CanonicalRecord, SupplierMetric


LOGGER = logging.getLogger(__name__)

LATE_KEYWORDS = ("late", "delay", "cancel")


def has_both_delivery_dates(record: CanonicalRecord) -> bool:
    return record.promised_delivery_date is not None and record.actual_delivery_date is not None


def has_missing_dates(record: CanonicalRecord) -> bool:
    return not has_both_delivery_dates(record)


def is_defective(record: CanonicalRecord) -> bool:
    return record.defect_flag is True or (record.defect_count is not None and record.defect_count > 0)


def has_compliance_gap(record: CanonicalRecord) -> bool:
    return record.compliance_flag is True or bool(
        record.compliance_issue_type and record.compliance_issue_type.strip()
    )


def is_partial(record: CanonicalRecord) -> bool:
    if record.partial_order_flag is True:
        return True
    return (
        record.qty_received is not None
        and record.qty_ordered is not None
        and record.qty_received < record.qty_ordered
    )


def is_late(record: CanonicalRecord) -> bool:
    """True when both delivery dates exist and the delivery came after the promise."""

    return has_both_delivery_dates(record) and record.actual_delivery_date > record.promised_delivery_date


@dataclass
class SupplierAggregate:
    """Raw counters collected for one supplier during the aggregation pass."""

    supplier: str
    total_pos: int = 0
    deliveries_with_dates: int = 0
    total_days_late_sum: float = 0.0
    late_deliveries: int = 0
    on_time_count: int = 0
    on_time_denominator: int = 0
    missing_deliveries: int = 0
    defects: int = 0
    compliance_gaps: int = 0
    partial_orders: int = 0
    price_outliers: int = 0
    spend: float = 0.0

    @property
    def avg_days_late(self) -> float:
        if not self.deliveries_with_dates:
            return 0.0
        return self.total_days_late_sum / self.deliveries_with_dates

    def add(self, record: CanonicalRecord, outliers: Set[str]) -> None:
        self.total_pos += 1

        if has_both_delivery_dates(record):
            self.deliveries_with_dates += 1
            self.total_days_late_sum += max(
                0.0, days_between(record.promised_delivery_date, record.actual_delivery_date)
            )
            self.on_time_denominator += 1
            if record.actual_delivery_date > record.promised_delivery_date:
                self.late_deliveries += 1
            else:
                self.on_time_count += 1
        else:
            self.missing_deliveries += 1
            status = (record.delivery_status or "").lower()
            if status:
                self._add_status(status)

        if is_defective(record):
            self.defects += 1
        if has_compliance_gap(record):
            self.compliance_gaps += 1
        if is_partial(record):
            self.partial_orders += 1
        if record.po_id in outliers:
            self.price_outliers += 1
        if record.total_cost is not None:
            self.spend += record.total_cost

    def _add_status(self, status: str) -> None:
        # Status text only informs the on-time rate, never the dated-delivery counts.
        self.on_time_denominator += 1
        if any(keyword in status for keyword in LATE_KEYWORDS):
            self.late_deliveries += 1
        if "on" in status and "time" in status:
            self.on_time_count += 1
        elif "delivered" in status and "late" not in status:
            self.on_time_count += 1


def aggregate_suppliers(
    records: Sequence[CanonicalRecord],
    outliers: Set[str],
) -> List[SupplierAggregate]:
    """Fold records into per-supplier counters, in order of first appearance."""

    aggregates: Dict[str, SupplierAggregate] = {}
    for record in records:
        supplier = record.supplier or UNKNOWN_SUPPLIER
        aggregate = aggregates.get(supplier)
        if aggregate is None:
            aggregate = aggregates[supplier] = SupplierAggregate(supplier=supplier)
        aggregate.add(record, outliers)
    return list(aggregates.values())


def risk_components(
    aggregate: SupplierAggregate,
    metric: SupplierMetric,
    max_avg_days_late: float,
    weights: Mapping[str, float],
) -> List[Tuple[str, float, float, bool]]:
    """Return ``(name, weight, value, available)`` for every score component."""

    normalized_days_late = (
        clamp01(aggregate.avg_days_late / max_avg_days_late) if max_avg_days_late > 0 else 0.0
    )
    dated = aggregate.deliveries_with_dates > 0
    return [
        ("late_rate", weights["late_rate"], metric.late_rate, dated),
        ("normalized_avg_days_late", weights["normalized_avg_days_late"], normalized_days_late, dated),
        (
            "missing_delivery_rate",
            weights["missing_delivery_rate"],
            metric.missing_delivery_rate,
            aggregate.missing_deliveries > 0,
        ),
        ("defect_rate", weights["defect_rate"], metric.defect_rate, aggregate.defects > 0),
        (
            "compliance_gap_rate",
            weights["compliance_gap_rate"],
            metric.compliance_gap_rate,
            aggregate.compliance_gaps > 0,
        ),
        ("partial_order_rate", weights["partial_order_rate"], metric.partial_order_rate, aggregate.partial_orders > 0),
        ("price_outlier_rate", weights["price_outlier_rate"], metric.price_outlier_rate, aggregate.price_outliers > 0),
    ]


def compute_risk_score(components: Sequence[Tuple[str, float, float, bool]]) -> float:
    """Weighted mean of the available components on a 0-100 scale, 1 decimal."""

    available = [(weight, value) for _, weight, value, is_available in components if is_available]
    total_weight = sum(weight for weight, _ in available)
    if total_weight <= 0:
        return 0.0
    weighted_sum = sum(weight * clamp01(value) for weight, value in available)
    return round_half_up(100 * weighted_sum / total_weight, 1)


def risk_band(score: float, config: Optional[Mapping[str, Any]] = None) -> str:
    bands = resolve_config(config)["risk_bands"]
    if score >= bands["high"]:
        return "High"
    if score >= bands["medium"]:
        return "Medium"
    return "Low"


def _derive_metric(aggregate: SupplierAggregate) -> SupplierMetric:
    total = aggregate.total_pos or 1
    dated = aggregate.deliveries_with_dates
    return SupplierMetric(
        supplier=aggregate.supplier,
        total_pos=aggregate.total_pos,
        on_time_rate=(
            aggregate.on_time_count / aggregate.on_time_denominator if aggregate.on_time_denominator else 0.0
        ),
        late_rate=aggregate.late_deliveries / dated if dated else 0.0,
        avg_days_late=aggregate.avg_days_late,
        missing_delivery_rate=aggregate.missing_deliveries / total,
        defect_rate=aggregate.defects / total,
        compliance_gap_rate=aggregate.compliance_gaps / total,
        partial_order_rate=aggregate.partial_orders / total,
        price_outlier_rate=aggregate.price_outliers / total,
        late_deliveries=aggregate.late_deliveries,
        defects=aggregate.defects,
        compliance_gaps=aggregate.compliance_gaps,
        partial_orders=aggregate.partial_orders,
        spend=aggregate.spend,
    )


def compute_supplier_metrics(
    records: Sequence[CanonicalRecord],
    config: Optional[Mapping[str, Any]] = None,
    outliers: Optional[Set[str]] = None,
) -> List[SupplierMetric]:
    """Aggregate and score every supplier in ``records``.

    Parameters
    ----------
    records : Sequence[CanonicalRecord]
        The current view (already filtered if a filter applies).
    config : Mapping, optional
        Scoring configuration; defaults to the built-in weights and bands.
    outliers : Set[str], optional
        Precomputed price outlier identifiers for exactly this view.

    Returns
    -------
    List[SupplierMetric]
        One entry per supplier, riskiest first.
    """

    settings = resolve_config(config)
    if outliers is None:
        outliers = flag_price_outliers(records, settings)

    aggregates = aggregate_suppliers(records, outliers)
    max_avg_days_late = max([0.0] + [aggregate.avg_days_late for aggregate in aggregates])

    metrics: List[SupplierMetric] = []
    for aggregate in aggregates:
        metric = _derive_metric(aggregate)
        components = risk_components(aggregate, metric, max_avg_days_late, settings["risk_weights"])
        metric.risk_score = compute_risk_score(components)
        metric.risk_band = risk_band(metric.risk_score, settings)
        metrics.append(metric)

    metrics.sort(key=lambda metric: metric.risk_score, reverse=True)
    LOGGER.debug("Scored %d suppliers from %d records", len(metrics), len(records))
    return metrics


def weighted_risk_score(metrics: Sequence[SupplierMetric]) -> float:
    """Record-count weighted mean of supplier risk scores, 1 decimal."""

    total = sum(metric.total_pos for metric in metrics)
    if not metrics or total == 0:
        return 0.0
    weighted = sum(metric.risk_score * metric.total_pos for metric in metrics)
    return round_half_up(weighted / total, 1)
