"""Test supplier aggregation and risk scoring.

Why we test this:
- The risk score is the headline number procurement teams act on
- A component only counts when its signal exists for the supplier; getting
  this wrong silently changes every score
- Band thresholds must be exact at their boundaries
- Rates must use the right denominators (dated deliveries vs all records)
"""

import sys
from datetime import datetime, timedelta
from pathlib import Path

import pytest

BASE_DIR = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(BASE_DIR))

from risk_engine import supplier_metrics
from risk_engine.data_pipeline import map_rows
from tests.test_data_fixtures import HEADERS, MAPPING, RAW_ROWS, record


PROMISED = datetime(2024, 1, 10)


def _delivered(po_id, supplier="Acme", days_late=0.0, **extra):
    return record(
        po_id=po_id,
        supplier=supplier,
        promised_delivery_date=PROMISED,
        actual_delivery_date=PROMISED + timedelta(days=days_late),
        **extra,
    )


def _by_supplier(metrics):
    return {metric.supplier: metric for metric in metrics}


def test_fixture_dataset_metrics():
    records = map_rows(RAW_ROWS, MAPPING, HEADERS)
    metrics = supplier_metrics.compute_supplier_metrics(records)
    assert [metric.supplier for metric in metrics] == ["Unknown Supplier", "Acme", "Globex"]

    acme = _by_supplier(metrics)["Acme"]
    assert acme.total_pos == 3
    assert acme.late_rate == 0.5
    assert acme.avg_days_late == 2.5
    assert acme.on_time_rate == pytest.approx(2 / 3)
    assert acme.missing_delivery_rate == pytest.approx(1 / 3)
    assert acme.defect_rate == pytest.approx(1 / 3)
    assert acme.partial_order_rate == pytest.approx(1 / 3)
    assert acme.compliance_gap_rate == 0.0
    assert acme.spend == 150.0
    assert acme.risk_score == 52.1
    assert acme.risk_band == "Medium"

    globex = _by_supplier(metrics)["Globex"]
    assert globex.compliance_gaps == 1
    assert globex.risk_score == 42.5

    unknown = _by_supplier(metrics)["Unknown Supplier"]
    assert unknown.late_deliveries == 1
    assert unknown.late_rate == 0.0
    assert unknown.risk_score == 100.0
    assert unknown.risk_band == "High"


def test_empty_input_returns_no_metrics():
    assert supplier_metrics.compute_supplier_metrics([]) == []


def test_on_time_dated_deliveries_score_zero():
    """Why: an observed clean record is a real 0, unlike a missing signal."""
    metrics = supplier_metrics.compute_supplier_metrics(
        [_delivered("A", defect_flag=False), _delivered("B", compliance_flag=False)]
    )
    assert metrics[0].risk_score == 0.0
    assert metrics[0].risk_band == "Low"
    assert metrics[0].on_time_rate == 1.0


def test_defect_component_only_counts_when_defects_exist():
    metrics = supplier_metrics.compute_supplier_metrics([_delivered("A", defect_flag=True)])
    # late 0 (0.30) + days late 0 (0.15) + defects 1.0 (0.20)
    assert metrics[0].risk_score == 30.8


def test_defect_count_counts_as_defect():
    metrics = supplier_metrics.compute_supplier_metrics(
        [_delivered("A", defect_count=2.0), _delivered("B", defect_count=0.0)]
    )
    assert metrics[0].defects == 1
    assert metrics[0].defect_rate == 0.5


def test_compliance_flag_and_issue_type():
    metrics = supplier_metrics.compute_supplier_metrics([_delivered("A", compliance_flag=True)])
    assert metrics[0].risk_score == 25.0

    blank_issue = supplier_metrics.compute_supplier_metrics([_delivered("A", compliance_issue_type="   ")])
    assert blank_issue[0].compliance_gaps == 0

    typed_issue = supplier_metrics.compute_supplier_metrics([_delivered("A", compliance_issue_type="Expired")])
    assert typed_issue[0].compliance_gaps == 1


def test_partial_orders_from_flag_or_quantities():
    metrics = supplier_metrics.compute_supplier_metrics(
        [
            _delivered("A", partial_order_flag=True),
            _delivered("B", qty_ordered=10.0, qty_received=7.0),
            _delivered("C", qty_ordered=10.0, qty_received=10.0),
            _delivered("D", qty_received=3.0),
        ]
    )
    assert metrics[0].partial_orders == 2
    assert metrics[0].partial_order_rate == 0.5


def test_price_outlier_component_uses_supplied_outliers():
    metrics = supplier_metrics.compute_supplier_metrics([_delivered("X")], outliers={"X"})
    assert metrics[0].price_outlier_rate == 1.0
    assert metrics[0].risk_score == 10.0


def test_missing_delivery_dates_component():
    only_promise = record(po_id="A", promised_delivery_date=PROMISED)
    metrics = supplier_metrics.compute_supplier_metrics([only_promise])
    assert metrics[0].missing_delivery_rate == 1.0
    assert metrics[0].late_rate == 0.0
    assert metrics[0].risk_score == 100.0


def test_days_late_normalised_by_view_maximum():
    """Why: avg days late is relative to the worst supplier in the current view."""
    metrics = supplier_metrics.compute_supplier_metrics(
        [_delivered("A", supplier="Slow", days_late=10), _delivered("B", supplier="Steady", days_late=5)]
    )
    by_name = _by_supplier(metrics)
    assert by_name["Slow"].avg_days_late == 10.0
    assert by_name["Slow"].risk_score == 100.0
    # (0.30 * 1 + 0.15 * 0.5) / 0.45
    assert by_name["Steady"].risk_score == 83.3


def test_early_delivery_counts_zero_days_late():
    metrics = supplier_metrics.compute_supplier_metrics([_delivered("A", days_late=-3)])
    assert metrics[0].avg_days_late == 0.0
    assert metrics[0].late_deliveries == 0


def test_status_heuristics_without_dates():
    records = [
        record(po_id="A", delivery_status="Delayed"),
        record(po_id="B", delivery_status="On Time"),
        record(po_id="C", delivery_status="Delivered late"),
        record(po_id="D", delivery_status="Cancelled"),
        record(po_id="E", delivery_status="delivered"),
    ]
    metric = supplier_metrics.compute_supplier_metrics(records)[0]
    assert metric.late_deliveries == 3
    assert metric.on_time_rate == pytest.approx(2 / 5)
    # Status text never counts as a dated delivery.
    assert metric.late_rate == 0.0
    assert metric.avg_days_late == 0.0


def test_status_ignored_when_both_dates_present():
    metric = supplier_metrics.compute_supplier_metrics([_delivered("A", delivery_status="Late")])[0]
    assert metric.late_deliveries == 0
    assert metric.on_time_rate == 1.0


def test_risk_score_stays_within_bounds():
    """Why: status-late records can push late_rate above 1, the score must still be 0..100."""
    records = [
        _delivered("A"),
        record(po_id="B", delivery_status="late"),
        record(po_id="C", delivery_status="late"),
    ]
    metric = supplier_metrics.compute_supplier_metrics(records)[0]
    assert metric.late_rate == 2.0
    assert 0.0 <= metric.risk_score <= 100.0


@pytest.mark.parametrize(
    "score, band",
    [(0.0, "Low"), (33.9, "Low"), (34.0, "Medium"), (66.9, "Medium"), (67.0, "High"), (100.0, "High")],
)
def test_risk_band_boundaries(score, band):
    assert supplier_metrics.risk_band(score) == band


def test_compute_risk_score_without_available_components():
    components = [("late_rate", 0.3, 0.9, False), ("defect_rate", 0.2, 0.5, False)]
    assert supplier_metrics.compute_risk_score(components) == 0.0


def test_available_weights_positive_whenever_a_signal_exists():
    records = map_rows(RAW_ROWS, MAPPING, HEADERS)
    outliers = set()
    aggregates = supplier_metrics.aggregate_suppliers(records, outliers)
    for aggregate in aggregates:
        metric = supplier_metrics._derive_metric(aggregate)
        components = supplier_metrics.risk_components(
            aggregate, metric, 2.5, supplier_metrics.resolve_config(None)["risk_weights"]
        )
        assert sum(weight for _, weight, _, available in components if available) > 0


def test_weighted_risk_score():
    records = map_rows(RAW_ROWS, MAPPING, HEADERS)
    metrics = supplier_metrics.compute_supplier_metrics(records)
    # (100 * 1 + 52.1 * 3 + 42.5 * 2) / 6
    assert supplier_metrics.weighted_risk_score(metrics) == 56.9
    assert supplier_metrics.weighted_risk_score([]) == 0.0


def test_custom_weights_from_config():
    from risk_engine.config import DEFAULT_CONFIG

    weights = {**DEFAULT_CONFIG["risk_weights"], "defect_rate": 0.65}
    config = {**DEFAULT_CONFIG, "risk_weights": weights}
    metrics = supplier_metrics.compute_supplier_metrics([_delivered("A", defect_flag=True)], config)
    # 0.65 / (0.30 + 0.15 + 0.65)
    assert metrics[0].risk_score == 59.1
