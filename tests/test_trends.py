"""Test monthly trends, portfolio KPIs and chart series.

Why we test this:
- The trend chart must score each month independently
- A single month's point must agree with the headline portfolio score
- KPI rates are weighted by supplier record counts, not averaged per supplier
"""

import sys
from datetime import datetime
from pathlib import Path

import pytest

BASE_DIR = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(BASE_DIR))

from risk_engine import trends
from risk_engine.data_pipeline import map_rows
from risk_engine.supplier_metrics import compute_supplier_metrics, weighted_risk_score
from tests.test_data_fixtures import HEADERS, MAPPING, RAW_ROWS, record


@pytest.fixture
def records():
    return map_rows(RAW_ROWS, MAPPING, HEADERS)


def test_bucket_by_month_sorted_and_skips_undated(records):
    undated = record(po_id="NO-DATE")
    buckets = trends.bucket_by_month([records[5], records[0], undated])
    assert list(buckets) == ["2024-01", "2024-02"]
    assert all(undated not in items for items in buckets.values())


def test_bucket_uses_promised_date_when_po_date_missing():
    item = record(po_id="A", promised_delivery_date=datetime(2023, 11, 2))
    assert list(trends.bucket_by_month([item])) == ["2023-11"]


def test_monthly_risk_trend(records):
    points = trends.compute_monthly_risk_trend(records)
    assert [point.month for point in points] == ["2024-01", "2024-02"]
    # January: Acme 61.5 on two records, Globex 25.0 on one.
    assert points[0].risk_score == 49.3
    assert points[1].risk_score == 100.0


def test_single_month_point_matches_portfolio_score(records):
    """Why: one bucket holding everything must equal the overall weighted score."""
    january = [item for item in records if item.po_date.month == 1]
    points = trends.compute_monthly_risk_trend(january)
    assert len(points) == 1
    assert points[0].risk_score == weighted_risk_score(compute_supplier_metrics(january))


def test_monthly_risk_trend_empty():
    assert trends.compute_monthly_risk_trend([]) == []


def test_supplier_monthly_rates(records):
    points = trends.compute_supplier_monthly_rates(records, "Acme")
    assert [point.month for point in points] == ["2024-01", "2024-02"]
    assert points[0].late_rate == 0.5
    assert points[0].defect_rate == 0.5
    assert points[0].compliance_gap_rate == 0.0
    # February only holds the undelivered PO-3, which is not late.
    assert points[1].late_rate == 0.0


def test_supplier_monthly_rates_unknown_supplier(records):
    assert trends.compute_supplier_monthly_rates(records, "Nobody") == []


def test_overall_kpis(records):
    kpis = trends.compute_overall_kpis(records)
    assert kpis["total_pos"] == 6
    assert kpis["on_time_rate"] == pytest.approx(0.5)
    assert kpis["avg_days_late"] == pytest.approx(8.5 / 6)
    assert kpis["defect_rate"] == pytest.approx(1 / 6)
    assert kpis["compliance_gap_rate"] == pytest.approx(1 / 6)
    assert kpis["partial_order_rate"] == pytest.approx(1 / 6)
    assert kpis["risk_score"] == 56.9


def test_overall_kpis_empty():
    kpis = trends.compute_overall_kpis([])
    assert kpis["total_pos"] == 0
    assert kpis["risk_score"] == 0.0
    assert kpis["on_time_rate"] == 0.0


def test_chart_series_follow_metric_order(records):
    metrics = compute_supplier_metrics(records)
    late = trends.late_deliveries_by_supplier(metrics)
    assert late == [
        {"supplier": "Unknown Supplier", "late_deliveries": 1},
        {"supplier": "Acme", "late_deliveries": 1},
        {"supplier": "Globex", "late_deliveries": 1},
    ]
    assert [row["defects"] for row in trends.defects_by_supplier(metrics)] == [0, 1, 0]


def test_spend_vs_risk_skips_suppliers_without_spend(records):
    metrics = compute_supplier_metrics(records + [record(po_id="Z", supplier="Initech")])
    rows = trends.spend_vs_risk(metrics)
    assert {row["supplier"] for row in rows} == {"Unknown Supplier", "Acme", "Globex"}
    acme = next(row for row in rows if row["supplier"] == "Acme")
    assert acme["spend"] == 150.0
