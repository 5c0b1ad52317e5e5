"""Test issue rows and exception subsets.

Why we test this:
- Drill-down tables are how users find the purchase orders behind a score
- One record can carry several issues and must appear in every matching list
- Issue wording is shown verbatim in the dashboard
"""

import sys
from datetime import datetime
from pathlib import Path

import pytest

BASE_DIR = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(BASE_DIR))

from risk_engine import issues
from risk_engine.data_pipeline import map_rows
from tests.test_data_fixtures import HEADERS, MAPPING, RAW_ROWS, record


@pytest.fixture
def records():
    return map_rows(RAW_ROWS, MAPPING, HEADERS)


def test_build_top_issues_in_record_order(records):
    rows = issues.build_top_issues(records)
    assert [(row.po_id, row.issue_type) for row in rows] == [
        ("PO-1", "Late"),
        ("PO-1", "Defect"),
        ("PO-3", "Missing Dates"),
        ("PO-3", "Partial"),
        ("PO-4", "Compliance"),
        ("PO-5", "Late"),
        ("PO-6", "Missing Dates"),
    ]


def test_issue_details(records):
    rows = issues.build_top_issues(records)
    assert rows[0].days_late == 5.0
    assert rows[0].details == "Late by 5.0 days"
    assert rows[1].details == "Defect flagged"
    assert rows[2].details == "Missing promised or actual date"
    assert rows[3].details == "Partial order"
    assert rows[4].details == "Missing certificate"


def test_fractional_days_late():
    late = record(
        po_id="A",
        promised_delivery_date=datetime(2024, 1, 1),
        actual_delivery_date=datetime(2024, 1, 3, 12),
    )
    (row,) = issues.record_issues(late, set())
    assert row.days_late == 2.5
    assert row.details == "Late by 2.5 days"


def test_defect_count_wording():
    whole = issues.record_issues(record(po_id="A", defect_count=3.0), set())
    fractional = issues.record_issues(record(po_id="B", defect_count=2.5), set())
    assert [row.details for row in whole if row.issue_type == "Defect"] == ["Defects: 3"]
    assert [row.details for row in fractional if row.issue_type == "Defect"] == ["Defects: 2.5"]


def test_compliance_flag_without_type():
    rows = issues.record_issues(record(po_id="A", compliance_flag=True), set())
    assert [row.details for row in rows if row.issue_type == "Compliance"] == ["Compliance gap"]


def test_price_outlier_issue():
    rows = issues.record_issues(record(po_id="A"), {"A"})
    assert rows[-1].issue_type == "Price Outlier"
    assert rows[-1].details == "Unit price outlier"


def test_supplier_issues(records):
    rows = issues.supplier_issues(records, "Acme")
    assert {row.po_id for row in rows} == {"PO-1", "PO-3"}
    assert len(rows) == 4


def test_compute_exceptions(records):
    exceptions = issues.compute_exceptions(records)
    assert [item.po_id for item in exceptions.missing_dates] == ["PO-3", "PO-6"]
    assert [item.po_id for item in exceptions.compliance] == ["PO-4"]
    assert [item.po_id for item in exceptions.defects] == ["PO-1"]
    assert [item.po_id for item in exceptions.partials] == ["PO-3"]
    assert exceptions.price_outliers == []
    assert exceptions.counts() == {
        "missing_dates": 2,
        "compliance": 1,
        "defects": 1,
        "partials": 1,
        "price_outliers": 0,
    }


def test_record_can_sit_in_several_subsets(records):
    exceptions = issues.compute_exceptions(records)
    po3 = records[2]
    assert po3 in exceptions.missing_dates
    assert po3 in exceptions.partials


def test_flatten_exceptions(records):
    rows = issues.flatten_exceptions(issues.compute_exceptions(records), "missing_dates")
    assert [row.po_id for row in rows] == ["PO-3", "PO-6"]
    assert rows[1].issue == "Missing Dates"
    assert rows[1].supplier == "Unknown Supplier"
    assert rows[1].region == "APAC"
    assert rows[1].po_date == datetime(2024, 2, 14)


def test_flatten_exceptions_search(records):
    exceptions = issues.compute_exceptions(records)
    assert [row.po_id for row in issues.flatten_exceptions(exceptions, "missing_dates", "apac")] == ["PO-6"]
    assert [row.po_id for row in issues.flatten_exceptions(exceptions, "missing_dates", " ACME ")] == ["PO-3"]
    assert len(issues.flatten_exceptions(exceptions, "missing_dates", "   ")) == 2


def test_flatten_exceptions_unknown_subset(records):
    with pytest.raises(ValueError):
        issues.flatten_exceptions(issues.compute_exceptions(records), "late")
