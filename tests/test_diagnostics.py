"""Test data-completeness diagnostics.

Why we test this:
- Users need to know why a chart is empty before they trust the scores
- Counts are per signal, so a partially mapped file shows exactly what is missing
"""

import sys
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(BASE_DIR))

from risk_engine import diagnostics
from risk_engine.data_pipeline import map_rows
from tests.test_data_fixtures import HEADERS, MAPPING, RAW_ROWS, record


def test_fixture_diagnostics():
    records = map_rows(RAW_ROWS, MAPPING, HEADERS)
    report = diagnostics.compute_diagnostics(records, len(RAW_ROWS), MAPPING)
    assert report.raw_rows == 6
    assert report.mapped_rows == 6
    assert report.suppliers == 3
    assert report.delivery_dates == 5
    assert report.defects == 6
    assert report.compliance == 0
    assert report.quantities == 6
    assert report.pricing == 6
    assert report.mapped_fields["supplier"] == "Vendor Name"
    assert "compliance_flag" not in report.mapped_fields
    assert report.notes == ["Compliance data missing"]


def test_notes_for_empty_dataset():
    assert diagnostics.diagnostic_notes([]) == [
        "Delivery dates not present in dataset",
        "Delivery status not present in dataset",
        "Defect data missing",
        "Compliance data missing",
        "Pricing data missing",
    ]


def test_status_note_only_when_status_also_missing():
    notes = diagnostics.diagnostic_notes([record(po_id="A", delivery_status="Delivered")])
    assert "Delivery dates not present in dataset" in notes
    assert "Delivery status not present in dataset" not in notes


def test_diagnostics_without_mapping():
    report = diagnostics.compute_diagnostics([], 0)
    assert report.mapped_fields == {}
    assert report.suppliers == 0
