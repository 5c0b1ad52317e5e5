#!/usr/bin/env python3
"""
Score the suppliers in a procurement CSV and print a risk summary.
The column mapping is auto-detected; pass --sample to treat the file as the
bundled reference dataset.
"""

import argparse
import dataclasses
import json
import logging
import sys
from pathlib import Path

from risk_engine import auditing
from risk_engine.data_pipeline import read_raw_rows
from risk_engine.session import SOURCE_SAMPLE, SOURCE_UPLOAD, RiskSession


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Supplier risk report for a procurement CSV")
    parser.add_argument("csv_path", type=Path, help="CSV file with one purchase order line per row")
    parser.add_argument("--name", help="Dataset name used to key saved mappings (defaults to the file name)")
    parser.add_argument("--sample", action="store_true", help="Treat the file as the bundled sample dataset")
    parser.add_argument("--top", type=int, default=10, help="Number of suppliers to list")
    parser.add_argument("--json", action="store_true", help="Print the full view as JSON")
    return parser.parse_args(argv)


def main(argv=None):
    """Load the CSV, apply the auto-mapping and print the riskiest suppliers."""

    args = parse_args(argv)
    if not args.csv_path.exists():
        print(f"❌ File not found: {args.csv_path}")
        return 1

    rows, headers = read_raw_rows(args.csv_path)
    session = RiskSession()
    result = session.load_dataset(
        rows,
        headers,
        name=args.name or args.csv_path.name,
        source=SOURCE_SAMPLE if args.sample else SOURCE_UPLOAD,
    )

    if result.missing_required:
        print(f"❌ Could not find columns for: {', '.join(result.missing_required)}")
        return 2
    if not session.records:
        # Nothing to confirm against on the command line; accept the suggestion.
        session.apply_mapping()

    view = session.build_view()

    if args.json:
        payload = {
            "metrics": [dataclasses.asdict(metric) for metric in view.metrics],
            "trend": [dataclasses.asdict(point) for point in view.trend],
            "kpis": view.kpis,
            "exceptions": view.exceptions.counts(),
            "notes": view.diagnostics.notes,
        }
        print(json.dumps(payload, indent=2, default=str))
        return 0

    print(f"📄 Dataset: {session.dataset_name} ({len(rows)} rows, {view.diagnostics.suppliers} suppliers)")
    print(f"🧭 Mapping confidence: {result.confidence:.0%}  known dataset: {result.known_dataset}")
    for note in view.diagnostics.notes:
        print(f"⚠️  {note}")
    print("-" * 60)

    frame = auditing.metrics_to_frame(view.metrics[: args.top])
    if not frame.empty:
        columns = ["supplier", "total_pos", "risk_score", "risk_band", "on_time_rate", "defect_rate"]
        print(frame[columns].to_string(index=False))
    print("-" * 60)

    for point in view.trend:
        print(f"{point.month}: {point.risk_score:.1f}")
    print("-" * 60)
    for key, count in view.exceptions.counts().items():
        print(f"{key}: {count}")
    return 0


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    sys.exit(main())
