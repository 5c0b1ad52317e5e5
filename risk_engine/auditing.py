"""Audit trail and data-quality checks for scoring runs.

Audit events always go to the module logger. Appending them to a CSV under
``reports/audit_logs`` is opt-in through ``config/auditing_config.yaml``
because the engine itself keeps no state between runs. Both paths resolve
against the repository checkout; without ``config/auditing_config.yaml``
persistence stays off. Nothing in here ever raises into the scoring path:
persistence problems are logged and dropped.
"""

from __future__ import annotations

import dataclasses
import json
import logging
from collections import Counter
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterable, Mapping, Optional, Sequence

import pandas as pd
import yaml

from .diagnostics import compute_diagnostics
from .schema import CANONICAL_KEYS, CanonicalRecord, SupplierMetric

LOGGER = logging.getLogger(__name__)
BASE_DIR = Path(__file__).resolve().parents[1]
REPORTS_DIR = BASE_DIR / "reports" / "audit_logs"
CONFIG_PATH = BASE_DIR / "config" / "auditing_config.yaml"


@dataclass
class AuditEvent:
    event_type: str
    payload: Dict[str, Any]


def load_auditing_rules(path: Optional[Path] = None) -> Dict[str, Any]:
    """Load auditing configuration from YAML, returning sensible defaults."""

    default = {
        "persist_csv": False,
        "data_quality_checks": {
            "max_null_ratio": 0.5,
        },
    }
    config_path = Path(path) if path is not None else CONFIG_PATH
    if config_path.exists():
        try:
            with open(config_path, "r", encoding="utf-8") as fh:
                return {**default, **(yaml.safe_load(fh) or {})}
        except (OSError, yaml.YAMLError):
            LOGGER.debug("Failed to load auditing config; using defaults", exc_info=True)
            return default
    return default


def persist_audit_log(
    event_type: str,
    payload: Mapping[str, Any],
    rules: Optional[Mapping[str, Any]] = None,
) -> None:
    """Log an audit event and, when enabled, append it to the CSV audit log.

    This function never raises on persistence errors; it logs them and continues.
    """

    LOGGER.info("audit %s %s", event_type, json.dumps(payload, default=str))
    rules = rules if rules is not None else load_auditing_rules()
    if not rules.get("persist_csv"):
        return

    try:
        REPORTS_DIR.mkdir(parents=True, exist_ok=True)
        audit_frame = pd.DataFrame(
            [
                {
                    "event_type": event_type,
                    "payload": json.dumps(payload, default=str),
                    "created_at": pd.Timestamp.now(tz="UTC"),
                }
            ]
        )

        csv_path = REPORTS_DIR / "audit_events_log.csv"
        if csv_path.exists():
            audit_frame.to_csv(csv_path, mode="a", header=False, index=False)
        else:
            audit_frame.to_csv(csv_path, index=False)
    except OSError:
        LOGGER.exception("Failed to persist audit log")


def records_to_frame(records: Sequence[CanonicalRecord]) -> pd.DataFrame:
    """Canonical records as a DataFrame with one column per canonical field."""

    rows = [{key: getattr(record, key) for key in CANONICAL_KEYS} for record in records]
    return pd.DataFrame(rows, columns=CANONICAL_KEYS)


def _compute_null_ratios(df: pd.DataFrame) -> Dict[str, float]:
    if df.empty:
        return {column: 1.0 for column in df.columns}
    return {column: float(df[column].isna().mean()) for column in df.columns}


def log_data_quality(
    records: Sequence[CanonicalRecord],
    raw_row_count: Optional[int] = None,
    mapping: Optional[Mapping[str, Optional[str]]] = None,
    checks: Mapping[str, Any] | None = None,
) -> pd.DataFrame:
    """Run simple data-quality checks and log results. Returns a summary DataFrame.

    The summary has one row per metric. ``null_ratio:<field>`` rows only fail
    for mapped fields, since an unmapped column is expected to be empty.
    """

    rules = checks or load_auditing_rules().get("data_quality_checks", {})
    max_null_ratio = float(rules.get("max_null_ratio", 0.5))
    mapped = {key for key, value in (mapping or {}).items() if value}

    null_ratios = _compute_null_ratios(records_to_frame(records))
    diagnostics = compute_diagnostics(
        records, raw_row_count if raw_row_count is not None else len(records), mapping
    )

    rows = [
        {
            "metric": f"null_ratio:{column}",
            "value": ratio,
            "threshold": max_null_ratio,
            "passed": column not in mapped or ratio <= max_null_ratio,
        }
        for column, ratio in null_ratios.items()
    ]
    rows.append(
        {
            "metric": "missing_signals",
            "value": len(diagnostics.notes),
            "threshold": 0,
            "passed": not diagnostics.notes,
        }
    )
    summary = pd.DataFrame(rows)

    persist_audit_log(
        event_type="data_quality",
        payload={
            "rows": diagnostics.mapped_rows,
            "suppliers": diagnostics.suppliers,
            "notes": diagnostics.notes,
            "rules": dict(rules),
            "passed": bool(summary["passed"].all()),
        },
    )
    return summary


def log_scoring_run(metrics: Sequence[SupplierMetric], context: Mapping[str, Any]) -> None:
    summary = dict(Counter(metric.risk_band for metric in metrics))
    persist_audit_log(event_type="supplier_scoring", payload={"band_distribution": summary, **context})


def export_audit_dataframe(events: Iterable[AuditEvent]) -> pd.DataFrame:
    records = [{"event_type": event.event_type, **event.payload} for event in events]
    return pd.DataFrame(records)


def metrics_to_frame(metrics: Sequence[SupplierMetric]) -> pd.DataFrame:
    return pd.DataFrame([dataclasses.asdict(metric) for metric in metrics])
