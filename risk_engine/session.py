"""Caller-owned session state: loaded dataset, column mapping, filters and views.

The engine functions are pure; this module holds the state a dashboard needs
between calls (the raw rows, the chosen mapping, the active filters and the
remembered mappings per dataset) in an explicit object instead of globals.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence

from . import auditing
from .config import load_scoring_config
from .data_pipeline import RawRow, map_rows
from .diagnostics import DatasetDiagnostics, compute_diagnostics
from .filtering import OPTION_FIELDS, Filters, apply_filters, describe_filters, unique_options
from .issues import ExceptionSets, build_top_issues, compute_exceptions
from .mapping import (
    auto_map,
    count_mapped,
    detect_known_dataset,
    mapping_confidence,
    mapping_key,
    missing_required_fields,
    sanitize_mapping,
)
from .outliers import flag_price_outliers
from .schema import (
    CanonicalRecord,
    ColumnMapping,
    MonthlyRiskPoint,
    SupplierIssue,
    SupplierMetric,
    default_mapping,
)
from .supplier_metrics import compute_supplier_metrics
from .trends import (
    compute_monthly_risk_trend,
    compute_overall_kpis,
    defects_by_supplier,
    late_deliveries_by_supplier,
    spend_vs_risk,
)


LOGGER = logging.getLogger(__name__)

SOURCE_SAMPLE = "sample"
SOURCE_UPLOAD = "upload"


class MappingStore:
    """Remembered column mappings keyed by ``"{dataset_name}::{header_hash}"``.

    The store serialises to plain JSON so the caller can keep it wherever it
    likes (browser storage, a file, a cookie).
    """

    def __init__(self, entries: Optional[Mapping[str, Mapping[str, Any]]] = None) -> None:
        self._entries: Dict[str, Dict[str, Any]] = {key: dict(value) for key, value in (entries or {}).items()}

    def __contains__(self, key: str) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def load(self, key: str) -> Optional[ColumnMapping]:
        stored = self._entries.get(key)
        if stored is None:
            return None
        return {**default_mapping(), **stored}

    def save(self, key: str, mapping: Mapping[str, Optional[str]]) -> None:
        self._entries[key] = dict(mapping)

    def to_json(self) -> str:
        return json.dumps(self._entries, sort_keys=True)

    @classmethod
    def from_json(cls, text: Optional[str]) -> "MappingStore":
        if not text:
            return cls()
        try:
            entries = json.loads(text)
        except json.JSONDecodeError:
            LOGGER.warning("Ignoring unreadable mapping store")
            return cls()
        if not isinstance(entries, dict):
            return cls()
        return cls({key: value for key, value in entries.items() if isinstance(value, dict)})


@dataclass
class LoadResult:
    dataset_key: str
    known_dataset: bool
    mapping: ColumnMapping
    mapping_restored: bool
    confidence: float
    needs_confirmation: bool
    missing_required: List[str]
    records_mapped: int


@dataclass
class DashboardView:
    """Everything a dashboard renders for the current filters, as plain data."""

    records: List[CanonicalRecord]
    metrics: List[SupplierMetric]
    trend: List[MonthlyRiskPoint]
    kpis: Dict[str, float]
    issues: List[SupplierIssue]
    exceptions: ExceptionSets
    late_by_supplier: List[Dict[str, Any]]
    defects_by_supplier: List[Dict[str, Any]]
    spend_vs_risk: List[Dict[str, Any]]
    options: Dict[str, List[str]]
    active_filters: str
    diagnostics: DatasetDiagnostics


@dataclass
class RiskSession:
    """State for one user working on one dataset at a time."""

    config: Dict[str, Any] = field(default_factory=load_scoring_config)
    store: MappingStore = field(default_factory=MappingStore)
    rows: List[Dict[str, Any]] = field(default_factory=list)
    headers: List[str] = field(default_factory=list)
    mapping: ColumnMapping = field(default_factory=default_mapping)
    records: List[CanonicalRecord] = field(default_factory=list)
    filters: Filters = field(default_factory=Filters)
    dataset_name: Optional[str] = None
    dataset_source: Optional[str] = None
    dataset_key: Optional[str] = None

    def reset(self) -> None:
        self.rows = []
        self.headers = []
        self.mapping = default_mapping()
        self.records = []
        self.filters = Filters()
        self.dataset_name = None
        self.dataset_source = None
        self.dataset_key = None

    def load_dataset(
        self,
        rows: Sequence[RawRow],
        headers: Sequence[str],
        name: str,
        source: str = SOURCE_UPLOAD,
    ) -> LoadResult:
        """Replace the current dataset and pick a mapping for it.

        Uploaded files reuse a mapping saved for the same name and header set.
        The mapping is applied straight away unless the user should confirm it
        first (an upload with no saved mapping, or low auto-mapping confidence)
        or the identifier/supplier columns could not be found.
        """

        self.reset()
        self.headers = [str(header).strip() for header in headers]
        self.rows = [dict(row) for row in rows]
        self.dataset_name = name
        self.dataset_source = source
        self.dataset_key = mapping_key(name, self.headers)

        sample_path = self.config["known_dataset"]["sample_path"] if source == SOURCE_SAMPLE else None
        known = detect_known_dataset(self.headers, len(self.rows), sample_path, self.config)
        self.mapping = auto_map(self.headers, prefer_known_dataset=known)

        restored = False
        if source == SOURCE_UPLOAD:
            stored = self.store.load(self.dataset_key)
            if stored is not None:
                self.mapping = sanitize_mapping(stored, self.headers)
                restored = True

        confidence = mapping_confidence(self.mapping, self.headers)
        threshold = float(self.config["mapping"]["confidence_threshold"])
        needs_confirmation = source == SOURCE_UPLOAD and (not restored or confidence < threshold)
        missing = missing_required_fields(self.mapping, self.headers)

        if needs_confirmation:
            LOGGER.warning(
                "Mapping for %s needs confirmation (confidence %.2f, restored=%s)", name, confidence, restored
            )
        elif missing:
            LOGGER.warning("Required fields unmapped for %s: %s", name, ", ".join(missing))
        else:
            self.apply_mapping()

        auditing.persist_audit_log(
            event_type="dataset_loaded",
            payload={
                "dataset": self.dataset_key,
                "source": source,
                "rows": len(self.rows),
                "known_dataset": known,
                "mapped_fields": count_mapped(self.mapping),
                "needs_confirmation": needs_confirmation,
            },
        )
        return LoadResult(
            dataset_key=self.dataset_key,
            known_dataset=known,
            mapping=dict(self.mapping),
            mapping_restored=restored,
            confidence=confidence,
            needs_confirmation=needs_confirmation,
            missing_required=missing,
            records_mapped=len(self.records),
        )

    def set_mapping(self, mapping: Mapping[str, Any]) -> ColumnMapping:
        self.mapping = sanitize_mapping(mapping, self.headers)
        return self.mapping

    def apply_mapping(self) -> List[CanonicalRecord]:
        """Canonicalize the loaded rows with the current mapping."""

        self.records = map_rows(self.rows, self.mapping, self.headers)
        auditing.log_data_quality(self.records, len(self.rows), self.mapping)
        return self.records

    def save_mapping(self) -> None:
        if self.dataset_key is None:
            return
        self.store.save(self.dataset_key, self.mapping)

    def set_filter(self, key: str, value: Any) -> Filters:
        self.filters = self.filters.replace(key, value)
        return self.filters

    def filtered_records(self) -> List[CanonicalRecord]:
        return apply_filters(self.records, self.filters)

    def build_view(self) -> DashboardView:
        """Recompute every derived view from the filtered records."""

        records = self.filtered_records()
        outliers = flag_price_outliers(records, self.config)
        metrics = compute_supplier_metrics(records, self.config, outliers=outliers)
        auditing.log_scoring_run(
            metrics,
            context={"dataset": self.dataset_key, "filters": describe_filters(self.filters), "rows": len(records)},
        )
        return DashboardView(
            records=records,
            metrics=metrics,
            trend=compute_monthly_risk_trend(records, self.config),
            kpis=compute_overall_kpis(records, metrics),
            issues=build_top_issues(records, self.config, outliers=outliers),
            exceptions=compute_exceptions(records, self.config, outliers=outliers),
            late_by_supplier=late_deliveries_by_supplier(metrics),
            defects_by_supplier=defects_by_supplier(metrics),
            spend_vs_risk=spend_vs_risk(metrics),
            options={name: unique_options(self.records, name) for name in OPTION_FIELDS},
            active_filters=describe_filters(self.filters),
            diagnostics=compute_diagnostics(self.records, len(self.rows), self.mapping),
        )
