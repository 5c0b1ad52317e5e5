"""Supplier risk endpoints computing metrics, trends and exceptions for posted rows."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field

from risk_engine.diagnostics import DatasetDiagnostics
from risk_engine.filtering import ALL
from risk_engine.issues import supplier_issues
from risk_engine.mapping import MappingError, auto_map, sanitize_mapping
from risk_engine.schema import MonthlyRiskPoint, SupplierIssue, SupplierMetric, SupplierMonthlyRates
from risk_engine.session import RiskSession
from risk_engine.trends import compute_supplier_monthly_rates

from .mapping import get_config


class FilterPayload(BaseModel):
    supplier: str = ALL
    category: str = ALL
    region: str = ALL
    date_from: Optional[str] = None
    date_to: Optional[str] = None


class MetricsPayload(BaseModel):
    """Raw rows exactly as parsed from the CSV, with the mapping to apply."""

    rows: List[Dict[str, Any]]
    headers: Optional[List[str]] = Field(default=None, description="Defaults to the keys of the first row")
    mapping: Optional[Dict[str, Optional[str]]] = Field(default=None, description="Auto-mapped when omitted")
    filters: FilterPayload = Field(default_factory=FilterPayload)


class MetricsResponse(BaseModel):
    metrics: List[SupplierMetric]
    trend: List[MonthlyRiskPoint]
    kpis: Dict[str, float]
    issues: List[SupplierIssue]
    exception_counts: Dict[str, int]
    active_filters: str
    diagnostics: DatasetDiagnostics


class SupplierDetailResponse(BaseModel):
    metric: SupplierMetric
    monthly_rates: List[SupplierMonthlyRates]
    issues: List[SupplierIssue]


router = APIRouter()


def _build_session(payload: MetricsPayload) -> RiskSession:
    session = RiskSession(config=get_config())
    headers = payload.headers if payload.headers is not None else list(payload.rows[0].keys() if payload.rows else [])
    session.headers = [str(header).strip() for header in headers]
    session.rows = payload.rows
    if payload.mapping is None:
        session.mapping = auto_map(session.headers)
    else:
        session.mapping = sanitize_mapping(payload.mapping, session.headers)

    try:
        session.apply_mapping()
    except MappingError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc

    for key, value in payload.filters.model_dump().items():
        session.set_filter(key, value)
    return session


@router.post("/", response_model=MetricsResponse)
async def compute_metrics(payload: MetricsPayload) -> MetricsResponse:
    """Score every supplier in the filtered view of the posted rows."""

    view = _build_session(payload).build_view()
    return MetricsResponse(
        metrics=view.metrics,
        trend=view.trend,
        kpis=view.kpis,
        issues=view.issues,
        exception_counts=view.exceptions.counts(),
        active_filters=view.active_filters,
        diagnostics=view.diagnostics,
    )


@router.post("/supplier/{name}", response_model=SupplierDetailResponse)
async def supplier_detail(name: str, payload: MetricsPayload) -> SupplierDetailResponse:
    """Drill into one supplier: its metric, monthly rates and issue list."""

    view = _build_session(payload).build_view()
    metric = next((item for item in view.metrics if item.supplier == name), None)
    if metric is None:
        raise HTTPException(status_code=404, detail=f"Supplier not found: {name}")

    return SupplierDetailResponse(
        metric=metric,
        monthly_rates=compute_supplier_monthly_rates(view.records, name),
        issues=supplier_issues(view.records, name, get_config()),
    )
