"""Canonicalization and supplier risk metrics engine for procurement records."""

__all__ = [
    "auditing",
    "config",
    "data_pipeline",
    "diagnostics",
    "filtering",
    "issues",
    "mapping",
    "outliers",
    "parsers",
    "schema",
    "session",
    "supplier_metrics",
    "trends",
]
