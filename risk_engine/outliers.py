"""Unit price outlier detection using Tukey's IQR fence.

One fence is built over every priced record and one per (category, month)
group. A record is judged against its group fence when that group has one and
against the global fence otherwise. Scopes with too few priced records or a
zero interquartile range produce no fence at all.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Sequence, Set

import pandas as pd

from .config import resolve_config
from .parsers import month_key
from .schema import CanonicalRecord


LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class OutlierModel:
    lower: float
    upper: float

    def contains(self, value: float) -> bool:
        return self.lower <= value <= self.upper


def build_outlier_model(
    values: Sequence[float],
    iqr_multiplier: float = 1.5,
    min_records: int = 4,
) -> Optional[OutlierModel]:
    """Return the IQR fence for ``values`` or ``None`` when no fence applies."""

    if len(values) < min_records:
        return None
    series = pd.Series(values, dtype=float)
    q1 = float(series.quantile(0.25))
    q3 = float(series.quantile(0.75))
    iqr = q3 - q1
    if iqr == 0:
        return None
    return OutlierModel(lower=q1 - iqr_multiplier * iqr, upper=q3 + iqr_multiplier * iqr)


def _group_key(record: CanonicalRecord) -> Optional[str]:
    month = month_key(record.reference_date)
    if not record.category or not month:
        return None
    return f"{record.category}__{month}"


def flag_price_outliers(
    records: Sequence[CanonicalRecord],
    config: Optional[Mapping[str, Any]] = None,
) -> Set[str]:
    """Return the identifiers of records whose unit price falls outside its fence."""

    settings = resolve_config(config)["outliers"]
    multiplier = float(settings["iqr_multiplier"])
    min_records = int(settings["min_priced_records"])

    global_values: List[float] = []
    groups: Dict[str, List[float]] = {}
    for record in records:
        if record.unit_price is None:
            continue
        global_values.append(record.unit_price)
        key = _group_key(record)
        if key is not None:
            groups.setdefault(key, []).append(record.unit_price)

    global_model = build_outlier_model(global_values, multiplier, min_records)
    group_models = {
        key: build_outlier_model(values, multiplier, min_records) for key, values in groups.items()
    }

    outliers: Set[str] = set()
    for record in records:
        if record.unit_price is None:
            continue
        key = _group_key(record)
        model = (group_models.get(key) if key is not None else None) or global_model
        if model is None:
            continue
        if not model.contains(record.unit_price):
            outliers.add(record.po_id)

    LOGGER.debug(
        "Flagged %d price outliers across %d groups (global fence: %s)",
        len(outliers),
        len(groups),
        global_model,
    )
    return outliers
