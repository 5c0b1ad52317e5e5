"""Scoring configuration loaded from ``config/scoring_config.yaml``.

The YAML files live in the repository's ``config/`` directory, next to the
package, and are not installed with it. The engine is meant to run from a
checkout (or an editable install); anywhere else the file is absent and
``load_scoring_config`` returns the built-in defaults.
"""

from __future__ import annotations

import copy
import logging
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml


LOGGER = logging.getLogger(__name__)
BASE_DIR = Path(__file__).resolve().parents[1]
CONFIG_PATH = BASE_DIR / "config" / "scoring_config.yaml"

DEFAULT_CONFIG: Dict[str, Any] = {
    "risk_weights": {
        "late_rate": 0.30,
        "normalized_avg_days_late": 0.15,
        "missing_delivery_rate": 0.10,
        "defect_rate": 0.20,
        "compliance_gap_rate": 0.15,
        "partial_order_rate": 0.05,
        "price_outlier_rate": 0.05,
    },
    "risk_bands": {
        "high": 67,
        "medium": 34,
    },
    "outliers": {
        "iqr_multiplier": 1.5,
        "min_priced_records": 4,
    },
    "mapping": {
        "confidence_threshold": 0.45,
    },
    "known_dataset": {
        "min_rows": 600,
        "sample_path": "/sample/procurement.csv",
    },
}


def load_scoring_config(path: Optional[Path] = None) -> Dict[str, Any]:
    """Load scoring configuration from YAML or use defaults.

    Each top-level section of the file replaces the matching default section
    key by key, so a file may override a single weight without restating the
    others.

    Parameters
    ----------
    path : Path, optional
        Alternative YAML file; defaults to ``config/scoring_config.yaml``.

    Returns
    -------
    Dict[str, Any]
        Configuration dictionary with the sections of ``DEFAULT_CONFIG``.
    """

    config_path = Path(path) if path is not None else CONFIG_PATH
    config = copy.deepcopy(DEFAULT_CONFIG)
    if not config_path.exists():
        LOGGER.debug("Scoring config %s not found; using built-in defaults", config_path)
        return config

    try:
        with open(config_path, "r", encoding="utf-8") as stream:
            user_config = yaml.safe_load(stream) or {}
    except (OSError, yaml.YAMLError):
        LOGGER.warning("Failed to load scoring config %s; using defaults", config_path, exc_info=True)
        return config

    if not isinstance(user_config, Mapping):
        LOGGER.warning("Scoring config %s is not a mapping; using defaults", config_path)
        return config

    for section, values in user_config.items():
        if isinstance(values, Mapping) and isinstance(config.get(section), dict):
            config[section] = {**config[section], **values}
        else:
            config[section] = values
    return config


def resolve_config(config: Optional[Mapping[str, Any]] = None) -> Mapping[str, Any]:
    """Return ``config`` when given, otherwise the built-in defaults."""

    return config if config is not None else DEFAULT_CONFIG
