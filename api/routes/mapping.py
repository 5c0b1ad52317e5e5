"""Auto-mapping endpoint suggesting canonical fields for uploaded headers."""

from __future__ import annotations

from functools import lru_cache
from typing import Any, Dict, List, Optional

from fastapi import APIRouter
from pydantic import BaseModel, Field

from risk_engine import config as engine_config
from risk_engine import mapping as field_mapping


class AutoMapPayload(BaseModel):
    """Headers of an uploaded file plus what is known about where it came from."""

    headers: List[str]
    row_count: int = Field(default=0, ge=0, description="Number of data rows in the file")
    source_hint: Optional[str] = Field(default=None, description="Path the file was loaded from, if bundled")
    dataset_name: str = Field(default="upload.csv", description="File name used to key saved mappings")


class AutoMapResponse(BaseModel):
    mapping: Dict[str, Optional[str]]
    known_dataset: bool
    confidence: float
    needs_confirmation: bool
    missing_required: List[str]
    dataset_key: str


router = APIRouter()


@lru_cache(maxsize=1)
def get_config() -> Dict[str, Any]:
    return engine_config.load_scoring_config()


@router.post("/auto", response_model=AutoMapResponse)
async def auto_map_headers(payload: AutoMapPayload) -> AutoMapResponse:
    """Suggest a mapping and say whether the user should review it."""

    config = get_config()
    headers = [header.strip() for header in payload.headers]
    known = field_mapping.detect_known_dataset(headers, payload.row_count, payload.source_hint, config)
    mapping = field_mapping.auto_map(headers, prefer_known_dataset=known)
    confidence = field_mapping.mapping_confidence(mapping, headers)
    missing = field_mapping.missing_required_fields(mapping, headers)

    return AutoMapResponse(
        mapping=mapping,
        known_dataset=known,
        confidence=confidence,
        needs_confirmation=bool(missing) or confidence < float(config["mapping"]["confidence_threshold"]),
        missing_required=missing,
        dataset_key=field_mapping.mapping_key(payload.dataset_name, headers),
    )
