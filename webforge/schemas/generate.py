# =========================================================
# FILE: /webforge/schemas/generate.py
# =========================================================

from datetime import datetime
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field, validator


def _clean(v: Optional[str]) -> Optional[str]:
    if v is None:
        return None
    v = v.strip()
    return v or None


class CreateJobRequest(BaseModel):
    prompt: str
    language: str = "en"
    model_tier: str = "junior"  # junior | senior
    output_kind: str = "html"  # html | php | react
    layout_hint: Optional[str] = None
    site_name: Optional[str] = None
    team_id: Optional[str] = None

    @validator("prompt")
    def strip_prompt(cls, v: str):
        return (v or "").strip()

    @validator("language", "model_tier", "output_kind")
    def lower_keys(cls, v: str):
        return (v or "").lower().strip()

    @validator("layout_hint", "site_name", "team_id")
    def blank_to_none(cls, v: Optional[str]):
        return _clean(v)


class CreateJobResponse(BaseModel):
    success: bool = True
    job_id: str


class JobStatusResponse(BaseModel):
    job_id: str
    status: str
    output_kind: str
    model_tier: str
    site_name: Optional[str] = None
    error: Optional[str] = None
    validation: Optional[Dict[str, Any]] = None
    files: List[str] = Field(default_factory=list)
    reserved_price_cents: int = 0
    realized_price_cents: int = 0
    generation_cost: Optional[float] = None
    model_used: Optional[str] = None
    created_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None


class EditRequest(BaseModel):
    job_id: str
    change_request: str
    current_files: Dict[str, str]
    scope_hints: Optional[List[str]] = None

    @validator("change_request")
    def validate_change_request(cls, value: str):
        if not value or not value.strip():
            raise ValueError("Change request cannot be empty")
        return value.strip()

    @validator("current_files")
    def validate_current_files(cls, value: Dict[str, str]):
        if not value:
            raise ValueError("current_files cannot be empty")
        return value


class EditResponse(BaseModel):
    success: bool = True
    files: Dict[str, str]
    changed_files: List[str] = Field(default_factory=list)
    message: str = ""
