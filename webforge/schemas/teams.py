# FILE: /webforge/schemas/teams.py

from datetime import datetime
from typing import Optional
from pydantic import BaseModel


class TeamBalance(BaseModel):
    team_id: str
    balance_cents: int
    credit_limit_cents: int
    balance_display: str


class TeamTransaction(BaseModel):
    id: int
    kind: str
    amount_cents: int
    amount_display: str
    balance_before_cents: int
    balance_after_cents: int
    job_id: Optional[str] = None
    note: str = ""
    created_at: datetime
