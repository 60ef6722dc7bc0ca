# FILE: webforge/api/teams.py

from typing import List

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from webforge.api.deps import get_current_user
from webforge.core.database import get_db
from webforge.models.team import Team
from webforge.models.team_member import TeamMember
from webforge.schemas.teams import TeamBalance, TeamTransaction
from webforge.services import ledger_service

router = APIRouter(prefix="/api/teams", tags=["teams"])


async def _require_member(db: AsyncSession, team_id: str, user_id: str) -> Team:
    member = (
        await db.execute(
            select(TeamMember).where(
                TeamMember.team_id == team_id,
                TeamMember.user_id == user_id,
                TeamMember.status == "approved",
            )
        )
    ).scalar_one_or_none()
    team = await db.get(Team, team_id)
    if not member or not team:
        raise HTTPException(status_code=404, detail="Team not found")
    return team


@router.get("/{team_id}/balance", response_model=TeamBalance)
async def get_team_balance(team_id: str, user=Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    team = await _require_member(db, team_id, user["id"])
    return TeamBalance(
        team_id=team.id,
        balance_cents=int(team.balance_cents or 0),
        credit_limit_cents=int(team.credit_limit_cents or 0),
        balance_display=f"{(team.balance_cents or 0) / 100:.2f}",
    )


@router.get("/{team_id}/transactions", response_model=List[TeamTransaction])
async def get_team_transactions(
        team_id: str,
        user=Depends(get_current_user),
        db: AsyncSession = Depends(get_db),
        limit: int = 50,
):
    await _require_member(db, team_id, user["id"])
    transactions = await ledger_service.list_transactions(db, team_id, limit=max(1, min(limit, 500)))
    return [
        TeamTransaction(
            id=t.id,
            kind=t.kind,
            amount_cents=t.amount_cents,
            amount_display=f"{'+' if t.amount_cents > 0 else ''}{t.amount_cents / 100:.2f}",
            balance_before_cents=t.balance_before_cents,
            balance_after_cents=t.balance_after_cents,
            job_id=t.job_id,
            note=t.note,
            created_at=t.created_at,
        )
        for t in transactions
    ]
