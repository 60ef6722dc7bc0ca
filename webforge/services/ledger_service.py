# FILE: webforge/services/ledger_service.py
"""
Team balance ledger.

Every balance mutation is one atomic UPDATE on the team row plus exactly one
BalanceTransaction row. Functions here flush but never commit: the caller
commits the mutation together with the job change that caused it.
"""
import logging
import os
from typing import List, Optional, Tuple

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from webforge.core.config import LOG_DIR
from webforge.core.errors import CreditLimitExceeded, PersistenceError, ValidationError
from webforge.models.balance_transaction import BalanceTransaction
from webforge.models.team import Team

KIND_RESERVATION = "reservation"
KIND_REFUND = "refund"
KIND_SETTLEMENT = "settlement"
KIND_TOP_UP = "top_up"

ledger_logger = logging.getLogger("webforge.ledger")
if LOG_DIR and not ledger_logger.handlers:
    os.makedirs(LOG_DIR, exist_ok=True)
    handler = logging.FileHandler(os.path.join(LOG_DIR, "ledger.log"))
    handler.setFormatter(logging.Formatter("%(asctime)s [%(levelname)s] %(message)s"))
    ledger_logger.addHandler(handler)


async def _read_team(db: AsyncSession, team_id: str) -> Tuple[int, int]:
    row = (
        await db.execute(
            select(Team.balance_cents, Team.credit_limit_cents).where(Team.id == team_id)
        )
    ).one_or_none()
    if row is None:
        raise ValidationError(f"Team not found: {team_id}")
    return int(row[0] or 0), int(row[1] or 0)


async def get_balance(db: AsyncSession, team_id: str) -> int:
    balance, _ = await _read_team(db, team_id)
    return balance


async def _append(
        db: AsyncSession,
        team_id: str,
        kind: str,
        amount_cents: int,
        balance_after: int,
        job_id: Optional[str],
        note: str,
        actor_id: Optional[str],
) -> BalanceTransaction:
    tx = BalanceTransaction(
        team_id=team_id,
        kind=kind,
        amount_cents=amount_cents,
        balance_before_cents=balance_after - amount_cents,
        balance_after_cents=balance_after,
        job_id=job_id,
        note=note,
        actor_id=actor_id,
    )
    db.add(tx)
    try:
        await db.flush()
    except IntegrityError as e:
        raise PersistenceError(f"Duplicate {kind} for job {job_id}") from e

    ledger_logger.info(
        "team=%s kind=%s amount=%+d before=%d after=%d job=%s",
        team_id, kind, amount_cents, tx.balance_before_cents, balance_after, job_id,
    )
    return tx


async def _apply_delta(db: AsyncSession, team_id: str, delta_cents: int) -> int:
    """Unconditional atomic relative update. Returns the new balance."""
    res = await db.execute(
        update(Team)
        .where(Team.id == team_id)
        .values(balance_cents=Team.balance_cents + delta_cents)
        .execution_options(synchronize_session=False)
    )
    if res.rowcount == 0:
        raise ValidationError(f"Team not found: {team_id}")
    return await get_balance(db, team_id)


# ─────────────────────────────────────────────
# OPERATIONS
# ─────────────────────────────────────────────

async def reserve(
        db: AsyncSession,
        team_id: str,
        amount_cents: int,
        job_id: Optional[str] = None,
        actor_id: Optional[str] = None,
        note: str = "",
) -> Optional[BalanceTransaction]:
    """
    Deduct amount_cents unless that would take the balance below -credit_limit.
    The limit check and the write are one conditional UPDATE, so two concurrent
    reservations cannot both pass against the same stale balance.
    """
    if amount_cents < 0:
        raise ValueError("amount_cents must be >= 0")
    if amount_cents == 0:
        return None

    res = await db.execute(
        update(Team)
        .where(
            Team.id == team_id,
            Team.balance_cents - amount_cents >= -Team.credit_limit_cents,
        )
        .values(balance_cents=Team.balance_cents - amount_cents)
        .execution_options(synchronize_session=False)
    )

    if res.rowcount == 0:
        balance, limit = await _read_team(db, team_id)
        ledger_logger.warning(
            "BLOCKED: team=%s would exceed credit limit (balance=%d, amount=%d, limit=%d)",
            team_id, balance, amount_cents, limit,
        )
        raise CreditLimitExceeded(team_id, balance, amount_cents, limit)

    balance_after = await get_balance(db, team_id)
    return await _append(
        db, team_id, KIND_RESERVATION, -amount_cents, balance_after, job_id,
        note or f"Reservation for job {job_id}", actor_id,
    )


async def refund(
        db: AsyncSession,
        team_id: str,
        amount_cents: int,
        job_id: str,
        reason: str = "",
        actor_id: Optional[str] = None,
) -> Optional[BalanceTransaction]:
    """
    Give a job's reservation back. The (job_id, kind) unique constraint turns
    a second refund for the same job into a PersistenceError.
    """
    if amount_cents <= 0:
        return None

    balance_after = await _apply_delta(db, team_id, amount_cents)
    note = f"Refund for job {job_id}"
    if reason:
        note = f"{note}: {reason[:500]}"
    return await _append(db, team_id, KIND_REFUND, amount_cents, balance_after, job_id, note, actor_id)


async def settle(
        db: AsyncSession,
        team_id: str,
        reserved_cents: int,
        realized_cents: int,
        job_id: str,
        actor_id: Optional[str] = None,
) -> Optional[BalanceTransaction]:
    """
    Reconcile a completed job. The reserved amount already is the customer
    price, so the usual call passes realized == reserved and nothing happens.
    """
    delta = int(reserved_cents) - int(realized_cents)
    if delta == 0:
        return None

    balance_after = await _apply_delta(db, team_id, delta)
    return await _append(
        db, team_id, KIND_SETTLEMENT, delta, balance_after, job_id,
        f"Settlement for job {job_id}: reserved {reserved_cents}, realized {realized_cents}", actor_id,
    )


async def top_up(
        db: AsyncSession,
        team_id: str,
        amount_cents: int,
        note: str = "",
        actor_id: Optional[str] = None,
) -> BalanceTransaction:
    if amount_cents <= 0:
        raise ValueError("amount_cents must be > 0")
    balance_after = await _apply_delta(db, team_id, amount_cents)
    return await _append(db, team_id, KIND_TOP_UP, amount_cents, balance_after, None, note or "Top up", actor_id)


async def list_transactions(db: AsyncSession, team_id: str, limit: int = 50) -> List[BalanceTransaction]:
    rows = (
        await db.execute(
            select(BalanceTransaction)
            .where(BalanceTransaction.team_id == team_id)
            .order_by(BalanceTransaction.id.desc())
            .limit(limit)
        )
    ).scalars().all()
    return list(rows)
