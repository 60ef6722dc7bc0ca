# /webforge/models/balance_transaction.py
from datetime import datetime
from typing import Optional
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import String, Integer, BigInteger, ForeignKey, DateTime, Text, UniqueConstraint

from webforge.core.database import Base


class BalanceTransaction(Base):
    """Append-only audit record - one row per team balance mutation."""
    __tablename__ = "balance_transactions"
    # at most one reservation / refund / settlement per job
    __table_args__ = (UniqueConstraint("job_id", "kind", name="uq_balance_tx_job_kind"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    team_id: Mapped[str] = mapped_column(String(36), ForeignKey("teams.id", ondelete="CASCADE"), index=True)

    # Kind: reservation, refund, settlement, top_up
    kind: Mapped[str] = mapped_column(String(30))

    # Signed amount in cents (positive for credit, negative for debit)
    amount_cents: Mapped[int] = mapped_column(BigInteger)
    balance_before_cents: Mapped[int] = mapped_column(BigInteger)
    balance_after_cents: Mapped[int] = mapped_column(BigInteger)

    # Generation job this movement belongs to (null for manual top ups)
    job_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True, index=True)
    note: Mapped[str] = mapped_column(Text, default="")
    actor_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
