# /webforge/models/generation_job.py
from datetime import datetime
from typing import Optional
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import String, Text, ForeignKey, Integer, BigInteger, DateTime, Float, JSON, LargeBinary
from sqlalchemy.dialects.mysql import LONGTEXT, LONGBLOB

from webforge.core.database import Base

# pending -> generating -> completed | failed
STATUS_PENDING = "pending"
STATUS_GENERATING = "generating"
STATUS_COMPLETED = "completed"
STATUS_FAILED = "failed"

ACTIVE_STATUSES = (STATUS_PENDING, STATUS_GENERATING)
TERMINAL_STATUSES = (STATUS_COMPLETED, STATUS_FAILED)


class GenerationJob(Base):
    __tablename__ = "generation_jobs"
    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    user_id: Mapped[str] = mapped_column(String(36), ForeignKey("users.id", ondelete="CASCADE"), index=True)
    team_id: Mapped[Optional[str]] = mapped_column(
        String(36), ForeignKey("teams.id", ondelete="SET NULL"), nullable=True, index=True
    )

    prompt: Mapped[str] = mapped_column(Text().with_variant(LONGTEXT, "mysql"))
    language: Mapped[str] = mapped_column(String(40))
    model_tier: Mapped[str] = mapped_column(String(20))
    output_kind: Mapped[str] = mapped_column(String(20))
    layout_hint: Mapped[Optional[str]] = mapped_column(String(80), nullable=True)
    site_name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)

    status: Mapped[str] = mapped_column(String(20), default=STATUS_PENDING, index=True)
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Customer-facing price (cents). reserved is fixed at creation.
    reserved_price_cents: Mapped[int] = mapped_column(BigInteger, default=0)
    realized_price_cents: Mapped[int] = mapped_column(BigInteger, default=0)

    # Internal provider cost (USD), reporting only
    generation_cost: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    model_used: Mapped[Optional[str]] = mapped_column(String(80), nullable=True)
    tokens_in: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    tokens_out: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    # Nullable so a retention sweep can drop them without touching job metadata
    files: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    archive: Mapped[Optional[bytes]] = mapped_column(LargeBinary().with_variant(LONGBLOB, "mysql"), nullable=True)
    validation: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    started_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES
