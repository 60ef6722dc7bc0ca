# /webforge/models/team_pricing.py
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import String, Integer, ForeignKey

from webforge.core.database import Base


class TeamPricing(Base):
    """Customer-facing price per output kind, in cents."""
    __tablename__ = "team_pricing"

    team_id: Mapped[str] = mapped_column(String(36), ForeignKey("teams.id", ondelete="CASCADE"), primary_key=True)
    html_price_cents: Mapped[int] = mapped_column(Integer, default=0)
    php_price_cents: Mapped[int] = mapped_column(Integer, default=0)
    react_price_cents: Mapped[int] = mapped_column(Integer, default=0)

    def price_for(self, output_kind: str) -> int:
        return int(getattr(self, f"{output_kind}_price_cents", 0) or 0)
