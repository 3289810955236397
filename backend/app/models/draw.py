from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import (
    CheckConstraint,
    Date,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.db.base import Base
from app.models.enums import DrawSource


class DailyDraw(Base):
    __tablename__ = "daily_draws"
    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_daily_draws_amount_positive"),
        Index("ix_daily_draws_account_settlement", "account_id", "settlement_id"),
        Index("ix_daily_draws_account_date", "account_id", "draw_date"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    account_id: Mapped[int] = mapped_column(
        ForeignKey("seller_accounts.id", ondelete="CASCADE"),
        nullable=False,
    )
    settlement_id: Mapped[str] = mapped_column(String(120), nullable=False)
    draw_date: Mapped[date] = mapped_column(Date, nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(24, 2), nullable=False)
    source: Mapped[DrawSource] = mapped_column(
        Enum(DrawSource, name="draw_source"),
        default=DrawSource.manual,
        nullable=False,
    )
    settlement_period_start: Mapped[date | None] = mapped_column(Date, nullable=True)
    settlement_period_end: Mapped[date | None] = mapped_column(Date, nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    account: Mapped["SellerAccount"] = relationship("SellerAccount", back_populates="draws")
