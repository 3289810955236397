from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import JSON, Date, DateTime, ForeignKey, Integer, Numeric, String, func
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base


class ForecastAccuracyRecord(Base):
    __tablename__ = "forecast_accuracy_log"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    account_id: Mapped[int] = mapped_column(
        ForeignKey("seller_accounts.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    settlement_id: Mapped[str] = mapped_column(String(120), unique=True, nullable=False, index=True)
    settlement_period_start: Mapped[date | None] = mapped_column(Date, nullable=True)
    settlement_period_end: Mapped[date] = mapped_column(Date, nullable=False)
    payout_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    days_accumulated: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    forecasted_amount: Mapped[Decimal] = mapped_column(Numeric(24, 2), nullable=False)
    forecasted_amounts_by_day: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    actual_amount: Mapped[Decimal] = mapped_column(Numeric(24, 2), nullable=False)
    difference_amount: Mapped[Decimal] = mapped_column(Numeric(24, 2), nullable=False)
    difference_percentage: Mapped[Decimal] = mapped_column(Numeric(12, 6), nullable=False)
    modeling_method: Mapped[str | None] = mapped_column(String(50), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )
