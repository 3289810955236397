from __future__ import annotations

from datetime import date, datetime, timedelta
from decimal import Decimal

from sqlalchemy import (
    JSON,
    Date,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    func,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.db.base import Base
from app.models.enums import SettlementStatus


MARKETPLACE_STATUS_FILTER = "status IN ('estimated', 'confirmed')"


class SettlementPeriod(Base):
    """One marketplace settlement cycle, or one synthetic forecast day.

    Marketplace rows (``estimated``/``confirmed``) carry the period bounds and
    the settlement total. Forecast rows (``forecasted``/``rolled_over``) hold a
    single ``forecast_date``, the day's unlock in ``total_amount`` and point
    back at the open settlement they distribute via ``source_settlement_id``.
    """

    __tablename__ = "settlement_periods"
    __table_args__ = (
        Index(
            "uq_settlement_periods_account_settlement",
            "account_id",
            "settlement_id",
            unique=True,
            sqlite_where=text(MARKETPLACE_STATUS_FILTER),
            postgresql_where=text(MARKETPLACE_STATUS_FILTER),
        ),
        Index("ix_settlement_periods_account_status", "account_id", "status"),
        Index("ix_settlement_periods_forecast_date", "account_id", "forecast_date"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    account_id: Mapped[int] = mapped_column(
        ForeignKey("seller_accounts.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    settlement_id: Mapped[str] = mapped_column(String(120), nullable=False)
    status: Mapped[SettlementStatus] = mapped_column(
        Enum(SettlementStatus, name="settlement_status"),
        nullable=False,
    )

    period_start: Mapped[date | None] = mapped_column(Date, nullable=True)
    period_end: Mapped[date | None] = mapped_column(Date, nullable=True)
    payout_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    total_amount: Mapped[Decimal] = mapped_column(Numeric(24, 2), default=0, nullable=False)
    beginning_balance: Mapped[Decimal | None] = mapped_column(Numeric(24, 2), nullable=True)
    currency_code: Mapped[str] = mapped_column(String(10), default="USD", nullable=False)
    fund_transfer_status: Mapped[str | None] = mapped_column(String(50), nullable=True)

    forecast_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    source_settlement_id: Mapped[str | None] = mapped_column(String(120), nullable=True, index=True)
    cumulative_available: Mapped[Decimal | None] = mapped_column(Numeric(24, 2), nullable=True)
    days_accumulated: Mapped[int | None] = mapped_column(Integer, nullable=True)
    modeling_method: Mapped[str | None] = mapped_column(String(50), nullable=True)
    forecast_metadata: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    account: Mapped["SellerAccount"] = relationship("SellerAccount", back_populates="settlements")

    @property
    def has_bounds(self) -> bool:
        return self.period_start is not None and self.period_end is not None

    @property
    def duration_days(self) -> int | None:
        if not self.has_bounds:
            return None
        return (self.period_end - self.period_start).days

    @staticmethod
    def derive_payout_date(period_end: date | None) -> date | None:
        if period_end is None:
            return None
        return period_end + timedelta(days=1)
