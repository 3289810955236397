from __future__ import annotations

from datetime import date
from decimal import Decimal

from sqlalchemy import Date, ForeignKey, Integer, Numeric, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base


class DailySalesVolume(Base):
    __tablename__ = "daily_sales_volumes"
    __table_args__ = (
        UniqueConstraint("account_id", "sales_date", name="uq_daily_sales_volumes_account_date"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    account_id: Mapped[int] = mapped_column(
        ForeignKey("seller_accounts.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    sales_date: Mapped[date] = mapped_column(Date, nullable=False)
    net_amount: Mapped[Decimal] = mapped_column(Numeric(24, 2), nullable=False)
