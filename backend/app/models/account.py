from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, DateTime, Enum, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.db.base import Base
from app.models.enums import PayoutModel


class SellerAccount(Base):
    __tablename__ = "seller_accounts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    code: Mapped[str] = mapped_column(String(50), unique=True, nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    marketplace_name: Mapped[str] = mapped_column(String(100), nullable=False, default="United States")
    currency_code: Mapped[str] = mapped_column(String(10), nullable=False, default="USD")
    payout_model: Mapped[PayoutModel] = mapped_column(
        Enum(PayoutModel, name="payout_model"),
        default=PayoutModel.daily,
        nullable=False,
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    settlements: Mapped[list["SettlementPeriod"]] = relationship(
        "SettlementPeriod", back_populates="account", cascade="all, delete-orphan"
    )
    draws: Mapped[list["DailyDraw"]] = relationship(
        "DailyDraw", back_populates="account", cascade="all, delete-orphan"
    )
