from datetime import date, datetime
from decimal import Decimal
from typing import Literal

from pydantic import BaseModel, Field

from app.models.enums import SettlementStatus
from app.schemas.common import ORMModel


class SettlementIngestRequest(BaseModel):
    settlement_id: str = Field(min_length=1, max_length=120)
    period_start: date | None = None
    period_end: date | None = None
    total_amount: Decimal
    status: Literal["estimated", "confirmed"]
    beginning_balance: Decimal | None = None
    currency_code: str | None = Field(default=None, max_length=10)
    fund_transfer_status: str | None = Field(default=None, max_length=50)


class SettlementPeriodOut(ORMModel):
    id: int
    account_id: int
    settlement_id: str
    status: SettlementStatus
    period_start: date | None = None
    period_end: date | None = None
    payout_date: date | None = None
    total_amount: Decimal
    beginning_balance: Decimal | None = None
    currency_code: str
    fund_transfer_status: str | None = None
    forecast_date: date | None = None
    source_settlement_id: str | None = None
    cumulative_available: Decimal | None = None
    modeling_method: str | None = None
    updated_at: datetime


class SettlementIngestResponse(BaseModel):
    created: bool
    settlement: SettlementPeriodOut


class SalesVolumePoint(BaseModel):
    sales_date: date
    net_amount: Decimal


class SalesVolumeIngestRequest(BaseModel):
    volumes: list[SalesVolumePoint] = Field(min_length=1)


class SalesVolumeIngestResponse(BaseModel):
    stored: int
