from datetime import date, datetime
import datetime as dt
from decimal import Decimal

from pydantic import BaseModel, Field

from app.models.enums import DrawSource
from app.schemas.common import ORMModel


class ScheduleDay(BaseModel):
    date: dt.date
    daily_unlock: Decimal
    cumulative_available: Decimal
    settlement_id: str
    modeling_method: str | None = None


class ScheduleResponse(BaseModel):
    account_id: int
    currency_code: str
    days: list[ScheduleDay]


class DrawCreateRequest(BaseModel):
    settlement_id: str = Field(min_length=1, max_length=120)
    amount: Decimal = Field(gt=0)
    draw_date: date | None = None
    notes: str | None = Field(default=None, max_length=2000)


class DailyDrawOut(ORMModel):
    id: int
    account_id: int
    settlement_id: str
    draw_date: date
    amount: Decimal
    source: DrawSource
    notes: str | None = None
    created_at: datetime


class DrawResponse(BaseModel):
    draw: DailyDrawOut
    total_drawn: Decimal
    net_available: Decimal
    schedule: list[ScheduleDay]


class CashOutResponse(BaseModel):
    cash_out_detected: bool
    date: dt.date | None = None
    amount: Decimal | None = None
    recorded: bool = False
    settlement_id: str | None = None
    current_available: Decimal | None = None
    beginning_balance: Decimal | None = None
    total_draws: Decimal | None = None
