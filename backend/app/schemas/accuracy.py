from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel

from app.schemas.common import ORMModel


class ForecastAccuracyOut(ORMModel):
    settlement_id: str
    settlement_period_start: date | None = None
    settlement_period_end: date
    payout_date: date | None = None
    days_accumulated: int
    forecasted_amount: Decimal
    forecasted_amounts_by_day: list[dict]
    actual_amount: Decimal
    difference_amount: Decimal
    difference_percentage: Decimal
    modeling_method: str | None = None
    updated_at: datetime


class AccuracyGroupOut(BaseModel):
    key: str
    count: int
    accuracy: Decimal
    mape: Decimal


class AccuracySummaryOut(BaseModel):
    total_comparisons: int
    overall_accuracy: Decimal
    mape: Decimal
    mean_absolute_error: Decimal
    mean_bias: Decimal
    by_method: list[AccuracyGroupOut]
    monthly: list[AccuracyGroupOut]


class ForecastAccuracyResponse(BaseModel):
    account_id: int
    summary: AccuracySummaryOut
    records: list[ForecastAccuracyOut]
