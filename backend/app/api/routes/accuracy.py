from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.api.deps import get_account, get_db
from app.models.account import SellerAccount
from app.schemas.accuracy import (
    AccuracyGroupOut,
    AccuracySummaryOut,
    ForecastAccuracyOut,
    ForecastAccuracyResponse,
)
from app.services.accuracy import GroupAccuracy, list_records, summarize


router = APIRouter(prefix="/accounts/{account_id}", tags=["accuracy"])


def _group_out(groups: list[GroupAccuracy]) -> list[AccuracyGroupOut]:
    return [
        AccuracyGroupOut(key=group.key, count=group.count, accuracy=group.accuracy, mape=group.mape)
        for group in groups
    ]


@router.get("/forecast-accuracy", response_model=ForecastAccuracyResponse)
def get_forecast_accuracy(
    account: SellerAccount = Depends(get_account),
    db: Session = Depends(get_db),
) -> ForecastAccuracyResponse:
    records = list_records(db, account.id)
    summary = summarize(records)
    return ForecastAccuracyResponse(
        account_id=account.id,
        summary=AccuracySummaryOut(
            total_comparisons=summary.total_comparisons,
            overall_accuracy=summary.overall_accuracy,
            mape=summary.mape,
            mean_absolute_error=summary.mean_absolute_error,
            mean_bias=summary.mean_bias,
            by_method=_group_out(summary.by_method),
            monthly=_group_out(summary.monthly),
        ),
        records=[ForecastAccuracyOut.model_validate(record) for record in records],
    )
